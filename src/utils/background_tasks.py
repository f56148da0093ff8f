"""
Safe background task execution with error handling.

Prevents silent failures by:
- Logging all errors with stack traces
- Tracking task references to prevent GC
"""

import asyncio
import logging
from typing import Coroutine, Any

logger = logging.getLogger(__name__)

# Track active tasks to prevent garbage collection
_active_background_tasks: set = set()


async def safe_background_task(coro: Coroutine, task_name: str) -> Any:
    """
    Wrapper for background tasks with error handling.

    Args:
        coro: Coroutine to execute
        task_name: Human-readable task name for logging

    Returns:
        Result of the coroutine if successful, None on error
    """
    try:
        result = await coro
        logger.info(f"✓ Background task completed: {task_name}")
        return result
    except asyncio.CancelledError:
        logger.warning(f"Background task cancelled: {task_name}")
        raise
    except Exception as e:
        logger.error(
            f"✗ Background task failed: {task_name} - {e}",
            exc_info=True
        )
        return None


def create_safe_task(coro: Coroutine, task_name: str) -> asyncio.Task:
    """
    Create a background task with error handling.

    Args:
        coro: Coroutine to execute
        task_name: Human-readable task name

    Returns:
        asyncio.Task object

    Example:
        task = create_safe_task(
            executor.run(operation_id, descriptor, report),
            f"bulk-execute-{operation_id}"
        )
    """
    task = asyncio.create_task(
        safe_background_task(coro, task_name)
    )

    # Store reference to prevent garbage collection
    _active_background_tasks.add(task)

    # Remove from tracking when done
    task.add_done_callback(_active_background_tasks.discard)

    logger.debug(f"Created safe background task: {task_name}")
    return task


def active_task_count() -> int:
    """Number of background tasks still running."""
    return len(_active_background_tasks)
