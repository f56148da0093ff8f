"""
Bulk executor.

Applies a validated change to each target record through a fixed-size pool of
worker coroutines. Per record the order is fixed: re-read, re-check, snapshot,
write, report. Outcomes go to the OperationTracker; the executor never touches
Operation state itself.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from config import settings
from ..database.exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    EntityNotFoundError,
    RecordConflictError,
)
from ..database.repositories.records import RecordRepository, get_record_repository
from ..models.bulk import (
    ChangeDescriptor,
    ItemOutcome,
    ItemResult,
    OperationStatus,
    RecordSnapshot,
    RecordStatus,
    ValidationReport,
)
from ..monitoring.prometheus import bulk_item_write_duration, bulk_operation_faults_total
from ..utils.audit_logger import AuditAction, AuditLevel, log_audit_event
from ..utils.background_tasks import create_safe_task
from ..utils.retry import RetryExhausted, retry_with_backoff
from .exceptions import ItemTimeoutError, OperationFault, RecordValidationError, RequestError
from .registry import ActionRegistry, changed_values, get_action_registry
from .tracker import OperationTracker

logger = logging.getLogger(__name__)

HALTED_MESSAGE = "Not attempted: operation halted after an earlier failure"


async def run_with_timeout(awaitable: Awaitable, timeout: Optional[float], what: str):
    """Await a record store call, turning a timeout into a per-item error."""
    if not timeout:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ItemTimeoutError(f"{what} timed out after {timeout:g}s") from e


class WritePool:
    """
    Bounded-parallelism runner shared by execution and rollback.

    ``handler`` is awaited once per item by at most ``concurrency`` workers.
    Workers stop taking new items as soon as ``should_stop()`` is true; items
    already started always finish. An OperationFault from any handler stops
    the pool and is re-raised once in-flight items have drained.
    """

    def __init__(self, concurrency: int):
        self.concurrency = max(1, concurrency)

    async def run(
        self,
        items: Sequence[str],
        handler: Callable[[str], Awaitable[None]],
        should_stop: Callable[[], bool] = lambda: False,
    ) -> List[str]:
        """Process items; returns the ones never started."""
        queue = deque(items)
        fault: Optional[OperationFault] = None

        async def worker():
            nonlocal fault
            while queue:
                if fault is not None or should_stop():
                    return
                item = queue.popleft()
                try:
                    await handler(item)
                except OperationFault as e:
                    fault = fault or e
                    return
                except Exception as e:
                    logger.error(f"Worker crashed on {item}: {e}", exc_info=True)
                    fault = fault or OperationFault(f"Worker crashed on {item}: {e}")
                    return

        workers = [asyncio.create_task(worker()) for _ in range(min(self.concurrency, len(queue)))]
        if workers:
            await asyncio.gather(*workers)

        if fault is not None:
            raise fault
        return list(queue)


class BulkExecutor:
    """Runs validated bulk changes in the background."""

    def __init__(
        self,
        tracker: OperationTracker,
        repository: Optional[RecordRepository] = None,
        registry: Optional[ActionRegistry] = None,
        concurrency: Optional[int] = None,
        item_timeout: Optional[float] = None,
        conflict_retries: Optional[int] = None,
        conflict_retry_delay: Optional[float] = None,
    ):
        self.tracker = tracker
        self.repository = repository if repository is not None else get_record_repository()
        self.registry = registry if registry is not None else get_action_registry()
        self.concurrency = concurrency or settings.bulk_concurrency
        self.item_timeout = item_timeout if item_timeout is not None else settings.bulk_item_timeout_seconds
        self.conflict_retries = (
            conflict_retries if conflict_retries is not None else settings.bulk_conflict_retries
        )
        self.conflict_retry_delay = (
            conflict_retry_delay if conflict_retry_delay is not None else settings.bulk_conflict_retry_delay
        )

    async def execute(self, descriptor: ChangeDescriptor, report: ValidationReport, user_id: Optional[str] = None) -> str:
        """
        Start executing a validated change.

        Returns the operation ID immediately; progress is read from the tracker.

        Raises:
            RequestError: the report is invalid or was produced for other targets
        """
        if not report.valid:
            raise RequestError("Validation failed", report.global_errors)
        if [r.record_id for r in report.per_record] != list(descriptor.target_ids):
            raise RequestError("Validation report does not match the requested records")

        operation = await self.tracker.create(descriptor, report)

        await log_audit_event(
            AuditAction.BULK_EXECUTE,
            user_id=user_id,
            entity_type="bulk_operation",
            entity_id=operation.id,
            details={
                "action": descriptor.action_id,
                "target_type": descriptor.target_type.value,
                "target_count": len(descriptor.target_ids),
                "parameters": descriptor.parameters.to_dict(),
                "options": descriptor.options.to_dict(),
            },
        )

        create_safe_task(self.run(operation.id, descriptor, report), f"bulk-execute-{operation.id}")
        return operation.id

    async def run(self, operation_id: str, descriptor: ChangeDescriptor, report: ValidationReport):
        """Drive one operation to a terminal state."""
        halted = False

        def should_stop() -> bool:
            return halted or self.tracker.is_cancel_requested(operation_id)

        async def handle(record_id: str):
            nonlocal halted
            result = await self.process_item(operation_id, descriptor, record_id)
            await self.tracker.report(operation_id, result)
            if result.outcome == ItemOutcome.FAILED and not descriptor.options.continue_on_error:
                if not halted:
                    logger.warning(f"Halting bulk operation {operation_id} after failure on {record_id}")
                halted = True

        try:
            # Records rejected by validation count as processed errors.
            for result in report.per_record:
                if result.status == RecordStatus.ERROR:
                    await self.tracker.report(
                        operation_id,
                        ItemResult.failed(result.record_id, "; ".join(result.errors) or "Validation failed"),
                    )

            remaining = await WritePool(self.concurrency).run(report.executable_ids, handle, should_stop)

            if remaining:
                if self.tracker.is_cancel_requested(operation_id):
                    await self.tracker.mark_skipped(operation_id, remaining)
                else:
                    for record_id in remaining:
                        await self.tracker.report(operation_id, ItemResult.failed(record_id, HALTED_MESSAGE))

        except OperationFault as e:
            logger.critical(f"🚨 Bulk operation {operation_id} aborted: {e}", exc_info=True)
            bulk_operation_faults_total.labels(action=descriptor.action_id).inc()
            await self.tracker.fail(operation_id, str(e))
            await log_audit_event(
                AuditAction.BULK_FAULT,
                entity_type="bulk_operation",
                entity_id=operation_id,
                details={"action": descriptor.action_id, "reason": str(e)},
                level=AuditLevel.CRITICAL,
            )

        finally:
            operation = await self.tracker.finalize(operation_id)

        if operation.status != OperationStatus.FAILED:
            await log_audit_event(
                AuditAction.BULK_CANCEL if operation.status == OperationStatus.CANCELLED else AuditAction.BULK_COMPLETE,
                entity_type="bulk_operation",
                entity_id=operation_id,
                details={
                    "action": descriptor.action_id,
                    "success_count": operation.success_count,
                    "error_count": operation.error_count,
                    "skipped_count": len(operation.skipped_ids),
                },
            )

    async def process_item(self, operation_id: str, descriptor: ChangeDescriptor, record_id: str) -> ItemResult:
        """
        Apply the change to one record.

        Per-item problems come back as a failed ItemResult. Only a record store
        outage escapes, as OperationFault.
        """
        start = time.time()
        try:
            written, changed_fields = await retry_with_backoff(
                self._apply,
                operation_id,
                descriptor,
                record_id,
                max_retries=self.conflict_retries,
                base_delay=self.conflict_retry_delay,
                max_delay=2.0,
                retry_on=(RecordConflictError,),
            )
            return ItemResult.succeeded(record_id, written.version, changed_fields)

        except DatabaseConnectionError as e:
            raise OperationFault(f"Record store unavailable: {e}") from e

        except RetryExhausted as e:
            if isinstance(e.__cause__, DatabaseConnectionError):
                raise OperationFault(f"Record store unavailable: {e.__cause__}") from e
            return ItemResult.failed(
                record_id, f"Conflict: record was modified concurrently ({e.attempts} attempts)"
            )

        except (RecordValidationError, ItemTimeoutError, EntityNotFoundError, DatabaseError) as e:
            logger.warning(f"Bulk write failed for {record_id} in operation {operation_id}: {e}")
            return ItemResult.failed(record_id, str(e))

        except Exception as e:
            logger.error(f"Unexpected error writing {record_id} in operation {operation_id}: {e}", exc_info=True)
            return ItemResult.failed(record_id, f"Unexpected error: {e}")

        finally:
            bulk_item_write_duration.labels(action=descriptor.action_id).observe(time.time() - start)

    async def _apply(
        self,
        operation_id: str,
        descriptor: ChangeDescriptor,
        record_id: str,
    ) -> Tuple[RecordSnapshot, List[str]]:
        """One attempt: re-read, recompute, check, snapshot, write."""
        record_type = descriptor.target_type
        current = await run_with_timeout(
            self.repository.get(record_type, record_id),
            self.item_timeout,
            f"Reading {record_type.singular} {record_id}",
        )

        new_values = self.registry.transform(descriptor.action_id, current.values, descriptor.parameters)
        changes = changed_values(current.values, new_values)

        if not descriptor.options.skip_validation:
            errors, _ = self.registry.check(
                descriptor.action_id, record_type, current.values, new_values, descriptor.parameters
            )
            if errors:
                raise RecordValidationError("; ".join(errors))
        if not changes:
            raise RecordValidationError("No changes to apply")

        if descriptor.options.create_backup:
            await self.tracker.capture_snapshot(operation_id, current)

        written = await run_with_timeout(
            self.repository.update(record_type, record_id, changes, expected_version=current.version),
            self.item_timeout,
            f"Writing {record_type.singular} {record_id}",
        )
        return written, sorted(changes)
