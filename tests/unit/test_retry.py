"""
Tests for src/utils/retry.py
"""

import pytest

from src.database.exceptions import EntityNotFoundError, RecordConflictError
from src.utils.retry import RetryExhausted, retry_with_backoff, with_retry


def _conflict():
    return RecordConflictError("task", "1", 1, 2)


@pytest.mark.asyncio
async def test_succeeds_after_conflict():
    calls = []

    async def write():
        calls.append(1)
        if len(calls) < 2:
            raise _conflict()
        return "ok"

    result = await retry_with_backoff(write, max_retries=2, base_delay=0, retry_on=(RecordConflictError,))

    assert result == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_exhausted_keeps_cause_and_attempts():
    async def write():
        raise _conflict()

    with pytest.raises(RetryExhausted) as exc:
        await retry_with_backoff(write, max_retries=2, base_delay=0, retry_on=(RecordConflictError,))

    assert exc.value.attempts == 3
    assert isinstance(exc.value.__cause__, RecordConflictError)


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    async def write():
        calls.append(1)
        raise EntityNotFoundError("task", "1")

    with pytest.raises(EntityNotFoundError):
        await retry_with_backoff(write, max_retries=3, base_delay=0, retry_on=(RecordConflictError,))

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_skip_on_wins_over_retry_on():
    calls = []

    async def write():
        calls.append(1)
        raise EntityNotFoundError("task", "1")

    with pytest.raises(EntityNotFoundError):
        await retry_with_backoff(write, max_retries=3, base_delay=0, skip_on=(EntityNotFoundError,))

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_decorator():
    calls = []

    @with_retry(max_retries=1, base_delay=0, retry_on=(RecordConflictError,))
    async def write(value):
        calls.append(value)
        if len(calls) == 1:
            raise _conflict()
        return value * 2

    assert await write(21) == 42
    assert calls == [21, 21]
