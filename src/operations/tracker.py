"""
Operation tracker.

Owns every Operation and is the only code that mutates one. Executor workers
report item outcomes concurrently, so all mutations of a given operation are
serialised by a per-operation asyncio.Lock. Progress polling is a plain read
of the current state.

Each change is mirrored best-effort to Redis so progress survives a restart
of the process long enough to be read, even though execution does not.
"""

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from config import settings
from ..cache.redis_client import cache
from ..models.bulk import (
    ChangeDescriptor,
    ItemOutcome,
    ItemResult,
    Operation,
    OperationStatus,
    RecordSnapshot,
    RecordStatus,
    RollbackResult,
    TargetType,
    ValidationReport,
    utcnow,
)
from ..monitoring.prometheus import (
    bulk_items_total,
    bulk_operations_in_progress,
    bulk_operations_total,
)
from .exceptions import InvalidStateError, OperationNotFoundError

logger = logging.getLogger(__name__)


class OperationTracker:
    """In-memory store and state machine for bulk operations."""

    def __init__(self, retention_hours: Optional[float] = None):
        self._operations: Dict[str, Operation] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._terminal_events: Dict[str, asyncio.Event] = {}
        self._clock_started: Dict[str, float] = {}
        hours = retention_hours if retention_hours is not None else settings.bulk_retention_hours
        self.retention = timedelta(hours=hours)

    @staticmethod
    def _cache_key(operation_id: str) -> str:
        return f"bulk:progress:{operation_id}"

    async def _mirror(self, operation: Operation):
        """Best-effort copy of the operation into Redis (never raises)."""
        await cache.set(
            self._cache_key(operation.id),
            operation.to_dict(),
            ttl=max(int(self.retention.total_seconds()), 1),
        )

    def _require(self, operation_id: str) -> Operation:
        operation = self._operations.get(operation_id)
        if operation is None:
            raise OperationNotFoundError(operation_id)
        return operation

    def _lock(self, operation_id: str) -> asyncio.Lock:
        """Lock for a known operation. Unknown ids raise without allocating a lock."""
        self._require(operation_id)
        return self._locks[operation_id]

    def _transition(self, operation: Operation, status: OperationStatus):
        """Move to a terminal state. Caller holds the operation lock."""
        operation.status = status
        operation.completed_at = utcnow()
        operation.estimated_time_remaining = 0.0 if status == OperationStatus.COMPLETED else None
        operation.can_rollback = (
            status == OperationStatus.COMPLETED
            and bool(operation.snapshots)
            and not operation.rollback_consumed
        )

        bulk_operations_in_progress.dec()
        bulk_operations_total.labels(action=operation.descriptor.action_id, status=status.value).inc()

        event = self._terminal_events.get(operation.id)
        if event:
            event.set()

        logger.info(
            f"📦 Bulk operation {operation.id} {status.value}: "
            f"{operation.success_count} succeeded, {operation.error_count} failed, "
            f"{len(operation.skipped_ids)} skipped"
        )

    # ==================== LIFECYCLE ====================

    async def create(self, descriptor: ChangeDescriptor, report: ValidationReport) -> Operation:
        """Register a new pending operation for a validated descriptor."""
        warnings = list(report.global_warnings)
        for result in report.per_record:
            if result.status != RecordStatus.ERROR:
                warnings.extend(f"{result.record_id}: {w}" for w in result.warnings)

        operation = Operation(
            id=str(uuid.uuid4()),
            descriptor=descriptor,
            progress_total=len(descriptor.target_ids),
            warnings=warnings,
        )

        async with self._locks[operation.id]:
            self._operations[operation.id] = operation
            self._terminal_events[operation.id] = asyncio.Event()
            bulk_operations_in_progress.inc()
            await self._mirror(operation)

        logger.info(
            f"Created bulk operation {operation.id}: {descriptor.action_id} on "
            f"{operation.progress_total} {descriptor.target_type.value}"
        )
        return operation.model_copy(deep=True)

    async def report(self, operation_id: str, result: ItemResult) -> Operation:
        """Record the final outcome of one target record."""
        async with self._lock(operation_id):
            operation = self._require(operation_id)

            if result.record_id in operation.item_results:
                logger.warning(
                    f"Duplicate outcome for {result.record_id} in operation {operation_id} ignored"
                )
                return operation.model_copy(deep=True)

            if operation.status == OperationStatus.PENDING:
                operation.status = OperationStatus.IN_PROGRESS
                self._clock_started[operation_id] = time.monotonic()

            operation.progress_current += 1
            operation.item_results[result.record_id] = result

            if result.outcome == ItemOutcome.SUCCEEDED:
                operation.success_count += 1
            else:
                operation.error_count += 1
                operation.errors.append(f"{result.record_id}: {result.error or 'Unknown error'}")
                # Nothing was written, so there is nothing to restore.
                operation.snapshots.pop(result.record_id, None)
                operation.snapshot_count = len(operation.snapshots)

            operation.affected_count = operation.success_count
            self._update_rate(operation)

            bulk_items_total.labels(action=operation.descriptor.action_id, outcome=result.outcome.value).inc()

            if (
                not operation.is_terminal
                and not operation.cancel_requested
                and operation.progress_current == operation.progress_total
            ):
                self._transition(operation, OperationStatus.COMPLETED)

            await self._mirror(operation)
            return operation.model_copy(deep=True)

    def _update_rate(self, operation: Operation):
        started = self._clock_started.get(operation.id)
        if started is None:
            return
        elapsed = time.monotonic() - started
        if elapsed <= 0:
            return
        rate = operation.progress_current / elapsed
        operation.processing_rate = round(rate, 2)
        remaining = operation.progress_total - operation.progress_current
        operation.estimated_time_remaining = round(remaining / rate, 1) if rate > 0 else None

    async def capture_snapshot(self, operation_id: str, snapshot: RecordSnapshot):
        """Store the pre-change state of a record. Must precede that record's write."""
        async with self._lock(operation_id):
            operation = self._require(operation_id)
            operation.snapshots[snapshot.id] = snapshot
            operation.snapshot_count = len(operation.snapshots)

    async def mark_skipped(self, operation_id: str, record_ids: Iterable[str]):
        """Records never started because the operation was cancelled."""
        async with self._lock(operation_id):
            operation = self._require(operation_id)
            for record_id in record_ids:
                if record_id in operation.item_results:
                    continue
                operation.skipped_ids.append(record_id)
                operation.item_results[record_id] = ItemResult(
                    record_id=record_id,
                    outcome=ItemOutcome.SKIPPED,
                    error="Cancelled before processing",
                )
                bulk_items_total.labels(action=operation.descriptor.action_id, outcome="skipped").inc()
            await self._mirror(operation)

    async def fail(self, operation_id: str, reason: str) -> Operation:
        """Operation-level fault: move straight to failed."""
        async with self._lock(operation_id):
            operation = self._require(operation_id)
            if not operation.is_terminal:
                operation.fault = reason
                operation.errors.append(f"Operation failed: {reason}")
                self._transition(operation, OperationStatus.FAILED)
                await self._mirror(operation)
            return operation.model_copy(deep=True)

    async def finalize(self, operation_id: str) -> Operation:
        """Called once the executor has drained; settles any non-terminal state."""
        async with self._lock(operation_id):
            operation = self._require(operation_id)
            if operation.is_terminal:
                return operation.model_copy(deep=True)

            if operation.cancel_requested:
                self._transition(operation, OperationStatus.CANCELLED)
            elif operation.progress_current == operation.progress_total:
                self._transition(operation, OperationStatus.COMPLETED)
            else:
                unaccounted = operation.progress_total - operation.progress_current
                operation.fault = f"{unaccounted} record(s) have no recorded outcome"
                operation.errors.append(f"Operation failed: {operation.fault}")
                logger.critical(f"🚨 Bulk operation {operation_id} ended inconsistently: {operation.fault}")
                self._transition(operation, OperationStatus.FAILED)

            await self._mirror(operation)
            return operation.model_copy(deep=True)

    async def cancel(self, operation_id: str) -> Operation:
        """Request cooperative cancellation: in-flight writes finish, nothing new starts."""
        async with self._lock(operation_id):
            operation = self._require(operation_id)
            if operation.is_terminal:
                raise InvalidStateError(f"Operation {operation_id} is already {operation.status.value}")
            operation.cancel_requested = True
            await self._mirror(operation)
            logger.info(f"Cancellation requested for bulk operation {operation_id}")
            return operation.model_copy(deep=True)

    def is_cancel_requested(self, operation_id: str) -> bool:
        operation = self._operations.get(operation_id)
        return bool(operation and operation.cancel_requested)

    # ==================== ROLLBACK ====================

    async def begin_rollback(self, operation_id: str) -> Operation:
        """
        Consume the operation's single rollback.

        Returns a copy that still carries the snapshots. Raises InvalidStateError
        if the operation is not completed, captured no snapshots, or was
        already rolled back.
        """
        async with self._lock(operation_id):
            operation = self._require(operation_id)
            if not operation.can_rollback:
                if operation.rollback_consumed:
                    reason = "has already been rolled back"
                elif operation.status != OperationStatus.COMPLETED:
                    reason = f"is {operation.status.value}, not completed"
                else:
                    reason = "has no snapshots to restore"
                raise InvalidStateError(f"Operation {operation_id} cannot be rolled back: it {reason}")

            operation.rollback_consumed = True
            operation.can_rollback = False
            await self._mirror(operation)
            return operation.model_copy(deep=True)

    async def record_rollback(self, operation_id: str, result: RollbackResult) -> Operation:
        async with self._lock(operation_id):
            operation = self._require(operation_id)
            operation.rollback_result = result
            operation.rolled_back_at = result.completed_at
            await self._mirror(operation)
            return operation.model_copy(deep=True)

    # ==================== READS ====================

    async def get(self, operation_id: str) -> Operation:
        """Current state of an operation (a copy; callers cannot mutate it)."""
        operation = self._operations.get(operation_id)
        if operation is not None:
            return operation.model_copy(deep=True)

        mirrored = await cache.get(self._cache_key(operation_id))
        if mirrored:
            logger.debug(f"Serving operation {operation_id} from progress mirror")
            operation = Operation.model_validate(mirrored)
            # Snapshots are never mirrored, so a mirrored operation cannot be restored.
            operation.can_rollback = False
            return operation

        raise OperationNotFoundError(operation_id)

    def list_operations(
        self,
        status: Optional[OperationStatus] = None,
        target_type: Optional[TargetType] = None,
        limit: int = 50,
    ) -> List[Operation]:
        """Operation history, newest first (copies)."""
        operations = list(reversed(self._operations.values()))
        if status is not None:
            operations = [op for op in operations if op.status == status]
        if target_type is not None:
            operations = [op for op in operations if op.descriptor.target_type == target_type]
        return [op.model_copy(deep=True) for op in operations[:limit]]

    async def wait_for_terminal(self, operation_id: str, timeout: Optional[float] = None) -> Operation:
        """Block until the operation reaches a terminal state."""
        event = self._terminal_events.get(operation_id)
        if event is None:
            raise OperationNotFoundError(operation_id)
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return await self.get(operation_id)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Drop terminal operations older than the retention window. Returns how many."""
        cutoff = (now or utcnow()) - self.retention
        expired = [
            op_id
            for op_id, operation in self._operations.items()
            if operation.is_terminal and operation.completed_at and operation.completed_at < cutoff
        ]
        for op_id in expired:
            self._operations.pop(op_id, None)
            self._terminal_events.pop(op_id, None)
            self._clock_started.pop(op_id, None)
            self._locks.pop(op_id, None)

        if expired:
            logger.info(f"🧹 Purged {len(expired)} expired bulk operation(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._operations)
