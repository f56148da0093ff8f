"""
Rollback engine.

Restores every record a completed operation changed to the snapshot taken
just before its write. Rollback is single-use per operation, and a record
that has been modified again since the operation ran is left alone and
reported as a per-record error.
"""

import logging
from typing import List, Optional

from config import settings
from ..database.exceptions import DatabaseError, EntityNotFoundError, RecordConflictError
from ..database.repositories.records import RecordRepository, get_record_repository
from ..models.bulk import ItemResult, Operation, RecordSnapshot, RollbackResult
from ..monitoring.prometheus import bulk_rollbacks_total
from ..utils.audit_logger import AuditAction, AuditLevel, log_audit_event
from .exceptions import ItemTimeoutError, RollbackError
from .executor import WritePool, run_with_timeout
from .tracker import OperationTracker

logger = logging.getLogger(__name__)


class RollbackEngine:
    """Undo a completed bulk operation from its captured snapshots."""

    def __init__(
        self,
        tracker: OperationTracker,
        repository: Optional[RecordRepository] = None,
        concurrency: Optional[int] = None,
        item_timeout: Optional[float] = None,
    ):
        self.tracker = tracker
        self.repository = repository if repository is not None else get_record_repository()
        self.concurrency = concurrency or settings.bulk_concurrency
        self.item_timeout = item_timeout if item_timeout is not None else settings.bulk_item_timeout_seconds

    async def rollback(self, operation_id: str, user_id: Optional[str] = None) -> RollbackResult:
        """
        Restore all snapshotted records of an operation.

        Raises:
            InvalidStateError: not completed, nothing captured, or already rolled back
            OperationNotFoundError: unknown operation
        """
        operation = await self.tracker.begin_rollback(operation_id)
        restored: List[str] = []
        errors: List[str] = []

        async def restore(record_id: str):
            try:
                await self.restore_record(
                    operation,
                    operation.snapshots[record_id],
                    operation.item_results.get(record_id),
                )
                restored.append(record_id)
            except RollbackError as e:
                logger.warning(f"Rollback of {record_id} in operation {operation_id} failed: {e.reason}")
                errors.append(str(e))

        await WritePool(self.concurrency).run(list(operation.snapshots), restore)

        # Report in target order, not completion order.
        order = {record_id: i for i, record_id in enumerate(operation.descriptor.target_ids)}
        restored.sort(key=lambda rid: order.get(rid, len(order)))

        result = RollbackResult(
            operation_id=operation_id,
            restored_count=len(restored),
            restored_ids=restored,
            errors=errors,
        )
        await self.tracker.record_rollback(operation_id, result)

        bulk_rollbacks_total.labels(outcome="partial" if errors else "restored").inc()
        await log_audit_event(
            AuditAction.BULK_ROLLBACK,
            user_id=user_id,
            entity_type="bulk_operation",
            entity_id=operation_id,
            details={
                "action": operation.descriptor.action_id,
                "restored_count": result.restored_count,
                "error_count": len(errors),
            },
            level=AuditLevel.WARNING if errors else AuditLevel.INFO,
        )

        logger.info(
            f"↩️  Rolled back bulk operation {operation_id}: "
            f"{result.restored_count} restored, {len(errors)} failed"
        )
        return result

    async def restore_record(
        self,
        operation: Operation,
        snapshot: RecordSnapshot,
        item: Optional[ItemResult],
    ):
        """Write one snapshot back. Every failure surfaces as RollbackError."""
        record_type = operation.descriptor.target_type
        values = dict(snapshot.values)
        # Fields the operation introduced did not exist before; remove them.
        introduced = [f for f in (item.changed_fields if item else []) if f not in values]

        expected_version = item.version if item else None

        try:
            await run_with_timeout(
                self.repository.update(
                    record_type, snapshot.id, values, expected_version=expected_version, unset=introduced
                ),
                self.item_timeout,
                f"Restoring {record_type.singular} {snapshot.id}",
            )
        except RecordConflictError as e:
            raise RollbackError(snapshot.id, "modified since the operation ran; not restored") from e
        except EntityNotFoundError as e:
            raise RollbackError(snapshot.id, "record no longer exists") from e
        except (ItemTimeoutError, DatabaseError) as e:
            raise RollbackError(snapshot.id, str(e)) from e
        except Exception as e:
            logger.error(f"Unexpected error restoring {snapshot.id}: {e}", exc_info=True)
            raise RollbackError(snapshot.id, f"Unexpected error: {e}") from e
