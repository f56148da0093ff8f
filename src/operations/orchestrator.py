"""
Bulk Operation Orchestrator.

Single entry point for validate -> preview -> execute -> progress/cancel ->
rollback. Loads target snapshots from the record store and delegates to the
pure Validator and Preview Builder, the Executor, the Operation Tracker and
the Rollback Engine.
"""

import logging
from typing import Any, Dict, List, Optional

from ..database.exceptions import DatabaseConnectionError
from ..database.repositories.records import RecordRepository, get_record_repository
from ..models.api_validation import BulkOperationRequest, BulkSelectRequest
from ..models.bulk import (
    ChangeDescriptor,
    Operation,
    OperationStatus,
    PreviewReport,
    RecordSnapshot,
    RollbackResult,
    TargetType,
    ValidationReport,
)
from ..utils.audit_logger import AuditAction, log_audit_event
from ..utils.retry import RetryExhausted
from .descriptor_builder import build_descriptor
from .exceptions import OperationFault, RequestError
from .executor import BulkExecutor
from .preview import PreviewBuilder
from .registry import ActionRegistry, get_action_registry
from .rollback import RollbackEngine
from .tracker import OperationTracker
from .validator import BulkValidator

logger = logging.getLogger(__name__)


class BulkOperationOrchestrator:
    """Coordinates the bulk operation lifecycle."""

    def __init__(
        self,
        repository: Optional[RecordRepository] = None,
        registry: Optional[ActionRegistry] = None,
        tracker: Optional[OperationTracker] = None,
        max_targets: Optional[int] = None,
        concurrency: Optional[int] = None,
        item_timeout: Optional[float] = None,
    ):
        self.repository = repository if repository is not None else get_record_repository()
        self.registry = registry if registry is not None else get_action_registry()
        self.tracker = tracker if tracker is not None else OperationTracker()
        self.validator = BulkValidator(self.registry, max_targets=max_targets)
        self.preview_builder = PreviewBuilder(self.registry)
        self.executor = BulkExecutor(
            self.tracker,
            repository=self.repository,
            registry=self.registry,
            concurrency=concurrency,
            item_timeout=item_timeout,
        )
        self.rollback_engine = RollbackEngine(
            self.tracker,
            repository=self.repository,
            concurrency=concurrency,
            item_timeout=item_timeout,
        )

    def descriptor_from_request(self, request: BulkOperationRequest) -> ChangeDescriptor:
        """Turn an API request body into a typed descriptor (raises RequestError)."""
        return build_descriptor(
            request.type,
            request.action,
            request.target_ids,
            request.changes,
            request.options,
            self.registry,
        )

    async def load_snapshots(self, descriptor: ChangeDescriptor) -> Dict[str, RecordSnapshot]:
        """Current state of every target that exists."""
        try:
            return await self.repository.get_many(descriptor.target_type, descriptor.target_ids)
        except (DatabaseConnectionError, RetryExhausted) as e:
            logger.error(f"Could not load {descriptor.target_type.value} for bulk {descriptor.action_id}: {e}")
            raise OperationFault(f"Record store unavailable: {e}") from e

    async def validate(self, descriptor: ChangeDescriptor) -> ValidationReport:
        snapshots = await self.load_snapshots(descriptor)
        return self.validator.validate(descriptor, snapshots)

    async def preview(self, descriptor: ChangeDescriptor) -> PreviewReport:
        snapshots = await self.load_snapshots(descriptor)
        report = self.validator.validate(descriptor, snapshots)
        return self.preview_builder.build_preview(descriptor, report, snapshots)

    async def execute(self, descriptor: ChangeDescriptor, user_id: Optional[str] = None) -> str:
        """
        Validate against fresh snapshots and start execution.

        Returns:
            The new operation ID

        Raises:
            RequestError: validation produced global errors
            OperationFault: the record store is unreachable
        """
        report = await self.validate(descriptor)
        if not report.valid:
            raise RequestError("Validation failed", report.global_errors)
        return await self.executor.execute(descriptor, report, user_id=user_id)

    async def progress(self, operation_id: str) -> Operation:
        return await self.tracker.get(operation_id)

    async def cancel(self, operation_id: str, user_id: Optional[str] = None) -> Operation:
        operation = await self.tracker.cancel(operation_id)
        await log_audit_event(
            AuditAction.BULK_CANCEL,
            user_id=user_id,
            entity_type="bulk_operation",
            entity_id=operation_id,
            details={"requested": True, "progress": operation.progress_current},
        )
        return operation

    async def rollback(self, operation_id: str, user_id: Optional[str] = None) -> RollbackResult:
        return await self.rollback_engine.rollback(operation_id, user_id=user_id)

    async def wait_for(self, operation_id: str, timeout: Optional[float] = None) -> Operation:
        """Wait for a terminal state (tests and synchronous callers)."""
        return await self.tracker.wait_for_terminal(operation_id, timeout=timeout)

    @staticmethod
    def _record_type(target_type: str) -> TargetType:
        try:
            return TargetType(target_type)
        except ValueError:
            raise RequestError(f"Unknown record type: {target_type}") from None

    def list_actions(self, target_type: str) -> List[Dict[str, Any]]:
        return self.registry.actions_for(self._record_type(target_type))

    async def select(self, request: BulkSelectRequest) -> List[RecordSnapshot]:
        """Records matching the selection filters, for building a target list."""
        record_type = self._record_type(request.type)
        try:
            return await self.repository.select(record_type, request.filters, limit=request.limit)
        except (DatabaseConnectionError, RetryExhausted) as e:
            logger.error(f"Could not select {record_type.value}: {e}")
            raise OperationFault(f"Record store unavailable: {e}") from e

    def history(
        self,
        status: Optional[str] = None,
        target_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[Operation]:
        """Tracked operations, newest first."""
        operation_status = None
        if status:
            try:
                operation_status = OperationStatus(status)
            except ValueError:
                raise RequestError(f"Unknown operation status: {status}") from None
        record_type = self._record_type(target_type) if target_type else None
        return self.tracker.list_operations(status=operation_status, target_type=record_type, limit=limit)


# Singleton
_orchestrator: Optional[BulkOperationOrchestrator] = None


def get_orchestrator() -> BulkOperationOrchestrator:
    """Get the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = BulkOperationOrchestrator()
    return _orchestrator


def set_orchestrator(orchestrator: Optional[BulkOperationOrchestrator]):
    """Swap the orchestrator (tests)."""
    global _orchestrator
    _orchestrator = orchestrator
