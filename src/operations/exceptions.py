"""Error taxonomy for bulk operations."""

from typing import List, Optional


class BulkOperationError(Exception):
    """Base exception for bulk operation errors."""
    pass


class RequestError(BulkOperationError):
    """Malformed request, unknown action or empty target set. Nothing was touched."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors) if errors else [message]
        super().__init__(message)


class OperationNotFoundError(BulkOperationError):
    """No operation with this ID (never existed or past retention)."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"Operation {operation_id} not found")


class InvalidStateError(BulkOperationError):
    """The operation is not in a state that allows the requested transition."""
    pass


class OperationFault(BulkOperationError):
    """Operation-level failure (store unreachable, internal invariant broken)."""
    pass


class RecordValidationError(BulkOperationError):
    """A single record cannot take the change."""
    pass


class ItemTimeoutError(BulkOperationError):
    """A single record write did not finish within the per-item timeout."""
    pass


class RollbackError(BulkOperationError):
    """A single record could not be restored."""

    def __init__(self, record_id: str, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"{record_id}: {reason}")
