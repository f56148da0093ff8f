"""Custom exceptions for record store operations."""


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Record store is unreachable."""
    pass


class DatabaseOperationError(DatabaseError):
    """General database operation failed."""
    pass


class EntityNotFoundError(DatabaseError):
    """Requested record not found."""

    def __init__(self, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id} not found")


class RecordConflictError(DatabaseError):
    """Optimistic-concurrency check failed (record changed since it was read)."""

    def __init__(self, record_type: str, record_id: str, expected_version: int, actual_version: int):
        self.record_type = record_type
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"{record_type} {record_id} version conflict: "
            f"expected {expected_version}, found {actual_version}"
        )


class ValidationError(DatabaseError):
    """Store rejected the write (field-level validation)."""
    pass
