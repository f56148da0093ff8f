from .actions import (
    ActionParameters,
    StatusChangeParams,
    AssignParams,
    PriorityParams,
    DateUpdateParams,
    BudgetUpdateParams,
    TagParams,
    FieldUpdateParams,
    Priority,
    UNASSIGNED,
)
from .bulk import (
    TargetType,
    RecordSnapshot,
    OperationOptions,
    ChangeDescriptor,
    RecordStatus,
    ValidationResult,
    ValidationReport,
    PreviewEntry,
    PreviewReport,
    OperationStatus,
    ItemOutcome,
    ItemResult,
    RollbackResult,
    Operation,
)
from .api_validation import BulkOperationRequest

__all__ = [
    "ActionParameters",
    "StatusChangeParams",
    "AssignParams",
    "PriorityParams",
    "DateUpdateParams",
    "BudgetUpdateParams",
    "TagParams",
    "FieldUpdateParams",
    "Priority",
    "UNASSIGNED",
    "TargetType",
    "RecordSnapshot",
    "OperationOptions",
    "ChangeDescriptor",
    "RecordStatus",
    "ValidationResult",
    "ValidationReport",
    "PreviewEntry",
    "PreviewReport",
    "OperationStatus",
    "ItemOutcome",
    "ItemResult",
    "RollbackResult",
    "Operation",
    "BulkOperationRequest",
]
