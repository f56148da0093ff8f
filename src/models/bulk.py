"""
Bulk operation data model.

ChangeDescriptor describes the request, ValidationReport and PreviewReport are
the dry-run results, and Operation is the tracked execution unit.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ConfigDict, Field, SerializeAsAny, model_validator

from .actions import ActionParameters
from .base import BulkModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TargetType(str, Enum):
    """Record collections a bulk operation can address."""
    CLIENTS = "clients"
    PROJECTS = "projects"
    TASKS = "tasks"

    @classmethod
    def _missing_(cls, value):
        # Accept the singular form ("task") as well as the collection name.
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if lowered in (member.value, member.value[:-1]):
                    return member
        return None

    @property
    def singular(self) -> str:
        return self.value[:-1]


class RecordSnapshot(BulkModel):
    """Full state of one record as returned by the record store."""

    model_config = ConfigDict(frozen=True)

    record_type: TargetType
    id: str
    version: int = 1
    values: Dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return str(self.values.get("name") or self.values.get("title") or self.id)

    def to_item(self) -> Dict[str, Any]:
        """Row shape served by POST /api/bulk/select."""
        item = dict(self.values)
        item.update(
            id=self.id,
            name=self.display_name,
            status=self.values.get("status"),
            type=self.record_type.value,
            version=self.version,
        )
        return item


# ==================== SELECTION ====================

class DateRange(BulkModel):
    """Inclusive range over one date field of the record."""

    field: str = Field(..., min_length=1, max_length=50)
    from_: Optional[date] = Field(default=None, alias="from")
    to: Optional[date] = None


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    return [str(value)]


class SelectionFilter(BulkModel):
    """
    Criteria for picking bulk targets. Empty criteria match everything.

    List criteria match when the record's value is one of the listed values
    (tags: when the record carries any of them). ``search`` is a
    case-insensitive substring match on the record's name, email and ID.
    """

    status: List[str] = Field(default_factory=list)
    assigned_to: List[str] = Field(default_factory=list)
    client_id: List[str] = Field(default_factory=list)
    project_id: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    date_range: Optional[DateRange] = None
    search: Optional[str] = Field(default=None, max_length=200)

    def matches(self, snapshot: RecordSnapshot) -> bool:
        values = snapshot.values

        if self.status and values.get("status") not in self.status:
            return False
        if self.assigned_to and not set(_as_list(values.get("assignedTo"))) & set(self.assigned_to):
            return False
        if self.client_id and str(values.get("clientId")) not in self.client_id:
            return False
        if self.project_id and str(values.get("projectId")) not in self.project_id:
            return False
        if self.tags and not set(_as_list(values.get("tags"))) & set(self.tags):
            return False

        if self.date_range:
            raw = values.get(self.date_range.field)
            if not raw:
                return False
            day = str(raw)[:10]
            if self.date_range.from_ and day < self.date_range.from_.isoformat():
                return False
            if self.date_range.to and day > self.date_range.to.isoformat():
                return False

        term = (self.search or "").strip().lower()
        if term:
            haystack = (snapshot.display_name, str(values.get("email") or ""), snapshot.id)
            if not any(term in text.lower() for text in haystack):
                return False

        return True


class OperationOptions(BulkModel):
    """Execution options chosen by the operator."""

    model_config = ConfigDict(frozen=True)

    skip_validation: bool = False
    continue_on_error: bool = True
    create_backup: bool = True


class ChangeDescriptor(BulkModel):
    """Apply action `action_id` with `parameters` to `target_ids` of `target_type`."""

    model_config = ConfigDict(frozen=True)

    action_id: str = Field(..., min_length=1)
    target_type: TargetType
    target_ids: Tuple[str, ...] = Field(..., min_length=1)
    parameters: SerializeAsAny[ActionParameters]
    options: OperationOptions = Field(default_factory=OperationOptions)
    duplicate_ids: Tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def collapse_duplicate_ids(cls, data: Any) -> Any:
        """Normalise IDs to strings and collapse duplicates, remembering what was dropped."""
        if not isinstance(data, dict):
            return data
        key = "targetIds" if "targetIds" in data else "target_ids"
        raw = data.get(key)
        if raw is None or isinstance(raw, (str, bytes)):
            return data

        unique: Dict[str, None] = {}
        duplicates: List[str] = []
        for item in raw:
            record_id = str(item).strip()
            if record_id in unique:
                duplicates.append(record_id)
            else:
                unique[record_id] = None

        data = dict(data)
        data[key] = tuple(unique)
        if "duplicateIds" not in data and "duplicate_ids" not in data:
            data["duplicate_ids"] = tuple(duplicates)
        return data


# ==================== VALIDATION & PREVIEW ====================

class RecordStatus(str, Enum):
    """Per-record validation outcome."""
    VALID = "valid"
    WARNING = "warning"
    ERROR = "error"


class ValidationResult(BulkModel):
    """Validation outcome for one target record."""

    record_id: str
    item_name: Optional[str] = None
    status: RecordStatus
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    computed_changes: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def errors_carry_no_changes(self):
        if self.status == RecordStatus.ERROR and self.computed_changes:
            self.computed_changes = {}
        return self


class ValidationReport(BulkModel):
    """Result of a dry-run validation over the whole target set."""

    per_record: List[ValidationResult] = Field(default_factory=list)
    global_errors: List[str] = Field(default_factory=list)
    global_warnings: List[str] = Field(default_factory=list)
    valid: bool = True

    def result_for(self, record_id: str) -> Optional[ValidationResult]:
        for result in self.per_record:
            if result.record_id == record_id:
                return result
        return None

    @property
    def executable_ids(self) -> List[str]:
        return [r.record_id for r in self.per_record if r.status != RecordStatus.ERROR]

    @property
    def error_ids(self) -> List[str]:
        return [r.record_id for r in self.per_record if r.status == RecordStatus.ERROR]


class PreviewEntry(BulkModel):
    """Before/after view of one record."""

    record_id: str
    item_name: Optional[str] = None
    status: RecordStatus
    current_values: Dict[str, Any] = Field(default_factory=dict)
    new_values: Dict[str, Any] = Field(default_factory=dict)
    changed_fields: List[str] = Field(default_factory=list)
    changes: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class PreviewReport(BulkModel):
    """Field-level preview of a bulk operation."""

    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    affected_count: int = 0
    preview_data: List[PreviewEntry] = Field(default_factory=list)


# ==================== OPERATION ====================

class OperationStatus(str, Enum):
    """Lifecycle states of a tracked operation."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED)


class ItemOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ItemResult(BulkModel):
    """Final disposition of one target record."""

    record_id: str
    outcome: ItemOutcome
    error: Optional[str] = None
    version: Optional[int] = None  # version written by this operation
    changed_fields: List[str] = Field(default_factory=list)

    @classmethod
    def succeeded(cls, record_id: str, version: int, changed_fields: List[str]) -> "ItemResult":
        return cls(
            record_id=record_id,
            outcome=ItemOutcome.SUCCEEDED,
            version=version,
            changed_fields=sorted(changed_fields),
        )

    @classmethod
    def failed(cls, record_id: str, error: str) -> "ItemResult":
        return cls(record_id=record_id, outcome=ItemOutcome.FAILED, error=error)


class RollbackResult(BulkModel):
    """Outcome of restoring an operation's snapshots."""

    operation_id: str
    restored_count: int = 0
    restored_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=utcnow)


class Operation(BulkModel):
    """An executing or finished bulk operation, owned by the OperationTracker."""

    id: str
    descriptor: ChangeDescriptor
    status: OperationStatus = OperationStatus.PENDING
    progress_total: int = 0
    progress_current: int = 0
    success_count: int = 0
    error_count: int = 0
    affected_count: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    processing_rate: Optional[float] = None  # items per second
    estimated_time_remaining: Optional[float] = None  # seconds
    cancel_requested: bool = False
    can_rollback: bool = False
    rollback_consumed: bool = False
    rolled_back_at: Optional[datetime] = None
    rollback_result: Optional[RollbackResult] = None
    fault: Optional[str] = None
    skipped_ids: List[str] = Field(default_factory=list)
    item_results: Dict[str, ItemResult] = Field(default_factory=dict)
    snapshot_count: int = 0
    # Pre-change record state, kept in memory only (never serialised to clients).
    snapshots: Dict[str, RecordSnapshot] = Field(default_factory=dict, exclude=True)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_summary(self) -> dict:
        """History row: everything except the per-item outcomes."""
        return self.model_dump(mode="json", by_alias=True, exclude={"item_results"})
