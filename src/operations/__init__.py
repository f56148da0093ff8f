"""
Bulk operations: validate, preview, execute, track and roll back one change
applied to many clients, projects or tasks.
"""

from .exceptions import (
    BulkOperationError,
    RequestError,
    OperationNotFoundError,
    InvalidStateError,
    OperationFault,
    RecordValidationError,
    ItemTimeoutError,
    RollbackError,
)
from .registry import ActionDefinition, ActionRegistry, get_action_registry
from .descriptor_builder import (
    DescriptorDraft,
    TargetsSelected,
    ActionSelected,
    ParameterSet,
    OptionSet,
    DraftReset,
    reduce_draft,
    draft_errors,
    build_descriptor,
    finalize_draft,
)
from .validator import BulkValidator
from .preview import PreviewBuilder
from .tracker import OperationTracker
from .executor import BulkExecutor, WritePool
from .rollback import RollbackEngine
from .orchestrator import BulkOperationOrchestrator, get_orchestrator, set_orchestrator

__all__ = [
    "BulkOperationError",
    "RequestError",
    "OperationNotFoundError",
    "InvalidStateError",
    "OperationFault",
    "RecordValidationError",
    "ItemTimeoutError",
    "RollbackError",
    "ActionDefinition",
    "ActionRegistry",
    "get_action_registry",
    "DescriptorDraft",
    "TargetsSelected",
    "ActionSelected",
    "ParameterSet",
    "OptionSet",
    "DraftReset",
    "reduce_draft",
    "draft_errors",
    "build_descriptor",
    "finalize_draft",
    "BulkValidator",
    "PreviewBuilder",
    "OperationTracker",
    "BulkExecutor",
    "WritePool",
    "RollbackEngine",
    "BulkOperationOrchestrator",
    "get_orchestrator",
    "set_orchestrator",
]
