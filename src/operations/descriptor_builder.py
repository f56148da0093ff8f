"""
Incremental construction of a ChangeDescriptor.

The bulk wizard collects targets, an action, its parameters and options over
several steps. Each step is an event folded into an immutable DescriptorDraft
by reduce_draft(); finalize_draft() turns a complete draft into a validated
ChangeDescriptor. Nothing here depends on a UI framework or does I/O.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from ..models.base import BulkModel
from ..models.bulk import ChangeDescriptor, OperationOptions, TargetType
from .exceptions import RequestError
from .registry import ActionRegistry, get_action_registry

# Wizard prompt for the one required parameter of each action.
REQUIRED_PARAMETER_PROMPTS: Dict[str, Tuple[str, str]] = {
    "status": ("newStatus", "Please select a status"),
    "assign_to": ("assignTo", "Please select a user"),
    "assign_manager": ("assignTo", "Please select a manager"),
    "priority": ("priority", "Please select a priority"),
    "update_dates": ("newDate", "Please select a date"),
    "update_budget": ("budgetAmount", "Please enter a budget amount"),
    "add_tags": ("tags", "Please enter at least one tag"),
    "remove_tags": ("tags", "Please enter at least one tag"),
    "update_fields": ("fields", "Please enter at least one field"),
}


class DescriptorDraft(BulkModel):
    """Partially filled descriptor, one wizard step at a time."""

    model_config = ConfigDict(frozen=True)

    target_type: Optional[TargetType] = None
    target_ids: Tuple[str, ...] = ()
    action_id: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    options: OperationOptions = Field(default_factory=OperationOptions)


# ==================== EVENTS ====================

@dataclass(frozen=True)
class TargetsSelected:
    target_type: Union[TargetType, str]
    target_ids: Tuple[Union[str, int], ...]


@dataclass(frozen=True)
class ActionSelected:
    action_id: str


@dataclass(frozen=True)
class ParameterSet:
    name: str
    value: Any  # None removes the parameter


@dataclass(frozen=True)
class OptionSet:
    name: str
    value: bool


@dataclass(frozen=True)
class DraftReset:
    pass


DraftEvent = Union[TargetsSelected, ActionSelected, ParameterSet, OptionSet, DraftReset]


def _unique_ids(ids: Iterable[Union[str, int]]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for record_id in ids:
        seen.setdefault(str(record_id).strip(), None)
    return tuple(seen)


def reduce_draft(draft: DescriptorDraft, event: DraftEvent) -> DescriptorDraft:
    """Apply one wizard event. Returns a new draft; the input is untouched."""
    if isinstance(event, DraftReset):
        return DescriptorDraft()

    if isinstance(event, TargetsSelected):
        target_type = TargetType(event.target_type)
        update: Dict[str, Any] = {"target_type": target_type, "target_ids": _unique_ids(event.target_ids)}
        if draft.target_type is not None and draft.target_type != target_type:
            # Actions differ per record type.
            update.update(action_id=None, parameters={})
        return draft.model_copy(update=update)

    if isinstance(event, ActionSelected):
        if event.action_id == draft.action_id:
            return draft
        return draft.model_copy(update={"action_id": event.action_id, "parameters": {}})

    if isinstance(event, ParameterSet):
        parameters = dict(draft.parameters)
        if event.value is None:
            parameters.pop(event.name, None)
        else:
            parameters[event.name] = event.value
        return draft.model_copy(update={"parameters": parameters})

    if isinstance(event, OptionSet):
        name = to_snake(event.name)
        if name not in OperationOptions.model_fields:
            raise ValueError(f"Unknown option: {event.name}")
        options = draft.options.model_copy(update={name: bool(event.value)})
        return draft.model_copy(update={"options": options})

    raise TypeError(f"Unsupported draft event: {type(event).__name__}")


def _parameter(draft: DescriptorDraft, name: str) -> Any:
    """Look a parameter up by its wire name or its snake_case name."""
    if name in draft.parameters:
        return draft.parameters[name]
    return draft.parameters.get(to_snake(name))


def draft_errors(draft: DescriptorDraft, registry: Optional[ActionRegistry] = None) -> List[str]:
    """Messages blocking the draft from becoming a descriptor (empty when complete)."""
    registry = registry if registry is not None else get_action_registry()
    errors: List[str] = []

    if draft.target_type is None or not draft.target_ids:
        errors.append("Please select at least one record")
    if not draft.action_id:
        errors.append("Please select an action")
        return errors

    prompt = REQUIRED_PARAMETER_PROMPTS.get(draft.action_id)
    if prompt and _parameter(draft, prompt[0]) in (None, "", [], {}):
        errors.append(prompt[1])
        return errors

    if draft.target_type is not None:
        try:
            registry.parse_parameters(draft.action_id, draft.parameters, draft.target_type)
        except RequestError as e:
            errors.extend(e.errors)
    return errors


def build_descriptor(
    target_type: Union[TargetType, str],
    action_id: str,
    target_ids: Iterable[Union[str, int]],
    parameters: Mapping[str, Any],
    options: Optional[OperationOptions] = None,
    registry: Optional[ActionRegistry] = None,
) -> ChangeDescriptor:
    """
    Build a validated descriptor from raw request values.

    Raises:
        RequestError: unknown type or action, empty target set, or parameters
            that do not satisfy the action schema
    """
    registry = registry if registry is not None else get_action_registry()

    try:
        target_type = TargetType(target_type)
    except ValueError:
        raise RequestError(
            f"Unknown record type: {target_type}",
            [f"type must be one of: {', '.join(t.value for t in TargetType)}"],
        ) from None

    ids = list(target_ids or [])
    if not ids:
        raise RequestError("No records selected")

    params = registry.parse_parameters(action_id, parameters, target_type)

    try:
        return ChangeDescriptor(
            action_id=action_id,
            target_type=target_type,
            target_ids=ids,
            parameters=params,
            options=options or OperationOptions(),
        )
    except PydanticValidationError as e:
        raise RequestError("Invalid bulk request", [err["msg"] for err in e.errors()]) from e


def finalize_draft(draft: DescriptorDraft, registry: Optional[ActionRegistry] = None) -> ChangeDescriptor:
    """Turn a complete draft into a descriptor, or raise RequestError listing what is missing."""
    errors = draft_errors(draft, registry)
    if errors:
        raise RequestError("Bulk operation is incomplete", errors)
    return build_descriptor(
        draft.target_type,
        draft.action_id,
        draft.target_ids,
        draft.parameters,
        draft.options,
        registry,
    )
