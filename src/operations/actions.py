"""
Built-in bulk actions for clients, projects and tasks.

Record field names follow the records served by the accounting API
(status, assignedTo, priority, tags, budgetAmount, due_date, start_date,
end_date, accountType, primaryContactId).
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..models.actions import (
    ActionParameters,
    AssignParams,
    BudgetUpdateParams,
    DateUpdateParams,
    FieldUpdateParams,
    Priority,
    PriorityParams,
    StatusChangeParams,
    TagParams,
)
from ..models.bulk import TargetType
from .registry import ActionDefinition, ActionRegistry

ALL_TYPES = frozenset(TargetType)

STATUS_VOCABULARY: Dict[TargetType, List[str]] = {
    TargetType.CLIENTS: ["prospect", "active", "inactive", "archived"],
    TargetType.PROJECTS: ["planning", "active", "on_hold", "completed", "cancelled", "archived"],
    TargetType.TASKS: ["todo", "in_progress", "review", "done", "blocked", "archived"],
}

CLOSED_STATUSES = {"done", "completed", "cancelled", "archived"}

DATE_FIELDS: Dict[TargetType, List[str]] = {
    TargetType.PROJECTS: ["start_date", "end_date"],
    TargetType.TASKS: ["start_date", "due_date"],
}

EDITABLE_FIELDS: Dict[TargetType, List[str]] = {
    TargetType.CLIENTS: ["name", "email", "phone", "industry", "accountType", "primaryContactId", "notes"],
    TargetType.PROJECTS: ["name", "description", "billingType", "hourlyRate", "notes"],
    TargetType.TASKS: ["title", "description", "estimatedHours", "billable", "notes"],
}

# Account types that cannot exist without a primary contact person.
CONTACT_REQUIRED_ACCOUNT_TYPES = {"business", "corporation", "partnership"}


def _label(value: str) -> str:
    return value.replace("_", " ").title()


# ==================== STATUS ====================

def _status_options(target_type: TargetType) -> List[Dict[str, str]]:
    return [{"value": s, "label": _label(s)} for s in STATUS_VOCABULARY[target_type]]


def _status_request_check(target_type: TargetType, params: StatusChangeParams) -> List[str]:
    allowed = STATUS_VOCABULARY[target_type]
    if params.new_status not in allowed:
        return [f"newStatus: '{params.new_status}' is not a {target_type.singular} status ({', '.join(allowed)})"]
    return []


def _status_transform(current: Mapping[str, Any], params: StatusChangeParams) -> Dict[str, Any]:
    return {"status": params.new_status}


def _status_check(target_type, current, new, params: StatusChangeParams) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    current_status = current.get("status")

    if current_status == "archived":
        errors.append(f"Cannot change the status of an archived {target_type.singular}")
    elif current_status == params.new_status:
        errors.append(f"Already {_label(params.new_status).lower()}")
    elif current_status in CLOSED_STATUSES and params.new_status not in CLOSED_STATUSES:
        warnings.append(f"Reopens a {_label(current_status).lower()} {target_type.singular}")

    if not errors and params.new_status == "archived":
        warnings.append("Archived records are hidden from active views and cannot change status afterwards")

    return errors, warnings


# ==================== ASSIGNMENT ====================

def _assign_transform(current: Mapping[str, Any], params: AssignParams) -> Dict[str, Any]:
    return {"assignedTo": params.assignee}


def _assign_check(target_type, current, new, params: AssignParams) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    current_assignee = current.get("assignedTo")

    if current_assignee == params.assignee:
        errors.append("Already unassigned" if params.assignee is None else f"Already assigned to {params.assignee}")
    elif current_assignee:
        warnings.append(f"Reassigns from {current_assignee}")

    if not errors and current.get("status") in CLOSED_STATUSES:
        warnings.append(f"Assigns a {_label(current['status']).lower()} {target_type.singular}")

    return errors, warnings


# ==================== PRIORITY ====================

def _priority_options(target_type: TargetType) -> List[Dict[str, str]]:
    return [{"value": p.value, "label": _label(p.value)} for p in Priority]


def _priority_transform(current: Mapping[str, Any], params: PriorityParams) -> Dict[str, Any]:
    return {"priority": params.priority.value}


def _priority_check(target_type, current, new, params: PriorityParams) -> Tuple[List[str], List[str]]:
    if current.get("priority") == params.priority.value:
        return [f"Priority is already {params.priority.value}"], []
    return [], []


# ==================== DATES ====================

def _date_request_check(target_type: TargetType, params: DateUpdateParams) -> List[str]:
    allowed = DATE_FIELDS.get(target_type, [])
    if params.date_field not in allowed:
        return [f"dateField: '{params.date_field}' is not a {target_type.singular} date field ({', '.join(allowed)})"]
    return []


def _date_transform(current: Mapping[str, Any], params: DateUpdateParams) -> Dict[str, Any]:
    return {params.date_field: params.new_date.isoformat()}


def _date_check(target_type, current, new, params: DateUpdateParams) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    if current.get(params.date_field) == params.new_date.isoformat():
        errors.append(f"{_label(params.date_field)} is already {params.new_date.isoformat()}")
    elif current.get("status") in CLOSED_STATUSES:
        warnings.append(f"Changes a date on a {_label(current['status']).lower()} {target_type.singular}")
    return errors, warnings


# ==================== BUDGET ====================

def _current_budget(current: Mapping[str, Any]) -> float:
    value = current.get("budgetAmount")
    if value in (None, ""):
        return 0.0
    return float(value)


def _budget_transform(current: Mapping[str, Any], params: BudgetUpdateParams) -> Dict[str, Any]:
    budget = _current_budget(current)
    if params.budget_action == "increase":
        budget += params.budget_amount
    elif params.budget_action == "decrease":
        budget -= params.budget_amount
    else:
        budget = params.budget_amount
    return {"budgetAmount": round(budget, 2)}


def _budget_check(target_type, current, new, params: BudgetUpdateParams) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    try:
        before = _current_budget(current)
    except (TypeError, ValueError):
        return [f"Current budget '{current.get('budgetAmount')}' is not a number"], []

    after = new.get("budgetAmount", before)
    if after < 0:
        errors.append(f"Budget would become negative ({after:.2f})")
    elif after == before:
        errors.append(f"Budget is already {before:.2f}")
    elif before > 0 and after < before / 2:
        warnings.append(f"Cuts the budget by more than half ({before:.2f} -> {after:.2f})")
    return errors, warnings


# ==================== TAGS ====================

def _current_tags(current: Mapping[str, Any]) -> List[str]:
    tags = current.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]
    return list(tags)


def _add_tags_transform(current: Mapping[str, Any], params: TagParams) -> Dict[str, Any]:
    tags = _current_tags(current)
    return {"tags": tags + [t for t in params.tags if t not in tags]}


def _remove_tags_transform(current: Mapping[str, Any], params: TagParams) -> Dict[str, Any]:
    return {"tags": [t for t in _current_tags(current) if t not in params.tags]}


def _add_tags_check(target_type, current, new, params: TagParams) -> Tuple[List[str], List[str]]:
    existing = _current_tags(current)
    if all(t in existing for t in params.tags):
        return ["Already has all of these tags"], []
    return [], []


def _remove_tags_check(target_type, current, new, params: TagParams) -> Tuple[List[str], List[str]]:
    existing = _current_tags(current)
    if not any(t in existing for t in params.tags):
        return ["Has none of these tags"], []
    return [], []


# ==================== FIELDS ====================

def _fields_request_check(target_type: TargetType, params: FieldUpdateParams) -> List[str]:
    allowed = EDITABLE_FIELDS[target_type]
    unknown = sorted(f for f in params.fields if f not in allowed)
    if unknown:
        return [f"fields: {', '.join(unknown)} cannot be bulk edited on {target_type.value}"]
    return []


def _fields_transform(current: Mapping[str, Any], params: FieldUpdateParams) -> Dict[str, Any]:
    return dict(params.fields)


def _fields_check(target_type, current, new, params: FieldUpdateParams) -> Tuple[List[str], List[str]]:
    warnings: List[str] = []
    for name, value in params.fields.items():
        if current.get(name) not in (None, "") and value in (None, ""):
            warnings.append(f"Clears {name}")
    return [], warnings


# ==================== RECORD INVARIANTS ====================

def client_contact_invariant(current: Mapping[str, Any], new: Mapping[str, Any]) -> List[str]:
    account_type = str(new.get("accountType") or "").lower()
    if account_type in CONTACT_REQUIRED_ACCOUNT_TYPES and not new.get("primaryContactId"):
        return [f"A {account_type} account requires a primary contact"]
    return []


def _date_order_invariant(end_field: str):
    def invariant(current: Mapping[str, Any], new: Mapping[str, Any]) -> List[str]:
        start: Optional[str] = new.get("start_date")
        end: Optional[str] = new.get(end_field)
        if start and end and str(start) > str(end):
            return [f"Start date {start} is after {_label(end_field).lower()} {end}"]
        return []
    return invariant


def register_builtin_actions(registry: ActionRegistry) -> None:
    """Load the standard action set into a registry."""
    registry.register(ActionDefinition(
        id="status",
        label="Change Status",
        description="Move records to a new status",
        category="status",
        target_types=ALL_TYPES,
        params_model=StatusChangeParams,
        transform=_status_transform,
        check=_status_check,
        request_check=_status_request_check,
        options=_status_options,
    ))
    registry.register(ActionDefinition(
        id="assign_to",
        label="Assign To",
        description="Assign tasks to a team member",
        category="assignment",
        target_types=frozenset({TargetType.TASKS}),
        params_model=AssignParams,
        transform=_assign_transform,
        check=_assign_check,
    ))
    registry.register(ActionDefinition(
        id="assign_manager",
        label="Assign Manager",
        description="Change the responsible manager",
        category="assignment",
        target_types=frozenset({TargetType.CLIENTS, TargetType.PROJECTS}),
        params_model=AssignParams,
        transform=_assign_transform,
        check=_assign_check,
    ))
    registry.register(ActionDefinition(
        id="priority",
        label="Set Priority",
        category="fields",
        target_types=frozenset({TargetType.PROJECTS, TargetType.TASKS}),
        params_model=PriorityParams,
        transform=_priority_transform,
        check=_priority_check,
        options=_priority_options,
    ))
    registry.register(ActionDefinition(
        id="update_dates",
        label="Update Dates",
        description="Set a start, end or due date",
        category="fields",
        target_types=frozenset({TargetType.PROJECTS, TargetType.TASKS}),
        params_model=DateUpdateParams,
        transform=_date_transform,
        check=_date_check,
        request_check=_date_request_check,
    ))
    registry.register(ActionDefinition(
        id="update_budget",
        label="Update Budget",
        description="Set, increase or decrease project budgets",
        category="fields",
        target_types=frozenset({TargetType.PROJECTS}),
        params_model=BudgetUpdateParams,
        transform=_budget_transform,
        check=_budget_check,
        requires_confirmation=True,
    ))
    registry.register(ActionDefinition(
        id="add_tags",
        label="Add Tags",
        category="tags",
        target_types=ALL_TYPES,
        params_model=TagParams,
        transform=_add_tags_transform,
        check=_add_tags_check,
    ))
    registry.register(ActionDefinition(
        id="remove_tags",
        label="Remove Tags",
        category="tags",
        target_types=ALL_TYPES,
        params_model=TagParams,
        transform=_remove_tags_transform,
        check=_remove_tags_check,
    ))
    registry.register(ActionDefinition(
        id="update_fields",
        label="Update Fields",
        description="Set arbitrary editable fields",
        category="advanced",
        target_types=ALL_TYPES,
        params_model=FieldUpdateParams,
        transform=_fields_transform,
        check=_fields_check,
        request_check=_fields_request_check,
        requires_confirmation=True,
    ))

    registry.register_invariant(
        TargetType.CLIENTS, client_contact_invariant, fields=frozenset({"accountType", "primaryContactId"})
    )
    registry.register_invariant(
        TargetType.PROJECTS, _date_order_invariant("end_date"), fields=frozenset({"start_date", "end_date"})
    )
    registry.register_invariant(
        TargetType.TASKS, _date_order_invariant("due_date"), fields=frozenset({"start_date", "due_date"})
    )
