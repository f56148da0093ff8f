"""
Typed parameter models, one per bulk action.

The wire format keeps the parameter names used by the bulk wizard
(newStatus, assignTo, dateField, newDate, budgetAction, budgetAmount, tags).
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator

from .base import BulkModel


class Priority(str, Enum):
    """Priority levels shared by projects and tasks."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


UNASSIGNED = "unassigned"


class ActionParameters(BulkModel):
    """Base class for action parameters."""

    # Unknown payloads (e.g. read back from the progress mirror) keep their fields.
    model_config = ConfigDict(extra="allow", frozen=True)


class StatusChangeParams(ActionParameters):
    model_config = ConfigDict(extra="forbid", frozen=True)

    new_status: str = Field(..., min_length=1, max_length=50)

    @field_validator("new_status")
    @classmethod
    def normalize_status(cls, v):
        return v.strip().lower().replace(" ", "_")


class AssignParams(ActionParameters):
    model_config = ConfigDict(extra="forbid", frozen=True)

    assign_to: str = Field(..., min_length=1, max_length=100)

    @field_validator("assign_to", mode="before")
    @classmethod
    def coerce_user_id(cls, v):
        if isinstance(v, int):
            return str(v)
        if isinstance(v, str):
            stripped = v.strip()
            if not stripped:
                raise ValueError("assignTo cannot be empty")
            return stripped
        return v

    @property
    def assignee(self) -> Optional[str]:
        """The user to assign, or None when clearing the assignment."""
        return None if self.assign_to == UNASSIGNED else self.assign_to


class PriorityParams(ActionParameters):
    model_config = ConfigDict(extra="forbid", frozen=True)

    priority: Priority


class DateUpdateParams(ActionParameters):
    model_config = ConfigDict(extra="forbid", frozen=True)

    date_field: str = Field(..., min_length=1, max_length=50)
    new_date: date


class BudgetUpdateParams(ActionParameters):
    model_config = ConfigDict(extra="forbid", frozen=True)

    budget_action: Literal["set", "increase", "decrease"] = "set"
    budget_amount: float = Field(..., ge=0, le=1_000_000_000)


class TagParams(ActionParameters):
    model_config = ConfigDict(extra="forbid", frozen=True)

    tags: List[str] = Field(..., min_length=1, max_length=50)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        """Accept a list or the wizard's comma separated string; drop blanks and repeats."""
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple)):
            return v
        cleaned: List[str] = []
        for tag in v:
            tag = str(tag).strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return cleaned

    @field_validator("tags")
    @classmethod
    def validate_tag_length(cls, v):
        for tag in v:
            if len(tag) > 50:
                raise ValueError(f"tag '{tag[:20]}...' exceeds 50 characters")
            if "<" in tag or ">" in tag:
                raise ValueError("tags cannot contain HTML/script tags")
        return v


class FieldUpdateParams(ActionParameters):
    model_config = ConfigDict(extra="forbid", frozen=True)

    fields: Dict[str, Any] = Field(..., min_length=1)
