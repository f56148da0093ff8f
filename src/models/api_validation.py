"""
Pydantic models for API endpoint input validation.

Request bodies keep the field names the bulk UI already sends
(type, action, targetIds, changes, options).
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .bulk import OperationOptions, SelectionFilter


# ============================================
# BULK OPERATIONS
# ============================================

class BulkOperationRequest(BaseModel):
    """Body for /api/bulk/validate, /preview and /execute."""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., min_length=1, max_length=20)
    action: str = Field(..., min_length=1, max_length=50)
    target_ids: List[Union[str, int]] = Field(default_factory=list, alias="targetIds")
    changes: Dict[str, Any] = Field(default_factory=dict)
    options: Optional[OperationOptions] = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        stripped = v.strip()
        if "<" in stripped or ">" in stripped:
            raise ValueError("action cannot contain HTML/script tags")
        return stripped

    @field_validator("target_ids")
    @classmethod
    def validate_target_ids(cls, v):
        """Reject absurd payloads early; the per-operation ceiling is checked during validation."""
        if len(v) > 100_000:
            raise ValueError("targetIds exceeds 100000 entries")
        for item in v:
            if isinstance(item, str) and len(item) > 100:
                raise ValueError("target IDs cannot exceed 100 characters")
        return v


class BulkSelectRequest(BaseModel):
    """Body for /api/bulk/select."""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., min_length=1, max_length=20)
    filters: SelectionFilter = Field(default_factory=SelectionFilter)
    limit: int = Field(default=1000, ge=1, le=1000)
