"""Shared pydantic base for bulk operation models (camelCase on the wire)."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BulkModel(BaseModel):
    """Base model serialising field names as camelCase, accepting either form."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
