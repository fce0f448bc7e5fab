"""
Base schemas and mixins for all models.

Three flavours:
    BaseSchema  - internal/API models, snake_case
    CamelSchema - bundle file models, camelCase on the wire
    RowSchema   - store rows, snake_case, unknown columns preserved
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class CamelSchema(BaseModel):
    """
    Base for bundle file structures.

    Fields are snake_case in Python and camelCase in the JSON file.
    Dump with by_alias=True when writing a bundle.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True
    )


class RowSchema(BaseModel):
    """
    Base for rows read from or written to a table.

    Historical migrations left many columns optional, so every field is
    nullable and columns the model does not name are kept as extras.
    """
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True
    )

    def to_row(self) -> dict:
        """Serialize for an upsert, extras included."""
        return self.model_dump(mode="json")
