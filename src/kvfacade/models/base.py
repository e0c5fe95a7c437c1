"""Base model configuration for all Pydantic models."""

from pydantic import BaseModel, ConfigDict


class FacadeBaseModel(BaseModel):
    """Base model with common configuration.

    Conventions:
    - All timestamps are ISO 8601 format with timezone (UTC)
    - All IDs are UUID v4
    - Field names are lowercase snake_case
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )
