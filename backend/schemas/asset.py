"""Asset schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.core.file_processing import normalize_tags


class AssetUpdate(BaseModel):
    """Schema for a partial update of an asset's mutable metadata."""

    name: Optional[str] = Field(None, max_length=255, description="New display name for the asset")
    tags: Optional[list[str]] = Field(None, description="Replacement list of tags")

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, v: Optional[str]) -> Optional[str]:
        """Normalize name by stripping whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tag_list(cls, v):
        """Accept either a list of tags or a comma-separated string."""
        if v is None:
            return v
        return normalize_tags(v) or []


class AssetResponse(BaseModel):
    """Schema for returning asset information."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique identifier of the asset")
    name: str = Field(..., description="Display name of the asset")
    file_url: str = Field(..., description="Public URL of the stored model file")
    type: str = Field(..., description="Lowercase file extension of the model")
    size: int = Field(..., description="Size of the model file in bytes")
    tags: Optional[list[str]] = Field(None, description="Free-text labels attached to the asset")
    uploaded_at: datetime = Field(..., description="Timestamp when the asset was uploaded")


class AssetBrowseResponse(BaseModel):
    """Schema for the filtered dashboard listing."""

    assets: list[AssetResponse] = Field(..., description="Assets matching the filter, newest first")
    available_tags: list[str] = Field(..., description="Sorted tag vocabulary over all assets")
    available_types: list[str] = Field(..., description="Sorted type vocabulary over all assets")
    total: int = Field(..., description="Number of assets before filtering")
