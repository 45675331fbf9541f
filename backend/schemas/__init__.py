"""Pydantic schemas package."""

from backend.schemas.asset import AssetBrowseResponse, AssetResponse, AssetUpdate

__all__ = [
    "AssetResponse",
    "AssetUpdate",
    "AssetBrowseResponse",
]
