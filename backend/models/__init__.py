"""Database models package."""

from backend.models.asset import Asset

__all__ = ["Asset"]
