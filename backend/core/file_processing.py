"""File validation and processing utilities."""

import os
from typing import Iterable

from backend.config import settings
from backend.core.exceptions import AssetValidationError

# Maximum file size: 50MB
MAX_FILE_SIZE = settings.max_upload_size

# Allowed model extensions (case-insensitive, without the dot)
ALLOWED_EXTENSIONS = frozenset({"glb", "gltf", "fbx", "obj"})

FILE_MISSING = "FILE_MISSING"
INVALID_TYPE = "INVALID_TYPE"
LIMIT_FILE_SIZE = "LIMIT_FILE_SIZE"
EMPTY_NAME = "EMPTY_NAME"


class FileValidationError(AssetValidationError):
    """Raised when file validation fails."""

    pass


def get_extension(filename: str) -> str:
    """Return the lowercased text after the last dot of a filename.

    A filename without a dot has no extension and yields an empty string.
    """
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def validate_filename(filename: str | None) -> str:
    """Validate a model filename and return its normalized type.

    Args:
        filename: Original filename of the upload

    Returns:
        str: Lowercase extension, one of ALLOWED_EXTENSIONS

    Raises:
        FileValidationError: If the filename is missing or has a disallowed extension
    """
    if not filename or not filename.strip():
        raise FileValidationError("Filename is required", code=FILE_MISSING)

    extension = get_extension(filename.strip())
    if extension not in ALLOWED_EXTENSIONS:
        raise FileValidationError(
            f"File type not allowed. Allowed extensions: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
            code=INVALID_TYPE,
        )
    return extension


def validate_file_size(content: bytes, max_size: int | None = None) -> None:
    """Validate file size.

    Args:
        content: File content as bytes
        max_size: Maximum accepted size in bytes (default: MAX_FILE_SIZE)

    Raises:
        FileValidationError: If file size exceeds maximum
    """
    if max_size is None:
        max_size = MAX_FILE_SIZE
    if len(content) > max_size:
        size_mb = len(content) / (1024 * 1024)
        max_mb = max_size / (1024 * 1024)
        raise FileValidationError(
            f"File size ({size_mb:.2f}MB) exceeds maximum allowed size ({max_mb}MB)",
            code=LIMIT_FILE_SIZE,
        )


def validate_file(file_content: bytes, filename: str | None, max_size: int | None = None) -> str:
    """Validate file content and filename.

    Args:
        file_content: File content as bytes
        filename: Filename to validate
        max_size: Maximum accepted size in bytes

    Returns:
        str: Normalized asset type derived from the extension

    Raises:
        FileValidationError: If validation fails
    """
    asset_type = validate_filename(filename)
    validate_file_size(file_content, max_size)
    return asset_type


def normalize_tags(tags: str | Iterable[str] | None) -> list[str] | None:
    """Normalize tags from a comma-separated string or an iterable.

    Entries are trimmed and empty entries dropped. Duplicates are removed
    keeping first occurrence. Returns None when nothing is left.
    """
    if tags is None:
        return None
    if isinstance(tags, str):
        tags = tags.split(",")

    normalized: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag and tag not in normalized:
            normalized.append(tag)
    return normalized or None


def resolve_asset_name(name: str | None, filename: str) -> str:
    """Return the trimmed display name, defaulting to the filename stem."""
    if name is not None and name.strip():
        return name.strip()
    stem = os.path.basename(filename.strip()).rsplit(".", 1)[0].strip()
    if not stem:
        raise AssetValidationError("Asset name cannot be empty", code=EMPTY_NAME)
    return stem
