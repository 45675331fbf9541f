"""Blob storage abstraction for model files."""

import logging
import os
from pathlib import Path
from urllib.parse import quote, unquote

from backend.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

PUBLIC_PATH = "/storage/v1/object/public"


class StorageError(Exception):
    """Base exception for storage operations."""

    pass


class FileNotFoundError(StorageError):
    """Raised when a file is not found in storage."""

    pass


class Storage:
    """Abstract storage interface for a single bucket of blobs.

    Blobs are addressed by their path relative to the bucket root.
    """

    bucket: str
    public_base_url: str

    def init_bucket(self) -> bool:
        """Create the bucket if it does not exist yet.

        Returns:
            bool: True if the bucket was created, False if it already existed

        Raises:
            StorageError: If the bucket cannot be created
        """
        raise NotImplementedError

    def save(self, path: str, content: bytes) -> str:
        """Save file content to storage.

        Args:
            path: Bucket-relative path of the blob
            content: File content as bytes

        Returns:
            str: Path where the file was saved (relative to the bucket)

        Raises:
            StorageError: If file cannot be saved
        """
        raise NotImplementedError

    def read(self, path: str) -> bytes:
        """Read file content from storage.

        Args:
            path: Bucket-relative path of the blob

        Returns:
            bytes: File content

        Raises:
            FileNotFoundError: If file is not found
            StorageError: If file cannot be read
        """
        raise NotImplementedError

    def delete(self, path: str) -> None:
        """Delete file from storage.

        Args:
            path: Bucket-relative path of the blob

        Raises:
            FileNotFoundError: If file is not found
            StorageError: If file cannot be deleted
        """
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        """Check if file exists in storage.

        Args:
            path: Bucket-relative path of the blob

        Returns:
            bool: True if file exists, False otherwise
        """
        raise NotImplementedError

    @property
    def public_url_prefix(self) -> str:
        """Fixed URL prefix shared by every public blob URL of the bucket."""
        return f"{self.public_base_url}{PUBLIC_PATH}/{self.bucket}/"

    def get_public_url(self, path: str) -> str:
        """Build the public retrieval URL of a stored blob."""
        return self.public_url_prefix + quote(path)

    def path_from_public_url(self, file_url: str) -> str | None:
        """Strip the public URL prefix from a stored URL.

        Returns:
            str | None: Bucket-relative path, or None when the URL does not
                belong to this bucket
        """
        return storage_path_from_url(file_url, self.public_url_prefix)


def storage_path_from_url(file_url: str | None, public_prefix: str) -> str | None:
    """Derive a blob's bucket-relative path from its public URL.

    Only the part after the bucket's public path is used, so URLs recorded
    under a different host still resolve.
    """
    if not file_url:
        return None
    marker = public_prefix[public_prefix.index(PUBLIC_PATH):] if PUBLIC_PATH in public_prefix else public_prefix
    _, found, remainder = file_url.partition(marker)
    if not found or not remainder:
        return None
    return unquote(remainder)


class LocalStorage(Storage):
    """Local file system storage implementation."""

    def __init__(
        self,
        base_path: str | Path | None = None,
        bucket: str | None = None,
        public_base_url: str | None = None,
    ):
        """Initialize local storage.

        Args:
            base_path: Root directory for buckets. Defaults to the configured storage path.
            bucket: Bucket namespace. Defaults to the configured bucket.
            public_base_url: Base URL for public blob URLs. Defaults to the configured value.
        """
        if base_path is None:
            base_path = settings.storage_path
        self.bucket = bucket or settings.storage_bucket
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.root_path = Path(base_path)
        self.base_path = self.root_path / self.bucket

    def init_bucket(self) -> bool:
        """Create the bucket directory if it does not exist yet.

        Returns:
            bool: True if the bucket was created, False if it already existed
        """
        if self.base_path.is_dir():
            return False
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create bucket {self.bucket}: {e}") from e
        logger.info(f"Bucket {self.bucket} created at {self.base_path}")
        return True

    def _get_file_path(self, path: str) -> Path:
        """Get the full file path for a bucket-relative path.

        Args:
            path: Bucket-relative path of the blob

        Returns:
            Path: Full file path
        """
        # Blobs live flat in the bucket
        return self.base_path / self._sanitize_filename(path)

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        """Sanitize filename to prevent directory traversal and other security issues.

        Args:
            filename: Original filename

        Returns:
            str: Sanitized filename
        """
        # Remove path components
        filename = os.path.basename(filename)
        # Remove any remaining path separators
        filename = filename.replace("/", "_").replace("\\", "_")
        # Remove null bytes
        filename = filename.replace("\x00", "")
        # Limit length
        if len(filename) > 255:
            name, ext = os.path.splitext(filename)
            filename = name[: 255 - len(ext)] + ext
        return filename

    def save(self, path: str, content: bytes) -> str:
        """Save file content to local storage.

        Args:
            path: Bucket-relative path of the blob
            content: File content as bytes

        Returns:
            str: Path where the file was saved (relative to the bucket)

        Raises:
            StorageError: If file cannot be saved or already exists
        """
        file_path = self._get_file_path(path)
        if file_path.exists():
            raise StorageError(f"File already exists: {file_path.name}")

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(content)
            return str(file_path.relative_to(self.base_path))
        except OSError as e:
            raise StorageError(f"Failed to save file: {e}") from e

    def read(self, path: str) -> bytes:
        """Read file content from local storage.

        Args:
            path: Bucket-relative path of the blob

        Returns:
            bytes: File content

        Raises:
            FileNotFoundError: If file is not found
            StorageError: If file cannot be read
        """
        file_path = self._get_file_path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        try:
            return file_path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read file: {e}") from e

    def delete(self, path: str) -> None:
        """Delete file from local storage.

        Args:
            path: Bucket-relative path of the blob

        Raises:
            FileNotFoundError: If file is not found
            StorageError: If file cannot be deleted
        """
        file_path = self._get_file_path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete file: {e}") from e

    def exists(self, path: str) -> bool:
        """Check if file exists in local storage.

        Args:
            path: Bucket-relative path of the blob

        Returns:
            bool: True if file exists, False otherwise
        """
        return self._get_file_path(path).exists()


# Global storage instance
_storage: Storage | None = None


def get_storage() -> Storage:
    """Get storage instance.

    Returns:
        Storage: Storage instance (singleton)

    Example:
        ```python
        from backend.core.storage import get_storage

        storage = get_storage()
        storage.save("1700000000000_chair.glb", content)
        ```
    """
    global _storage
    if _storage is None:
        _storage = LocalStorage()
    return _storage
