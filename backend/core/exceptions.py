"""Domain exceptions for asset operations."""


class AssetError(Exception):
    """Base exception for asset operations.

    Attributes:
        code: Machine-readable error code reported to API callers
    """

    code = "ASSET_ERROR"

    def __init__(self, message: str | None = None, code: str | None = None):
        if code is not None:
            self.code = code
        super().__init__(message or self.code)


class AssetValidationError(AssetError):
    """Raised when an upload or update is rejected before touching the store."""

    code = "VALIDATION_ERROR"


class AssetNotFoundError(AssetError):
    """Raised when the targeted asset does not exist."""

    code = "NOT_FOUND"


class UpstreamStoreError(AssetError):
    """Raised when the record store or blob store fails."""

    code = "UPSTREAM_STORE_ERROR"
