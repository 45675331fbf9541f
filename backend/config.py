"""Application configuration using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Calculate project root: config.py is in backend/, so go up one level
_CONFIG_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _CONFIG_DIR.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / "backend" / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="3D Asset Dashboard", description="Application name")
    app_env: str = Field(default="development", description="Application environment")
    port: int = Field(default=8080, description="Port for the development server", alias="PORT")
    log_level: str = Field(default="info", description="Log level for the application loggers", alias="LOG_LEVEL")

    # CORS
    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Origin of the dashboard frontend allowed by CORS",
        alias="FRONTEND_URL",
    )

    # Database
    database_url: str = Field(
        default=f"sqlite:///{_PROJECT_ROOT / 'asset_dashboard.db'}",
        description="Database connection URL for the asset record store",
        alias="DATABASE_URL",
    )

    # Blob storage
    storage_path: str = Field(
        default=str(_PROJECT_ROOT / "uploads"),
        description="Root directory holding the blob buckets",
        alias="STORAGE_PATH",
    )
    storage_bucket: str = Field(default="assets", description="Bucket namespace for model files", alias="STORAGE_BUCKET")
    public_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL used to build public blob URLs",
        alias="PUBLIC_BASE_URL",
    )
    max_upload_size: int = Field(
        default=50 * 1024 * 1024,
        description="Maximum accepted upload size in bytes",
        alias="MAX_UPLOAD_SIZE",
    )

    # Model cache
    model_cache_max_entries: int = Field(
        default=32,
        description="Maximum number of models kept in the viewer cache",
        alias="MODEL_CACHE_MAX_ENTRIES",
    )
    model_cache_max_bytes: int = Field(
        default=256 * 1024 * 1024,
        description="Maximum total size in bytes of models kept in the viewer cache",
        alias="MODEL_CACHE_MAX_BYTES",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: str | None) -> str:
        """Validate and normalize database URL."""
        if v is None or v == "":
            raise ValueError("DATABASE_URL is required")
        return v.strip()

    @field_validator("app_env", "log_level", mode="before")
    @classmethod
    def normalize_lowercase(cls, v: str) -> str:
        """Normalize enum-like values to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @field_validator("public_base_url", "frontend_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Strip whitespace and trailing slashes from URLs."""
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    @property
    def public_url_prefix(self) -> str:
        """Public URL prefix under which every blob of the bucket is served."""
        return f"{self.public_base_url}/storage/v1/object/public/{self.storage_bucket}/"


def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings: Application settings instance

    Example:
        ```python
        from backend.config import get_settings

        settings = get_settings()
        print(settings.database_url)
        ```
    """
    return Settings()


# Global settings instance
settings = get_settings()
