"""Configuration management for PlantVision."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Configuration
    database_path: str = Field(default="./data/plantvision.db", description="SQLite database file path")

    # Token Configuration
    secret_key: str = Field(
        default="change-me-in-production",
        description="Secret used to sign access/refresh tokens and blob URLs",
    )
    access_token_ttl_seconds: int = Field(default=24 * 3600, description="Access token lifetime (24 hours)")
    refresh_token_ttl_seconds: int = Field(default=7 * 24 * 3600, description="Refresh token lifetime (7 days)")

    # Blob Storage Configuration
    blob_storage_dir: str = Field(default="./data/blobs", description="Directory holding uploaded photo blobs")
    public_base_url: str = Field(default="http://localhost:8000", description="Base URL used in signed blob links")
    signed_url_ttl_seconds: int = Field(default=3600, description="Lifetime of signed photo URLs")
    photos_prefix: str = Field(default="photos/", description="Blob key prefix for uploaded photos")

    # Upload Limits
    max_upload_size_mb: int = Field(default=10, description="Maximum photo upload size in megabytes")
    allowed_image_types: list[str] = Field(
        default=["image/jpeg", "image/png", "image/webp"],
        description="MIME types accepted for photo uploads",
    )

    # Audit Retention
    audit_retention_days: int = Field(default=365, description="Days of audit history kept by the daily sweep")
    enable_audit_cleanup_job: bool = Field(default=True, description="Enable/disable the scheduled audit sweep")
    audit_cleanup_hour: int = Field(default=3, description="Hour of day (UTC) for the audit sweep")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    @property
    def max_upload_size_bytes(self) -> int:
        """Upload limit in bytes."""
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def is_production(self) -> bool:
        """True when running in the production environment."""
        return self.environment == "production"


# Application Constants
class Constants:
    """Application-wide constants."""

    API_PREFIX: str = "/api/v1"

    # Pagination Defaults
    DEFAULT_PAGE_SIZE: int = 20
    DEFAULT_EQUIPMENT_PAGE_SIZE: int = 50
    DEFAULT_AUDIT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 100

    # Audit Retention Bounds
    AUDIT_RETENTION_MIN_DAYS: int = 30
    AUDIT_RETENTION_MAX_DAYS: int = 3650
    AUDIT_STATS_DEFAULT_DAYS: int = 30
    AUDIT_STATS_MAX_DAYS: int = 365

    # Statistics Windows
    TASK_COMPLETION_WINDOW_DAYS: int = 30
    USER_ACTIVITY_DEFAULT_DAYS: int = 30
    RECENT_LOGIN_WINDOW_DAYS: int = 7
    RECENT_ACTIVITY_LIMIT: int = 20
    ACTIVITY_RECORD_LIMIT: int = 1000

    # Field Limits
    PHOTO_NOTES_MAX_LENGTH: int = 1000
    DEVICE_INFO_MAX_LENGTH: int = 255
    REJECTION_REASON_MAX_LENGTH: int = 500
    COMPLETION_NOTES_MAX_LENGTH: int = 2000
    MIN_PASSWORD_LENGTH: int = 8

    # Scheduler
    JOB_MAX_RETRIES: int = 3

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
