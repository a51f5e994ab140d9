"""Application configuration via environment variables.

Provides type-safe settings loading using pydantic-settings.
Environment variables can be loaded from a .env file.
"""

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults for development. A single instance is
    built at startup and handed to the components that need it.

    Environment Variables:
        DATABASE_URL: SQLAlchemy connection string (SQLite by default)
        INBOUND_DOMAIN: Domain of the reply-to addresses handled by the mail provider
        FROM_EMAIL: Sender address used for outbound order messages
        ATTACHMENT_STORAGE_BACKEND: 'local' (filesystem) or 's3'
        UPLOADS_PATH: Root directory for the local attachment backend
        S3_ENDPOINT_URL: S3-compatible endpoint (MinIO in dev)
        S3_ACCESS_KEY_ID: S3 access key
        S3_SECRET_ACCESS_KEY: S3 secret key
        S3_BUCKET_NAME: Bucket for inbound attachments
        MAX_RAW_EMAIL_BYTES: Per-field size limit for webhook form parsing
        LOG_LEVEL: Logging level (default INFO)
        LOG_JSON: Emit JSON log lines (default True)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./order_comms.db"

    # Email routing
    INBOUND_DOMAIN: str = "parse.example.com"
    FROM_EMAIL: str = "orders@example.com"
    MAX_RAW_EMAIL_BYTES: int = 50 * 1024 * 1024  # 50 MB

    # Attachment storage
    ATTACHMENT_STORAGE_BACKEND: str = "local"
    UPLOADS_PATH: str = "./uploads"

    # Object Storage (S3/MinIO)
    S3_ENDPOINT_URL: Optional[str] = None
    S3_ACCESS_KEY_ID: str = "minioadmin"
    S3_SECRET_ACCESS_KEY: str = "minioadmin"
    S3_BUCKET_NAME: str = "order-attachments"
    S3_REGION: str = "us-east-1"

    # Notifications
    RECENT_UNREAD_LIMIT: int = 10

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    ENVIRONMENT: str = "development"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache for singleton behavior.
    Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
