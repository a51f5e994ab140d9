"""Storage configuration and adapter factory for inbound attachments.

Supports the local filesystem (development, single-host deployments with a
mounted volume) and S3-compatible object storage (MinIO, AWS S3) behind the
same AttachmentStoragePort interface.
"""

from dataclasses import dataclass
from typing import Optional

from config import Settings
from communications.ports import AttachmentStoragePort

SUPPORTED_BACKENDS = ("local", "s3")


@dataclass
class StorageConfig:
    """Configuration for attachment storage.

    Attributes:
        backend: 'local' or 's3'
        uploads_path: Root directory for the local backend
        endpoint_url: S3 endpoint URL (None for AWS S3 regional endpoints)
        access_key: S3 access key ID
        secret_key: S3 secret access key
        bucket_name: S3 bucket name for attachments
        region: AWS region (default: 'us-east-1')
    """
    backend: str
    uploads_path: str
    endpoint_url: Optional[str] = None
    access_key: str = ""
    secret_key: str = ""
    bucket_name: str = ""
    region: str = "us-east-1"


def load_storage_config(settings: Settings) -> StorageConfig:
    """Build storage configuration from application settings.

    Raises:
        ValueError: If the configuration is invalid
    """
    config = StorageConfig(
        backend=settings.ATTACHMENT_STORAGE_BACKEND.lower(),
        uploads_path=settings.UPLOADS_PATH,
        endpoint_url=settings.S3_ENDPOINT_URL,
        access_key=settings.S3_ACCESS_KEY_ID,
        secret_key=settings.S3_SECRET_ACCESS_KEY,
        bucket_name=settings.S3_BUCKET_NAME,
        region=settings.S3_REGION,
    )
    validate_storage_config(config)
    return config


def validate_storage_config(config: StorageConfig) -> None:
    """Validate storage configuration.

    Args:
        config: Storage configuration to validate

    Raises:
        ValueError: If configuration is invalid
    """
    if config.backend not in SUPPORTED_BACKENDS:
        raise ValueError(
            f"Unsupported ATTACHMENT_STORAGE_BACKEND: {config.backend}. "
            f"Expected one of {', '.join(SUPPORTED_BACKENDS)}"
        )

    if config.backend == "local":
        if not config.uploads_path:
            raise ValueError("UPLOADS_PATH is required for local attachment storage")
        return

    if not config.access_key:
        raise ValueError("Storage access_key is required")

    if not config.secret_key:
        raise ValueError("Storage secret_key is required")

    if not config.bucket_name:
        raise ValueError("Storage bucket_name is required")

    if config.endpoint_url:
        # MinIO configuration
        if not config.endpoint_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid endpoint_url: {config.endpoint_url}. "
                "Must start with http:// or https://"
            )
    elif not config.region:
        raise ValueError("AWS region is required when using S3 (S3_ENDPOINT_URL not set)")


def build_attachment_storage(settings: Settings) -> AttachmentStoragePort:
    """Construct the attachment storage adapter selected by settings."""
    config = load_storage_config(settings)

    if config.backend == "s3":
        from .s3_storage_adapter import S3AttachmentStorage

        return S3AttachmentStorage(
            endpoint_url=config.endpoint_url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            bucket_name=config.bucket_name,
            region=config.region,
        )

    from .local_storage_adapter import LocalAttachmentStorage

    return LocalAttachmentStorage(base_dir=config.uploads_path)
