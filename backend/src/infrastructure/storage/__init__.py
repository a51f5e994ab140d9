"""Attachment storage adapters.

Concrete implementations of AttachmentStoragePort for the local filesystem
and S3-compatible object storage.
"""

from .local_storage_adapter import LocalAttachmentStorage
from .s3_storage_adapter import S3AttachmentStorage
from .storage_config import build_attachment_storage

__all__ = [
    "LocalAttachmentStorage",
    "S3AttachmentStorage",
    "build_attachment_storage",
]
