"""Attachment Storage Port - domain interface for saving inbound attachments.

Adapters implement this interface for the local filesystem or S3-compatible
object storage. Attachments are addressed by their generated filename, which
is unique per attachment (random id + sanitized original name).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class StorageError(Exception):
    """Base exception for attachment storage operations."""
    pass


@dataclass
class StoredAttachment:
    """Metadata for an attachment written to storage.

    Attributes:
        storage_path: Path or key the attachment is addressable by later
        size_bytes: Size of the stored content in bytes
        mime_type: MIME type recorded with the content
    """
    storage_path: str
    size_bytes: int
    mime_type: str


class AttachmentStoragePort(ABC):
    """Port interface for attachment storage operations.

    Example Usage:
        storage = LocalAttachmentStorage(base_dir="./uploads")

        stored = await storage.store_attachment(
            filename="3f2a...-proof.pdf",
            content=b"%PDF-1.4 ...",
            mime_type="application/pdf",
        )
        content = await storage.retrieve_attachment("3f2a...-proof.pdf")
    """

    @abstractmethod
    async def store_attachment(
        self,
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> StoredAttachment:
        """Write attachment bytes under the given generated filename.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def retrieve_attachment(self, filename: str) -> bytes:
        """Read back a stored attachment.

        Raises:
            FileNotFoundError: If no attachment has that filename
            StorageError: If retrieval fails
        """
        pass

    @abstractmethod
    async def check_health(self) -> None:
        """Verify the backend is reachable and writable.

        Raises:
            StorageError: If the backend is unavailable
        """
        pass
