"""Local filesystem implementation of AttachmentStoragePort.

Writes attachments to {UPLOADS_PATH}/attachments/ and exposes them under the
public path /uploads/attachments/{filename}.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Union

from communications.ports import (
    AttachmentStoragePort,
    StoredAttachment,
    StorageError,
)

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads/attachments"


class LocalAttachmentStorage(AttachmentStoragePort):
    """Attachment storage on a local (or mounted volume) directory."""

    def __init__(self, base_dir: Union[str, Path]):
        self.attachments_dir = Path(base_dir) / "attachments"
        try:
            self.attachments_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create attachments directory {self.attachments_dir}: {e}")

        logger.info(f"Initialized local attachment storage: dir={self.attachments_dir}")

    def _path_for(self, filename: str) -> Path:
        # Generated names never contain separators; reject anything that does.
        if not filename or os.path.basename(filename) != filename or filename in (".", ".."):
            raise FileNotFoundError(f"Invalid attachment name: {filename!r}")
        return self.attachments_dir / filename

    async def store_attachment(
        self,
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> StoredAttachment:
        try:
            path = self._path_for(filename)
        except FileNotFoundError as e:
            raise StorageError(str(e))

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, path.write_bytes, content)
        except OSError as e:
            logger.error(f"Failed to write attachment: path={path}, error={e}")
            raise StorageError(f"Failed to write attachment {filename}: {e}")

        logger.info(f"Saved attachment: path={path}, size={len(content)}, mime_type={mime_type}")
        return StoredAttachment(
            storage_path=f"{PUBLIC_PREFIX}/{filename}",
            size_bytes=len(content),
            mime_type=mime_type,
        )

    async def retrieve_attachment(self, filename: str) -> bytes:
        path = self._path_for(filename)

        def _read() -> bytes:
            if not path.is_file():
                raise FileNotFoundError(f"Attachment not found: {filename}")
            return path.read_bytes()

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _read)
        except FileNotFoundError:
            raise
        except OSError as e:
            raise StorageError(f"Failed to read attachment {filename}: {e}")

    async def check_health(self) -> None:
        if not self.attachments_dir.is_dir():
            raise StorageError(f"Attachments directory missing: {self.attachments_dir}")
        if not os.access(self.attachments_dir, os.W_OK):
            raise StorageError(f"Attachments directory not writable: {self.attachments_dir}")
