"""S3 Storage Adapter - Implementation of AttachmentStoragePort using boto3.

Stores inbound email attachments in AWS S3, MinIO, or any other
S3-compatible service under the key prefix `attachments/`.
"""

import asyncio
import functools
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from communications.ports import (
    AttachmentStoragePort,
    StoredAttachment,
    StorageError,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "attachments"


class S3AttachmentStorage(AttachmentStoragePort):
    """S3-compatible attachment storage using boto3.

    Storage key format: attachments/{generated_filename}

    Example:
        config = load_storage_config(get_settings())
        storage = S3AttachmentStorage(
            endpoint_url=config.endpoint_url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            bucket_name=config.bucket_name,
            region=config.region,
        )
    """

    def __init__(
        self,
        endpoint_url: Optional[str],
        access_key: str,
        secret_key: str,
        bucket_name: str,
        region: str = "us-east-1",
    ):
        """Initialize S3 storage adapter.

        Args:
            endpoint_url: S3 endpoint URL (None for AWS S3, URL for MinIO)
            access_key: S3 access key ID
            secret_key: S3 secret access key
            bucket_name: S3 bucket name
            region: AWS region (default: 'us-east-1')

        Raises:
            StorageError: If S3 client initialization fails
        """
        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
            self.bucket_name = bucket_name
            self.region = region

            logger.info(
                f"Initialized S3 attachment storage: bucket={bucket_name}, "
                f"endpoint={endpoint_url or 'AWS S3'}, region={region}"
            )
        except NoCredentialsError as e:
            raise StorageError(f"Invalid S3 credentials: {e}")
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    @staticmethod
    def _storage_key(filename: str) -> str:
        return f"{KEY_PREFIX}/{filename}"

    async def store_attachment(
        self,
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> StoredAttachment:
        """Upload attachment bytes to S3.

        Raises:
            StorageError: If upload fails
        """
        storage_key = self._storage_key(filename)

        def _upload():
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=storage_key,
                Body=content,
                ContentType=mime_type,
            )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _upload)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(
                f"S3 upload failed: storage_key={storage_key}, "
                f"error={error_code}, message={e}"
            )
            raise StorageError(f"Failed to upload attachment: {error_code}")
        except Exception as e:
            logger.error(f"Unexpected error during upload: {e}")
            raise StorageError(f"Failed to upload attachment: {e}")

        logger.info(
            f"Uploaded attachment: storage_key={storage_key}, "
            f"size={len(content)}, mime_type={mime_type}"
        )
        return StoredAttachment(
            storage_path=storage_key,
            size_bytes=len(content),
            mime_type=mime_type,
        )

    async def retrieve_attachment(self, filename: str) -> bytes:
        """Download attachment bytes from S3.

        Raises:
            FileNotFoundError: If file doesn't exist
            StorageError: If retrieval fails
        """
        storage_key = self._storage_key(filename)

        def _download() -> bytes:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name,
                Key=storage_key,
            )
            return response["Body"].read()

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _download)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in ("NoSuchKey", "404"):
                logger.warning(f"Attachment not found: storage_key={storage_key}")
                raise FileNotFoundError(f"Attachment not found: {filename}")
            logger.error(
                f"S3 retrieval failed: storage_key={storage_key}, "
                f"error={error_code}"
            )
            raise StorageError(f"Failed to retrieve attachment: {error_code}")

    async def check_health(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, functools.partial(self.s3_client.head_bucket, Bucket=self.bucket_name)
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            raise StorageError(f"Bucket {self.bucket_name} unavailable: {error_code}")
