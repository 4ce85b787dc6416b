"""
Storage Service.

WHAT: Deletes document objects from the upload provider's S3 bucket.

WHY: Document bytes are uploaded by the client straight to storage; we
only keep metadata. When a document row is deleted or replaced the
object must go too, but a storage outage must never undo the metadata
change that already committed.

HOW: boto3 calls run in a worker thread. ``delete_object_safe`` is the
post-commit entry point: it logs failures instead of raising.
"""

import asyncio
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class StorageService:
    """
    Thin async wrapper over the S3 client.

    Example:
        storage = StorageService()
        uow.after_commit(lambda: storage.delete_object_safe(document.file_key))
    """

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        """
        Args:
            s3_client: Pre-built boto3 client (tests pass a mock)
            bucket_name: Bucket override; defaults to S3_BUCKET_NAME
        """
        self.bucket_name = bucket_name if bucket_name is not None else settings.S3_BUCKET_NAME
        self._s3_client = s3_client

    @property
    def enabled(self) -> bool:
        return bool(self.bucket_name)

    @property
    def s3_client(self):
        if self._s3_client is None:
            self._s3_client = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION,
            )
        return self._s3_client

    async def delete_object(self, key: str) -> None:
        """
        Delete one object.

        Raises:
            StorageError: If S3 rejects the request
        """
        if not self.enabled:
            logger.debug(f"Storage disabled, not deleting {key}")
            return
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(message=f"Failed to delete stored file: {e}", file_key=key) from e
        logger.info(f"Deleted stored object {key}")

    async def delete_object_safe(self, key: str) -> bool:
        """Best-effort delete used after commit. Returns False on failure."""
        try:
            await self.delete_object(key)
            return True
        except StorageError as e:
            logger.error(f"Storage cleanup failed for {key}: {e.message}", exc_info=True)
            return False


_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Process-wide storage service (FastAPI dependency)."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
