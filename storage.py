"""
File storage backends for log attachments.

Both backends expose the same two calls, ``put(data, key, content_type)``
returning a public URL and ``delete(key)``. Keys look like
``photos/1714550400000-8f3a9c.jpg``; the first segment is the folder.
Business code only ever sees :class:`StorageBackend`.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class StorageBackend(ABC):
    @abstractmethod
    def put(self, data: bytes, key: str, content_type: str) -> str:
        """Store ``data`` under ``key`` and return the URL it is served from."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""


class LocalStorage(StorageBackend):
    """Writes under a directory that the app serves statically at ``base_url``."""

    def __init__(self, root: str, base_url: str = "/uploads"):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(self.root + os.sep):
            raise StorageError(f"Key escapes the upload directory: {key}")
        return path

    def put(self, data: bytes, key: str, content_type: str) -> str:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Could not write {key}: {e}") from e
        logger.debug("Stored %s (%d bytes) at %s", key, len(data), path)
        return f"{self.base_url}/{key}"

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Could not delete {key}: {e}") from e


class S3Storage(StorageBackend):
    def __init__(self, bucket: str, region: str, public_url: Optional[str] = None, client=None):
        self.bucket = bucket
        self.region = region
        self.public_url = (public_url or f"https://{bucket}.s3.{region}.amazonaws.com").rstrip("/")
        # credentials come from the standard AWS environment/config chain
        self.s3_client = client or boto3.client("s3", region_name=region)

    def put(self, data: bytes, key: str, content_type: str) -> str:
        try:
            self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload of %s to %s failed: %s", key, self.bucket, e)
            raise StorageError(f"Could not upload {key}") from e
        return f"{self.public_url}/{key}"

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 delete of %s from %s failed: %s", key, self.bucket, e)
            raise StorageError(f"Could not delete {key}") from e


_backend: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """FastAPI dependency returning the configured backend."""
    global _backend
    if _backend is None:
        if settings.S3_BUCKET:
            _backend = S3Storage(settings.S3_BUCKET, settings.AWS_REGION, settings.S3_PUBLIC_URL)
            logger.info("Using S3 storage bucket %s", settings.S3_BUCKET)
        else:
            _backend = LocalStorage(settings.UPLOAD_DIR)
            logger.info("Using local storage at %s", _backend.root)
    return _backend
