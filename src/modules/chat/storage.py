"""Object storage for chat media, namespaced per thread.

Every key lives under ``<prefix>/<thread_id>/``. Signed URLs are generated
on demand and never persisted.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.config import settings
from src.exceptions import TransientInfraException, ValidationException
from src.modules.chat.media_path import is_valid_media_path, thread_namespace

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per call
_DELETE_BATCH_SIZE = 1000


class ObjectStoreBase(ABC):
    @abstractmethod
    def put(
        self,
        thread_id: uuid.UUID,
        filename: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store bytes under the thread namespace and return the object key."""

    @abstractmethod
    def signed_read_url(self, path: str, ttl_seconds: int) -> str | None:
        """Return a time-limited GET URL, or None for an unsafe key."""

    @abstractmethod
    def signed_upload_url(self, path: str, content_type: str, ttl_seconds: int) -> dict:
        """Return ``{"url": ..., "headers": {...}}`` for a direct client upload."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a single object. Missing objects are not an error."""

    @abstractmethod
    def delete_prefix(self, thread_id: uuid.UUID) -> int:
        """Delete every object in the thread namespace and return the count."""


def _is_unsafe_key(key: str) -> bool:
    return ".." in key or key.startswith(("/", "\\"))


class S3ObjectStore(ObjectStoreBase):
    """S3-compatible store (AWS S3, Cloudflare R2, MinIO) backed by boto3."""

    def __init__(self, client=None, bucket: str | None = None, prefix: str | None = None) -> None:
        self._client = client
        self.bucket = bucket or settings.s3_bucket
        self.prefix = prefix or settings.chat_media_prefix

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.s3_endpoint_url or None,
                aws_access_key_id=settings.s3_access_key_id or None,
                aws_secret_access_key=settings.s3_secret_access_key or None,
                region_name=settings.s3_region,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=settings.s3_connect_timeout,
                    read_timeout=settings.s3_read_timeout,
                    retries={"max_attempts": 2, "mode": "standard"},
                ),
            )
        return self._client

    def put(
        self,
        thread_id: uuid.UUID,
        filename: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        key = f"{thread_namespace(thread_id, self.prefix)}{filename}"
        if not is_valid_media_path(thread_id, key, self.prefix):
            raise ValidationException(f"Invalid object name: {filename}")
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ACL="private",
            )
        except (BotoCoreError, ClientError) as exc:
            raise TransientInfraException(f"Failed to store {key}: {exc}") from exc
        return key

    def signed_read_url(self, path: str, ttl_seconds: int) -> str | None:
        if _is_unsafe_key(path):
            return None
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": path,
                    "ResponseContentDisposition": "inline",
                },
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError):
            logger.exception("Failed to sign read URL for %s", path)
            return None

    def signed_upload_url(self, path: str, content_type: str, ttl_seconds: int) -> dict:
        if _is_unsafe_key(path):
            return {"url": None, "headers": {}}
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": path, "ContentType": content_type},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise TransientInfraException(f"Failed to sign upload URL for {path}: {exc}") from exc
        return {"url": url, "headers": {"Content-Type": content_type}}

    def delete(self, path: str) -> None:
        if _is_unsafe_key(path):
            logger.warning("Refusing to delete suspicious key %s", path)
            return
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return
            raise TransientInfraException(f"Failed to delete {path}: {exc}") from exc
        except BotoCoreError as exc:
            raise TransientInfraException(f"Failed to delete {path}: {exc}") from exc

    def delete_prefix(self, thread_id: uuid.UUID) -> int:
        namespace = thread_namespace(thread_id, self.prefix)
        deleted = 0
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            keys: list[str] = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=namespace):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))

            for start in range(0, len(keys), _DELETE_BATCH_SIZE):
                batch = keys[start : start + _DELETE_BATCH_SIZE]
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
                errors = [
                    err for err in response.get("Errors", []) if err.get("Code") != "NoSuchKey"
                ]
                if errors:
                    raise TransientInfraException(
                        f"Failed to delete {len(errors)} objects under {namespace}",
                        details=[{"field": err.get("Key"), "message": err.get("Message", "")} for err in errors],
                    )
                deleted += len(batch)
        except (BotoCoreError, ClientError) as exc:
            raise TransientInfraException(f"Failed to purge {namespace}: {exc}") from exc

        logger.info("Deleted %d objects under %s", deleted, namespace)
        return deleted


_store: ObjectStoreBase | None = None


def get_object_store() -> ObjectStoreBase:
    global _store
    if _store is None:
        _store = S3ObjectStore()
    return _store
