"""S3-compatible object storage backed by boto3."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import StorageNotConfiguredError, StorageUploadError
from .object_storage import DeletionResult, ObjectStorage

DELETE_BATCH_SIZE = 1000

logger = logging.getLogger(__name__)


class S3ObjectStorage(ObjectStorage):
    """Uploads photos with ``put_object`` and deletes them in batches."""

    def __init__(
        self,
        *,
        bucket: str | None,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        if not bucket:
            raise StorageNotConfiguredError("S3 storage requires ALBUMCRAFT_S3_BUCKET")
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
        )

    def upload(self, payload: bytes, key: str, mime_type: str) -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=payload,
                ContentType=mime_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("storage.s3.upload_failed", extra={"key": key, "error": str(exc)})
            raise StorageUploadError(f"failed to upload '{key}': {exc}") from exc
        return self.public_url(key)

    def delete(self, keys: Sequence[str]) -> DeletionResult:
        result = DeletionResult()
        keys = list(keys)
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            try:
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": False},
                )
            except (BotoCoreError, ClientError) as exc:
                # whole batch failed
                result.errors.extend({"key": key, "error": str(exc)} for key in batch)
                continue
            result.deleted.extend(
                item["Key"] for item in response.get("Deleted", []) if item.get("Key")
            )
            result.errors.extend(
                {"key": item["Key"], "error": item.get("Message", "unknown error")}
                for item in response.get("Errors", [])
                if item.get("Key")
            )
        if result.errors:
            logger.warning(
                "storage.s3.delete_partial",
                extra={"deleted": len(result.deleted), "errors": len(result.errors)},
            )
        return result

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
