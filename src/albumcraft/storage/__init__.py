"""Object storage backends for uploaded photos."""

from __future__ import annotations

from ..config import AppConfig
from .local_storage import LocalObjectStorage
from .object_storage import (
    DeletionResult,
    ObjectStorage,
    build_photo_key,
    photo_variant_keys,
    sanitize_segment,
    variant_key,
)
from .s3_storage import S3ObjectStorage


def build_storage(config: AppConfig) -> ObjectStorage:
    """Instantiate the backend selected by ``storage_backend``."""

    if config.storage_backend == "s3":
        return S3ObjectStorage(
            bucket=config.s3_bucket,
            region=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
        )
    return LocalObjectStorage(root=config.media_root, public_base_url=config.public_base_url)


__all__ = [
    "DeletionResult",
    "LocalObjectStorage",
    "ObjectStorage",
    "S3ObjectStorage",
    "build_photo_key",
    "build_storage",
    "photo_variant_keys",
    "sanitize_segment",
    "variant_key",
]
