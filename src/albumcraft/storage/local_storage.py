"""Filesystem-backed object storage used by single-host deployments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..exceptions import StorageUploadError
from .object_storage import DeletionResult, ObjectStorage


@dataclass(slots=True)
class LocalObjectStorage(ObjectStorage):
    """Writes objects below ``root`` and serves them from ``public_base_url``."""

    root: Path
    public_base_url: str = "/media"
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def path_for(self, key: str) -> Path:
        target = (self.root / key).resolve()
        root = self.root.resolve()
        if root != target and root not in target.parents:
            raise StorageUploadError(f"key '{key}' escapes storage root")
        return target

    def upload(self, payload: bytes, key: str, mime_type: str) -> str:
        target = self.path_for(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)
        except OSError as exc:
            raise StorageUploadError(f"failed to write '{key}': {exc}") from exc
        self.log.debug(
            "storage.local.uploaded",
            extra={"key": key, "size": len(payload), "mime_type": mime_type},
        )
        return self.public_url(key)

    def delete(self, keys: Sequence[str]) -> DeletionResult:
        result = DeletionResult()
        for key in keys:
            try:
                self.path_for(key).unlink(missing_ok=True)
            except (OSError, StorageUploadError) as exc:
                result.errors.append({"key": key, "error": str(exc)})
                continue
            result.deleted.append(key)
        return result

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/{key}"
