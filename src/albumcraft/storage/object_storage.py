"""Abstractions over object storage backends for album photos."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Sequence

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._-]+")
VARIANT_SUFFIXES = ("thumb", "medium")


@dataclass(slots=True)
class DeletionResult:
    """Outcome of a batched delete: removed keys and per-key errors."""

    deleted: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)


class ObjectStorage:
    """Low-level persistence API for uploaded photo bytes."""

    def upload(self, payload: bytes, key: str, mime_type: str) -> str:
        """Store ``payload`` under ``key`` and return its public URL.

        Raises :class:`~albumcraft.exceptions.StorageUploadError` on failure.
        """

        raise NotImplementedError

    def delete(self, keys: Sequence[str]) -> DeletionResult:
        """Remove objects, reporting failures per key instead of raising."""

        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError


def sanitize_segment(value: str, *, fallback: str = "untitled") -> str:
    cleaned = _UNSAFE_SEGMENT.sub("-", value.strip()).strip("-.")
    return cleaned or fallback


def build_photo_key(
    user_id: str,
    event_name: str,
    album_id: str,
    index: int,
    filename: str,
) -> str:
    """Return the storage key of the ``index``-th photo of an album.

    Keys are scoped by album id so albums sharing a name never share objects.
    """
    return "/".join(
        (
            "users",
            sanitize_segment(user_id),
            "events",
            sanitize_segment(event_name),
            "albums",
            sanitize_segment(album_id),
            f"{index:04d}-{sanitize_segment(filename, fallback='photo')}",
        )
    )


def variant_key(key: str, variant: str) -> str:
    """Return the key of a JPEG ``variant`` stored next to ``key``."""
    directory, _, basename = key.rpartition("/")
    stem, dot, _ = basename.rpartition(".")
    if not dot:
        stem = basename
    prefix = f"{directory}/" if directory else ""
    return f"{prefix}{stem}-{variant}.jpg"


def photo_variant_keys(key: str) -> list[str]:
    """Return the original key followed by its thumbnail and medium variants."""
    return [key, *(variant_key(key, variant) for variant in VARIANT_SUFFIXES)]
