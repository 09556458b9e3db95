"""Turns one album definition into album/photo rows and stored objects."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from ..domain.models import AlbumRecord, AlbumStatus, FileDescriptor
from ..exceptions import DatabaseOperationError, JobExecutionError, RepositoryError, StorageUploadError
from ..media.image_variants import (
    THUMBNAIL_VARIANT,
    ImageVariantError,
    VariantSettings,
    render_variants,
)
from ..repositories.album_repository import AlbumRepository
from ..storage.object_storage import ObjectStorage, build_photo_key, photo_variant_keys, variant_key

ProgressCallback = Callable[[int, str], None]

PROGRESS_STARTED = 10
PROGRESS_ALBUM_CREATED = 30
PROGRESS_FILES_SPAN = 60
PROGRESS_DONE = 100

VARIANT_MIME_TYPE = "image/jpeg"


@dataclass(slots=True)
class MaterializedAlbum:
    """Album created for a definition together with its per-file failures."""

    album: AlbumRecord
    photo_count: int
    file_errors: list[dict[str, str]] = field(default_factory=list)


class AlbumMaterializer:
    """Creates the album row, uploads every file and records its photo row.

    Storage and database writes are sequential and not transactional across
    services: a file whose upload or photo insert fails is reported in
    ``file_errors``, its stored objects are removed and the album keeps the
    photos that succeeded. Any other error aborts the album with a
    :class:`JobExecutionError` that still carries the album id.
    """

    def __init__(
        self,
        *,
        repository: AlbumRepository,
        storage: ObjectStorage,
        upload_retry_attempts: int = 1,
        upload_retry_backoff_seconds: float = 2.0,
        generate_variants: bool = True,
        variant_settings: VariantSettings | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self._retry_attempts = max(1, upload_retry_attempts)
        self._retry_backoff = max(0.0, upload_retry_backoff_seconds)
        self._generate_variants = generate_variants
        self._variant_settings = variant_settings or VariantSettings()
        self._sleep = sleep or time.sleep
        self._logger = logging.getLogger(__name__)

    def materialize(
        self,
        *,
        user_id: str,
        event_name: str,
        album_name: str,
        files: Sequence[FileDescriptor],
        on_progress: ProgressCallback | None = None,
    ) -> MaterializedAlbum:
        report = on_progress or (lambda progress, message: None)
        report(PROGRESS_STARTED, "Starting album creation")

        status = AlbumStatus.PROCESSING if files else AlbumStatus.COMPLETED
        album = self.repository.create_album(
            user_id=user_id,
            name=album_name,
            event_name=event_name,
            status=status,
        )
        report(PROGRESS_ALBUM_CREATED, "Album created, processing photos")

        photo_count = 0
        file_errors: list[dict[str, str]] = []
        total = len(files)
        for index, file in enumerate(files):
            key = build_photo_key(user_id, event_name, album.id, index, file.name)
            try:
                url = self._upload_with_retry(file.payload, key, file.mime_type)
                thumbnail_url = self._upload_variants(file, key)
                self.repository.create_photo(
                    album_id=album.id,
                    user_id=user_id,
                    file=file,
                    storage_key=key,
                    url=url,
                    thumbnail_url=thumbnail_url,
                )
            except (StorageUploadError, DatabaseOperationError) as exc:
                self._discard(key)
                file_errors.append({"file": file.name, "error": str(exc)})
                self._logger.warning(
                    "worker.file.failed",
                    extra={"album_id": album.id, "file": file.name, "error": str(exc)},
                )
            except Exception as exc:
                self._discard(key)
                message = str(exc) or exc.__class__.__name__
                file_errors.append({"file": file.name, "error": message})
                raise JobExecutionError(
                    f"album '{album_name}' aborted at file '{file.name}': {message}",
                    album_id=album.id,
                    file_errors=file_errors,
                ) from exc
            else:
                photo_count += 1
            processed = index + 1
            report(
                PROGRESS_ALBUM_CREATED + (processed * PROGRESS_FILES_SPAN) // total,
                f"Processed {processed}/{total} photos",
            )

        if status is AlbumStatus.PROCESSING:
            try:
                album = self.repository.set_status(album.id, AlbumStatus.COMPLETED)
            except RepositoryError as exc:
                raise JobExecutionError(
                    f"failed to finalize album '{album_name}': {exc}",
                    album_id=album.id,
                    file_errors=file_errors,
                ) from exc
        report(PROGRESS_DONE, "Album created successfully")
        return MaterializedAlbum(album=album, photo_count=photo_count, file_errors=file_errors)

    def _upload_variants(self, file: FileDescriptor, key: str) -> str | None:
        """Upload the JPEG variants of an image file and return the thumbnail URL."""
        if not self._generate_variants or not file.mime_type.startswith("image/"):
            return None
        try:
            variants = render_variants(file.payload, self._variant_settings)
        except ImageVariantError as exc:
            self._logger.info("worker.variants.skipped", extra={"key": key, "error": str(exc)})
            return None
        thumbnail_url = None
        for name, payload in variants.items():
            url = self._upload_with_retry(payload, variant_key(key, name), VARIANT_MIME_TYPE)
            if name == THUMBNAIL_VARIANT:
                thumbnail_url = url
        return thumbnail_url

    def _discard(self, key: str) -> None:
        result = self.storage.delete(photo_variant_keys(key))
        if result.errors:
            self._logger.warning(
                "worker.file.discard_failed",
                extra={"key": key, "errors": result.errors},
            )

    def _upload_with_retry(self, payload: bytes, key: str, mime_type: str) -> str:
        attempt = 1
        while True:
            try:
                return self.storage.upload(payload, key, mime_type)
            except StorageUploadError:
                if attempt >= self._retry_attempts:
                    raise
                delay = self._retry_backoff * (2 ** (attempt - 1))
                self._logger.info(
                    "worker.upload.retry",
                    extra={"key": key, "attempt": attempt, "delay_seconds": delay},
                )
                self._sleep(delay)
                attempt += 1
