"""Persistence layer for albums, photos and their owners."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import AlbumModel, PhotoModel, UserModel
from ..domain.models import AlbumRecord, AlbumStatus, FileDescriptor, PhotoRecord
from ..exceptions import NotFoundError, handle_sqlalchemy_errors


def _naive_utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AlbumRepository:
    """Create and update album/photo rows on behalf of the pipeline."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def user_exists(self, user_id: str) -> bool:
        with self._session_factory() as session:
            return session.get(UserModel, user_id) is not None

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        name: str | None = None,
        role: str = "user",
    ) -> None:
        with handle_sqlalchemy_errors(entity="user"), self._session_factory() as session:
            session.add(UserModel(id=user_id, email=email, name=name, role=role))
            session.commit()

    def create_album(
        self,
        *,
        user_id: str,
        name: str,
        event_name: str | None,
        status: AlbumStatus = AlbumStatus.DRAFT,
    ) -> AlbumRecord:
        """Insert one album row in its own transaction."""
        now = _naive_utcnow()
        album_id = uuid.uuid4().hex
        with handle_sqlalchemy_errors(entity="album"), self._session_factory() as session:
            model = AlbumModel(
                id=album_id,
                user_id=user_id,
                name=name,
                event_name=event_name,
                status=status.value,
                creation_type="BATCH",
                photo_count=0,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            session.commit()
            return self._to_album_record(model)

    def create_photo(
        self,
        *,
        album_id: str,
        user_id: str,
        file: FileDescriptor,
        storage_key: str,
        url: str,
        thumbnail_url: str | None = None,
    ) -> PhotoRecord:
        """Insert a photo row and bump the album's photo counter."""
        photo_id = uuid.uuid4().hex
        with handle_sqlalchemy_errors(entity="photo"), self._session_factory() as session:
            album = session.get(AlbumModel, album_id)
            if album is None:
                raise NotFoundError(f"album '{album_id}' not found")
            session.add(
                PhotoModel(
                    id=photo_id,
                    album_id=album_id,
                    user_id=user_id,
                    filename=file.name,
                    storage_key=storage_key,
                    url=url,
                    thumbnail_url=thumbnail_url,
                    size_bytes=file.size,
                    mime_type=file.mime_type,
                    uploaded_at=_naive_utcnow(),
                )
            )
            album.photo_count += 1
            album.updated_at = _naive_utcnow()
            session.commit()
        return PhotoRecord(
            id=photo_id,
            album_id=album_id,
            user_id=user_id,
            filename=file.name,
            storage_key=storage_key,
            url=url,
            size_bytes=file.size,
            mime_type=file.mime_type,
            thumbnail_url=thumbnail_url,
        )

    def set_status(self, album_id: str, status: AlbumStatus) -> AlbumRecord:
        with handle_sqlalchemy_errors(entity="album"), self._session_factory() as session:
            model = session.get(AlbumModel, album_id)
            if model is None:
                raise NotFoundError(f"album '{album_id}' not found")
            model.status = status.value
            model.updated_at = _naive_utcnow()
            session.commit()
            return self._to_album_record(model)

    def get_album(self, album_id: str) -> AlbumRecord:
        with self._session_factory() as session:
            model = session.get(AlbumModel, album_id)
            if model is None:
                raise NotFoundError(f"album '{album_id}' not found")
            return self._to_album_record(model)

    def list_photos(self, album_id: str) -> list[PhotoRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(PhotoModel)
                .where(PhotoModel.album_id == album_id)
                .order_by(PhotoModel.uploaded_at, PhotoModel.filename)
            ).all()
            return [
                PhotoRecord(
                    id=row.id,
                    album_id=row.album_id,
                    user_id=row.user_id,
                    filename=row.filename,
                    storage_key=row.storage_key,
                    url=row.url,
                    size_bytes=row.size_bytes,
                    mime_type=row.mime_type,
                    thumbnail_url=row.thumbnail_url,
                )
                for row in rows
            ]

    @staticmethod
    def _to_album_record(model: AlbumModel) -> AlbumRecord:
        return AlbumRecord(
            id=model.id,
            user_id=model.user_id,
            name=model.name,
            event_name=model.event_name,
            status=AlbumStatus(model.status),
            photo_count=model.photo_count,
            created_at=_as_utc(model.created_at),
        )
