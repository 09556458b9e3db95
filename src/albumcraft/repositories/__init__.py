"""Repositories backed by SQLAlchemy sessions."""

from .album_repository import AlbumRepository

__all__ = ["AlbumRepository"]
