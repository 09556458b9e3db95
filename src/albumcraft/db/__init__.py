"""Database models and utilities."""

from .db_init import Database, build_database, init_db
from .db_models import AlbumModel, Base, NotificationEventModel, PhotoModel, UserModel

__all__ = [
    "AlbumModel",
    "Base",
    "Database",
    "NotificationEventModel",
    "PhotoModel",
    "UserModel",
    "build_database",
    "init_db",
]
