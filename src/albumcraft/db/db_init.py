"""Database engine construction and schema initialization."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .db_models import Base


@dataclass(slots=True)
class Database:
    engine: Engine
    session_factory: sessionmaker[Session]


def _is_sqlite_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def build_database(url: str) -> Database:
    """Create engine and session factory, then ensure tables exist."""
    if _is_sqlite_memory(url):
        # Worker threads must see the same in-memory database.
        engine = create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif url.startswith("sqlite"):
        engine = create_engine(url, future=True, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(url, future=True, pool_pre_ping=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)
    init_db(engine)
    return Database(engine=engine, session_factory=session_factory)


def init_db(engine: Engine) -> None:
    """Create tables when they do not exist yet."""
    Base.metadata.create_all(engine)
