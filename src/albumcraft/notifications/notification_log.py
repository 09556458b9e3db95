"""Bounded per-session log of notification events."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..db.db_models import NotificationEventModel
from ..domain.models import NotificationEvent, NotificationType
from ..exceptions import handle_sqlalchemy_errors


def _naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class NotificationLog:
    """Stores the newest ``limit`` events per session for ``ttl_seconds``.

    The log is shared through the database so a worker running in another
    process can publish events that API subscribers then forward.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        limit: int = 50,
        ttl_seconds: int = 3_600,
    ) -> None:
        self._session_factory = session_factory
        self.limit = limit
        self.ttl = timedelta(seconds=ttl_seconds)

    def append(self, event: NotificationEvent) -> NotificationEvent:
        """Persist ``event`` and trim the session log to its bounds."""
        with handle_sqlalchemy_errors(entity="notification_event"), self._session_factory() as session:
            model = NotificationEventModel(
                session_id=event.session_id,
                type=event.type.value,
                payload=dict(event.payload),
                created_at=_naive(event.timestamp),
            )
            session.add(model)
            session.flush()
            event.id = model.id
            self._trim(session, event.session_id, now=event.timestamp)
            session.commit()
        return event

    def list_recent(self, session_id: str, *, now: datetime) -> list[NotificationEvent]:
        """Return unexpired events of a session, oldest first."""
        cutoff = _naive(now - self.ttl)
        with handle_sqlalchemy_errors(entity="notification_event"), self._session_factory() as session:
            rows = session.scalars(
                select(NotificationEventModel)
                .where(
                    NotificationEventModel.session_id == session_id,
                    NotificationEventModel.created_at >= cutoff,
                )
                .order_by(NotificationEventModel.id)
            ).all()
            return [self._to_event(row) for row in rows]

    def list_since(self, session_id: str, after_id: int) -> list[NotificationEvent]:
        with handle_sqlalchemy_errors(entity="notification_event"), self._session_factory() as session:
            rows = session.scalars(
                select(NotificationEventModel)
                .where(
                    NotificationEventModel.session_id == session_id,
                    NotificationEventModel.id > after_id,
                )
                .order_by(NotificationEventModel.id)
            ).all()
            return [self._to_event(row) for row in rows]

    def latest_id(self, session_id: str) -> int:
        with handle_sqlalchemy_errors(entity="notification_event"), self._session_factory() as session:
            value = session.scalar(
                select(func.max(NotificationEventModel.id)).where(
                    NotificationEventModel.session_id == session_id
                )
            )
            return int(value or 0)

    def clear(self, session_id: str) -> int:
        with handle_sqlalchemy_errors(entity="notification_event"), self._session_factory() as session:
            result = session.execute(
                delete(NotificationEventModel).where(
                    NotificationEventModel.session_id == session_id
                )
            )
            session.commit()
            return int(result.rowcount or 0)

    def prune_expired(self, *, now: datetime) -> int:
        """Delete events of every session older than the retention window."""
        cutoff = _naive(now - self.ttl)
        with handle_sqlalchemy_errors(entity="notification_event"), self._session_factory() as session:
            result = session.execute(
                delete(NotificationEventModel).where(NotificationEventModel.created_at < cutoff)
            )
            session.commit()
            return int(result.rowcount or 0)

    def _trim(self, session: Session, session_id: str, *, now: datetime) -> None:
        keep_ids = (
            select(NotificationEventModel.id)
            .where(NotificationEventModel.session_id == session_id)
            .order_by(NotificationEventModel.id.desc())
            .limit(self.limit)
        )
        session.execute(
            delete(NotificationEventModel)
            .where(
                NotificationEventModel.session_id == session_id,
                NotificationEventModel.id.not_in(keep_ids),
            )
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(NotificationEventModel)
            .where(
                NotificationEventModel.session_id == session_id,
                NotificationEventModel.created_at < _naive(now - self.ttl),
            )
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _to_event(model: NotificationEventModel) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType(model.type),
            session_id=model.session_id,
            payload=dict(model.payload or {}),
            timestamp=model.created_at.replace(tzinfo=timezone.utc),
            id=model.id,
        )
