"""Server-sent events stream and management actions for notifications."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import StrEnum
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..auth.auth_dependencies import require_user
from ..auth.auth_service import AuthenticatedUser
from ..domain.models import NotificationEvent, utcnow
from ..exceptions import RepositoryError
from .notification_log import NotificationLog
from .notification_service import NotificationChannel, Subscription

router = APIRouter(prefix="/api/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class NotificationAction(StrEnum):
    GET_STATS = "get_stats"
    CLEAR_NOTIFICATIONS = "clear_notifications"


class NotificationActionSchema(BaseModel):
    action: NotificationAction
    session_id: str | None = Field(default=None, alias="sessionId")


def get_notification_channel(request: Request) -> NotificationChannel:
    try:
        return request.app.state.notification_channel  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("NotificationChannel is not configured") from exc


def get_notification_log(request: Request) -> NotificationLog:
    try:
        return request.app.state.notification_log  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("NotificationLog is not configured") from exc


def format_sse(event: NotificationEvent) -> str:
    return f"data: {json.dumps(event.as_dict())}\n\n"


async def sse_event_stream(request: Request, subscription: Subscription) -> AsyncIterator[str]:
    """Yield SSE frames until the client disconnects or the subscription closes."""

    events = subscription.stream()
    try:
        async for event in events:
            if await request.is_disconnected():
                break
            yield format_sse(event)
    finally:
        await subscription.close()
        logger.info(
            "notifications.stream.closed",
            extra={"session_id": subscription.session_id},
        )


@router.get("")
async def subscribe(
    request: Request,
    session_id: str = Query(alias="sessionId", min_length=1),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> StreamingResponse:
    """Open a ``text/event-stream`` for one session."""
    try:
        subscription = await channel.subscribe(session_id)
    except RepositoryError as exc:
        logger.warning("notifications.subscribe_failed", extra={"session_id": session_id, "error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "error",
                "error_code": "TRANSPORT_FAILURE",
                "message": "notification log is unavailable",
            },
        ) from exc
    return StreamingResponse(
        sse_event_stream(request, subscription),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/recent")
async def recent_notifications(
    session_id: str = Query(alias="sessionId", min_length=1),
    log: NotificationLog = Depends(get_notification_log),
) -> dict[str, Any]:
    """Return stored events of a session so a reconnecting client can catch up."""
    events = await asyncio.to_thread(log.list_recent, session_id, now=utcnow())
    return {"sessionId": session_id, "notifications": [event.as_dict() for event in events]}


@router.post("")
async def notification_action(
    payload: NotificationActionSchema,
    _: AuthenticatedUser = Depends(require_user),
    channel: NotificationChannel = Depends(get_notification_channel),
    log: NotificationLog = Depends(get_notification_log),
) -> dict[str, Any]:
    if payload.action is NotificationAction.GET_STATS:
        stats = await channel.queue_stats(payload.session_id)
        return {
            "queue": stats.as_dict(),
            "connections": {
                "active": channel.active_subscribers,
                "session": (
                    channel.subscribers_for(payload.session_id)
                    if payload.session_id
                    else None
                ),
            },
        }

    if not payload.session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "status": "error",
                "error_code": "VALIDATION_ERROR",
                "message": "sessionId is required",
            },
        )
    removed = await asyncio.to_thread(log.clear, payload.session_id)
    logger.info(
        "notifications.cleared",
        extra={"session_id": payload.session_id, "removed": removed},
    )
    return {"success": True, "removed": removed}


__all__ = ["format_sse", "router", "sse_event_stream"]
