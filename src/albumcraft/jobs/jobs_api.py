"""Routes exposing queue progress and job state."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..auth.auth_dependencies import require_user
from ..auth.auth_service import AuthenticatedUser
from ..exceptions import EnqueueError, ErrorCode, NotFoundError
from .jobs_service import QueueStatusService

router = APIRouter(prefix="/api/queue", tags=["queue"])


def get_queue_status_service(request: Request) -> QueueStatusService:
    try:
        return request.app.state.queue_status_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("QueueStatusService is not configured") from exc


def _queue_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "status": "error",
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "message": "Internal server error",
        },
    )


@router.get("/status")
async def queue_status(
    session_id: str | None = Query(default=None, alias="sessionId"),
    _: AuthenticatedUser = Depends(require_user),
    service: QueueStatusService = Depends(get_queue_status_service),
) -> dict[str, Any]:
    """Return job counts, completion flag and progress percentage."""
    try:
        return await asyncio.to_thread(service.status, session_id)
    except EnqueueError as exc:
        raise _queue_unavailable() from exc


@router.get("/jobs")
async def session_jobs(
    session_id: str = Query(alias="sessionId", min_length=1),
    _: AuthenticatedUser = Depends(require_user),
    service: QueueStatusService = Depends(get_queue_status_service),
) -> dict[str, Any]:
    jobs = await asyncio.to_thread(service.session_jobs, session_id)
    return {"sessionId": session_id, "jobs": jobs}


@router.get("/jobs/{job_id}")
async def job_detail(
    job_id: str,
    user: AuthenticatedUser = Depends(require_user),
    service: QueueStatusService = Depends(get_queue_status_service),
) -> dict[str, Any]:
    owner = None if user.is_admin else user.user_id
    try:
        return await asyncio.to_thread(service.job_detail, job_id, user_id=owner)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"status": "error", "error_code": exc.code.value, "message": str(exc)},
        ) from exc


__all__ = ["get_queue_status_service", "router"]
