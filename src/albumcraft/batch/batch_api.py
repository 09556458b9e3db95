"""HTTP routes for batch album submissions."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..auth.auth_dependencies import require_admin_user, require_user
from ..auth.auth_service import AuthenticatedUser
from ..exceptions import BatchValidationError, EnqueueError, ErrorCode, NotFoundError
from ..utils.rate_limiter import SubmissionRateLimiter
from .batch_models import BatchRequest, BatchResult
from .batch_schemas import BatchErrorSchema, BatchRequestSchema
from .batch_service import BatchOrchestrator

router = APIRouter(prefix="/api", tags=["batch"])
logger = logging.getLogger(__name__)

_ERROR_RESPONSES = {
    400: {"model": BatchErrorSchema},
    404: {"model": BatchErrorSchema},
    429: {"model": BatchErrorSchema},
    500: {"model": BatchErrorSchema},
}


def get_batch_orchestrator(request: Request) -> BatchOrchestrator:
    """Fetch the orchestrator from application state."""
    try:
        return request.app.state.batch_orchestrator  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("BatchOrchestrator is not configured") from exc


def get_rate_limiter(request: Request) -> SubmissionRateLimiter:
    try:
        return request.app.state.batch_rate_limiter  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("Batch rate limiter is not configured") from exc


async def _submit(
    orchestrator: BatchOrchestrator,
    batch: BatchRequest,
    *,
    require_existing_user: bool,
    session_prefix: str,
) -> BatchResult:
    try:
        return await asyncio.to_thread(
            orchestrator.submit,
            batch,
            require_existing_user=require_existing_user,
            session_prefix=session_prefix,
        )
    except BatchValidationError as exc:
        logger.info("batch.invalid", extra={"details": exc.details})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "status": "error",
                "error_code": exc.code.value,
                "message": str(exc),
                "details": exc.details,
            },
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"status": "error", "error_code": exc.code.value, "message": str(exc)},
        ) from exc
    except EnqueueError as exc:
        logger.error("batch.queue_unavailable", extra={"error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "status": "error",
                "error_code": ErrorCode.INTERNAL_ERROR.value,
                "message": "Internal server error",
            },
        ) from exc


@router.post("/admin/albums/batch", responses=_ERROR_RESPONSES)
async def submit_admin_batch(
    payload: BatchRequestSchema,
    admin: AuthenticatedUser = Depends(require_admin_user),
    orchestrator: BatchOrchestrator = Depends(get_batch_orchestrator),
    limiter: SubmissionRateLimiter = Depends(get_rate_limiter),
) -> dict:
    """Create albums for ``userId`` on behalf of an administrator."""
    limiter.check(admin.user_id)
    result = await _submit(
        orchestrator,
        payload.to_request(),
        require_existing_user=True,
        session_prefix="admin",
    )
    return result.as_response()


@router.post("/albums/batch", responses=_ERROR_RESPONSES)
async def submit_user_batch(
    payload: BatchRequestSchema,
    user: AuthenticatedUser = Depends(require_user),
    orchestrator: BatchOrchestrator = Depends(get_batch_orchestrator),
    limiter: SubmissionRateLimiter = Depends(get_rate_limiter),
) -> dict:
    """Create albums for the authenticated user; ``userId`` in the body is ignored."""
    limiter.check(user.user_id)
    result = await _submit(
        orchestrator,
        payload.to_request(user_id=user.user_id),
        require_existing_user=False,
        session_prefix="batch",
    )
    return result.as_response()


__all__ = ["get_batch_orchestrator", "get_rate_limiter", "router"]
