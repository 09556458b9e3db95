"""Common authentication dependencies for FastAPI routers."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth_service import (
    ADMIN_ROLE,
    AuthenticatedUser,
    InsufficientRoleError,
    InvalidTokenError,
    TokenExpiredError,
    TokenService,
)

security = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    try:
        return request.app.state.token_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("TokenService is not configured") from exc


def _authenticate(
    credentials: HTTPAuthorizationCredentials | None,
    service: TokenService,
    *,
    required_role: str | None,
) -> AuthenticatedUser:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "failure_reason": "missing_token"},
        )

    try:
        return service.validate_token(credentials.credentials, required_role=required_role)
    except TokenExpiredError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "failure_reason": "token_expired"},
        ) from exc
    except InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "failure_reason": "invalid_token"},
        ) from exc
    except InsufficientRoleError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"status": "error", "failure_reason": "insufficient_role"},
        ) from exc


def require_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    service: TokenService = Depends(get_token_service),
) -> AuthenticatedUser:
    return _authenticate(credentials, service, required_role=None)


def require_admin_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    service: TokenService = Depends(get_token_service),
) -> AuthenticatedUser:
    return _authenticate(credentials, service, required_role=ADMIN_ROLE)


__all__ = ["get_token_service", "require_admin_user", "require_user"]
