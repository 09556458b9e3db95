"""Bearer token issuance and validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import structlog
from jwt import ExpiredSignatureError
from jwt import InvalidTokenError as PyJWTInvalidTokenError

logger = structlog.get_logger(__name__)

ADMIN_ROLE = "admin"
USER_ROLE = "user"


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(tz=timezone.utc)


class AuthError(Exception):
    """Base class for auth failures."""


class InvalidTokenError(AuthError):
    """Raised when token cannot be decoded."""


class TokenExpiredError(AuthError):
    """Raised when token is expired."""


class InsufficientRoleError(AuthError):
    """Raised when token role does not match requirement."""


@dataclass(slots=True, frozen=True)
class AuthenticatedUser:
    """Identity extracted from a validated token."""

    user_id: str
    role: str = USER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


@dataclass(slots=True)
class TokenService:
    """Issue and validate HS256 tokens carrying ``sub`` and ``role``."""

    signing_key: str
    token_ttl: timedelta

    @classmethod
    def from_settings(cls, signing_key: str, token_ttl_hours: int) -> "TokenService":
        if not signing_key:
            raise RuntimeError("ALBUMCRAFT_JWT_SIGNING_KEY is not configured")
        return cls(signing_key=signing_key, token_ttl=timedelta(hours=token_ttl_hours))

    def issue_token(self, user_id: str, *, role: str = USER_ROLE) -> tuple[str, int]:
        """Return a signed token and its lifetime in seconds."""
        issued_at = _utcnow()
        payload: dict[str, Any] = {
            "sub": user_id,
            "role": role,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.token_ttl).timestamp()),
        }
        token = jwt.encode(payload, self.signing_key, algorithm="HS256")
        expires_in = int(self.token_ttl.total_seconds())
        logger.info("auth.token.issued", user_id=user_id, role=role, expires_in=expires_in)
        return token, expires_in

    def validate_token(self, token: str, required_role: str | None = None) -> AuthenticatedUser:
        """Decode the token and ensure the role matches the requirement."""
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.signing_key,
                algorithms=["HS256"],
                options={"require": ["exp", "iat", "sub"]},
            )
        except ExpiredSignatureError as exc:
            logger.info("auth.token.rejected", reason="expired")
            raise TokenExpiredError("Token expired") from exc
        except PyJWTInvalidTokenError as exc:
            logger.warning("auth.token.rejected", reason="invalid")
            raise InvalidTokenError("Invalid token") from exc

        user = AuthenticatedUser(
            user_id=str(payload["sub"]),
            role=str(payload.get("role") or USER_ROLE),
        )
        if required_role and user.role != required_role:
            logger.warning(
                "auth.token.rejected",
                reason="insufficient_role",
                user_id=user.user_id,
                role=user.role,
            )
            raise InsufficientRoleError("Insufficient role")
        return user


__all__ = [
    "ADMIN_ROLE",
    "USER_ROLE",
    "AuthError",
    "AuthenticatedUser",
    "InsufficientRoleError",
    "InvalidTokenError",
    "TokenExpiredError",
    "TokenService",
]
