from datetime import timedelta

import jwt
import pytest

from albumcraft.auth.auth_service import (
    ADMIN_ROLE,
    InsufficientRoleError,
    InvalidTokenError,
    TokenExpiredError,
    TokenService,
)


def build_service(ttl: timedelta = timedelta(hours=1)) -> TokenService:
    return TokenService(signing_key="test-key", token_ttl=ttl)


def test_issue_token_embeds_subject_and_role() -> None:
    service = build_service()

    token, expires_in = service.issue_token("admin-1", role=ADMIN_ROLE)

    assert expires_in == 3600
    payload = jwt.decode(token, "test-key", algorithms=["HS256"])
    assert payload["sub"] == "admin-1"
    assert payload["role"] == "admin"


def test_validate_token_returns_user() -> None:
    service = build_service()
    token, _ = service.issue_token("user-1")

    user = service.validate_token(token)

    assert user.user_id == "user-1"
    assert user.is_admin is False


def test_validate_token_rejects_wrong_role() -> None:
    service = build_service()
    token, _ = service.issue_token("user-1")

    with pytest.raises(InsufficientRoleError):
        service.validate_token(token, required_role=ADMIN_ROLE)


def test_validate_token_rejects_expired_token() -> None:
    service = build_service(ttl=timedelta(seconds=-10))
    token, _ = service.issue_token("user-1")

    with pytest.raises(TokenExpiredError):
        service.validate_token(token)


def test_validate_token_rejects_foreign_signature() -> None:
    token, _ = TokenService(signing_key="other", token_ttl=timedelta(hours=1)).issue_token("u")

    with pytest.raises(InvalidTokenError):
        build_service().validate_token(token)


def test_from_settings_requires_key() -> None:
    with pytest.raises(RuntimeError):
        TokenService.from_settings(signing_key="", token_ttl_hours=1)

    service = TokenService.from_settings(signing_key="k", token_ttl_hours=2)
    assert service.token_ttl == timedelta(hours=2)
