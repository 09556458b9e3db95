"""Bearer token authentication."""

from .auth_dependencies import require_admin_user, require_user
from .auth_service import AuthenticatedUser, TokenService

__all__ = ["AuthenticatedUser", "TokenService", "require_admin_user", "require_user"]
