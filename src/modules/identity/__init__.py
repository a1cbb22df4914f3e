"""Identity module — JWT-authenticated actors and role capabilities."""

from src.modules.identity.auth import AuthenticatedUser, get_current_user

__all__ = ["AuthenticatedUser", "get_current_user"]
