"""JWT authentication dependency for FastAPI.

Validates Bearer tokens from the Authorization header and extracts the
actor claims. Role resolution lives in the identity provider; chat only
needs the actor id and whether the actor is staff.
"""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.config import settings
from src.exceptions import UnauthorizedException
from src.models.enums import UserRole

logger = logging.getLogger(__name__)

# FastAPI security scheme — extracts Bearer token from Authorization header
_bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = frozenset({UserRole.ADMIN.value, UserRole.STAFF.value})


@dataclass
class AuthenticatedUser:
    """Represents the authenticated actor extracted from a JWT token."""

    id: uuid.UUID
    email: str
    role: str = UserRole.CLIENT.value

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthorizedException on failure."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthenticatedUser:
    """FastAPI dependency that extracts and validates the current user from JWT."""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = _decode_token(credentials.credentials)

    try:
        user = AuthenticatedUser(
            id=uuid.UUID(payload["sub"]),
            email=payload["email"],
            role=str(payload.get("role", UserRole.CLIENT.value)).lower(),
        )
    except (KeyError, ValueError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc

    request.state.user = user
    return user
