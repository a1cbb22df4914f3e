"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ForbiddenException(AppException):
    """Authenticated, but not a participant in the resource."""

    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


class ThreadClosedException(AppException):
    """Raised when writing into a chat thread that is closing or closed."""

    code = "THREAD_CLOSED"
    status_code = 409


class FeatureDisabledException(AppException):
    """Chat is switched off by configuration; clients show it as unavailable."""

    code = "FEATURE_DISABLED"
    status_code = 501


class TransientInfraException(AppException):
    """Object store, broker or database unreachable; safe to retry later.

    ``retry_after`` is the client-facing hint in seconds.
    """

    code = "SERVICE_UNAVAILABLE"
    status_code = 503

    def __init__(
        self, message: str, details: list[dict] | None = None, retry_after: int = 5
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after
