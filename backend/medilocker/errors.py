"""Domain error taxonomy.

Services raise these; the application maps each one onto an HTTP status and
the standard error envelope (see ``medilocker.main``). Every error carries a
machine-readable ``kind`` and a human message.
"""

from __future__ import annotations

from fastapi import status


class MedilockerError(Exception):
    """Base class for errors surfaced to API callers."""

    kind: str = "error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MedilockerError):
    """Malformed or missing input; nothing was changed."""

    kind = "validation_error"
    status_code = 422
    default_message = "Invalid input"


class AuthError(MedilockerError):
    """Credential missing, invalid or expired."""

    kind = "auth_error"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class ForbiddenError(MedilockerError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action"


class NotFoundError(MedilockerError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(MedilockerError):
    """A state transition was attempted from a state that no longer holds."""

    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This item has changed since you loaded it. Refresh and try again."

    def __init__(self, message: str | None = None, current_status: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(message)


class PayloadTooLargeError(MedilockerError):
    kind = "payload_too_large"
    status_code = 413
    default_message = "Uploaded file is too large"


class TransientError(MedilockerError):
    """Timeout or backend unavailability. Safe to retry."""

    kind = "transient_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable, please retry"
    retry_after_seconds = 1
