"""
Exception hierarchy for the recording-check engine.

Each exception carries the HTTP status the API layer responds with, so the
FastAPI handler in ``recording_checks.api`` can render any of them uniformly.

    CheckError (base)
    ├── ValidationError (400)
    ├── AuthorizationError (403)
    ├── NotFoundError (404)
    ├── ConflictError (409)
    └── TransientIOError (503)
"""

from typing import Any


class CheckError(Exception):
    status_code = 500
    error_type = "CheckError"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
        }
        if self.details:
            result.update(self.details)
        return result

    def __str__(self) -> str:
        return f"{self.error_type}: {self.message}"


class ValidationError(CheckError):
    """Malformed input. Event-time problems never raise this; they yield
    empty results instead."""

    status_code = 400
    error_type = "ValidationError"


class AuthorizationError(CheckError):
    """The actor is not a resolved owner of the event at the relevant time."""

    status_code = 403
    error_type = "AuthorizationError"


class NotFoundError(CheckError):
    status_code = 404
    error_type = "NotFoundError"


class ConflictError(CheckError):
    """The obligation is in a state that forbids the requested transition."""

    status_code = 409
    error_type = "ConflictError"


class TransientIOError(CheckError):
    """The store is temporarily unavailable; pollers retry on the next tick."""

    status_code = 503
    error_type = "TransientIOError"
