"""Typed application errors and their HTTP rendering.

Services raise these instead of ``HTTPException`` so the same rules apply
whether an operation is reached over HTTP, the websocket or a test. The
handlers registered in ``main.py`` turn every error into a JSON body with a
human readable ``message``.
"""

from dataclasses import dataclass

from fastapi import status


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidOrExpired(ValidationError):
    default_message = "Invalid or expired code"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class InvalidSession(Unauthorized):
    default_message = "Invalid session"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists"


@dataclass(frozen=True)
class DownstreamDegraded:
    """A best-effort side channel (email, geolocation, cache, push) failed.

    Never raised: it travels inside an ``Err`` so the caller decides whether
    the failure matters.

    Attributes:
        provider: Short name of the failing collaborator, e.g. ``"mailgun"``.
        reason: Human readable cause for the log line.
    """

    provider: str
    reason: str

    def __str__(self) -> str:
        return f"{self.provider}: {self.reason}"
