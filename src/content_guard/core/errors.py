"""Exception hierarchy for the moderation engine."""

from __future__ import annotations

HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_SERVER_ERROR = 500


class ContentGuardError(RuntimeError):
    """Base exception raised for engine failures."""


class TransientError(ContentGuardError):
    """A failure expected to resolve on retry (network, server-side, rate limit)."""


class ContentValidationError(ContentGuardError, ValueError):
    """Raised when a content item or payload is malformed.

    Validation failures are never retried.
    """


class ModerationModelError(ContentGuardError):
    """Raised when the moderation model responds with an error status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        if self.status_code is None:
            return False
        return (
            self.status_code >= HTTP_INTERNAL_SERVER_ERROR
            or self.status_code == HTTP_TOO_MANY_REQUESTS
        )


class MalformedResultError(ModerationModelError):
    """Raised when the moderation model returns a payload we cannot parse."""
