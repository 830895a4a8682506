"""
Velociti Error Taxonomy

Domain exceptions carry their HTTP status so the API boundary can render them
without per-route try/except blocks.
"""

from typing import Any


class VelocitiError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(VelocitiError):
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(VelocitiError):
    status_code = 401
    default_message = "Authentication required"


class NotFoundError(VelocitiError):
    status_code = 404
    default_message = "Resource not found"


class RateLimitError(VelocitiError):
    status_code = 429
    default_message = "Rate limit exceeded"

    def __init__(self, message: str | None = None, retry_after: str | None = None):
        super().__init__(message, details={"retryAfter": retry_after} if retry_after else None)
        self.retry_after = retry_after


class InternalError(VelocitiError):
    status_code = 500
