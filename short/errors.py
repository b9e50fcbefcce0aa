"""Error taxonomy for the short key service.

Domain errors (``ValueTooLargeError``, ``KeyNotFoundError``) are expected
outcomes that transports map to client-visible statuses. ``InternalError``
covers conditions that should not occur under correct use. The resilience
errors are raised by the endpoint layer, never by the key store.
"""

__all__ = [
    "ShortError",
    "ValueTooLargeError",
    "KeyNotFoundError",
    "InternalError",
    "RateLimitExceededError",
    "CircuitOpenError",
    "ERROR_STATUS_CODES",
    "status_code_for",
    "error_for_status",
]


class ShortError(Exception):
    """Base class for every error raised by the package."""

    message = "short service error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class ValueTooLargeError(ShortError):
    message = "result exceeds maximum size"


class KeyNotFoundError(ShortError):
    message = "key not found"


class InternalError(ShortError):
    message = "internal error"


class RateLimitExceededError(ShortError):
    message = "rate limit exceeded"


class CircuitOpenError(ShortError):
    message = "circuit breaker is open"


ERROR_STATUS_CODES: dict[type[ShortError], int] = {
    KeyNotFoundError: 404,
    ValueTooLargeError: 400,
    RateLimitExceededError: 429,
    CircuitOpenError: 503,
}


def status_code_for(err: BaseException) -> int:
    """Return the HTTP status for ``err``; unknown errors map to 500."""
    for error_type, status in ERROR_STATUS_CODES.items():
        if isinstance(err, error_type):
            return status
    return 500


def error_for_status(status: int, message: str) -> ShortError:
    """Rebuild a typed error from an HTTP status and the server's message."""
    for error_type, code in ERROR_STATUS_CODES.items():
        if code == status:
            return error_type(message)
    return ShortError(message)
