from typing import Any, Dict, Optional


class ParseraException(Exception):
    """Base exception for the Parsera client."""

    default_error_code: Optional[str] = "EXTRACTION_FAILED"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def with_prefix(self, prefix: str) -> "ParseraException":
        """Return a copy of this error, same class, with a prefixed message."""
        return type(self)(
            f"{prefix}{self.message}",
            error_code=self.error_code,
            details=dict(self.details)
        )

class InvalidConfigurationException(ParseraException):
    """Client was constructed with an unusable configuration."""
    default_error_code = "INVALID_CONFIGURATION"

class InvalidInputException(ParseraException):
    """Extraction input failed validation."""
    default_error_code = "INVALID_INPUT"

class UnauthorizedException(ParseraException):
    """The API rejected the credential (HTTP 401)."""
    default_error_code = "UNAUTHORIZED"

class RateLimitException(ParseraException):
    """Rate limit still exceeded after all retries (HTTP 429)."""
    default_error_code = "RATE_LIMIT_EXCEEDED"

class BadRequestException(ParseraException):
    """The API rejected the request body (HTTP 400)."""
    default_error_code = "BAD_REQUEST"

class ServerException(ParseraException):
    """Any other non-success HTTP status."""
    default_error_code = "SERVER_ERROR"

class NoDataException(ParseraException):
    """Successful response with an empty data collection."""
    default_error_code = "NO_DATA"

class RequestTimeoutException(ParseraException):
    """An attempt exceeded its deadline."""
    default_error_code = "TIMEOUT"

class CancelledException(ParseraException):
    """The caller cancelled the request."""
    default_error_code = "CANCELLED"

class NetworkException(ParseraException):
    """Transient transport failure."""
    default_error_code = "NETWORK_ERROR"

class HandlerException(ParseraException):
    """An event handler failed."""
    default_error_code = "HANDLER_ERROR"
