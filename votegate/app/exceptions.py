"""Custom exceptions for votegate."""

from datetime import datetime, timezone
from typing import Any


class VotegateException(Exception):
    """Base class for votegate exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal error"):
        self.message = message
        super().__init__(message)

    @property
    def headers(self) -> dict[str, str]:
        return {}

    def to_response(self) -> dict[str, Any]:
        """Convert to API response body."""
        return {
            "error": self.message,
            "code": self.code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class ConfigurationError(VotegateException):
    """Raised when a required setting or input is missing.

    Covers a missing signing secret and session creation without a user
    identity. Never retried.
    """
    status_code = 500
    code = "CONFIGURATION_ERROR"


class TokenError(VotegateException):
    """Raised by the token signer.

    ``code`` is one of SIGN_ERROR, TOKEN_EXPIRED, INVALID_TOKEN or
    VERIFICATION_ERROR.
    """
    status_code = 401

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code


class AuthenticationError(VotegateException):
    """Raised when no valid session is presented.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(detail)


class InsufficientPermissionsError(VotegateException):
    """Raised when the session role does not match the required role.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"

    def __init__(self, required_role: str | None = None, detail: str = "Insufficient permissions"):
        self.required_role = required_role
        super().__init__(detail)


class RateLimitExceededError(VotegateException):
    """Raised by the HTTP layer when a rate limiter rejects a request.

    Maps to HTTP 429 Too Many Requests with a Retry-After header.
    """
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, reset_time: datetime, retry_after: int):
        self.reset_time = reset_time
        self.retry_after = retry_after
        super().__init__("Too many requests")

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}

    def to_response(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "message": "Please try again later",
            "resetTime": self.reset_time.isoformat(),
        }
