"""Middleware package for votegate."""

from votegate.app.middleware.auth import (
    create_session_response,
    get_session_manager,
    require_auth,
    require_role,
)
from votegate.app.middleware.rate_limit import (
    RateLimitGuard,
    RateLimitMiddleware,
    get_client_identifier,
)
from votegate.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "create_session_response",
    "get_session_manager",
    "require_auth",
    "require_role",
    "RateLimitGuard",
    "RateLimitMiddleware",
    "get_client_identifier",
    "RequestIdMiddleware",
    "get_request_id",
]
