"""Rate limiting for votegate.

This module provides fixed window rate limiting per client IP, applied
either app-wide through ``RateLimitMiddleware`` or per route through a
``RateLimitGuard`` dependency.
"""

from typing import Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from votegate.app.core.logging import get_logger
from votegate.app.core.utils import to_datetime
from votegate.app.exceptions import RateLimitExceededError

# Re-export models
from votegate.app.middleware.rate_limit.models import (
    RATE_LIMIT_CONFIGS,
    RateLimitConfig,
    RateLimitEntry,
    RateLimitStats,
    RateLimitStatus,
)

# Re-export stores and limiter
from votegate.app.middleware.rate_limit.store import (
    InMemoryRateLimitStore,
    RateLimitStore,
)
from votegate.app.middleware.rate_limit.limiter import (
    FixedWindowRateLimiter,
    RateLimiterRegistry,
    normalize_identifier,
)

logger = get_logger(__name__)

__all__ = [
    # Models
    "RATE_LIMIT_CONFIGS",
    "RateLimitConfig",
    "RateLimitEntry",
    "RateLimitStats",
    "RateLimitStatus",
    # Stores
    "RateLimitStore",
    "InMemoryRateLimitStore",
    # Limiter
    "FixedWindowRateLimiter",
    "RateLimiterRegistry",
    "normalize_identifier",
    # HTTP integration
    "get_client_identifier",
    "RateLimitGuard",
    "RateLimitMiddleware",
]


def get_client_identifier(request: Request) -> str:
    """Get the client IP for rate limiting.

    Proxy headers are checked first: CF-Connecting-IP, X-Real-IP, then the
    first X-Forwarded-For hop. Falls back to the socket peer.
    """
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    return request.client.host if request.client else "unknown"


def _exceeded(
    limiter: FixedWindowRateLimiter,
    identifier: str,
    request: Request,
) -> RateLimitExceededError:
    status = limiter.get_status(identifier)
    logger.warning(
        "Rate limit exceeded",
        extra={
            "identifier": normalize_identifier(identifier),
            "path": request.url.path,
            "method": request.method,
            "count": status.count,
            "max_requests": status.max_requests,
        },
    )
    return RateLimitExceededError(
        reset_time=status.reset_time,
        retry_after=status.retry_after(to_datetime(limiter.clock())),
    )


class RateLimitGuard:
    """Route dependency enforcing one named limiter.

    The limiter lives in the application's ``RateLimiterRegistry``
    (``app.state.rate_limiters``). Routes sharing a ``name`` share counters.

    Example:
        >>> @router.post("/voter/login", dependencies=[Depends(RateLimitGuard("auth", name="voter-login"))])
    """

    def __init__(self, endpoint_class: str = "general", name: Optional[str] = None):
        if endpoint_class not in RATE_LIMIT_CONFIGS:
            raise KeyError(f"Unknown rate limit class: {endpoint_class}")
        self.config = RATE_LIMIT_CONFIGS[endpoint_class]
        self.name = name or endpoint_class

    async def __call__(self, request: Request) -> None:
        app_settings = getattr(request.app.state, "settings", None)
        if app_settings is not None and not app_settings.rate_limit_enabled:
            return

        registry: RateLimiterRegistry = request.app.state.rate_limiters
        limiter = registry.get_or_create(self.name, self.config)
        identifier = get_client_identifier(request)

        if not limiter.allow(identifier):
            raise _exceeded(limiter, identifier, request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce the general rate limit on every request.

    Rejected requests get a 429 JSON body and a Retry-After header; allowed
    responses carry X-RateLimit-* headers. CORS preflights and the paths in
    ``exempt_paths`` are passed through uncounted.
    """

    def __init__(
        self,
        app,
        limiter: FixedWindowRateLimiter,
        exempt_paths: Iterable[str] = ("/health",),
    ):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        if request.method == "OPTIONS" or request.url.path in self.exempt_paths:
            return await call_next(request)

        identifier = get_client_identifier(request)

        if not self.limiter.allow(identifier):
            exc = _exceeded(self.limiter, identifier, request)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(),
                headers=exc.headers,
            )

        response = await call_next(request)

        status = self.limiter.get_status(identifier)
        response.headers["X-RateLimit-Limit"] = str(status.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, status.max_requests - status.count))
        response.headers["X-RateLimit-Reset"] = str(int(status.reset_time.timestamp()))

        return response
