from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from votegate.app.api.session import router as session_router
from votegate.app.core.config import Settings, settings as default_settings
from votegate.app.core.logging import get_logger, setup_logging
from votegate.app.core.security import TokenSigner
from votegate.app.core.utils import Clock, system_clock
from votegate.app.exceptions import VotegateException
from votegate.app.middleware.rate_limit import RateLimiterRegistry, RateLimitMiddleware
from votegate.app.middleware.request_id import RequestIdMiddleware
from votegate.app.services.housekeeping import PeriodicTask
from votegate.app.services.session import SessionCache, SessionManager


def create_app(
    settings: Optional[Settings] = None,
    clock: Clock = system_clock,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Builds the token signer, session manager and rate limiters and stores
    them on ``app.state``. Fails immediately if no signing secret is set.

    Run with ``uvicorn --factory votegate.app.main:create_app``.
    """
    settings = settings or default_settings

    setup_logging()
    logger = get_logger(__name__)

    signer = TokenSigner(settings=settings, clock=clock)
    session_manager = SessionManager(
        signer=signer,
        cache=SessionCache(max_size=settings.session_cache_max_size),
        clock=clock,
        settings=settings,
    )
    rate_limiters = RateLimiterRegistry(clock=clock)
    general_limiter = rate_limiters.get_or_create("general")

    housekeeping = [
        PeriodicTask(
            "rate-limit-cleanup",
            rate_limiters.cleanup,
            settings.rate_limit_cleanup_interval_seconds,
        ),
        PeriodicTask(
            "session-cleanup",
            session_manager.cleanup_expired_sessions,
            settings.session_cleanup_interval_seconds,
        ),
    ]

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the cleanup sweeps on startup, stop them on shutdown."""
        for task in housekeeping:
            await task.start()

        logger.info(
            "Application startup complete",
            extra={
                "environment": settings.environment,
                "rate_limit_enabled": settings.rate_limit_enabled,
            },
        )

        yield

        for task in housekeeping:
            await task.stop()
        rate_limiters.close()
        session_manager.cache.clear()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="votegate",
        description="Rate limiting and session service for the election platform",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.token_signer = signer
    app.state.session_manager = session_manager
    app.state.rate_limiters = rate_limiters
    app.state.housekeeping = housekeeping

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
        max_age=600,
    )

    if settings.rate_limit_enabled:
        app.add_middleware(RateLimitMiddleware, limiter=general_limiter)

    # Outermost, so rate limit rejections carry a request ID too
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(VotegateException)
    async def votegate_exception_handler(request: Request, exc: VotegateException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.headers,
        )

    app.include_router(session_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check with rate limiter and session cache state."""
        return {
            "status": "ok",
            "components": {
                "rate_limiters": {
                    name: {
                        "total_entries": stats.total_entries,
                        "blocked_entries": stats.blocked_entries,
                        "max_requests": stats.config.max_requests,
                        "window_ms": stats.config.window_ms,
                    }
                    for name, stats in rate_limiters.get_stats().items()
                },
                "session_cache": {
                    "size": len(session_manager.cache),
                    "max_size": session_manager.cache.max_size,
                    "policy": session_manager.cache.policy.value,
                },
                "housekeeping": {task.name: task.running for task in housekeeping},
            },
        }

    return app
