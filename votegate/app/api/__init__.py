"""API routers for votegate."""

from votegate.app.api.session import router as session_router

__all__ = ["session_router"]
