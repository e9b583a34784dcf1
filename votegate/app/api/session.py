"""Session endpoints: inspect, refresh and log out the current session."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from votegate.app.middleware.auth import (
    CurrentSession,
    SessionManagerDep,
    create_session_response,
    session_body,
)
from votegate.app.middleware.rate_limit import RateLimitGuard

router = APIRouter(prefix="/api/session", tags=["session"])


@router.get("")
async def get_session(session: CurrentSession) -> dict:
    """Return the caller's session without issuing a new cookie."""
    return session_body(session)


@router.post(
    "/refresh",
    dependencies=[Depends(RateLimitGuard("auth", name="session-refresh"))],
)
async def refresh_session(
    session: CurrentSession,
    manager: SessionManagerDep,
) -> JSONResponse:
    """Issue a new 24 hour token and set it as the role's cookie."""
    token = manager.refresh_session(session)
    refreshed = manager.cache.get(token) or session
    return create_session_response(refreshed, token, manager)


@router.post("/logout")
async def logout(request: Request, manager: SessionManagerDep) -> JSONResponse:
    """Forget the cached session and clear every session cookie."""
    manager.invalidate_session(request)
    response = JSONResponse({"success": True})
    for cookie in (
        manager.settings.admin_session_cookie,
        manager.settings.candidate_session_cookie,
        manager.settings.voter_session_cookie,
    ):
        response.delete_cookie(cookie)
    return response
