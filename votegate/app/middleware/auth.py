"""Session authentication dependencies and the session response helper."""

from typing import Annotated, Callable

from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from votegate.app.core.config import Settings
from votegate.app.exceptions import AuthenticationError, InsufficientPermissionsError
from votegate.app.services.session import SessionData, SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """Session manager owned by the running application."""
    return request.app.state.session_manager


SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]


def require_auth(request: Request, manager: SessionManagerDep) -> SessionData:
    """Return the caller's session.

    Raises:
        AuthenticationError: 401 if no valid session is presented
    """
    session = manager.verify_session(request)
    if session is None:
        raise AuthenticationError()
    request.state.session = session
    return session


CurrentSession = Annotated[SessionData, Depends(require_auth)]


def require_role(role: str) -> Callable[..., SessionData]:
    """Build a dependency that requires a session with ``role``.

    Raises:
        AuthenticationError: 401 if no valid session is presented
        InsufficientPermissionsError: 403 if the session has another role
    """

    def dependency(session: CurrentSession) -> SessionData:
        if session.role != role:
            raise InsufficientPermissionsError(required_role=role)
        return session

    dependency.__name__ = f"require_role_{role.lower()}"
    return dependency


def session_body(session: SessionData) -> dict:
    return {
        "success": True,
        "user": session.to_public_dict(),
        "expiresAt": session.expires_at.isoformat(),
    }


def create_session_response(
    session: SessionData,
    token: str,
    manager: SessionManager,
    settings: Settings | None = None,
) -> JSONResponse:
    """JSON session response with the token set as a role-specific cookie.

    ADMIN sessions use the admin cookie, CANDIDATE the candidate cookie and
    every other role the voter cookie.
    """
    settings = settings or manager.settings
    response = JSONResponse(session_body(session))
    response.set_cookie(
        key=manager.cookie_name_for_role(session.role),
        value=token,
        max_age=settings.session_cookie_max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return response
