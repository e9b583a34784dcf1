"""Shared fixtures for votegate tests."""

import time

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from votegate.app.core.config import Settings
from votegate.app.core.security import TokenSigner
from votegate.app.main import create_app
from votegate.app.services.session import SessionManager

TEST_SECRET = "test-signing-secret-for-votegate"


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, start: float | None = None):
        # Whole seconds keep datetime conversions exact
        self.now = start if start is not None else float(int(time.time()))

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _build_request(
    headers: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
    client: tuple[str, int] | None = ("127.0.0.1", 50000),
) -> Request:
    """Build a Starlette request carrying the given headers and cookies."""
    raw_headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode("latin-1")))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": raw_headers,
        "client": client,
    }
    return Request(scope)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, jwt_secret=TEST_SECRET, environment="development")


@pytest.fixture
def signer(test_settings, clock) -> TokenSigner:
    return TokenSigner(settings=test_settings, clock=clock)


@pytest.fixture
def session_manager(signer, test_settings, clock) -> SessionManager:
    return SessionManager(signer=signer, clock=clock, settings=test_settings)


@pytest.fixture
def app(test_settings, clock):
    return create_app(settings=test_settings, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_request():
    """Factory for Starlette requests with given headers, cookies and peer."""
    return _build_request
