"""Tests for fixed window rate limiting."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from votegate.app.middleware.rate_limit import (
    RATE_LIMIT_CONFIGS,
    FixedWindowRateLimiter,
    InMemoryRateLimitStore,
    RateLimitConfig,
    RateLimiterRegistry,
    RateLimitGuard,
    RateLimitMiddleware,
    get_client_identifier,
    normalize_identifier,
)
from votegate.app.middleware.rate_limit import limiter as limiter_module
from votegate.app.core.utils import to_datetime
from votegate.app.exceptions import RateLimitExceededError, VotegateException


class ExplodingStore(InMemoryRateLimitStore):
    """Store whose reads always fail."""

    def get(self, key):
        raise RuntimeError("store unavailable")


class TestFixedWindowRateLimiter:
    """Tests for the fixed window algorithm."""

    @pytest.fixture
    def limiter(self, clock):
        return FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=60_000, max_requests=5),
            clock=clock,
        )

    def test_allows_up_to_max_then_blocks(self, limiter):
        """First max_requests calls pass, the next one is rejected."""
        results = [limiter.allow("203.0.113.5") for _ in range(5)]
        assert results == [True] * 5
        assert limiter.allow("203.0.113.5") is False

    def test_blocked_entry_is_not_counted(self, limiter):
        for _ in range(5):
            limiter.allow("203.0.113.5")
        for _ in range(3):
            assert limiter.allow("203.0.113.5") is False

        status = limiter.get_status("203.0.113.5")
        assert status.count == 5
        assert status.blocked is True
        assert status.allowed is False

    def test_window_reset_restarts_count(self, limiter, clock):
        """After reset_time passes the client starts a fresh window at count 1."""
        for _ in range(6):
            limiter.allow("203.0.113.5")

        clock.advance(60.001)
        assert limiter.allow("203.0.113.5") is True

        status = limiter.get_status("203.0.113.5")
        assert status.count == 1
        assert status.blocked is False

    def test_request_exactly_at_reset_time_stays_in_window(self, limiter, clock):
        for _ in range(6):
            limiter.allow("203.0.113.5")

        clock.advance(60)
        assert limiter.allow("203.0.113.5") is False

    def test_port_and_case_share_counter(self, clock):
        limiter = FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=60_000, max_requests=3),
            clock=clock,
        )
        assert limiter.allow("1.2.3.4:9999") is True
        assert limiter.allow("1.2.3.4:1111") is True
        assert limiter.allow("1.2.3.4") is True
        assert limiter.allow("1.2.3.4:80") is False

        assert limiter.allow("Client-A") is True
        assert limiter.get_status("client-a").count == 1

    def test_different_identifiers_independent(self, limiter):
        for _ in range(6):
            limiter.allow("key1")

        assert limiter.allow("key1") is False
        assert limiter.allow("key2") is True

    def test_fails_open_when_store_raises(self, clock):
        limiter = FixedWindowRateLimiter(store=ExplodingStore(), clock=clock)
        with patch.object(limiter_module.logger, "error") as mock_error:
            assert limiter.allow("203.0.113.5") is True
        mock_error.assert_called_once()

    def test_exceeding_logs_warning(self, limiter):
        for _ in range(5):
            limiter.allow("203.0.113.5")
        with patch.object(limiter_module.logger, "warning") as mock_warning:
            limiter.allow("203.0.113.5")
            limiter.allow("203.0.113.5")
        # Only the request that trips the block is logged
        mock_warning.assert_called_once()
        assert mock_warning.call_args.kwargs["extra"]["identifier"] == "203.0.113.5"

    def test_reset_allows_immediately(self, limiter):
        for _ in range(6):
            limiter.allow("203.0.113.5")
        assert limiter.allow("203.0.113.5") is False

        limiter.reset("203.0.113.5:443")
        assert limiter.allow("203.0.113.5") is True


class TestRateLimitStatus:
    """Tests for the read-only status projection."""

    def test_unseen_identifier(self, clock):
        limiter = FixedWindowRateLimiter(config=RATE_LIMIT_CONFIGS["general"], clock=clock)
        status = limiter.get_status("unseen-ip")

        assert status.allowed is True
        assert status.count == 0
        assert status.blocked is False
        assert status.max_requests == 100
        assert status.reset_time == to_datetime(clock.now + 15 * 60)

    def test_status_does_not_count(self, clock):
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.allow("10.0.0.1")
        for _ in range(10):
            limiter.get_status("10.0.0.1")
        assert limiter.get_status("10.0.0.1").count == 1

    def test_expired_entry_reported_fresh(self, clock):
        limiter = FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=1000, max_requests=1),
            clock=clock,
        )
        limiter.allow("10.0.0.1")
        limiter.allow("10.0.0.1")
        clock.advance(2)

        status = limiter.get_status("10.0.0.1")
        assert status.allowed is True
        assert status.count == 0

    def test_retry_after_rounds_up(self, clock):
        limiter = FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=10_000, max_requests=1),
            clock=clock,
        )
        limiter.allow("10.0.0.1")
        status = limiter.get_status("10.0.0.1")

        now = to_datetime(clock.now)
        assert status.retry_after(now) == 10
        assert status.retry_after(now + timedelta(seconds=2.5)) == 8
        assert status.retry_after(now + timedelta(seconds=30)) == 0


class TestCleanupAndStats:
    """Tests for housekeeping and statistics."""

    def test_cleanup_removes_only_expired(self, clock):
        limiter = FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=1000, max_requests=1),
            clock=clock,
        )
        limiter.allow("old")
        clock.advance(0.5)
        limiter.allow("fresh")
        clock.advance(0.6)

        assert limiter.cleanup() == 1
        stats = limiter.get_stats()
        assert stats.total_entries == 1

    def test_stats_counts_blocked(self, clock):
        limiter = FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=60_000, max_requests=1),
            clock=clock,
        )
        limiter.allow("a")
        limiter.allow("a")
        limiter.allow("b")

        stats = limiter.get_stats()
        assert stats.total_entries == 2
        assert stats.blocked_entries == 1
        assert stats.config.max_requests == 1

    def test_close_clears_store(self, clock):
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.allow("a")
        limiter.close()
        assert limiter.get_stats().total_entries == 0


class TestRateLimitConfigs:
    """The per-endpoint-class policy table."""

    @pytest.mark.parametrize(
        ("name", "window_ms", "max_requests"),
        [
            ("general", 15 * 60 * 1000, 100),
            ("auth", 15 * 60 * 1000, 5),
            ("upload", 60 * 60 * 1000, 20),
            ("otp", 15 * 60 * 1000, 3),
            ("voting", 24 * 60 * 60 * 1000, 1),
        ],
    )
    def test_policy(self, name, window_ms, max_requests):
        config = RATE_LIMIT_CONFIGS[name]
        assert config.window_ms == window_ms
        assert config.max_requests == max_requests

    def test_normalize_identifier(self):
        assert normalize_identifier("10.0.0.1:8080") == "10.0.0.1"
        assert normalize_identifier("ABC") == "abc"
        # IPv6 addresses are truncated at the first colon
        assert normalize_identifier("2001:db8::1") == "2001"


class TestRateLimiterRegistry:
    """Tests for named limiter instances."""

    def test_get_or_create_reuses_instance(self, clock):
        registry = RateLimiterRegistry(clock=clock)
        first = registry.get_or_create("auth")
        assert registry.get_or_create("auth") is first
        assert first.config == RATE_LIMIT_CONFIGS["auth"]

    def test_named_routes_have_separate_counters(self, clock):
        registry = RateLimiterRegistry(clock=clock)
        voter = registry.get_or_create("voter-login", RATE_LIMIT_CONFIGS["auth"])
        candidate = registry.get_or_create("candidate-login", RATE_LIMIT_CONFIGS["auth"])

        for _ in range(6):
            voter.allow("10.0.0.1")
        assert voter.allow("10.0.0.1") is False
        assert candidate.allow("10.0.0.1") is True

    def test_unknown_class_without_config(self, clock):
        registry = RateLimiterRegistry(clock=clock)
        with pytest.raises(KeyError):
            registry.get_or_create("not-a-class")

    def test_cleanup_sums_all_limiters(self, clock):
        registry = RateLimiterRegistry(clock=clock)
        registry.get_or_create("auth").allow("a")
        registry.get_or_create("otp").allow("b")
        clock.advance(16 * 60)

        assert registry.cleanup() == 2

    def test_close_keeps_registrations(self, clock):
        registry = RateLimiterRegistry(clock=clock)
        limiter = registry.get_or_create("auth")
        limiter.allow("a")

        registry.close()
        assert "auth" in registry
        assert registry.get_or_create("auth") is limiter
        assert limiter.get_stats().total_entries == 0


class TestClientIdentifier:
    """Tests for client IP extraction."""

    def test_cloudflare_header_wins(self, make_request):
        request = make_request(headers={
            "CF-Connecting-IP": "198.51.100.1",
            "X-Real-IP": "198.51.100.2",
            "X-Forwarded-For": "198.51.100.3, 10.0.0.1",
        })
        assert get_client_identifier(request) == "198.51.100.1"

    def test_real_ip_before_forwarded_for(self, make_request):
        request = make_request(headers={
            "X-Real-IP": "198.51.100.2",
            "X-Forwarded-For": "198.51.100.3",
        })
        assert get_client_identifier(request) == "198.51.100.2"

    def test_first_forwarded_hop(self, make_request):
        request = make_request(headers={"X-Forwarded-For": "198.51.100.3, 10.0.0.1"})
        assert get_client_identifier(request) == "198.51.100.3"

    def test_falls_back_to_peer(self, make_request):
        assert get_client_identifier(make_request()) == "127.0.0.1"

    def test_unknown_without_peer(self, make_request):
        assert get_client_identifier(make_request(client=None)) == "unknown"


class TestHttpIntegration:
    """Tests for the route guard and the app-wide middleware."""

    @pytest.fixture
    def guarded_app(self, test_settings, clock):
        app = FastAPI()
        app.state.settings = test_settings
        app.state.rate_limiters = RateLimiterRegistry(clock=clock)

        @app.exception_handler(VotegateException)
        async def handler(request, exc: VotegateException):
            return JSONResponse(exc.to_response(), status_code=exc.status_code, headers=exc.headers)

        @app.post("/otp", dependencies=[Depends(RateLimitGuard("otp", name="send-otp"))])
        async def send_otp():
            return {"sent": True}

        return app

    def test_guard_returns_429_with_retry_after(self, guarded_app):
        client = TestClient(guarded_app)
        headers = {"X-Forwarded-For": "203.0.113.9"}
        for _ in range(3):
            assert client.post("/otp", headers=headers).status_code == 200

        resp = client.post("/otp", headers=headers)
        assert resp.status_code == 429
        assert resp.json()["error"] == "Too many requests"
        assert "resetTime" in resp.json()
        assert int(resp.headers["Retry-After"]) == 15 * 60

    def test_guard_disabled_by_setting(self, guarded_app, test_settings):
        guarded_app.state.settings = test_settings.model_copy(update={"rate_limit_enabled": False})
        client = TestClient(guarded_app)
        for _ in range(10):
            assert client.post("/otp").status_code == 200

    def test_guard_rejects_unknown_class(self):
        with pytest.raises(KeyError):
            RateLimitGuard("bogus")

    def test_middleware_sets_headers_and_blocks(self, clock):
        app = FastAPI()
        limiter = FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=60_000, max_requests=2),
            clock=clock,
        )
        app.add_middleware(RateLimitMiddleware, limiter=limiter)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        client = TestClient(app)
        first = client.get("/ping")
        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"

        assert client.get("/ping").headers["X-RateLimit-Remaining"] == "0"

        blocked = client.get("/ping")
        assert blocked.status_code == 429
        assert blocked.headers["Retry-After"] == "60"

    def test_middleware_skips_preflight_and_exempt_paths(self, clock):
        app = FastAPI()
        limiter = FixedWindowRateLimiter(
            config=RateLimitConfig(window_ms=60_000, max_requests=1),
            clock=clock,
        )
        app.add_middleware(RateLimitMiddleware, limiter=limiter, exempt_paths=("/status",))

        @app.get("/status")
        async def status():
            return {"ok": True}

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        client = TestClient(app)
        for _ in range(3):
            assert client.get("/status").status_code == 200
            resp = client.options("/ping")
            assert "X-RateLimit-Limit" not in resp.headers
        assert limiter.get_stats().total_entries == 0

        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 429

    def test_exceeded_error_body(self, clock):
        error = RateLimitExceededError(reset_time=to_datetime(clock.now), retry_after=12)
        assert error.status_code == 429
        assert error.headers == {"Retry-After": "12"}
        assert error.to_response()["message"] == "Please try again later"
