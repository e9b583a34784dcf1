"""Rate limiting data models.

This module contains dataclasses for rate limit configuration, state and
results, plus the per-endpoint-class policy table.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class RateLimitConfig:
    """Fixed window policy for one limiter instance."""
    window_ms: int
    max_requests: int

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


@dataclass
class RateLimitEntry:
    """Counter state for one normalized identifier (fixed window)."""
    count: int
    reset_time: float  # epoch seconds
    blocked: bool = False

    def is_expired(self, now: float) -> bool:
        """A request arriving exactly at reset_time still belongs to the window."""
        return now > self.reset_time


@dataclass
class RateLimitStatus:
    """Read-only projection of a limiter's state for one identifier."""
    allowed: bool
    count: int
    max_requests: int
    reset_time: datetime
    blocked: bool

    def retry_after(self, now: datetime | None = None) -> int:
        """Whole seconds until the window resets, rounded up."""
        now = now or datetime.now(timezone.utc)
        return max(0, math.ceil((self.reset_time - now).total_seconds()))


@dataclass
class RateLimitStats:
    """Summary of a limiter's store."""
    total_entries: int
    blocked_entries: int
    config: RateLimitConfig


_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS

# Policy per endpoint class
RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    "general": RateLimitConfig(window_ms=15 * _MINUTE_MS, max_requests=100),
    "auth": RateLimitConfig(window_ms=15 * _MINUTE_MS, max_requests=5),
    "upload": RateLimitConfig(window_ms=_HOUR_MS, max_requests=20),
    "otp": RateLimitConfig(window_ms=15 * _MINUTE_MS, max_requests=3),
    "voting": RateLimitConfig(window_ms=24 * _HOUR_MS, max_requests=1),
}
