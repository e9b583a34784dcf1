"""Fixed window rate limiter.

Counts requests per normalized client identifier inside a fixed window.
Errors inside the limiter never block traffic: a failing check is logged
and the request is allowed.
"""

from typing import Dict, Optional

from votegate.app.core.logging import get_logger
from votegate.app.core.utils import Clock, system_clock, to_datetime
from votegate.app.middleware.rate_limit.models import (
    RATE_LIMIT_CONFIGS,
    RateLimitConfig,
    RateLimitEntry,
    RateLimitStats,
    RateLimitStatus,
)
from votegate.app.middleware.rate_limit.store import InMemoryRateLimitStore, RateLimitStore

logger = get_logger(__name__)


def normalize_identifier(identifier: str) -> str:
    """Strip a ``:port`` suffix and lower-case the identifier.

    IPv6 addresses are cut at their first colon as well, so all IPv6
    clients sharing a leading group share one counter.
    """
    return identifier.split(":", 1)[0].lower()


class FixedWindowRateLimiter:
    """In-memory fixed window rate limiter.

    Each identifier gets ``max_requests`` requests per window. The request
    that finds the counter already at the limit is rejected and marks the
    entry blocked until the window resets.
    """

    def __init__(
        self,
        config: RateLimitConfig = RATE_LIMIT_CONFIGS["general"],
        store: Optional[RateLimitStore] = None,
        clock: Clock = system_clock,
    ):
        self.config = config
        self.clock = clock
        self._store = store if store is not None else InMemoryRateLimitStore()

    def allow(self, identifier: str) -> bool:
        """Record a request and report whether it may proceed.

        Fails open: any internal error is logged and the request allowed.
        """
        try:
            return self._is_allowed(identifier)
        except Exception as e:
            logger.error(
                f"Rate limiter error: {e}",
                extra={"identifier": identifier},
                exc_info=True,
            )
            return True

    def _new_window(self, key: str, now: float) -> None:
        self._store.set(
            key,
            RateLimitEntry(count=1, reset_time=now + self.config.window_seconds),
        )

    def _is_allowed(self, identifier: str) -> bool:
        key = normalize_identifier(identifier)
        now = self.clock()
        entry = self._store.get(key)

        if entry is None or entry.is_expired(now):
            self._new_window(key, now)
            return True

        if entry.blocked:
            return False

        if entry.count >= self.config.max_requests:
            entry.blocked = True
            self._store.set(key, entry)
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "identifier": key,
                    "count": entry.count,
                    "max_requests": self.config.max_requests,
                    "reset_time": to_datetime(entry.reset_time).isoformat(),
                },
            )
            return False

        entry.count += 1
        self._store.set(key, entry)
        return True

    def get_status(self, identifier: str) -> RateLimitStatus:
        """Current state for an identifier. Does not count a request."""
        key = normalize_identifier(identifier)
        entry = self._store.get(key)
        now = self.clock()

        if entry is None or entry.is_expired(now):
            return RateLimitStatus(
                allowed=True,
                count=0,
                max_requests=self.config.max_requests,
                reset_time=to_datetime(now + self.config.window_seconds),
                blocked=False,
            )

        return RateLimitStatus(
            allowed=not entry.blocked and entry.count < self.config.max_requests,
            count=entry.count,
            max_requests=self.config.max_requests,
            reset_time=to_datetime(entry.reset_time),
            blocked=entry.blocked,
        )

    def reset(self, identifier: str) -> None:
        """Forget the counter for an identifier."""
        key = normalize_identifier(identifier)
        self._store.delete(key)
        logger.info("Rate limit reset", extra={"identifier": key})

    def get_stats(self) -> RateLimitStats:
        blocked = sum(1 for _, entry in self._store.entries() if entry.blocked)
        return RateLimitStats(
            total_entries=len(self._store),
            blocked_entries=blocked,
            config=self.config,
        )

    def cleanup(self) -> int:
        """Remove entries whose window has passed.

        Returns:
            Number of entries removed.
        """
        removed = self._store.purge_expired(self.clock())
        if removed:
            logger.debug(f"Rate limiter cleanup: removed {removed} expired entries")
        return removed

    def close(self) -> None:
        self._store.clear()


class RateLimiterRegistry:
    """Named limiter instances owned by one application.

    Routes that should not share counters register under distinct names,
    even when they use the same endpoint class policy.
    """

    def __init__(self, clock: Clock = system_clock):
        self._clock = clock
        self._limiters: Dict[str, FixedWindowRateLimiter] = {}

    def get_or_create(
        self,
        name: str,
        config: Optional[RateLimitConfig] = None,
    ) -> FixedWindowRateLimiter:
        """Return the limiter registered under ``name``, creating it if needed.

        Without an explicit config, ``name`` must be an endpoint class from
        RATE_LIMIT_CONFIGS.
        """
        limiter = self._limiters.get(name)
        if limiter is None:
            if config is None:
                try:
                    config = RATE_LIMIT_CONFIGS[name]
                except KeyError:
                    raise KeyError(f"Unknown rate limit class: {name}") from None
            limiter = FixedWindowRateLimiter(config=config, clock=self._clock)
            self._limiters[name] = limiter
            logger.debug(
                f"Registered rate limiter '{name}' "
                f"({config.max_requests} per {config.window_seconds:.0f}s)"
            )
        return limiter

    def cleanup(self) -> int:
        """Sweep every registered limiter. Returns total entries removed."""
        return sum(limiter.cleanup() for limiter in self._limiters.values())

    def get_stats(self) -> Dict[str, RateLimitStats]:
        return {name: limiter.get_stats() for name, limiter in self._limiters.items()}

    def close(self) -> None:
        """Clear every limiter's counters. Registrations are kept."""
        for limiter in self._limiters.values():
            limiter.close()

    def __contains__(self, name: str) -> bool:
        return name in self._limiters
