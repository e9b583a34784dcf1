"""Storage for rate limit counters.

A limiter owns exactly one store; nothing else mutates it.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

from votegate.app.middleware.rate_limit.models import RateLimitEntry


class RateLimitStore(ABC):
    """Abstract base class for rate limit stores."""

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitEntry]:
        """Return the entry for a normalized key, or None."""

    @abstractmethod
    def set(self, key: str, entry: RateLimitEntry) -> None:
        """Store (or replace) the entry for a key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the entry for a key if present."""

    @abstractmethod
    def entries(self) -> Iterator[tuple[str, RateLimitEntry]]:
        """Iterate over a snapshot of (key, entry) pairs."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all entries."""

    @abstractmethod
    def __len__(self) -> int:
        ...

    def purge_expired(self, now: float) -> int:
        """Remove entries whose window has passed.

        Returns:
            Number of entries removed.
        """
        expired = [key for key, entry in self.entries() if entry.is_expired(now)]
        for key in expired:
            self.delete(key)
        return len(expired)


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store backed by a dict.

    State is not shared between processes: each worker enforces its own
    limits.
    """

    def __init__(self) -> None:
        self._data: Dict[str, RateLimitEntry] = {}

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._data.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._data[key] = entry

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def entries(self) -> Iterator[tuple[str, RateLimitEntry]]:
        return iter(list(self._data.items()))

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
