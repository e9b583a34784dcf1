"""Utility functions for votegate."""

import re
import time
from datetime import datetime, timezone
from typing import Callable

# Zero-argument callable returning epoch seconds. Components accept one so
# tests can drive time explicitly.
Clock = Callable[[], float]

system_clock: Clock = time.time

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")
_DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}


def parse_duration(expires_in: str, default: int) -> int:
    """Parse a compact duration string into seconds.

    Args:
        expires_in: Duration such as "30s", "15m", "24h" or "7d".
        default: Seconds returned when the string does not match.

    Returns:
        Duration in seconds.

    Examples:
        >>> parse_duration("2h", default=86400)
        7200
        >>> parse_duration("soon", default=86400)
        86400
    """
    match = _DURATION_RE.match(expires_in.strip()) if expires_in else None
    if not match:
        return default
    return int(match.group(1)) * _DURATION_UNITS[match.group(2)]


def to_datetime(timestamp: float) -> datetime:
    """Convert epoch seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)
