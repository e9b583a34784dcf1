"""Services package for votegate.

This package provides:
- Session issuing, verification and caching
- Periodic housekeeping tasks for in-memory state
"""

from votegate.app.services.housekeeping import PeriodicTask
from votegate.app.services.session import (
    EvictionPolicy,
    SessionCache,
    SessionData,
    SessionManager,
)

__all__ = [
    "EvictionPolicy",
    "PeriodicTask",
    "SessionCache",
    "SessionData",
    "SessionManager",
]
