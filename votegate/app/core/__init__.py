"""Core utilities for votegate."""

from votegate.app.core.config import Settings, settings
from votegate.app.core.logging import get_logger, setup_logging
from votegate.app.core.security import TokenSigner, generate_session_id
from votegate.app.core.utils import Clock, parse_duration, system_clock

__all__ = [
    "Clock",
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
    "TokenSigner",
    "generate_session_id",
    "parse_duration",
    "system_clock",
]
