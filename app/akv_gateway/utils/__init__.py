# utils/__init__.py

from .logging import (
    EVENT_ATTR,
    SECURITY,
    LogBuffer,
    LogEntry,
    get_logger,
    log_security_event,
    setup_logging,
)

__all__ = [
    "EVENT_ATTR",
    "SECURITY",
    "LogBuffer",
    "LogEntry",
    "get_logger",
    "log_security_event",
    "setup_logging",
]
