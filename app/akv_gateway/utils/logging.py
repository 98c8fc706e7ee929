# utils/logging.py

import logging
import sys
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

# Level for validation/authorization rejections, between WARNING and ERROR
SECURITY = 35
logging.addLevelName(SECURITY, "SECURITY")

SECURITY_LOGGER_NAME = "akv_gateway.security"

# Attribute name for the structured payload attached to gateway log records
EVENT_ATTR = "gateway_event"


@dataclass
class LogEntry:
    """One stored log record, as handed to the audit collaborator."""

    timestamp: datetime
    level: str
    message: str
    category: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class LogBuffer(logging.Handler):
    """
    Keeps the most recent log records in memory.

    Records carrying a gateway event payload keep it as ``details``;
    the oldest entries are dropped once ``capacity`` is reached.
    """

    def __init__(self, capacity: int = 500, level: int = logging.INFO):
        super().__init__(level)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = getattr(record, EVENT_ATTR, None) or {}
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                level=record.levelname,
                message=record.getMessage(),
                category=event.get("category"),
                details=dict(event),
                error=str(record.exc_info[1]) if record.exc_info else None,
            )
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    def entries(self) -> list[LogEntry]:
        """Return stored entries, oldest first."""
        with self._entries_lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    buffer: Optional[LogBuffer] = None,
) -> None:
    """
    Configure logging for the gateway.

    CRITICAL: Uses stderr for console output to avoid conflicts with MCP JSON-RPC
    protocol which requires exclusive use of stdout.
    """

    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Console handler - MUST use stderr for MCP compatibility
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if buffer is not None:
        root_logger.addHandler(buffer)

    logging.info(f"Logging configured with level: {level}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the specified name."""
    return logging.getLogger(name)


def log_security_event(event: str, details: dict[str, Any]) -> None:
    """
    Log a validation or authorization rejection.

    Callers must redact ``details`` before passing them in.
    """
    payload = {"category": "security", "event": event, **details}
    logging.getLogger(SECURITY_LOGGER_NAME).log(
        SECURITY,
        "SECURITY EVENT: %s",
        event,
        extra={EVENT_ATTR: payload},
    )
