"""
civicfix.services.log_buffer — Recent Log Lines for Admins
===========================================================

A bounded, thread-safe buffer fed by a :class:`logging.Handler`, so the
admin endpoint can show what the ledger and badge repair have been doing
(including swallowed side-effect failures) without shell access.

One buffer per process; nothing is persisted.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

DEFAULT_CAPACITY = 1000
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_buffer: LogBuffer | None = None
_lock = threading.Lock()


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: str
    level: str
    logger: str
    message: str


class LogBuffer:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def tail(
        self,
        count: int = 200,
        level: str | None = None,
        prefix: str | None = None,
    ) -> list[dict[str, str]]:
        """Newest *count* entries at or above *level*, from loggers under *prefix*."""
        min_level = logging.getLevelName(level.upper()) if level else 0
        if not isinstance(min_level, int):
            min_level = 0

        with self._lock:
            snapshot = list(self._entries)

        matches = [
            asdict(e) for e in snapshot
            if logging.getLevelName(e.level) >= min_level
            and (not prefix or e.logger.startswith(prefix))
        ]
        return matches[-count:] if count else matches

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class BufferHandler(logging.Handler):
    """Logging handler that appends formatted records to a :class:`LogBuffer`."""

    def __init__(self, buffer: LogBuffer, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.append(LogEntry(
                timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                level=record.levelname,
                logger=record.name,
                message=self.format(record),
            ))
        except Exception:
            self.handleError(record)


def get_buffer() -> LogBuffer:
    """Return (or create) the process-global buffer."""
    global _buffer
    if _buffer is None:
        with _lock:
            if _buffer is None:
                _buffer = LogBuffer()
    return _buffer


def install_handler(level: int = logging.INFO) -> BufferHandler:
    """Attach a :class:`BufferHandler` to the ``civicfix`` logger (once)."""
    target = logging.getLogger("civicfix")
    for handler in target.handlers:
        if isinstance(handler, BufferHandler):
            return handler

    handler = BufferHandler(get_buffer(), level=level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    target.addHandler(handler)
    if target.level == logging.NOTSET or target.level > level:
        target.setLevel(level)
    return handler


def get_logs(
    tail: int = 200,
    level: str | None = None,
    logger_filter: str | None = None,
) -> list[dict[str, str]]:
    return get_buffer().tail(tail, level=level, prefix=logger_filter)
