"""User-visible activity log.

Every lifecycle step is recorded twice: as a structlog event for
operators and as a short ``LogEntry`` the user sees next to the instance
list. The persisted tail of this log is bounded by the persistence layer.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable

from warden.core.logging import get_logger
from warden.core.models import LogEntry, LogType
from warden.utils.time import display_time

_logger = get_logger("activity")

_LEVELS: dict[str, str] = {
    "info": "info",
    "success": "info",
    "warning": "warning",
    "error": "error",
}


class ActivityLog:
    """Append-only log of user-facing messages, bounded in memory."""

    def __init__(
        self,
        entries: Iterable[LogEntry] = (),
        max_entries: int = 500,
        clock: Callable[[], str] = display_time,
    ) -> None:
        self._entries: deque[LogEntry] = deque(entries, maxlen=max_entries)
        self._clock = clock
        self._listeners: list[Callable[[list[LogEntry]], None]] = []

    def append(self, message: str, type: LogType = "info") -> LogEntry:  # noqa: A002
        entry = LogEntry(timestamp=self._clock(), message=message, type=type)
        self._entries.append(entry)
        getattr(_logger, _LEVELS[type])("activity.logged", message=message, type=type)
        snapshot = list(self._entries)
        for listener in list(self._listeners):
            listener(snapshot)
        return entry

    def restore(self, entries: Iterable[LogEntry]) -> None:
        """Load stored entries without logging or notifying listeners."""
        self._entries.extend(entries)

    def info(self, message: str) -> LogEntry:
        return self.append(message, "info")

    def success(self, message: str) -> LogEntry:
        return self.append(message, "success")

    def warning(self, message: str) -> LogEntry:
        return self.append(message, "warning")

    def error(self, message: str) -> LogEntry:
        return self.append(message, "error")

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def tail(self, count: int) -> list[LogEntry]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def subscribe(self, listener: Callable[[list[LogEntry]], None]) -> None:
        self._listeners.append(listener)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ActivityLog"]
