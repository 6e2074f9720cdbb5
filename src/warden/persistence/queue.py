"""Write-behind persistence.

Registry and activity-log changes arrive in bursts (a single stop changes
status twice and appends three log lines). The queue keeps only the most
recent snapshot of each and writes it once the changes have been quiet
for ``debounce`` seconds. ``flush()`` writes immediately and is called
when the session closes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import aiosqlite

from warden.core.logging import get_logger
from warden.core.models import Instance, LogEntry
from warden.persistence.base import Record, SessionStore

_logger = get_logger("persistence.queue")


def normalize_instances(instances: Iterable[Instance]) -> list[Record]:
    """Storage form of the registry: camelCase keys, no None values."""
    return [instance.to_record() for instance in instances]


def normalize_logs(entries: Iterable[LogEntry]) -> list[Record]:
    return [entry.model_dump(mode="json", exclude_none=True) for entry in entries]


class WriteBehindQueue:
    """Debounced writer of instance and log snapshots for one user."""

    def __init__(
        self,
        store: SessionStore,
        user: str,
        *,
        debounce: float = 1.0,
        log_tail: int = 50,
    ) -> None:
        self._store = store
        self._user = user
        self._debounce = debounce
        self._log_tail = log_tail
        self._pending_instances: list[Record] | None = None
        self._pending_logs: list[Record] | None = None
        self._timer: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def dirty(self) -> bool:
        return self._pending_instances is not None or self._pending_logs is not None

    def schedule_instances(self, instances: Iterable[Instance]) -> None:
        """Queue the registry snapshot for writing. Registry listener."""
        self._pending_instances = normalize_instances(instances)
        self._arm()

    def schedule_logs(self, entries: list[LogEntry]) -> None:
        """Queue the activity log tail for writing. Activity-log listener."""
        self._pending_logs = normalize_logs(entries[-self._log_tail:])
        self._arm()

    def _arm(self) -> None:
        """(Re)start the quiet-period timer."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._delayed_flush(), name="warden:write-behind")

    async def _delayed_flush(self) -> None:
        await asyncio.sleep(self._debounce)
        # Shielded so a later _arm() cannot cancel a write half-way.
        await asyncio.shield(self.flush())

    async def flush(self) -> None:
        """Write whatever is pending now."""
        async with self._lock:
            instances, self._pending_instances = self._pending_instances, None
            logs, self._pending_logs = self._pending_logs, None
            try:
                if instances is not None:
                    await self._store.save_instances(self._user, instances)
                    _logger.debug("session.instances_saved", count=len(instances))
                if logs is not None:
                    await self._store.save_logs(self._user, logs)
            except (OSError, aiosqlite.Error):
                _logger.exception("session.save_failed", user=self._user)
                # Keep the data for the next attempt unless newer data arrived.
                if self._pending_instances is None:
                    self._pending_instances = instances
                if self._pending_logs is None:
                    self._pending_logs = logs

    async def close(self) -> None:
        """Cancel the timer and write anything still pending."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
        self._timer = None
        await self.flush()


__all__ = ["WriteBehindQueue", "normalize_instances", "normalize_logs"]
