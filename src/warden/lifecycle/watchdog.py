"""Safe-mode watchdog.

Periodically stops instances that have been active in safe mode for
longer than the configured budget. The budget is read again on every
sweep so a config reload takes effect without restarting the session.
The watchdog only issues stops; it never changes ``safe_mode`` itself,
the successful stop clears it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from warden.core.errors import WardenError
from warden.core.logging import get_logger
from warden.core.models import Instance, InstanceStatus
from warden.lifecycle.controller import LifecycleController, TransitionResult
from warden.lifecycle.registry import InstanceRegistry
from warden.runtime.scheduler import PeriodicScheduler
from warden.utils.time import now_ms

_logger = get_logger("watchdog")

TASK_NAME = "watchdog"
_MS_PER_MINUTE = 60_000


class SafeModeWatchdog:
    """Enforces the safe-mode time budget across a registry."""

    def __init__(
        self,
        registry: InstanceRegistry,
        controller: LifecycleController,
        limit_minutes: Callable[[], float],
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._registry = registry
        self._controller = controller
        self._limit_minutes = limit_minutes
        self._clock = clock

    def due(self, now: int | None = None) -> list[Instance]:
        """Instances whose safe-mode budget has run out at ``now``."""
        now = self._clock() if now is None else now
        limit_ms = self._limit_minutes() * _MS_PER_MINUTE
        return [
            instance
            for instance in self._registry
            if instance.safe_mode
            and instance.status is InstanceStatus.ACTIVE
            and instance.safe_mode_start_time is not None
            and now - instance.safe_mode_start_time >= limit_ms
        ]

    async def sweep(self, now: int | None = None) -> list[TransitionResult]:
        """Issue an automatic stop for every instance that is due."""
        expired = self.due(now)
        if not expired:
            return []
        _logger.info(
            "watchdog.limit_reached",
            count=len(expired),
            instance_ids=[i.id for i in expired],
        )
        outcomes = await asyncio.gather(
            *(self._controller.stop(i.id, auto=True) for i in expired),
            return_exceptions=True,
        )
        results: list[TransitionResult] = []
        for instance, outcome in zip(expired, outcomes, strict=True):
            if isinstance(outcome, WardenError):
                # Deleted between the scan and the stop.
                _logger.debug("watchdog.stop_skipped", instance_id=instance.id, error=str(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        return results

    def attach(self, scheduler: PeriodicScheduler, interval: float = 30.0) -> None:
        """Run ``sweep`` on ``scheduler`` every ``interval`` seconds."""

        async def tick() -> None:
            await self.sweep()

        scheduler.add(TASK_NAME, interval, tick, run_immediately=False)


__all__ = ["SafeModeWatchdog", "TASK_NAME"]
