"""Per-instance telemetry polling.

The monitor follows the registry: every instance whose status is
``active`` or ``restarting`` gets a progress poll on the session
scheduler, and its profile is fetched once when tracking begins. When an
instance stops or is removed its poll is cancelled.

A read that yields no data leaves the previous snapshot in place, so the
view degrades to "last known values" while the remote side is flaky.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from warden.core.config import TelemetryConfig
from warden.core.logging import get_logger, instance_scope
from warden.core.models import Instance
from warden.runtime.scheduler import PeriodicScheduler
from warden.telemetry.extractor import ProfileSnapshot, ProgressSnapshot
from warden.telemetry.fetch import TelemetryFetcher, TelemetryKind
from warden.telemetry.rate import format_eta, format_rate
from warden.utils.time import now_ms

if TYPE_CHECKING:
    from warden.lifecycle.controller import LifecycleController
    from warden.lifecycle.registry import InstanceRegistry, Snapshot

_logger = get_logger("telemetry.monitor")


def progress_task_name(instance_id: str) -> str:
    return f"telemetry:{instance_id}:progress"


def profile_task_name(instance_id: str) -> str:
    return f"telemetry:{instance_id}:profile"


@dataclass
class InstanceTelemetry:
    """Display-ready telemetry for one instance."""

    instance_id: str
    progress: ProgressSnapshot | None = None
    profile: ProfileSnapshot | None = None
    rate: float | None = None
    rate_display: str = "--"
    eta_display: str = "--"
    percent: float | None = None
    needed: int | None = None
    source: str | None = None
    updated_at: int | None = None

    @property
    def nickname(self) -> str | None:
        if self.progress is not None and self.progress.nickname:
            return self.progress.nickname
        if self.profile is not None:
            return self.profile.nickname
        return None


def compute_percent(snapshot: ProgressSnapshot) -> float | None:
    """Progress percentage, preferring the value the API reports."""
    if snapshot.percent is not None:
        return snapshot.percent
    start, target, current = snapshot.start, snapshot.target, snapshot.current
    if start is None or target is None or current is None or target <= start:
        return None
    ratio = (current - start) / (target - start) * 100
    return max(0.0, min(100.0, ratio))


def compute_needed(snapshot: ProgressSnapshot) -> int | None:
    if snapshot.needed is not None:
        return snapshot.needed
    if snapshot.target is None or snapshot.current is None:
        return None
    return max(0, snapshot.target - snapshot.current)


class TelemetryMonitor:
    """Schedules telemetry reads and keeps the latest results per instance."""

    def __init__(
        self,
        registry: InstanceRegistry,
        controller: LifecycleController,
        fetcher: TelemetryFetcher,
        scheduler: PeriodicScheduler,
        config: TelemetryConfig,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._registry = registry
        self._controller = controller
        self._fetcher = fetcher
        self._scheduler = scheduler
        self._config = config
        self._clock = clock
        self._tracked: set[str] = set()
        self._progress: dict[str, ProgressSnapshot] = {}
        self._profile: dict[str, ProfileSnapshot] = {}
        self._source: dict[str, str] = {}
        self._updated_at: dict[str, int] = {}
        self._profile_tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def tracked(self) -> frozenset[str]:
        return frozenset(self._tracked)

    # ─── Registry following ────────────────────────────────────────

    def sync(self, instances: Snapshot) -> None:
        """Start or stop polls so exactly the running instances are tracked.

        Registered as a registry listener; safe to call repeatedly.
        """
        present = {i.id for i in instances}
        running = {i.id: i for i in instances if i.status.is_running}

        for instance_id in list(self._tracked):
            if instance_id not in running:
                self.untrack(instance_id)
        for instance_id, instance in running.items():
            if instance_id not in self._tracked:
                self.track(instance)

        for instance_id in set(self._progress) | set(self._profile):
            if instance_id not in present:
                self._forget(instance_id)

    def track(self, instance: Instance) -> None:
        self._tracked.add(instance.id)
        self._scheduler.add(
            progress_task_name(instance.id),
            self._config.poll_interval_seconds,
            lambda: self.poll_progress(instance.id),
        )
        if self._config.profile_refresh_seconds is not None:
            self._scheduler.add(
                profile_task_name(instance.id),
                self._config.profile_refresh_seconds,
                lambda: self.refresh_profile(instance.id),
            )
        elif instance.id not in self._profile and instance.id not in self._profile_tasks:
            task = asyncio.create_task(
                self.refresh_profile(instance.id), name=f"warden:{profile_task_name(instance.id)}",
            )
            self._profile_tasks[instance.id] = task
            task.add_done_callback(lambda _t, iid=instance.id: self._profile_tasks.pop(iid, None))
        _logger.debug("telemetry.tracking", instance_id=instance.id, target_id=instance.target_id)

    def untrack(self, instance_id: str) -> None:
        self._tracked.discard(instance_id)
        self._scheduler.cancel_prefix(f"telemetry:{instance_id}:")
        task = self._profile_tasks.pop(instance_id, None)
        if task is not None:
            task.cancel()
        _logger.debug("telemetry.untracked", instance_id=instance_id)

    def _forget(self, instance_id: str) -> None:
        self._progress.pop(instance_id, None)
        self._profile.pop(instance_id, None)
        self._source.pop(instance_id, None)
        self._updated_at.pop(instance_id, None)
        self._controller.rates.discard(instance_id)

    # ─── Reads ─────────────────────────────────────────────────────

    async def poll_progress(self, instance_id: str) -> ProgressSnapshot | None:
        """Read progress once and fold the metric into the rate estimator."""
        instance = self._registry.get(instance_id)
        if instance is None:
            return None
        with instance_scope(instance_id, instance.target_id):
            report = await self._fetcher.read(TelemetryKind.PROGRESS, instance.target_id)
            snapshot = report.result
            if snapshot is None:
                return None
            # The instance may have been removed while the read was in flight.
            if self._registry.get(instance_id) is None:
                return None
            self._progress[instance_id] = snapshot
            self._source[instance_id] = report.succeeded_via or ""
            self._updated_at[instance_id] = self._clock()
            if snapshot.current is not None:
                estimator = self._controller.rates.get(
                    instance_id,
                    seed=instance.last_known_rate,
                    persist=lambda rate: self._persist_rate(instance_id, rate),
                )
                estimator.observe(snapshot.current, self._clock())
            _logger.debug(
                "telemetry.progress",
                level=snapshot.level,
                current=snapshot.current,
                via=report.succeeded_via,
            )
            return snapshot

    async def refresh_profile(self, instance_id: str) -> ProfileSnapshot | None:
        instance = self._registry.get(instance_id)
        if instance is None:
            return None
        with instance_scope(instance_id, instance.target_id):
            profile = await self._fetcher.fetch_profile(instance.target_id)
            if profile is not None and self._registry.get(instance_id) is not None:
                self._profile[instance_id] = profile
            return profile

    def _persist_rate(self, instance_id: str, rate: str) -> None:
        self._controller.update(instance_id, last_known_rate=rate)

    # ─── View ──────────────────────────────────────────────────────

    def view(self, instance_id: str) -> InstanceTelemetry:
        """Assemble the display values for one instance."""
        result = InstanceTelemetry(
            instance_id=instance_id,
            progress=self._progress.get(instance_id),
            profile=self._profile.get(instance_id),
            source=self._source.get(instance_id),
            updated_at=self._updated_at.get(instance_id),
        )
        instance = self._registry.get(instance_id)
        rates = self._controller.rates
        estimator = None
        if instance_id in rates:
            estimator = rates.get(instance_id)
        elif instance is not None and instance.last_known_rate:
            estimator = rates.get(
                instance_id,
                seed=instance.last_known_rate,
                persist=lambda rate: self._persist_rate(instance_id, rate),
            )
        if estimator is not None:
            result.rate = estimator.rate
            result.rate_display = format_rate(estimator.rate)

        snapshot = result.progress
        if snapshot is None:
            return result
        result.percent = compute_percent(snapshot)
        result.needed = compute_needed(snapshot)
        eta_minutes = None
        if estimator is not None:
            eta_minutes = estimator.eta_minutes(snapshot.current, snapshot.target)
        if eta_minutes is not None:
            result.eta_display = format_eta(eta_minutes)
        elif snapshot.eta:
            result.eta_display = snapshot.eta
        return result

    async def close(self) -> None:
        for instance_id in list(self._tracked):
            self.untrack(instance_id)
        pending = list(self._profile_tasks.values())
        self._profile_tasks.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


__all__ = [
    "InstanceTelemetry",
    "TelemetryMonitor",
    "compute_needed",
    "compute_percent",
    "profile_task_name",
    "progress_task_name",
]
