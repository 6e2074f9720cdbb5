"""Tests for warden.telemetry.monitor."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from warden.core.config import TelemetryConfig, UserConfig
from warden.core.models import InstanceStatus
from warden.lifecycle.activity import ActivityLog
from warden.lifecycle.client import JobControlClient
from warden.lifecycle.controller import LifecycleController
from warden.lifecycle.registry import InstanceRegistry
from warden.telemetry.extractor import ProfileSnapshot, ProgressSnapshot
from warden.telemetry.fetch import FetchAttempt, FetchReport, TelemetryKind
from warden.telemetry.monitor import (
    TelemetryMonitor,
    compute_needed,
    compute_percent,
    profile_task_name,
    progress_task_name,
)
from warden.telemetry.rate import RateBook

from tests.helpers import make_instance


def _report(snapshot: ProgressSnapshot | None, via: str = "direct") -> FetchReport:
    report = FetchReport(kind=TelemetryKind.PROGRESS, target_id="123", result=snapshot)
    report.attempts.append(FetchAttempt(path=via, url="https://t", error=None if snapshot else "x"))
    return report


class _Harness:
    """A monitor over a real registry/controller with mocked I/O."""

    def __init__(self, user: UserConfig, *instances, config: TelemetryConfig | None = None):
        self.now = 0
        rng = MagicMock()
        rng.random.return_value = 0.0
        self.registry = InstanceRegistry(instances)
        self.controller = LifecycleController(
            self.registry, user, JobControlClient(), ActivityLog(), rates=RateBook(rng=rng),
        )
        self.fetcher = MagicMock()
        self.fetcher.read = AsyncMock(return_value=_report(None))
        self.fetcher.fetch_profile = AsyncMock(return_value=ProfileSnapshot(nickname="Zedrick"))
        self.scheduler = MagicMock()
        self.monitor = TelemetryMonitor(
            self.registry,
            self.controller,
            self.fetcher,
            self.scheduler,
            config or TelemetryConfig(),
            clock=lambda: self.now,
        )


# ─── Registry following ───────────────────────────────────────────────


class TestSync:
    """Tests for following registry changes."""

    @pytest.mark.asyncio
    async def test_tracks_running_instances_only(self, user_config: UserConfig):
        active = make_instance(target_id="1")
        stopped = make_instance(target_id="2", status=InstanceStatus.STOPPED)
        h = _Harness(user_config, active, stopped)

        h.monitor.sync(h.registry.snapshot())

        assert h.monitor.tracked == {active.id}
        names = [c.args[0] for c in h.scheduler.add.call_args_list]
        assert names == [progress_task_name(active.id)]
        await h.monitor.close()

    @pytest.mark.asyncio
    async def test_profile_fetched_once(self, user_config: UserConfig):
        instance = make_instance()
        h = _Harness(user_config, instance)

        h.monitor.sync(h.registry.snapshot())
        h.monitor.sync(h.registry.snapshot())
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        h.fetcher.fetch_profile.assert_awaited_once_with("123")
        assert h.monitor.view(instance.id).nickname == "Zedrick"

    @pytest.mark.asyncio
    async def test_profile_refresh_uses_scheduler(self, user_config: UserConfig):
        instance = make_instance()
        config = TelemetryConfig(profile_refresh_seconds=300)
        h = _Harness(user_config, instance, config=config)

        h.monitor.sync(h.registry.snapshot())

        names = [c.args[0] for c in h.scheduler.add.call_args_list]
        assert profile_task_name(instance.id) in names
        h.fetcher.fetch_profile.assert_not_called()

    @pytest.mark.asyncio
    async def test_stopping_untracks(self, user_config: UserConfig):
        instance = make_instance()
        h = _Harness(user_config, instance)
        h.registry.subscribe(h.monitor.sync)
        h.monitor.sync(h.registry.snapshot())

        h.registry.update(instance.id, status=InstanceStatus.STOPPED)

        assert h.monitor.tracked == frozenset()
        h.scheduler.cancel_prefix.assert_called_with(f"telemetry:{instance.id}:")
        await h.monitor.close()

    @pytest.mark.asyncio
    async def test_removal_forgets_data_and_rate(self, user_config: UserConfig):
        instance = make_instance()
        h = _Harness(user_config, instance)
        h.registry.subscribe(h.monitor.sync)
        h.fetcher.read.return_value = _report(ProgressSnapshot(level=1, current=10))
        await h.monitor.poll_progress(instance.id)
        assert instance.id in h.controller.rates

        h.registry.remove(instance.id)

        assert instance.id not in h.controller.rates
        assert h.monitor.view(instance.id).progress is None


# ─── Polling ──────────────────────────────────────────────────────────


class TestPollProgress:
    @pytest.mark.asyncio
    async def test_rate_published_and_persisted(self, user_config: UserConfig):
        instance = make_instance()
        h = _Harness(user_config, instance)

        h.fetcher.read.return_value = _report(ProgressSnapshot(level=7, current=1000, target=1600))
        await h.monitor.poll_progress(instance.id)
        h.now = 10_000
        h.fetcher.read.return_value = _report(
            ProgressSnapshot(level=7, current=1100, target=1600), via="corsproxy",
        )
        await h.monitor.poll_progress(instance.id)

        view = h.monitor.view(instance.id)
        assert view.rate == pytest.approx(600.0)
        assert view.rate_display == "600"
        assert view.eta_display == "1m"
        assert view.needed == 500
        assert view.source == "corsproxy"
        assert view.updated_at == 10_000
        assert h.registry.require(instance.id).last_known_rate == "600"

    @pytest.mark.asyncio
    async def test_failed_read_keeps_last_snapshot(self, user_config: UserConfig):
        instance = make_instance()
        h = _Harness(user_config, instance)
        h.fetcher.read.return_value = _report(ProgressSnapshot(level=3, current=5))
        await h.monitor.poll_progress(instance.id)

        h.fetcher.read.return_value = _report(None)
        assert await h.monitor.poll_progress(instance.id) is None

        assert h.monitor.view(instance.id).progress == ProgressSnapshot(level=3, current=5)

    @pytest.mark.asyncio
    async def test_removed_instance_not_polled(self, user_config: UserConfig):
        h = _Harness(user_config)
        assert await h.monitor.poll_progress("gone") is None
        h.fetcher.read.assert_not_called()

    @pytest.mark.asyncio
    async def test_result_dropped_if_removed_mid_read(self, user_config: UserConfig):
        instance = make_instance()
        h = _Harness(user_config, instance)

        async def read(kind, target_id):
            h.registry.remove(instance.id)
            return _report(ProgressSnapshot(level=1, current=1))

        h.fetcher.read.side_effect = read
        assert await h.monitor.poll_progress(instance.id) is None
        assert h.monitor.view(instance.id).progress is None


class TestView:
    def test_seed_rate_shown_before_first_poll(self, user_config: UserConfig):
        instance = make_instance(last_known_rate="120")
        h = _Harness(user_config, instance)
        view = h.monitor.view(instance.id)
        assert view.rate == 120.0
        assert view.rate_display == "120"
        assert view.eta_display == "--"

    @pytest.mark.asyncio
    async def test_eta_falls_back_to_reported_value(self, user_config: UserConfig):
        instance = make_instance()
        h = _Harness(user_config, instance)
        h.fetcher.read.return_value = _report(ProgressSnapshot(level=1, current=1, eta="3h"))
        await h.monitor.poll_progress(instance.id)
        assert h.monitor.view(instance.id).eta_display == "3h"


class TestDerivedValues:
    def test_reported_percent_wins(self):
        assert compute_percent(ProgressSnapshot(percent=12.5, start=0, target=10, current=5)) == 12.5

    def test_percent_from_bounds(self):
        assert compute_percent(ProgressSnapshot(start=100, target=200, current=150)) == 50.0

    def test_percent_clamped(self):
        assert compute_percent(ProgressSnapshot(start=100, target=200, current=250)) == 100.0
        assert compute_percent(ProgressSnapshot(start=100, target=200, current=50)) == 0.0

    def test_percent_unknown(self):
        assert compute_percent(ProgressSnapshot(current=5)) is None
        assert compute_percent(ProgressSnapshot(start=5, target=5, current=5)) is None

    def test_needed(self):
        assert compute_needed(ProgressSnapshot(needed=7, target=100, current=1)) == 7
        assert compute_needed(ProgressSnapshot(target=100, current=40)) == 60
        assert compute_needed(ProgressSnapshot(target=100, current=140)) == 0
        assert compute_needed(ProgressSnapshot(current=1)) is None
