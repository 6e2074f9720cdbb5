"""User session: wires the registry, controller, telemetry and persistence.

A ``WardenSession`` is the unit the CLI works with. ``open()`` loads the
user's stored state, repairs it, and starts the background loops;
``close()`` stops them and writes out anything still pending::

    async with WardenSession(config) as session:
        await session.controller.launch("123")
"""

from __future__ import annotations

from types import TracebackType

from warden.core.config import WardenConfig
from warden.core.logging import InstanceContext, get_logger, set_context
from warden.lifecycle.activity import ActivityLog
from warden.lifecycle.client import JobControlClient
from warden.lifecycle.controller import LifecycleController
from warden.lifecycle.registry import InstanceRegistry
from warden.lifecycle.watchdog import SafeModeWatchdog
from warden.persistence import SessionStore, WriteBehindQueue, create_store
from warden.persistence.queue import normalize_instances
from warden.persistence.recovery import recover_instances, recover_logs
from warden.runtime.scheduler import PeriodicScheduler
from warden.telemetry.fetch import TelemetryFetcher
from warden.telemetry.monitor import TelemetryMonitor
from warden.telemetry.rate import RateBook

_logger = get_logger("session")


class WardenSession:
    """Everything one user session owns.

    Args:
        config: Loaded configuration.
        store: Session store; built from ``config.persistence`` if omitted.
        client: Job-control client; tests inject one over a mock transport.
        fetcher: Telemetry fetcher; likewise injectable.
        background: Start the watchdog and telemetry polls on ``open()``.
            One-shot CLI commands turn this off.
    """

    def __init__(
        self,
        config: WardenConfig,
        *,
        store: SessionStore | None = None,
        client: JobControlClient | None = None,
        fetcher: TelemetryFetcher | None = None,
        background: bool = True,
    ) -> None:
        self.config = config
        self.user = config.user.username
        self.store = store if store is not None else create_store(config.persistence)
        self.registry = InstanceRegistry()
        self.activity = ActivityLog()
        self.rates = RateBook()
        self.client = client or JobControlClient(timeout=config.job_control_timeout_seconds)
        self.fetcher = fetcher or TelemetryFetcher(config.telemetry)
        self.scheduler = PeriodicScheduler()
        self.controller = LifecycleController(
            self.registry, config.user, self.client, self.activity, rates=self.rates,
        )
        self.monitor = TelemetryMonitor(
            self.registry, self.controller, self.fetcher, self.scheduler, config.telemetry,
        )
        self.watchdog = SafeModeWatchdog(
            self.registry,
            self.controller,
            lambda: self.config.watchdog.safe_mode_duration_minutes,
        )
        self.queue = WriteBehindQueue(
            self.store,
            self.user,
            debounce=config.persistence.debounce_seconds,
            log_tail=config.persistence.log_tail,
        )
        self._background = background
        self._opened = False

    async def open(self) -> WardenSession:
        """Load and recover stored state, then start background work."""
        if self._opened:
            return self
        set_context(InstanceContext(session_id=self.user))
        data = await self.store.load_session(self.user)
        instances = recover_instances(data.instances)
        self.registry.reset(instances)
        self.activity.restore(recover_logs(data.logs, self.config.persistence.log_tail))

        self.registry.subscribe(self.queue.schedule_instances)
        self.activity.subscribe(self.queue.schedule_logs)
        if normalize_instances(instances) != data.instances:
            # Write the repaired records back.
            self.queue.schedule_instances(instances)
        if self._background:
            self.registry.subscribe(self.monitor.sync)
            self.monitor.sync(self.registry.snapshot())
            self.watchdog.attach(self.scheduler, self.config.watchdog.sweep_interval_seconds)

        self._opened = True
        _logger.info(
            "session.opened",
            user=self.user,
            instances=len(instances),
            background=self._background,
        )
        return self

    async def close(self) -> None:
        """Stop background work, flush persistence and close HTTP clients."""
        if not self._opened:
            return
        self._opened = False
        await self.monitor.close()
        await self.scheduler.shutdown()
        await self.queue.close()
        await self.fetcher.close()
        await self.client.close()
        await self.store.close()
        _logger.info("session.closed", user=self.user)

    async def __aenter__(self) -> WardenSession:
        return await self.open()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["WardenSession"]
