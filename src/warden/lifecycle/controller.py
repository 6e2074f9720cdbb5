"""Instance lifecycle controller.

Turns user (and watchdog) commands into job-control calls and status
changes on the registry. Each command follows the same shape:

1. Check the transition table and the in-flight guard. A command that is
   not allowed from the current status, or that targets an instance with
   a call already outstanding, is a no-op.
2. Resolve the endpoint template. An invalid template is a configuration
   error: it is logged and the status is left as it was.
3. Optionally move the instance into a transient status.
4. Issue the remote call(s) and record the outcome.

Every step appends a user-visible line to the activity log.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from warden.core.config import BotConfig, UserConfig
from warden.core.errors import ConfigError, WardenError
from warden.core.logging import get_logger, instance_scope
from warden.core.models import Instance, InstanceStatus, Transition, can_apply
from warden.lifecycle.activity import ActivityLog
from warden.lifecycle.client import JobControlClient
from warden.lifecycle.registry import InstanceRegistry
from warden.telemetry.rate import RateBook
from warden.utils.time import display_time, now_ms

_logger = get_logger("controller")


@dataclass
class TransitionResult:
    """Outcome of one lifecycle command."""

    success: bool
    instance_id: str
    status: InstanceStatus | None
    message: str
    skipped: bool = False


class LifecycleController:
    """Issues lifecycle commands for the instances in one registry."""

    def __init__(
        self,
        registry: InstanceRegistry,
        user: UserConfig,
        client: JobControlClient,
        activity: ActivityLog,
        *,
        rates: RateBook | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._registry = registry
        self._user = user
        self._client = client
        self._activity = activity
        self._rates = rates if rates is not None else RateBook()
        self._clock = clock
        self._pending: set[str] = set()

    @property
    def user(self) -> UserConfig:
        return self._user

    @property
    def rates(self) -> RateBook:
        return self._rates

    def is_pending(self, instance_id: str) -> bool:
        """Whether a job-control call for this instance is outstanding."""
        return instance_id in self._pending

    # ─── Helpers ───────────────────────────────────────────────────

    def _bot_for(self, instance: Instance) -> BotConfig:
        bot = self._user.find_bot(instance.bot_name)
        if bot is None:
            raise ConfigError(f"No bot configured for user {self._user.username}")
        return bot

    def _skip(self, instance: Instance, transition: Transition) -> TransitionResult | None:
        """Return a skipped result if ``transition`` may not run now."""
        if instance.id in self._pending:
            reason = "another command is in flight"
        elif not can_apply(transition, instance.status):
            reason = f"not allowed from {instance.status.value}"
        else:
            return None
        _logger.debug(
            "transition.skipped",
            instance_id=instance.id,
            transition=transition.value,
            reason=reason,
        )
        return TransitionResult(
            success=False,
            instance_id=instance.id,
            status=instance.status,
            message=f"{transition.value} skipped: {reason}",
            skipped=True,
        )

    def _config_failure(self, instance: Instance, error: ConfigError) -> TransitionResult:
        self._activity.error(f"[ERROR] {error}")
        _logger.warning("transition.config_error", instance_id=instance.id, error=str(error))
        return TransitionResult(
            success=False,
            instance_id=instance.id,
            status=instance.status,
            message=str(error),
        )

    def _finish(self, instance_id: str, status: InstanceStatus, message: str,
                success: bool, **changes: object) -> TransitionResult:
        updated = self._registry.update(instance_id, status=status, **changes)
        return TransitionResult(
            success=success,
            instance_id=instance_id,
            status=updated.status if updated is not None else None,
            message=message,
        )

    # ─── Commands ──────────────────────────────────────────────────

    async def start(self, instance_id: str) -> TransitionResult:
        """Start a stopped or errored instance."""
        instance = self._registry.require(instance_id)
        skipped = self._skip(instance, Transition.START)
        if skipped is not None:
            return skipped
        try:
            url = self._client.prepare(self._bot_for(instance).start_url, instance.target_id)
        except ConfigError as e:
            return self._config_failure(instance, e)

        self._pending.add(instance_id)
        try:
            with instance_scope(instance_id, instance.target_id):
                self._activity.info(f"[CMD: START] Starting {instance.target_id}...")
                try:
                    message = await self._client.invoke(url, action="start")
                except WardenError as e:
                    self._activity.error(f"[ERROR] Start Failed: {e}")
                    _logger.warning("controller.start_failed", error_type=type(e).__name__)
                    return self._finish(instance_id, InstanceStatus.ERROR, str(e), False)
                self._activity.success(f"[SUCCESS] {message}")
                return self._finish(
                    instance_id,
                    InstanceStatus.ACTIVE,
                    message,
                    True,
                    started_at=display_time(),
                    started_timestamp=self._clock(),
                )
        finally:
            self._pending.discard(instance_id)

    async def stop(self, instance_id: str, *, auto: bool = False) -> TransitionResult:
        """Stop an instance. ``auto`` marks a stop issued by the watchdog."""
        instance = self._registry.require(instance_id)
        skipped = self._skip(instance, Transition.STOP)
        if skipped is not None:
            return skipped
        try:
            url = self._client.prepare(self._bot_for(instance).stop_url, instance.target_id)
        except ConfigError as e:
            return self._config_failure(instance, e)

        prefix = "[SafeMode] " if auto else ""
        self._pending.add(instance_id)
        try:
            with instance_scope(instance_id, instance.target_id):
                self._registry.update(instance_id, status=InstanceStatus.REMOVING)
                self._activity.warning(f"{prefix}[CMD: STOP] Stopping {instance.target_id}...")
                try:
                    message = await self._client.invoke(url, action="stop")
                except WardenError as e:
                    self._activity.error(f"{prefix}[ERROR] Stop Failed: {e}")
                    _logger.warning("controller.stop_failed", error_type=type(e).__name__, auto=auto)
                    return self._finish(instance_id, InstanceStatus.ERROR, str(e), False)
                self._activity.success(f"{prefix}[SUCCESS] {message}")
                return self._finish(
                    instance_id,
                    InstanceStatus.STOPPED,
                    message,
                    True,
                    safe_mode=False,
                    safe_mode_start_time=None,
                )
        finally:
            self._pending.discard(instance_id)

    async def restart(self, instance_id: str) -> TransitionResult:
        """Stop then start the remote job; start is skipped if stop fails."""
        instance = self._registry.require(instance_id)
        skipped = self._skip(instance, Transition.RESTART)
        if skipped is not None:
            return skipped
        try:
            bot = self._bot_for(instance)
            stop_url = self._client.prepare(bot.stop_url, instance.target_id)
            start_url = self._client.prepare(bot.start_url, instance.target_id)
        except ConfigError as e:
            return self._config_failure(instance, e)

        self._pending.add(instance_id)
        try:
            with instance_scope(instance_id, instance.target_id):
                self._registry.update(instance_id, status=InstanceStatus.RESTARTING)
                self._activity.info(f"[CMD: RESTART] Restarting {instance.target_id}...")
                try:
                    await self._client.invoke(stop_url, action="stop")
                    self._activity.info("[API] Stop signal sent. Starting again...")
                    message = await self._client.invoke(start_url, action="start")
                except WardenError as e:
                    self._activity.error(f"[ERROR] Restart Failed: {e}")
                    _logger.warning("controller.restart_failed", error_type=type(e).__name__)
                    return self._finish(instance_id, InstanceStatus.ERROR, str(e), False)
                self._rates.reset(instance_id)
                self._activity.success(f"[SUCCESS] Restarted: {message}")
                return self._finish(
                    instance_id,
                    InstanceStatus.ACTIVE,
                    message,
                    True,
                    started_at=display_time(),
                    started_timestamp=self._clock(),
                    last_known_rate=None,
                )
        finally:
            self._pending.discard(instance_id)

    async def delete(self, instance_id: str) -> TransitionResult:
        """Best-effort stop, then remove the instance unconditionally."""
        instance = self._registry.require(instance_id)
        skipped = self._skip(instance, Transition.DELETE)
        if skipped is not None:
            return skipped

        self._pending.add(instance_id)
        try:
            with instance_scope(instance_id, instance.target_id):
                self._activity.warning(f"[SYSTEM] Deleting Instance {instance.target_id}...")
                self._registry.update(instance_id, status=InstanceStatus.REMOVING)
                try:
                    url = self._client.prepare(self._bot_for(instance).stop_url, instance.target_id)
                    await self._client.invoke(url, action="stop")
                except WardenError as e:
                    self._activity.warning(f"[API] Stop during delete failed: {e}")
                self._registry.remove(instance_id)
                self._rates.discard(instance_id)
                self._activity.info(f"[SYSTEM] Instance {instance.target_id} removed.")
        finally:
            self._pending.discard(instance_id)
        return TransitionResult(
            success=True,
            instance_id=instance_id,
            status=None,
            message=f"Instance {instance.target_id} removed",
        )

    async def launch(self, target_id: str, bot_name: str | None = None) -> TransitionResult:
        """Create a new instance for ``target_id`` and start its remote job.

        The instance is only added to the registry once the start call
        succeeds.
        """
        target_id = target_id.strip()
        if not target_id:
            self._activity.error("Error: Target UID cannot be empty.")
            return TransitionResult(False, "", None, "Target UID cannot be empty")

        bot = self._user.find_bot(bot_name)
        if bot is None:
            self._activity.error("Error: Invalid bot configuration.")
            return TransitionResult(False, "", None, "No bot configured")

        if len(self._registry) >= self._user.max_instances:
            message = f"Limit reached ({self._user.max_instances})"
            self._activity.error(f"Error: {message}.")
            return TransitionResult(False, "", None, message)

        existing = self._registry.find_by_target(target_id)
        key = f"target:{target_id}"
        if existing is not None or key in self._pending:
            self._activity.warning(f"Warning: UID {target_id} already active.")
            return TransitionResult(
                success=False,
                instance_id=existing.id if existing is not None else "",
                status=existing.status if existing is not None else None,
                message=f"Target {target_id} already tracked",
                skipped=True,
            )

        try:
            url = self._client.prepare(bot.start_url, target_id)
        except ConfigError as e:
            self._activity.error(f"[ERROR] {e}")
            return TransitionResult(False, "", None, str(e))

        self._pending.add(key)
        try:
            self._activity.info(f"[SYSTEM] Initializing New Instance for {target_id}...")
            self._activity.info(f"[API] Sending start request to {bot.name}...")
            try:
                message = await self._client.invoke(url, action="start")
            except WardenError as e:
                self._activity.error(f"[FAIL] Launch Failed: {e}")
                _logger.warning(
                    "controller.launch_failed", target_id=target_id, error_type=type(e).__name__,
                )
                return TransitionResult(False, "", None, str(e))
            instance = Instance(
                bot_name=bot.name,
                target_id=target_id,
                status=InstanceStatus.ACTIVE,
                started_at=display_time(),
                started_timestamp=self._clock(),
            )
            self._registry.add(instance)
            self._activity.success(f"[SUCCESS] {message}")
            _logger.info("instance.launched", instance_id=instance.id, target_id=target_id)
            return TransitionResult(True, instance.id, instance.status, message)
        finally:
            self._pending.discard(key)

    def set_safe_mode(self, instance_id: str, enabled: bool) -> TransitionResult:
        """Toggle safe mode.

        Enabling stamps the start of the safe-mode budget; it is refused for
        stopped instances. Enabling an instance already in safe mode keeps
        the original start time.
        """
        instance = self._registry.require(instance_id)
        if enabled and instance.status is InstanceStatus.STOPPED:
            self._activity.warning("Cannot enable Safe Mode on STOPPED bot.")
            return TransitionResult(
                False, instance_id, instance.status, "Instance is stopped", skipped=True,
            )
        if enabled == instance.safe_mode:
            return TransitionResult(
                True, instance_id, instance.status, "No change", skipped=True,
            )

        start_time = self._clock() if enabled else None
        updated = self._registry.update(
            instance_id, safe_mode=enabled, safe_mode_start_time=start_time,
        )
        if enabled:
            self._activity.success(f"Safe Mode ENABLED for {instance.target_id}")
        else:
            self._activity.warning(f"Safe Mode DISABLED for {instance.target_id}")
        return TransitionResult(
            True,
            instance_id,
            updated.status if updated is not None else None,
            "Safe mode enabled" if enabled else "Safe mode disabled",
        )

    def update(self, instance_id: str, **changes: object) -> Instance | None:
        """Best-effort field patch, e.g. ``last_known_rate`` from telemetry.

        Returns None when the instance has been removed in the meantime.
        """
        return self._registry.update(instance_id, **changes)


__all__ = ["LifecycleController", "TransitionResult"]
