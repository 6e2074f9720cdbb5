"""Formatting helpers for instance tables."""

from __future__ import annotations

from warden.core.models import InstanceStatus
from warden.utils.time import display_time

PLACEHOLDER = "--"


def format_uptime(status: InstanceStatus, started_ms: int | None, now_ms: int) -> str:
    """Uptime as ``"1h 2m 3s"``.

    ``--`` unless the instance is running; ``Starting...`` until the start
    timestamp is known.
    """
    if not status.is_running:
        return PLACEHOLDER
    if not started_ms:
        return "Starting..."
    elapsed = max(0, now_ms - started_ms) // 1000
    hours, rest = divmod(elapsed, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}h {minutes}m {seconds}s"


def format_number(value: int | float | str | None) -> str:
    """Thousands separators for counters; passes other strings through."""
    if value is None or value == "":
        return PLACEHOLDER
    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError:
            return value
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.1f}"
    return f"{int(value):,}"


def format_percent(value: float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return f"{value:.1f}%"


__all__ = ["PLACEHOLDER", "display_time", "format_number", "format_percent", "format_uptime"]
