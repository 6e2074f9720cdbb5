"""Time utilities for Warden.

Instances store wall-clock instants as integer epoch milliseconds so that
records stay compatible with the web client that created them.
"""

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def now_ms() -> int:
    """Return the current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def display_time(moment: datetime | None = None) -> str:
    """Format a local wall-clock time as ``HH:MM:SS`` for display fields."""
    moment = moment or datetime.now()
    return moment.strftime("%H:%M:%S")
