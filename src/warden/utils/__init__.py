"""Shared utilities for Warden.

Contains cross-cutting utilities used by multiple modules.
"""

from warden.utils.time import display_time, now_ms, utc_now

__all__ = ["display_time", "now_ms", "utc_now"]
