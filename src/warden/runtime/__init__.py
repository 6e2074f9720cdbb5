"""Event-loop runtime helpers: the periodic task scheduler."""

from warden.runtime.scheduler import PeriodicScheduler, PeriodicTask

__all__ = ["PeriodicScheduler", "PeriodicTask"]
