"""Instance lifecycle: registry, job-control client, controller and watchdog."""

from warden.lifecycle.activity import ActivityLog
from warden.lifecycle.client import JobControlClient
from warden.lifecycle.controller import LifecycleController, TransitionResult
from warden.lifecycle.registry import InstanceRegistry
from warden.lifecycle.watchdog import SafeModeWatchdog

__all__ = [
    "ActivityLog",
    "InstanceRegistry",
    "JobControlClient",
    "LifecycleController",
    "SafeModeWatchdog",
    "TransitionResult",
]
