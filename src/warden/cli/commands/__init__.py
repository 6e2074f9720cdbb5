# warden/cli/commands: Command modules for the Warden CLI.
#
# Each module in this package provides one or more CLI commands.

from .lifecycle import delete, launch, restart, safe_mode, start, stop
from .status import list_instances, logs
from .telemetry import probe, watch

__all__ = [
    # lifecycle.py
    "launch",
    "start",
    "stop",
    "restart",
    "delete",
    "safe_mode",
    # status.py
    "list_instances",
    "logs",
    # telemetry.py
    "probe",
    "watch",
]
