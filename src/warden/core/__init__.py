"""Core domain models, configuration and errors."""

from warden.core.config import (
    AccessPathConfig,
    BotConfig,
    PersistenceConfig,
    TelemetryConfig,
    UserConfig,
    WardenConfig,
    WatchdogConfig,
)
from warden.core.errors import (
    ConfigError,
    InstanceNotFoundError,
    NetworkError,
    ParseError,
    RemoteError,
    WardenError,
)
from warden.core.models import Instance, InstanceStatus, LogEntry, Transition

__all__ = [
    "AccessPathConfig",
    "BotConfig",
    "ConfigError",
    "Instance",
    "InstanceNotFoundError",
    "InstanceStatus",
    "LogEntry",
    "NetworkError",
    "ParseError",
    "PersistenceConfig",
    "RemoteError",
    "TelemetryConfig",
    "Transition",
    "UserConfig",
    "WardenConfig",
    "WardenError",
    "WatchdogConfig",
]
