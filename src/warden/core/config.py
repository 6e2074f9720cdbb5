"""Configuration models for Warden.

Pydantic v2 models for the read-only configuration surface: per-user
job-control endpoints and instance limits, global telemetry endpoints
and access paths, the safe-mode budget, and the persistence adapter.
Loaded from YAML via ``WardenConfig.from_yaml``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from warden.core.errors import ConfigError
from warden.core.logging import get_logger

_logger = get_logger("config")

DEFAULT_PROGRESS_URL = "https://danger-level-info.vercel.app/level/{uid}"
DEFAULT_PROFILE_URL = "https://sagar-banner.vercel.app/profile?uid={uid}"


class BotConfig(BaseModel):
    """Job-control endpoint pair for one bot.

    ``start_url`` begins the remote job for a target, ``stop_url`` ends it.
    Both are templates containing a ``{target_uid}`` placeholder.
    """

    name: str = Field(min_length=1, description="Display name used to pick the bot")
    start_url: str = Field(description="Start endpoint template")
    stop_url: str = Field(description="Stop endpoint template")


class UserConfig(BaseModel):
    """Per-user configuration: which bots may be used and how many instances."""

    username: str = Field(default="default", min_length=1)
    max_instances: int = Field(
        default=1,
        ge=1,
        description="Maximum number of instances in the registry at once",
    )
    allowed_bots: list[BotConfig] = Field(default_factory=list)

    @field_validator("allowed_bots", mode="before")
    @classmethod
    def _accept_mapping(cls, v: object) -> object:
        """Accept ``{key: bot}`` mappings as produced by record stores."""
        if isinstance(v, dict):
            return [bot for bot in v.values() if bot]
        return v

    def find_bot(self, name: str | None) -> BotConfig | None:
        """Look up a bot by name, falling back to the first allowed bot."""
        for bot in self.allowed_bots:
            if bot.name == name:
                return bot
        return self.allowed_bots[0] if self.allowed_bots else None


class AccessPathConfig(BaseModel):
    """Ordered access-path transforms for one telemetry kind."""

    progress: list[str] = Field(
        default_factory=lambda: ["direct", "corsproxy", "allorigins", "thingproxy"],
    )
    profile: list[str] = Field(
        default_factory=lambda: ["direct", "corsproxy", "allorigins"],
    )

    @model_validator(mode="after")
    def _non_empty(self) -> AccessPathConfig:
        if not self.progress or not self.profile:
            raise ValueError("each telemetry kind needs at least one access path")
        return self


class TelemetryConfig(BaseModel):
    """Global telemetry endpoints, access paths and polling cadence."""

    progress_url: str = Field(default=DEFAULT_PROGRESS_URL)
    profile_url: str = Field(default=DEFAULT_PROFILE_URL)
    access_paths: AccessPathConfig = Field(default_factory=AccessPathConfig)
    progress_timeout_seconds: float = Field(default=6.0, gt=0, le=60)
    profile_timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    poll_interval_seconds: float = Field(
        default=12.0,
        ge=1.0,
        description="Interval between progress reads for each active instance",
    )
    profile_refresh_seconds: float | None = Field(
        default=None,
        ge=60.0,
        description="Re-fetch profile data at this interval. None fetches once.",
    )


class WatchdogConfig(BaseModel):
    """Safe-mode watchdog settings."""

    safe_mode_duration_minutes: float = Field(
        default=60.0,
        gt=0,
        description="Maximum minutes an instance may stay active in safe mode",
    )
    sweep_interval_seconds: float = Field(default=30.0, ge=1.0)


class PersistenceConfig(BaseModel):
    """Which session store to use and how often to write to it."""

    backend: Literal["json", "sqlite", "memory"] = "json"
    path: Path = Field(
        default=Path("~/.warden/sessions"),
        description="Directory for the json backend, database file for sqlite",
    )
    debounce_seconds: float = Field(default=1.0, ge=0.0)
    log_tail: int = Field(default=50, ge=1)

    @field_validator("path")
    @classmethod
    def _expand(cls, v: Path) -> Path:
        return v.expanduser()


class WardenConfig(BaseModel):
    """Top-level configuration."""

    user: UserConfig = Field(default_factory=UserConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    watchdog: WatchdogConfig = Field(default_factory=WatchdogConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    job_control_timeout_seconds: float = Field(default=8.0, gt=0, le=120)
    config_file: Path | None = Field(
        default=None,
        description="Path this config was loaded from; set by from_yaml().",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> WardenConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigError: If the file cannot be read or does not validate.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a mapping, got {type(data).__name__}")
        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e
        config.config_file = path.resolve()
        _logger.debug("config.loaded", path=str(config.config_file))
        return config


def load_config(config_file: Path | None) -> WardenConfig:
    """Load WardenConfig from a YAML file, or return defaults when absent."""
    if config_file is not None and config_file.exists():
        return WardenConfig.from_yaml(config_file)
    if config_file is not None:
        _logger.warning("config.file_missing", path=str(config_file))
    return WardenConfig()


__all__ = [
    "AccessPathConfig",
    "BotConfig",
    "DEFAULT_PROFILE_URL",
    "DEFAULT_PROGRESS_URL",
    "PersistenceConfig",
    "TelemetryConfig",
    "UserConfig",
    "WardenConfig",
    "WatchdogConfig",
    "load_config",
]
