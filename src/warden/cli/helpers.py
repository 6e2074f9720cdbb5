"""Shared utilities for Warden CLI commands.

Holds the global output/logging state set by the top-level options, the
config loading used by every command, and ``run_session`` which opens a
``WardenSession`` around a command body and maps domain errors to a red
message and exit code 1.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, TypeVar

import typer
from rich.console import Console

from warden.core.config import WardenConfig, load_config
from warden.core.errors import ConfigError, InstanceNotFoundError, WardenError
from warden.core.logging import configure_logging, get_logger
from warden.session import WardenSession

_logger = get_logger("cli")

T = TypeVar("T")

DEFAULT_CONFIG_FILE = Path.home() / ".warden" / "config.yaml"

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="YAML config file (default: ~/.warden/config.yaml)",
        envvar="WARDEN_CONFIG",
    ),
]
UserOption = Annotated[
    str | None,
    typer.Option("--user", "-u", help="Override the configured username", envvar="WARDEN_USER"),
]


class ErrorMessages:
    """Constants for CLI error messages."""

    INSTANCE_NOT_FOUND = "Instance not found"
    CONFIG_LOAD_ERROR = "Error loading config"


# =============================================================================
# Output level management
# =============================================================================


class OutputLevel(str, Enum):
    """Output verbosity level."""

    QUIET = "quiet"  # Errors only
    NORMAL = "normal"
    VERBOSE = "verbose"


_output_level: OutputLevel = OutputLevel.NORMAL


def set_output_level(level: OutputLevel) -> None:
    global _output_level
    _output_level = level


def is_verbose() -> bool:
    return _output_level == OutputLevel.VERBOSE


def is_quiet() -> bool:
    return _output_level == OutputLevel.QUIET


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """Logging options collected from the global CLI flags."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging once from the global CLI options.

    Raises:
        typer.Exit: If the options do not form a valid logging setup.
    """
    if _log_config.configured:
        return
    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Reset logging and output state (primarily for testing)."""
    global _output_level
    _log_config.level = "WARNING"
    _log_config.file = None
    _log_config.format = "console"
    _log_config.configured = False
    _output_level = OutputLevel.NORMAL


# =============================================================================
# Config and session helpers
# =============================================================================


def load_cli_config(
    config_file: Path | None,
    user: str | None,
    console: Console,
) -> WardenConfig:
    """Load configuration for a command, applying the ``--user`` override.

    Raises:
        typer.Exit: If the config file exists but is invalid.
    """
    path = config_file if config_file is not None else DEFAULT_CONFIG_FILE
    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {e}")
        raise typer.Exit(1) from None
    if user:
        config.user.username = user
    return config


def run_session(
    config: WardenConfig,
    body: Callable[[WardenSession], Awaitable[T]],
    console: Console,
    *,
    background: bool = False,
) -> T:
    """Run ``body`` inside an open session on a fresh event loop.

    Raises:
        typer.Exit: With code 1 when ``body`` raises a ``WardenError``.
    """

    async def _main() -> T:
        async with WardenSession(config, background=background) as session:
            return await body(session)

    try:
        return asyncio.run(_main())
    except InstanceNotFoundError as e:
        console.print(f"[red]{ErrorMessages.INSTANCE_NOT_FOUND}:[/red] {e.instance_id}")
        raise typer.Exit(1) from None
    except WardenError as e:
        _logger.debug("cli.command_failed", error_type=type(e).__name__, error=str(e))
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def resolve_instance_id(session: WardenSession, ref: str) -> str:
    """Accept an instance id, a unique id prefix, or a target id.

    Raises:
        InstanceNotFoundError: If nothing (or more than one id prefix) matches.
    """
    if session.registry.get(ref) is not None:
        return ref
    by_target = session.registry.find_by_target(ref)
    if by_target is not None:
        return by_target.id
    matches = [i.id for i in session.registry if i.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    raise InstanceNotFoundError(ref)
