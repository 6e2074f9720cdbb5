"""Warden CLI.

Built with Typer. Global options (verbosity, logging) are handled by the
app callback; each command lives in a module under ``commands/`` and is
registered here.

Package structure:
    cli/
    ├── __init__.py           # This file - app assembly
    ├── helpers.py            # Output/logging state, config and session helpers
    ├── output.py             # Rich formatting
    └── commands/
        ├── lifecycle.py      # launch, start, stop, restart, delete, safe-mode
        ├── status.py         # list, logs
        └── telemetry.py      # probe, watch
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from warden import __version__

from . import helpers as helpers
from .commands import (
    delete,
    launch,
    list_instances,
    logs,
    probe,
    restart,
    safe_mode,
    start,
    stop,
    watch,
)
from .helpers import (
    OutputLevel,
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
    set_output_level,
)
from .output import console

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_LOG_FORMATS = ("json", "console", "both")

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="warden",
    help="Lifecycle control and live telemetry for remote automation jobs",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Warden v{__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    if value:
        set_output_level(OutputLevel.VERBOSE)


def quiet_callback(value: bool) -> None:
    if value:
        set_output_level(OutputLevel.QUIET)


def log_level_callback(value: str | None) -> str | None:
    """Set log level from CLI option."""
    if value:
        if value.upper() not in _LOG_LEVELS:
            raise typer.BadParameter(f"must be one of {', '.join(_LOG_LEVELS)}")
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    """Set log format from CLI option."""
    if value:
        if value not in _LOG_FORMATS:
            raise typer.BadParameter(f"must be one of {', '.join(_LOG_FORMATS)}")
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        is_eager=True,
        help="Show detailed output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        callback=quiet_callback,
        is_eager=True,
        help="Show minimal output (errors only)",
    ),
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="WARDEN_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="WARDEN_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="WARDEN_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """Warden - lifecycle control and live telemetry for remote automation jobs."""
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

# Lifecycle commands
app.command()(launch)
app.command()(start)
app.command()(stop)
app.command()(restart)
app.command()(delete)
app.command(name="safe-mode")(safe_mode)

# Status commands
app.command(name="list")(list_instances)
app.command()(logs)

# Telemetry commands
app.command()(probe)
app.command()(watch)


__all__ = [
    "OutputLevel",
    "app",
    "console",
    "main",
]
