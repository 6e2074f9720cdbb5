"""Lifecycle commands for the Warden CLI.

- `warden launch TARGET` - create an instance and start its remote job
- `warden start/stop/restart/delete ID` - drive an existing instance
- `warden safe-mode ID on|off` - toggle the safe-mode budget

``ID`` may be an instance id, a unique id prefix, or a target id.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import typer

from warden.lifecycle.controller import TransitionResult
from warden.session import WardenSession

from ..helpers import ConfigOption, UserOption, load_cli_config, resolve_instance_id, run_session
from ..output import console, print_transition


def _finish(result: TransitionResult) -> None:
    print_transition(result)
    if not result.success and not result.skipped:
        raise typer.Exit(1)


def launch(
    target: str = typer.Argument(..., help="Target id the remote job works on"),
    bot: str | None = typer.Option(None, "--bot", "-b", help="Bot name (default: first allowed)"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Launch a new instance for TARGET.

    Examples:
        warden launch 123
        warden launch 123 --bot alpha
    """
    config = load_cli_config(config_file, user, console)

    async def body(session: WardenSession) -> TransitionResult:
        return await session.controller.launch(target, bot)

    _finish(run_session(config, body, console))


def _run_transition(
    instance: str,
    action: Literal["start", "stop", "restart", "delete"],
    config_file: Path | None,
    user: str | None,
) -> None:
    config = load_cli_config(config_file, user, console)

    async def body(session: WardenSession) -> TransitionResult:
        instance_id = resolve_instance_id(session, instance)
        if action == "start":
            return await session.controller.start(instance_id)
        if action == "stop":
            return await session.controller.stop(instance_id)
        if action == "restart":
            return await session.controller.restart(instance_id)
        return await session.controller.delete(instance_id)

    _finish(run_session(config, body, console))


def start(
    instance: str = typer.Argument(..., help="Instance id, id prefix, or target id"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Start a stopped or errored instance."""
    _run_transition(instance, "start", config_file, user)


def stop(
    instance: str = typer.Argument(..., help="Instance id, id prefix, or target id"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Stop an instance's remote job."""
    _run_transition(instance, "stop", config_file, user)


def restart(
    instance: str = typer.Argument(..., help="Instance id, id prefix, or target id"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Stop then start an instance's remote job.

    If the stop call fails the start call is not attempted and the
    instance is marked as errored.
    """
    _run_transition(instance, "restart", config_file, user)


def delete(
    instance: str = typer.Argument(..., help="Instance id, id prefix, or target id"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Stop (best effort) and remove an instance."""
    _run_transition(instance, "delete", config_file, user)


def safe_mode(
    instance: str = typer.Argument(..., help="Instance id, id prefix, or target id"),
    state: str = typer.Argument(..., help="on or off"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Turn safe mode on or off.

    While safe mode is on the instance is stopped automatically once it has
    run for the configured budget (default 60 minutes). The budget is only
    enforced while a session is running, e.g. under `warden watch`.
    """
    normalized = state.strip().lower()
    if normalized not in ("on", "off"):
        raise typer.BadParameter("state must be 'on' or 'off'", param_hint="STATE")
    config = load_cli_config(config_file, user, console)

    async def body(session: WardenSession) -> TransitionResult:
        instance_id = resolve_instance_id(session, instance)
        return session.controller.set_safe_mode(instance_id, normalized == "on")

    _finish(run_session(config, body, console))
