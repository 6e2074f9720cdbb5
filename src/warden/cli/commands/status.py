"""Status commands for the Warden CLI.

- `warden list` - show the user's instances
- `warden logs` - show the tail of the activity log
"""

from __future__ import annotations

import json

import typer

from warden.core.models import Instance, LogEntry
from warden.session import WardenSession
from warden.utils.time import now_ms

from ..helpers import ConfigOption, UserOption, is_quiet, load_cli_config, run_session
from ..output import console, create_instances_table, print_log_entries


def list_instances(
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output instance records as JSON",
    ),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """List tracked instances.

    Examples:
        warden list
        warden list --json
    """
    config = load_cli_config(config_file, user, console)

    async def body(session: WardenSession) -> tuple[Instance, ...]:
        return session.registry.snapshot()

    instances = run_session(config, body, console)
    if json_output:
        console.print_json(json.dumps([i.to_record() for i in instances]))
        return
    if not instances:
        if not is_quiet():
            console.print("[dim]No instances. Use 'warden launch TARGET' to create one.[/dim]")
        return
    console.print(create_instances_table(instances, now_ms()))
    if not is_quiet():
        console.print(
            f"[dim]{len(instances)}/{config.user.max_instances} instance(s) "
            f"for {config.user.username}[/dim]"
        )


def logs(
    lines: int = typer.Option(20, "--lines", "-n", min=1, help="Number of entries to show"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Show recent activity log entries."""
    config = load_cli_config(config_file, user, console)

    async def body(session: WardenSession) -> list[LogEntry]:
        return session.activity.tail(lines)

    entries = run_session(config, body, console)
    if not entries:
        console.print("[dim]No activity yet.[/dim]")
        return
    print_log_entries(entries)
