"""Telemetry commands for the Warden CLI.

- `warden probe TARGET` - one progress and profile read, showing each
  access-path attempt
- `warden watch` - run the session in the foreground: telemetry polling,
  the safe-mode watchdog and a live instance table
"""

from __future__ import annotations

import asyncio

import typer

from warden.core.display import format_number, format_percent
from warden.core.errors import WardenError
from warden.session import WardenSession
from warden.telemetry.fetch import TelemetryFetcher, TelemetryKind
from warden.telemetry.monitor import compute_needed, compute_percent
from warden.utils.time import display_time, now_ms

from ..helpers import ConfigOption, UserOption, is_verbose, load_cli_config
from ..output import console, create_instances_table, print_fetch_report, print_log_entries


def probe(
    target: str = typer.Argument(..., help="Target id to read telemetry for"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Read progress and profile telemetry once for TARGET.

    Useful for checking endpoint templates and access paths before
    launching an instance.
    """
    config = load_cli_config(config_file, user, console)

    async def _probe() -> bool:
        fetcher = TelemetryFetcher(config.telemetry)
        try:
            progress, profile = await asyncio.gather(
                fetcher.read(TelemetryKind.PROGRESS, target),
                fetcher.read(TelemetryKind.PROFILE, target),
            )
        finally:
            await fetcher.close()
        print_fetch_report(progress, show_urls=is_verbose())
        if progress.result is not None:
            snap = progress.result
            console.print(
                f"  level={snap.level} current={format_number(snap.current)} "
                f"needed={format_number(compute_needed(snap))} "
                f"progress={format_percent(compute_percent(snap))}"
                + (f" nickname={snap.nickname}" if snap.nickname else "")
            )
        print_fetch_report(profile, show_urls=is_verbose())
        if profile.result is not None:
            p = profile.result
            for label, value in (("banner", p.banner), ("avatar", p.avatar), ("nickname", p.nickname)):
                if value:
                    console.print(f"  {label}: {value}")
        return progress.result is not None or profile.result is not None

    try:
        found = asyncio.run(_probe())
    except WardenError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    if not found:
        raise typer.Exit(1)


def watch(
    refresh: float = typer.Option(
        2.0, "--refresh", "-r", min=0.5, help="Seconds between table redraws",
    ),
    duration: float = typer.Option(
        0.0, "--duration", help="Stop after this many seconds (0 runs until Ctrl+C)",
    ),
    log_lines: int = typer.Option(8, "--log-lines", "-n", min=0, help="Activity lines shown"),
    config_file: ConfigOption = None,
    user: UserOption = None,
) -> None:
    """Run the session in the foreground with live telemetry.

    Polls progress for every active instance, enforces safe-mode budgets
    and redraws the instance table until interrupted.
    """
    config = load_cli_config(config_file, user, console)

    async def _watch() -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration if duration > 0 else None
        async with WardenSession(config, background=True) as session:
            while deadline is None or loop.time() < deadline:
                console.clear()
                console.print(
                    create_instances_table(session.registry, now_ms(), monitor=session.monitor)
                )
                if log_lines:
                    print_log_entries(session.activity.tail(log_lines))
                console.print(
                    f"\n[dim]Last updated: {display_time()} "
                    f"| Refreshing every {refresh}s | Press Ctrl+C to stop[/dim]"
                )
                await asyncio.sleep(refresh)

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("\n[dim]Watch stopped[/dim]")
