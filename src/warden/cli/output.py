"""Rich output formatting for the Warden CLI.

Status colors, the instance table, activity log rendering and the
one-line summary printed after a lifecycle command.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

from warden.core.display import PLACEHOLDER, format_number, format_percent, format_uptime
from warden.core.models import Instance, InstanceStatus, LogEntry

if TYPE_CHECKING:
    from warden.lifecycle.controller import TransitionResult
    from warden.telemetry.fetch import FetchReport
    from warden.telemetry.monitor import InstanceTelemetry, TelemetryMonitor

console = Console()


class StatusColors:
    """Color mappings for status and log types."""

    INSTANCE_STATUS: dict[InstanceStatus, str] = {
        InstanceStatus.ACTIVE: "green",
        InstanceStatus.RESTARTING: "blue",
        InstanceStatus.REMOVING: "yellow",
        InstanceStatus.STOPPED: "dim",
        InstanceStatus.ERROR: "red",
    }

    LOG_TYPE: dict[str, str] = {
        "info": "white",
        "success": "green",
        "warning": "yellow",
        "error": "red",
    }

    @classmethod
    def get_status_color(cls, status: InstanceStatus) -> str:
        return cls.INSTANCE_STATUS.get(status, "white")

    @classmethod
    def get_log_color(cls, log_type: str) -> str:
        return cls.LOG_TYPE.get(log_type, "white")


def format_status(status: InstanceStatus) -> Text:
    return Text(status.value.upper(), style=StatusColors.get_status_color(status))


def _telemetry_cells(view: InstanceTelemetry | None) -> list[str]:
    if view is None or view.progress is None:
        return [PLACEHOLDER] * 5
    progress = view.progress
    return [
        str(progress.level) if progress.level is not None else PLACEHOLDER,
        format_number(progress.current),
        format_percent(view.percent),
        view.rate_display,
        view.eta_display,
    ]


def create_instances_table(
    instances: Iterable[Instance],
    now_ms: int,
    monitor: TelemetryMonitor | None = None,
) -> Table:
    """Table of instances, with telemetry columns when a monitor is given."""
    table = Table(title="Instances", show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Target", style="bold")
    table.add_column("Bot")
    table.add_column("Status")
    table.add_column("Uptime", justify="right")
    table.add_column("Safe Mode", justify="center")
    if monitor is not None:
        for name in ("Level", "XP", "Progress", "Rate/min", "ETA"):
            table.add_column(name, justify="right")

    for instance in instances:
        safe = "[yellow]ON[/yellow]" if instance.safe_mode else "[dim]off[/dim]"
        row: list[str | Text] = [
            instance.id,
            instance.target_id,
            instance.bot_name or PLACEHOLDER,
            format_status(instance.status),
            format_uptime(instance.status, instance.started_timestamp, now_ms),
            safe,
        ]
        if monitor is not None:
            row.extend(_telemetry_cells(monitor.view(instance.id)))
        table.add_row(*row)
    return table


def print_log_entries(entries: Iterable[LogEntry], out: Console | None = None) -> None:
    out = out or console
    for entry in entries:
        color = StatusColors.get_log_color(entry.type)
        out.print(f"[dim]{entry.timestamp}[/dim] [{color}]{entry.message}[/{color}]",
                  highlight=False)


def print_transition(result: TransitionResult, out: Console | None = None) -> None:
    """One-line summary of a lifecycle command outcome."""
    out = out or console
    if result.skipped:
        out.print(f"[yellow]Skipped:[/yellow] {result.message}")
    elif result.success:
        status = result.status.value if result.status is not None else "removed"
        out.print(f"[green]OK[/green] {result.instance_id or ''} → {status}: {result.message}")
    else:
        out.print(f"[red]Failed:[/red] {result.message}")


def print_fetch_report(
    report: FetchReport[object],
    out: Console | None = None,
    *,
    show_urls: bool = False,
) -> None:
    """Show each access-path attempt of a telemetry read."""
    out = out or console
    out.print(f"[bold]{report.kind.value}[/bold] for {report.target_id}")
    if report.shortcut:
        out.print("  [green]✓[/green] image URL used directly")
    for attempt in report.attempts:
        if attempt.succeeded:
            out.print(f"  [green]✓[/green] {attempt.path}")
        else:
            out.print(f"  [red]✗[/red] {attempt.path}: [dim]{attempt.error}[/dim]")
        if show_urls:
            out.print(f"    [dim]{attempt.url}[/dim]", highlight=False)
    if report.result is None:
        out.print("  [yellow]no data[/yellow]")
