"""Rich formatting helpers for the artifact compiler CLI.

Provides functions that format SDK data structures for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from artifact_compiler.engine.log import OperationLog
    from artifact_compiler.models.snapshot import CompiledSnapshot
    from artifact_compiler.workspace import SessionStatus


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_log(log: OperationLog, console: Console) -> None:
    """Display the message log with per-message parse counts."""
    entries = log.entries()
    if not entries:
        console.print("[dim]No messages.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("#", justify="right", style="yellow")
    table.add_column("Time", style="dim")
    table.add_column("Sender", style="cyan")
    table.add_column("Message")
    table.add_column("Ops", justify="right", style="green")
    table.add_column("Rejected", justify="right", style="red")

    for entry in entries:
        msg = entry.message
        table.add_row(
            str(entry.sequence),
            msg.timestamp.strftime("%Y-%m-%d %H:%M"),
            escape(msg.sender),
            escape(msg.message_id),
            str(entry.result.valid_count),
            str(entry.result.invalid_count) if entry.result.invalid_count else "",
        )

    console.print(table)


def format_status(info: SessionStatus, console: Console) -> None:
    """Display session status."""
    state = "[red]closed[/red]" if info.closed else "[green]open[/green]"
    console.print(f"Session [bold]{escape(info.session_id)}[/bold] ({state})")
    console.print(f"  Created:     {info.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
    console.print(f"  Messages:    {info.cursor}")
    console.print(f"  Operations:  {info.operations} ({info.rejections} rejected block(s))")
    console.print(f"  IDs issued:  {info.allocations}")
    latest = f"v{info.latest_version}" if info.latest_version is not None else "none"
    published = f"v{info.published_version}" if info.published_version is not None else "none"
    console.print(f"  Snapshot:    {latest} (published: {published})")


def format_snapshots(snapshots: list[CompiledSnapshot], console: Console) -> None:
    """Display snapshot history, oldest first."""
    if not snapshots:
        console.print("[dim]No snapshots.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Version", style="yellow", justify="right")
    table.add_column("Created", style="dim")
    table.add_column("Cursor", justify="right")
    table.add_column("State")
    table.add_column("E/W/I", justify="right")
    table.add_column("Changes")

    for snap in snapshots:
        if snap.published:
            state = "[bold green]published[/bold green]"
        elif snap.publishable:
            state = "[green]valid[/green]"
        else:
            state = "[red]invalid[/red]"
        s = snap.report.summary
        table.add_row(
            f"v{snap.version}",
            snap.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(snap.log_cursor),
            state,
            f"{s.errors}/{s.warnings}/{s.info}",
            escape(snap.diff.describe()),
        )

    console.print(table)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
