"""artifact-compiler snapshots -- list compiled versions."""

from __future__ import annotations

import click

from artifact_compiler.cli.formatting import format_snapshots


@click.command()
@click.pass_context
def snapshots(ctx: click.Context) -> None:
    """List snapshots with validity and per-version changes."""
    from artifact_compiler.cli import _resolve_session, _workspace_session

    with _workspace_session(ctx) as (ws, console):
        session = _resolve_session(ctx, ws)
        format_snapshots(session.snapshots(), console)
