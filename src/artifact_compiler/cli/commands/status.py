"""artifact-compiler status -- show session status."""

from __future__ import annotations

import click

from artifact_compiler.cli.formatting import format_status


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show log size, issued IDs and the latest snapshot."""
    from artifact_compiler.cli import _resolve_session, _workspace_session

    with _workspace_session(ctx) as (ws, console):
        session = _resolve_session(ctx, ws)
        format_status(session.status(), console)
