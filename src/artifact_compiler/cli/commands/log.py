"""artifact-compiler log -- show the message log."""

from __future__ import annotations

import click

from artifact_compiler.cli.formatting import format_log


@click.command()
@click.pass_context
def log(ctx: click.Context) -> None:
    """Show recorded messages in insertion order."""
    from artifact_compiler.cli import _resolve_session, _workspace_session

    with _workspace_session(ctx) as (ws, console):
        session = _resolve_session(ctx, ws)
        format_log(session.log(), console)
