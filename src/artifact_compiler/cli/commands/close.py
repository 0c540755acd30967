"""artifact-compiler close -- close a session to further messages."""

from __future__ import annotations

import click


@click.command()
@click.pass_context
def close(ctx: click.Context) -> None:
    """Close the session. Later ingestion is refused."""
    from artifact_compiler.cli import _resolve_session, _workspace_session

    with _workspace_session(ctx) as (ws, console):
        session = _resolve_session(ctx, ws)
        session.close()
        console.print(f"Closed session [bold]{session.session_id}[/bold]")
