"""artifact-compiler ingest -- append messages to the log."""

from __future__ import annotations

import click


@click.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--skip-duplicates", is_flag=True, help="Ignore messages already recorded.")
@click.pass_context
def ingest(ctx: click.Context, file: str, skip_duplicates: bool) -> None:
    """Append the messages in FILE (JSON list or JSON lines) to the log."""
    from artifact_compiler.cli import _read_input, _workspace_session

    with _workspace_session(ctx) as (ws, console):
        messages = _read_input(ctx, file)
        session_id = ctx.obj["session_id"]
        if session_id is not None:
            entries = ws.session(session_id).ingest_many(messages, skip_duplicates=skip_duplicates)
        else:
            entries = ws.ingest_many(messages, skip_duplicates=skip_duplicates)

        ops = sum(e.result.valid_count for e in entries)
        rejected = sum(e.result.invalid_count for e in entries)
        console.print(
            f"Ingested [bold]{len(entries)}[/bold] message(s): "
            f"[green]{ops}[/green] operation(s), [red]{rejected}[/red] rejected block(s)"
        )
        skipped = len(messages) - len(entries)
        if skipped:
            console.print(f"[dim]Skipped {skipped} already recorded message(s).[/dim]")
