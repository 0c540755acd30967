"""artifact-compiler render -- print the artifact document."""

from __future__ import annotations

import click


@click.command()
@click.option("--version", "version", default=None, type=int,
              help="Render a stored snapshot instead of the current merge.")
@click.option("--format", "fmt", default="markdown",
              type=click.Choice(["markdown", "json"], case_sensitive=False),
              help="Output format.")
@click.option("--pretty", is_flag=True, help="Render markdown for the terminal.")
@click.pass_context
def render(ctx: click.Context, version: int | None, fmt: str, pretty: bool) -> None:
    """Render the session's artifact as markdown or JSON."""
    from artifact_compiler.cli import _resolve_session, _workspace_session
    from artifact_compiler.rendering import render_json, render_markdown

    with _workspace_session(ctx) as (ws, console):
        session = _resolve_session(ctx, ws)
        if version is not None:
            artifact = session.get_snapshot(version).artifact
        else:
            artifact = session.merge().artifact

        if fmt.lower() == "json":
            console.out(render_json(artifact), highlight=False)
        elif pretty:
            artifact.pprint()
        else:
            console.out(render_markdown(artifact), highlight=False, end="")
