"""artifact-compiler lint -- validate without creating a snapshot."""

from __future__ import annotations

import click


@click.command()
@click.option("--input", "input_file", default=None, type=click.Path(dir_okay=False),
              help="Lint as if this message file were appended (nothing is recorded).")
@click.option("--json", "as_json", is_flag=True, help="Print the validation report as JSON.")
@click.pass_context
def lint(ctx: click.Context, input_file: str | None, as_json: bool) -> None:
    """Validate the session's merged artifact.

    Exits 0 when valid, 1 when errors remain, 2 when the input file cannot
    be read.
    """
    from artifact_compiler.cli import EXIT_INVALID, _read_input, _resolve_session, _workspace_session
    from artifact_compiler.rendering import format_report_text

    with _workspace_session(ctx) as (ws, console):
        if input_file:
            messages = _read_input(ctx, input_file)
            session = _resolve_session(ctx, ws, messages)
            _, report = session.preview(messages)
        else:
            session = _resolve_session(ctx, ws)
            report = session.lint()

        if as_json:
            console.out(report.to_json(session.session_id), highlight=False)
        else:
            console.out(format_report_text(report, session.session_id), highlight=False)

        if not report.valid:
            raise SystemExit(EXIT_INVALID)
