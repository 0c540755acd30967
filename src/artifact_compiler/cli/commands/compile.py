"""artifact-compiler compile -- merge, validate and snapshot a session."""

from __future__ import annotations

import json

import click

from artifact_compiler.exceptions import PublishBlockedError


@click.command("compile")
@click.option("--input", "input_file", default=None, type=click.Path(dir_okay=False),
              help="Ingest this message file before compiling.")
@click.option("--json", "as_json", is_flag=True, help="Print the validation report as JSON.")
@click.option("--publish", is_flag=True, help="Mark the snapshot published (fails on errors).")
@click.pass_context
def compile_(ctx: click.Context, input_file: str | None, as_json: bool, publish: bool) -> None:
    """Compile the session into a new snapshot and print its report.

    Exits 0 when the artifact is valid (warnings allowed), 1 when errors
    remain, 2 when the input file cannot be read.
    """
    from artifact_compiler.cli import EXIT_INVALID, _read_input, _resolve_session, _workspace_session
    from artifact_compiler.rendering import format_report_text, format_snapshot_summary

    with _workspace_session(ctx) as (ws, console):
        messages = _read_input(ctx, input_file) if input_file else None
        session = _resolve_session(ctx, ws, messages)
        if messages:
            session.ingest_many(messages, skip_duplicates=True)

        try:
            snapshot = session.compile(publish=publish)
        except PublishBlockedError as e:
            report = e.report
            snapshot = None
        else:
            report = snapshot.report

        if as_json:
            data = json.loads(report.to_json(session.session_id))
            if snapshot is not None:
                data.update(version=snapshot.version, publishable=snapshot.publishable,
                            published=snapshot.published, content_hash=snapshot.content_hash)
            console.out(json.dumps(data, indent=2), highlight=False)
        else:
            console.out(format_report_text(report, session.session_id), highlight=False)
            if snapshot is not None:
                console.out(format_snapshot_summary(snapshot), highlight=False)
            else:
                console.print("[red]Publish blocked: no snapshot created.[/red]")

        if not report.valid:
            raise SystemExit(EXIT_INVALID)
