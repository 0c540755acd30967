"""Pretty-print support for compiler output objects.

Uses rich for formatted terminal output. All functions accept their target
object and print to a rich Console. Domain models are not imported at module
level to avoid circular imports; attributes are accessed dynamically.
"""
from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

_MARKDOWN_THEME = Theme({
    "markdown.h1": "bold bright_white underline",
    "markdown.h2": "bold bright_white",
    "markdown.h3": "bold bright_white",
    "markdown.strong": "bold bright_white",
    "markdown.table.border": "dim white",
    "markdown.table.header": "bold bright_white",
})

SEVERITY_STYLES = {"error": "bold red", "warning": "yellow", "info": "cyan"}


def _make_console(file: Any = None) -> Console:
    """Create a Console, optionally writing to a file-like object."""
    if file is not None:
        return Console(file=file, force_terminal=True, width=100, theme=_MARKDOWN_THEME)
    return Console(theme=_MARKDOWN_THEME)


def pprint_artifact(artifact: Any, *, file: Any = None) -> None:
    """Pretty-print an Artifact as rendered markdown.

    Args:
        artifact: An Artifact instance.
        file: Optional file-like object for output (used in tests).
    """
    from artifact_compiler.rendering import render_markdown

    console = _make_console(file)
    console.print(Markdown(render_markdown(artifact)))


def report_table(report: Any) -> Table:
    """Build a rich Table of a report's violations."""
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Rule", style="bold", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Location", style="dim")
    table.add_column("Message")
    for v in report.violations:
        severity = getattr(v.severity, "value", v.severity)
        style = SEVERITY_STYLES.get(severity, "")
        table.add_row(
            v.rule_id,
            f"[{style}]{severity}[/{style}]" if style else severity,
            escape(v.location),
            escape(v.message),
        )
    return table


def pprint_report(report: Any, *, name: str | None = None, file: Any = None) -> None:
    """Pretty-print a ValidationReport with a verdict panel and violation table."""
    console = _make_console(file)
    s = report.summary
    verdict = "[bold green]VALID[/bold green]" if report.valid else "[bold red]INVALID[/bold red]"
    console.print(Panel(
        f"{verdict}  {s.errors} errors, {s.warnings} warnings, {s.info} info",
        title=escape(name or "artifact"),
        expand=False,
    ))
    if report.violations:
        console.print(report_table(report))
