"""Artifact compiler CLI -- terminal interface for compiling research artifacts.

This module is NEVER imported from artifact_compiler/__init__.py.
It is only loaded via the ``artifact-compiler`` entry point defined in
pyproject.toml.

Exit codes: 0 valid, 1 invalid or failed, 2 unreadable input.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

try:
    import click
except ImportError:
    raise ImportError(
        "CLI dependencies not installed. Install with: pip install artifact-compiler[cli]"
    ) from None

from artifact_compiler.cli.formatting import format_error, get_console
from artifact_compiler.exceptions import InputFormatError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console

    from artifact_compiler.models.message import InboundMessage
    from artifact_compiler.workspace import ArtifactSession, Workspace

EXIT_VALID = 0
EXIT_INVALID = 1
EXIT_BAD_INPUT = 2


@click.group()
@click.option(
    "--db",
    default=".artifacts.db",
    envvar="ARTIFACT_DB",
    help="Path to the artifact database.",
)
@click.option(
    "--session",
    "session_id",
    default=None,
    envvar="ARTIFACT_SESSION",
    help="Session ID (auto-discovered if omitted).",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="JSON compiler configuration file.",
)
@click.option("-v", "--verbose", count=True, help="Log progress (-vv for debug output).")
@click.pass_context
def cli(ctx: click.Context, db: str, session_id: str | None, config_path: str | None, verbose: int) -> None:
    """Compile research artifacts from delta messages."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db
    ctx.obj["session_id"] = session_id
    ctx.obj["config_path"] = config_path
    if verbose:
        _configure_logging(logging.DEBUG if verbose > 1 else logging.INFO)


def _configure_logging(level: int) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _open_workspace(ctx: click.Context) -> Workspace:
    """Open a Workspace from Click context."""
    from artifact_compiler.models.config import CompilerConfig
    from artifact_compiler.workspace import Workspace

    db_path = ctx.obj["db_path"]
    config_path = ctx.obj["config_path"]
    if config_path is not None:
        config = CompilerConfig.from_file(config_path).model_copy(update={"db_path": db_path})
    else:
        config = CompilerConfig(db_path=db_path)
    return Workspace.open(db_path, config=config)


def _resolve_session(
    ctx: click.Context,
    ws: Workspace,
    messages: list[InboundMessage] | None = None,
) -> ArtifactSession:
    """Pick the session to operate on.

    An explicit --session wins. Otherwise a message file naming exactly one
    session selects it; failing that, the database must hold exactly one.
    """
    session_id = ctx.obj["session_id"]
    if session_id is None and messages:
        named = {m.session_id for m in messages}
        if len(named) == 1:
            session_id = named.pop()
    if session_id is None:
        session_id = _discover_session(ws)
    return ws.session(session_id)


def _discover_session(ws: Workspace) -> str:
    """Auto-discover the session id when the database holds exactly one."""
    session_ids = ws.session_ids()
    if len(session_ids) == 1:
        return session_ids[0]
    console = get_console()
    if not session_ids:
        format_error("No sessions found in database.", console)
    else:
        format_error(
            f"Multiple sessions found ({len(session_ids)}). Use --session to specify one.",
            console,
        )
    raise SystemExit(EXIT_INVALID)


def _read_input(ctx: click.Context, path: str) -> list[InboundMessage]:
    from artifact_compiler.loader import load_messages

    return load_messages(path, default_session=ctx.obj["session_id"])


@contextmanager
def _workspace_session(ctx: click.Context) -> Iterator[tuple[Workspace, Console]]:
    """Context manager that opens a Workspace, yields (workspace, console), and handles cleanup.

    Ensures the workspace is closed on exit and formats exceptions as CLI
    errors. Unreadable input exits with status 2, any other failure with 1.
    """
    console = get_console()
    try:
        ws = _open_workspace(ctx)
        try:
            yield ws, console
        finally:
            ws.close()
    except SystemExit:
        raise
    except InputFormatError as e:
        format_error(str(e), console)
        raise SystemExit(EXIT_BAD_INPUT) from None
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(EXIT_INVALID) from None


# Register subcommands after cli group is defined
from artifact_compiler.cli.commands.ingest import ingest  # noqa: E402
from artifact_compiler.cli.commands.compile import compile_  # noqa: E402
from artifact_compiler.cli.commands.lint import lint  # noqa: E402
from artifact_compiler.cli.commands.log import log  # noqa: E402
from artifact_compiler.cli.commands.status import status  # noqa: E402
from artifact_compiler.cli.commands.render import render  # noqa: E402
from artifact_compiler.cli.commands.snapshots import snapshots  # noqa: E402
from artifact_compiler.cli.commands.close import close  # noqa: E402

cli.add_command(ingest)
cli.add_command(compile_)
cli.add_command(lint)
cli.add_command(log)
cli.add_command(status)
cli.add_command(render)
cli.add_command(snapshots)
cli.add_command(close)
