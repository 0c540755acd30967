"""Metadata rules (EM / WM)."""

from __future__ import annotations

from artifact_compiler.lint.registry import RuleRegistry
from artifact_compiler.models.artifact import ArtifactStatus

rules = RuleRegistry()


@rules.rule("EM-002", fix="Set metadata.session_id to a non-empty session identifier")
def session_id_present(ctx):
    """Metadata carries a session id."""
    if not (ctx.artifact.metadata.session_id or "").strip():
        yield "metadata.session_id", "Metadata is missing session_id"


@rules.rule("EM-003", fix="Stamp metadata.created_at when the session is created")
def created_at_present(ctx):
    """Metadata carries a creation timestamp."""
    if ctx.artifact.metadata.created_at is None:
        yield "metadata.created_at", "Metadata is missing created_at"


@rules.rule("EM-003b", fix="Stamp metadata.updated_at on every applied operation")
def updated_at_present(ctx):
    """Metadata carries an update timestamp."""
    if ctx.artifact.metadata.updated_at is None:
        yield "metadata.updated_at", "Metadata is missing updated_at"


@rules.rule("EM-004", fix="Set metadata.status to 'draft', 'active', or 'closed'")
def status_allowed(ctx):
    """Metadata status is one of draft / active / closed."""
    status = ctx.artifact.metadata.status
    if status not in tuple(ArtifactStatus):
        yield "metadata.status", f"Metadata status {status!r} is not draft, active or closed"


@rules.rule("WM-001", fix="Contributors are stamped from senders of applied operations")
def contributors_present(ctx):
    """At least one contributor is recorded."""
    if not ctx.artifact.metadata.contributors:
        yield "metadata.contributors", "No contributors recorded"


@rules.rule("WM-002", fix="Ensure updated_at is >= created_at")
def timestamps_ordered(ctx):
    """updated_at is not earlier than created_at."""
    meta = ctx.artifact.metadata
    if meta.created_at is not None and meta.updated_at is not None and meta.updated_at < meta.created_at:
        yield "metadata.updated_at", "updated_at is earlier than created_at"
