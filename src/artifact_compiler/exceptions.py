"""Artifact compiler exception hierarchy.

All compiler-specific exceptions inherit from ArtifactCompilerError.

Untrusted input (message bodies, delta blocks) never raises: it degrades to a
recorded violation. These exceptions cover caller mistakes, publish gating,
and internal invariant failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from artifact_compiler.models.violation import ValidationReport


class ArtifactCompilerError(Exception):
    """Base exception for all artifact compiler errors."""


class ConfigError(ArtifactCompilerError):
    """Raised when a compiler configuration file cannot be loaded."""


class InputFormatError(ArtifactCompilerError):
    """Raised when an inbound message file cannot be read or decoded."""


class SessionNotFoundError(ArtifactCompilerError):
    """Raised when a session lookup fails."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionClosedError(ArtifactCompilerError):
    """Raised when writing to a closed session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session is closed: {session_id}")


class DuplicateMessageError(ArtifactCompilerError):
    """Raised when a message id is ingested twice into the same session."""

    def __init__(self, session_id: str, message_id: str) -> None:
        self.session_id = session_id
        self.message_id = message_id
        super().__init__(
            f"Message '{message_id}' already recorded in session '{session_id}'"
        )


class SnapshotNotFoundError(ArtifactCompilerError):
    """Raised when a snapshot version lookup fails."""

    def __init__(self, session_id: str, version: int) -> None:
        self.session_id = session_id
        self.version = version
        super().__init__(f"Snapshot v{version} not found for session {session_id}")


class SnapshotConflictError(ArtifactCompilerError):
    """Raised when another writer claimed the same snapshot version first."""

    def __init__(self, session_id: str, version: int) -> None:
        self.session_id = session_id
        self.version = version
        super().__init__(
            f"Snapshot v{version} for session {session_id} was created concurrently"
        )


class PublishBlockedError(ArtifactCompilerError):
    """Raised when publish is requested while error-severity violations remain."""

    def __init__(self, session_id: str, report: ValidationReport) -> None:
        self.session_id = session_id
        self.report = report
        super().__init__(
            f"Cannot publish session {session_id}: "
            f"{report.summary.errors} error(s) outstanding"
        )


class LogCorruptionError(ArtifactCompilerError):
    """Raised when the recorded operation log violates its own invariants.

    This is never caused by bad contributor input; it means stored state was
    damaged and is treated as unrecoverable.
    """


class RuleConfigError(ArtifactCompilerError):
    """Raised when a lint rule is registered with an invalid definition."""
