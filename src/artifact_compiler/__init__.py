"""Artifact compiler: deterministic research artifacts from delta messages.

Contributors send messages carrying fenced ``delta`` blocks (ADD / EDIT /
KILL). The compiler parses them into an append-only operation log, merges
the log into a seven-section artifact, lints it, and freezes numbered
snapshots.
"""

from artifact_compiler._version import __version__

# Core entry point
from artifact_compiler.workspace import ArtifactSession, SessionStatus, Workspace

# Domain models
from artifact_compiler.models.artifact import (
    Artifact,
    ArtifactMetadata,
    ArtifactStatus,
    Contributor,
    Item,
    ItemState,
)
from artifact_compiler.models.config import CompilerConfig
from artifact_compiler.models.message import InboundMessage
from artifact_compiler.models.operation import CrossReference, Operation, OperationKind, Relation
from artifact_compiler.models.sections import SECTION_ORDER, Section
from artifact_compiler.models.snapshot import CompiledSnapshot, DiffSummary, SectionDiff, SectionStats
from artifact_compiler.models.violation import Severity, ValidationReport, Violation

# Engine
from artifact_compiler.engine.ids import IdAllocator
from artifact_compiler.engine.log import OperationLog
from artifact_compiler.engine.merge import MergeEngine, MergeResult
from artifact_compiler.engine.parser import DeltaParser, ParseResult
from artifact_compiler.engine.versioner import Versioner

# Linting
from artifact_compiler.lint import Linter, Rule, RuleRegistry, lint, rule

# Rendering
from artifact_compiler.rendering import format_report_text, render_json, render_markdown

# Exceptions
from artifact_compiler.exceptions import (
    ArtifactCompilerError,
    ConfigError,
    DuplicateMessageError,
    InputFormatError,
    LogCorruptionError,
    PublishBlockedError,
    RuleConfigError,
    SessionClosedError,
    SessionNotFoundError,
    SnapshotConflictError,
    SnapshotNotFoundError,
)

__all__ = [
    "__version__",
    "Workspace",
    "ArtifactSession",
    "SessionStatus",
    # Models
    "Artifact",
    "ArtifactMetadata",
    "ArtifactStatus",
    "Contributor",
    "Item",
    "ItemState",
    "CompilerConfig",
    "InboundMessage",
    "CrossReference",
    "Operation",
    "OperationKind",
    "Relation",
    "SECTION_ORDER",
    "Section",
    "CompiledSnapshot",
    "DiffSummary",
    "SectionDiff",
    "SectionStats",
    "Severity",
    "ValidationReport",
    "Violation",
    # Engine
    "DeltaParser",
    "ParseResult",
    "IdAllocator",
    "OperationLog",
    "MergeEngine",
    "MergeResult",
    "Versioner",
    # Linting
    "Linter",
    "Rule",
    "RuleRegistry",
    "lint",
    "rule",
    # Rendering
    "format_report_text",
    "render_json",
    "render_markdown",
    # Exceptions
    "ArtifactCompilerError",
    "ConfigError",
    "DuplicateMessageError",
    "InputFormatError",
    "LogCorruptionError",
    "PublishBlockedError",
    "RuleConfigError",
    "SessionClosedError",
    "SessionNotFoundError",
    "SnapshotConflictError",
    "SnapshotNotFoundError",
]
