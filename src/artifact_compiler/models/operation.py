"""Operation (delta) domain model.

An Operation is one requested change to the artifact: ADD a new item, EDIT
fields of an existing one, or KILL (retire) it. Operations are immutable once
recorded and form the append-only event log the artifact is derived from.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from artifact_compiler.models.message import to_utc
from artifact_compiler.models.sections import Section


class OperationKind(str, enum.Enum):
    """Operations a delta may request."""

    ADD = "ADD"
    EDIT = "EDIT"
    KILL = "KILL"

    def __repr__(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


class Relation(str, enum.Enum):
    """Relation kinds a cross-session reference may declare."""

    SUPPORTS = "supports"
    REFUTES = "refutes"
    EXTENDS = "extends"
    DUPLICATES = "duplicates"
    INFORMS = "informs"
    DEPENDS_ON = "depends_on"


class CrossReference(BaseModel):
    """A pointer from an item to an item in another session.

    Stored verbatim; the relation is kept as a plain string so that unknown
    relations survive the merge and are reported by the linter instead.
    """

    model_config = ConfigDict(frozen=True)

    session: str
    item: str
    relation: str

    def key(self) -> tuple[str, str, str]:
        return (self.session, self.item, self.relation)


class Operation(BaseModel):
    """A single validated delta operation.

    Attributes:
        kind: ADD, EDIT or KILL.
        section: Target section.
        target_id: None for ADD; the item ID for EDIT and KILL.
        payload: Field values (ADD/EDIT) or ``{"reason": ...}`` (KILL).
        rationale: Contributor's free-text justification.
        evidence_refs: Evidence record IDs (``EV-001``...) cited by the delta.
        references: Cross-session references carried by the delta.
        message_id: ID of the originating message.
        sender: Contributor that sent the originating message.
        timestamp: Timestamp of the originating message.
        sequence: Insertion sequence of the originating message in the log.
        index: Zero-based position of this delta's block within its message.
        raw: Raw block text, kept for debugging and reports.
    """

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    section: Section
    target_id: Optional[str] = None
    payload: dict[str, Any]
    rationale: str = ""
    evidence_refs: tuple[str, ...] = ()
    references: tuple[CrossReference, ...] = ()
    message_id: str
    sender: str
    timestamp: datetime
    sequence: int
    index: int
    raw: str = ""

    @field_validator("timestamp", mode="after")
    @classmethod
    def _normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc(v)

    @property
    def key(self) -> str:
        """Stable identity of this operation within its session's log."""
        return f"{self.sequence}:{self.index}"

    @property
    def sort_key(self) -> tuple[datetime, int, int]:
        """Global merge order: timestamp, then message sequence, then position."""
        return (self.timestamp, self.sequence, self.index)

    @property
    def location(self) -> str:
        return f"message:{self.message_id}#delta{self.index + 1}"

    def __repr__(self) -> str:
        target = self.target_id or "-"
        return f"Operation({self.key} {self.kind.value} {self.section.value} {target})"
