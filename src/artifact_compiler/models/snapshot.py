"""Compiled snapshot models.

A CompiledSnapshot freezes one merge result together with its statistics,
validation report and the diff against the previous snapshot.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from artifact_compiler.models.artifact import Artifact
from artifact_compiler.models.sections import SECTION_ORDER, Section
from artifact_compiler.models.violation import ValidationReport


class SectionStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    active: int = 0
    killed: int = 0


class SectionDiff(BaseModel):
    """Item IDs touched in one section between two snapshots."""

    model_config = ConfigDict(frozen=True)

    added: tuple[str, ...] = ()
    edited: tuple[str, ...] = ()
    killed: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.edited or self.killed)


class DiffSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    previous_version: int | None = None
    sections: dict[Section, SectionDiff] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return all(d.is_empty for d in self.sections.values())

    def totals(self) -> tuple[int, int, int]:
        """(added, edited, killed) counts across all sections."""
        added = sum(len(d.added) for d in self.sections.values())
        edited = sum(len(d.edited) for d in self.sections.values())
        killed = sum(len(d.killed) for d in self.sections.values())
        return added, edited, killed

    def describe(self) -> str:
        if self.is_empty:
            return "no changes"
        parts = []
        for section in SECTION_ORDER:
            diff = self.sections.get(section)
            if diff is None or diff.is_empty:
                continue
            bits = []
            if diff.added:
                bits.append("+" + ",".join(diff.added))
            if diff.edited:
                bits.append("~" + ",".join(diff.edited))
            if diff.killed:
                bits.append("x" + ",".join(diff.killed))
            parts.append(f"{section.value}: {' '.join(bits)}")
        return "; ".join(parts)


class CompiledSnapshot(BaseModel):
    """Immutable, numbered compilation of a session's artifact.

    ``log_cursor`` is the highest message sequence folded into this snapshot;
    the next snapshot's diff covers the log segment after it.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    version: int
    created_at: datetime
    log_cursor: int
    artifact: Artifact
    statistics: dict[Section, SectionStats]
    report: ValidationReport
    diff: DiffSummary
    publishable: bool
    published: bool = False
    content_hash: str

    def __repr__(self) -> str:
        state = "published" if self.published else ("ok" if self.publishable else "blocked")
        return f"CompiledSnapshot({self.session_id!r} v{self.version} {state})"
