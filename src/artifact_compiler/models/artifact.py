"""Artifact domain model: the merged, per-session research document.

The Artifact is a projection of the operation log. Only the merge engine
mutates it; everything else receives copies or frozen snapshots.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field

from artifact_compiler.models.operation import CrossReference
from artifact_compiler.models.sections import SECTION_ORDER, Section


class ItemState(str, enum.Enum):
    """Lifecycle state of an item. Items are retired, never deleted."""

    ACTIVE = "active"
    KILLED = "killed"


class ArtifactStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class Item(BaseModel):
    """An addressable unit inside a section (hypothesis, test, critique, ...)."""

    id: str
    section: Section
    state: ItemState = ItemState.ACTIVE
    fields: dict[str, Any] = Field(default_factory=dict)
    evidence_refs: list[str] = Field(default_factory=list)
    references: list[CrossReference] = Field(default_factory=list)
    created_by: str = ""
    created_at: Optional[datetime] = None
    revision: int = 0
    killed_by: Optional[str] = None
    killed_at: Optional[datetime] = None
    kill_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state == ItemState.ACTIVE

    @property
    def is_killed(self) -> bool:
        return self.state == ItemState.KILLED

    @property
    def anchors(self) -> list[str]:
        """Provenance marker: the item's citation anchors (strings only)."""
        value = self.fields.get("anchors")
        if not isinstance(value, list):
            return []
        return [a for a in value if isinstance(a, str)]

    @property
    def name(self) -> str:
        value = self.fields.get("name")
        return value if isinstance(value, str) else ""

    def text(self, field_name: str) -> str:
        """Return a field as stripped text, or '' when absent or not a string."""
        value = self.fields.get(field_name)
        return value.strip() if isinstance(value, str) else ""

    def __repr__(self) -> str:
        return f"Item({self.id} {self.state.value} {self.name!r})"


class Contributor(BaseModel):
    agent: str
    contributed_at: Optional[datetime] = None


class ArtifactMetadata(BaseModel):
    """Metadata header rendered at the top of every compiled artifact."""

    session_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1
    status: ArtifactStatus = ArtifactStatus.DRAFT
    contributors: list[Contributor] = Field(default_factory=list)


def _empty_sections() -> dict[Section, list[Item]]:
    return {section: [] for section in SECTION_ORDER}


class Artifact(BaseModel):
    """The merged working document for one session."""

    metadata: ArtifactMetadata
    sections: dict[Section, list[Item]] = Field(default_factory=_empty_sections)

    @classmethod
    def empty(cls, session_id: str) -> Artifact:
        return cls(metadata=ArtifactMetadata(session_id=session_id))

    def items(self, section: Section) -> list[Item]:
        return self.sections.setdefault(section, [])

    def active_items(self, section: Section) -> list[Item]:
        return [item for item in self.items(section) if item.is_active]

    def get_item(self, section: Section, item_id: str) -> Item | None:
        for item in self.items(section):
            if item.id == item_id:
                return item
        return None

    def iter_items(self) -> Iterator[Item]:
        """Yield every item (active and killed) in fixed section order."""
        for section in SECTION_ORDER:
            yield from self.items(section)

    def find_item(self, item_id: str) -> Item | None:
        """Look up an item by ID in any section, including killed items."""
        for item in self.iter_items():
            if item.id == item_id:
                return item
        return None

    def to_canonical_dict(self) -> dict[str, Any]:
        """JSON-ready dict with sections in fixed order."""
        data = self.model_dump(mode="json")
        data["sections"] = {
            section.value: data["sections"].get(section.value, [])
            for section in SECTION_ORDER
        }
        return data

    def pprint(self) -> None:
        """Pretty-print this artifact as rendered markdown using rich."""
        from artifact_compiler.formatting import pprint_artifact

        pprint_artifact(self)
