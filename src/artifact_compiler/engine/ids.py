"""Section-scoped item ID allocation.

IDs are ``<prefix><n>`` with one monotonically increasing counter per
section, seeded at 1. The allocator is explicit owned state passed through
the merge pipeline, never ambient global state.

Every allocation is recorded in an assignment ledger keyed by the stable
operation key (``"{sequence}:{index}"``). When the same log is merged again
an ADD that already owns an ID receives that same ID, even if a late-arriving
message now sorts ahead of it. New ADDs always draw fresh numbers above every
number ever handed out, so an ID is never reassigned.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator

from artifact_compiler.exceptions import LogCorruptionError
from artifact_compiler.models.sections import SECTION_ORDER, Section, section_for_prefix

if TYPE_CHECKING:
    from artifact_compiler.models.artifact import Artifact, Item
    from artifact_compiler.models.operation import Operation

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^([A-Z]+)(\d+)$")


def format_id(section: Section, number: int) -> str:
    """Format an item ID, e.g. ``format_id(Section.HYPOTHESIS_SLATE, 3) == "H3"``."""
    if number < 1:
        raise ValueError(f"Item numbers start at 1 (got {number})")
    return f"{section.prefix}{number}"


def parse_id(item_id: str) -> tuple[Section, int] | None:
    """Split an item ID into (section, number). None if it is not a valid ID."""
    match = _ID_RE.match(item_id or "")
    if match is None:
        return None
    section = section_for_prefix(match.group(1))
    number = int(match.group(2))
    if section is None or number < 1:
        return None
    return section, number


def id_sort_key(item_id: str) -> tuple[int, int, str]:
    """Sort key ordering IDs by section, then numerically (H2 before H10)."""
    parsed = parse_id(item_id)
    if parsed is None:
        return (len(SECTION_ORDER), 0, item_id)
    section, number = parsed
    return (SECTION_ORDER.index(section), number, item_id)


@dataclass(frozen=True)
class Allocation:
    """One ledger entry: operation ``op_key`` was given ``item_id``."""

    op_key: str
    section: Section
    item_id: str


class IdAllocator:
    """Per-session ID counters plus the assignment ledger."""

    def __init__(self, allocations: Iterable[Allocation] = ()) -> None:
        self._ledger: dict[str, Allocation] = {}
        self._next: dict[Section, int] = {section: 1 for section in SECTION_ORDER}
        self._new: list[Allocation] = []
        for allocation in allocations:
            self._record(allocation)

    @classmethod
    def from_snapshot(cls, entries: Iterable[tuple[str, str, str]]) -> IdAllocator:
        """Rebuild from ``(op_key, section, item_id)`` rows."""
        return cls(Allocation(k, Section(s), i) for k, s, i in entries)

    @classmethod
    def for_artifact(cls, artifact: Artifact) -> IdAllocator:
        """Allocator whose counters sit above every ID already in ``artifact``.

        Used when only merged state is at hand (e.g. linting a candidate delta).
        """
        allocations = []
        for item in artifact.iter_items():
            parsed = parse_id(item.id)
            if parsed is not None and parsed[0] == item.section:
                allocations.append(Allocation(f"existing:{item.id}", item.section, item.id))
        return cls(allocations)

    def snapshot(self) -> list[tuple[str, str, str]]:
        return [(a.op_key, a.section.value, a.item_id) for a in self._ledger.values()]

    def copy(self) -> IdAllocator:
        """Independent allocator with the same ledger and no pending allocations."""
        return IdAllocator(self._ledger.values())

    def _record(self, allocation: Allocation) -> None:
        parsed = parse_id(allocation.item_id)
        if parsed is None or parsed[0] != allocation.section:
            raise LogCorruptionError(
                f"Ledger entry {allocation.op_key} holds {allocation.item_id!r} "
                f"which is not a {allocation.section.value} ID"
            )
        existing = self._ledger.get(allocation.op_key)
        if existing is not None and existing != allocation:
            raise LogCorruptionError(
                f"Operation {allocation.op_key} owns both {existing.item_id} "
                f"and {allocation.item_id}"
            )
        self._ledger[allocation.op_key] = allocation
        number = parsed[1]
        if number >= self._next[allocation.section]:
            self._next[allocation.section] = number + 1

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate(self, operation: Operation) -> str:
        """Return the ID for an ADD, reusing the ledger entry when one exists."""
        owned = self._ledger.get(operation.key)
        if owned is not None:
            if owned.section != operation.section:
                raise LogCorruptionError(
                    f"Operation {operation.key} was allocated {owned.item_id} "
                    f"but now targets {operation.section.value}"
                )
            logger.debug("Reusing %s for op %s", owned.item_id, operation.key)
            return owned.item_id

        item_id = format_id(operation.section, self._next[operation.section])
        allocation = Allocation(operation.key, operation.section, item_id)
        self._record(allocation)
        self._new.append(allocation)
        logger.debug("Allocated %s for op %s", item_id, operation.key)
        return item_id

    def peek(self, section: Section) -> str:
        """The ID the next fresh ADD in ``section`` would receive."""
        return format_id(section, self._next[section])

    def counter(self, section: Section) -> int:
        """Highest number ever allocated in ``section`` (0 if none)."""
        return self._next[section] - 1

    def owner_of(self, op_key: str) -> str | None:
        allocation = self._ledger.get(op_key)
        return allocation.item_id if allocation is not None else None

    @property
    def new_allocations(self) -> list[Allocation]:
        """Allocations made since construction, for persisting to the ledger."""
        return list(self._new)

    def __len__(self) -> int:
        return len(self._ledger)

    def __repr__(self) -> str:
        counters = ", ".join(f"{s.prefix}={self.counter(s)}" for s in SECTION_ORDER)
        return f"IdAllocator({counters})"


class ItemIndex:
    """ID -> Item lookup over a merged artifact, killed items included."""

    def __init__(self, artifact: Artifact) -> None:
        self._items: dict[str, Item] = {}
        for item in artifact.iter_items():
            self._items.setdefault(item.id, item)

    def get(self, item_id: str) -> Item | None:
        return self._items.get(item_id)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def is_killed(self, item_id: str) -> bool:
        item = self._items.get(item_id)
        return item is not None and item.is_killed

    def ids(self, section: Section) -> list[str]:
        return sorted(
            (i for i, item in self._items.items() if item.section == section),
            key=id_sort_key,
        )
