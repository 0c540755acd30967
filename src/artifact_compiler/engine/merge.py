"""Merge engine: folds the ordered operation log into artifact state.

The artifact is a pure projection of the log. Merging the same operations
with the same allocator ledger always yields the same artifact and the same
violations. A bad operation is skipped with a violation; the batch never
aborts. Only a corrupted log is fatal (LogCorruptionError).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Optional

from artifact_compiler.engine.hashing import canonical_key
from artifact_compiler.engine.ids import IdAllocator
from artifact_compiler.engine.log import order_operations
from artifact_compiler.exceptions import LogCorruptionError
from artifact_compiler.models.artifact import (
    Artifact,
    ArtifactMetadata,
    ArtifactStatus,
    Contributor,
    Item,
    ItemState,
)
from artifact_compiler.models.operation import CrossReference, Operation, OperationKind
from artifact_compiler.models.sections import Section
from artifact_compiler.models.violation import Severity, Violation

if TYPE_CHECKING:
    from artifact_compiler.models.config import CompilerConfig

logger = logging.getLogger(__name__)

RESEARCH_THREAD_ALIAS = "RT"

# Keys the engine owns. Payloads may not write them.
SYSTEM_KEYS = frozenset({
    "id", "section", "state", "revision",
    "created_by", "created_at",
    "killed_by", "killed_at", "kill_reason",
})
FORBIDDEN_KEYS = frozenset({"__proto__", "constructor", "prototype"})

REPLACE_SUFFIX = "_replace"

MERGE_RULES: dict[str, tuple[str, str]] = {
    "WS-001": ("Section {detail} is at its item limit; ADD skipped", "KILL an item before adding another."),
    "WS-002": ("EDIT target {detail} does not exist; operation skipped", "Check the target_id against the current artifact."),
    "WS-003": ("KILL target {detail} does not exist; operation skipped", "Check the target_id against the current artifact."),
    "WS-004": ("EDIT target {detail} is killed; operation skipped", "Killed items are frozen; ADD a replacement instead."),
    "WS-005": ("Ignored reserved payload keys: {detail}", "Remove system fields from the payload."),
    "WS-006": ("The research thread cannot be killed ({detail})", "EDIT the research thread instead."),
}


@dataclass(frozen=True)
class OperationOutcome:
    """What the merge did with one operation."""

    op_key: str
    kind: OperationKind
    section: Section
    sequence: int
    applied: bool
    item_id: Optional[str] = None
    rule_id: Optional[str] = None


@dataclass
class MergeResult:
    """Artifact state plus the bookkeeping of how it was produced.

    Cached results are shared; callers must treat ``artifact`` as read-only
    and copy it before modifying.
    """

    artifact: Artifact
    allocator: IdAllocator
    violations: list[Violation] = field(default_factory=list)
    outcomes: list[OperationOutcome] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return sum(1 for o in self.outcomes if o.applied)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.applied)


class _Skip(Exception):
    def __init__(self, rule_id: str, detail: str) -> None:
        self.rule_id = rule_id
        self.detail = detail
        super().__init__(f"{rule_id}: {detail}")


def _violation(rule_id: str, detail: str, location: str) -> Violation:
    template, fix = MERGE_RULES[rule_id]
    return Violation(
        rule_id=rule_id,
        severity=Severity.WARNING,
        message=template.format(detail=detail),
        location=location,
        fix=fix,
    )


def merge_array(existing: list[Any], incoming: list[Any]) -> list[Any]:
    """Union preserving existing order, then new distinct entries in order."""
    seen = {canonical_key(v) for v in existing}
    merged = list(existing)
    for value in incoming:
        key = canonical_key(value)
        if key not in seen:
            seen.add(key)
            merged.append(value)
    return merged


def _merge_references(
    existing: list[CrossReference], incoming: Iterable[CrossReference]
) -> list[CrossReference]:
    seen = {ref.key() for ref in existing}
    merged = list(existing)
    for ref in incoming:
        if ref.key() not in seen:
            seen.add(ref.key())
            merged.append(ref)
    return merged


class MergeEngine:
    """Applies ADD / EDIT / KILL operations in the global total order."""

    def __init__(self, config: CompilerConfig | None = None) -> None:
        if config is None:
            from artifact_compiler.models.config import CompilerConfig

            config = CompilerConfig()
        self._config = config

    def merge(
        self,
        operations: Iterable[Operation],
        *,
        session_id: str,
        allocator: IdAllocator | None = None,
        created_at: datetime | None = None,
        version: int = 1,
        closed: bool = False,
    ) -> MergeResult:
        """Fold operations into a fresh artifact.

        Args:
            operations: Operations in any order; they are sorted here.
            session_id: Session the artifact belongs to.
            allocator: Allocator carrying the persisted ledger. It is copied,
                never mutated; the copy is returned on the result.
            created_at: Session creation time. Defaults to the first operation.
            version: Version the artifact would be compiled into.
            closed: Whether the session is closed.
        """
        ordered = order_operations(operations)
        allocator = allocator.copy() if allocator is not None else IdAllocator()
        artifact = Artifact(metadata=ArtifactMetadata(session_id=session_id, version=version))
        result = MergeResult(artifact=artifact, allocator=allocator)
        contributors: dict[str, datetime] = {}

        for op in ordered:
            outcome = self.apply(artifact, allocator, op, result.violations)
            result.outcomes.append(outcome)
            if outcome.applied:
                contributors[op.sender] = op.timestamp

        meta = artifact.metadata
        meta.contributors = [Contributor(agent=a, contributed_at=t) for a, t in contributors.items()]
        applied_ops = [op for op, o in zip(ordered, result.outcomes) if o.applied]
        meta.created_at = created_at or (ordered[0].timestamp if ordered else None)
        meta.updated_at = applied_ops[-1].timestamp if applied_ops else meta.created_at
        if closed:
            meta.status = ArtifactStatus.CLOSED
        elif applied_ops:
            meta.status = ArtifactStatus.ACTIVE

        logger.debug("Merged %s: %d applied, %d skipped",
                     session_id, result.applied_count, result.skipped_count)
        return result

    def apply(
        self,
        artifact: Artifact,
        allocator: IdAllocator,
        op: Operation,
        violations: list[Violation],
    ) -> OperationOutcome:
        """Apply one operation in place, appending any violations it causes.

        Used by ``merge`` for every operation in order, and by incremental
        linting to apply a candidate delta to a copy of the artifact.
        """
        try:
            item_id = self._dispatch(artifact, allocator, op, violations)
        except _Skip as skip:
            violations.append(_violation(skip.rule_id, skip.detail, op.location))
            logger.warning("Skipped %r: %s", op, skip)
            return OperationOutcome(
                op.key, op.kind, op.section, op.sequence, False, op.target_id, skip.rule_id,
            )
        return OperationOutcome(
            op.key, op.kind, op.section, op.sequence, item_id is not None, item_id or op.target_id,
        )

    # ------------------------------------------------------------------
    # Operation handlers. Each returns the affected item ID, or None for a
    # no-op that is not an error.
    # ------------------------------------------------------------------

    def _dispatch(
        self, artifact: Artifact, allocator: IdAllocator, op: Operation, violations: list[Violation]
    ) -> str | None:
        if op.kind == OperationKind.ADD:
            return self._add(artifact, allocator, op, violations)
        if op.kind == OperationKind.EDIT:
            return self._edit(artifact, op, violations)
        return self._kill(artifact, op)

    def _count(self, artifact: Artifact, section: Section) -> int:
        if self._config.count_killed_items:
            return len(artifact.items(section))
        return len(artifact.active_items(section))

    def _add(
        self, artifact: Artifact, allocator: IdAllocator, op: Operation, violations: list[Violation]
    ) -> str:
        limit = self._config.limit_for(op.section)
        if limit is not None and self._count(artifact, op.section) >= limit:
            raise _Skip("WS-001", f"{op.section.value} (max {limit})")

        item_id = allocator.allocate(op)
        if artifact.find_item(item_id) is not None:
            raise LogCorruptionError(f"Allocator handed out {item_id} twice (op {op.key})")

        fields = self._clean_fields(op, violations)
        artifact.items(op.section).append(Item(
            id=item_id,
            section=op.section,
            fields={k: v for k, v in fields.items() if not _is_replace_flag(k, v)},
            evidence_refs=merge_array([], list(op.evidence_refs)),
            references=_merge_references([], op.references),
            created_by=op.sender,
            created_at=op.timestamp,
        ))
        return item_id

    def _resolve(self, artifact: Artifact, op: Operation) -> Item | None:
        target = op.target_id or ""
        if op.section == Section.RESEARCH_THREAD and target == RESEARCH_THREAD_ALIAS:
            items = artifact.items(Section.RESEARCH_THREAD)
            return items[0] if items else None
        return artifact.get_item(op.section, target)

    def _edit(self, artifact: Artifact, op: Operation, violations: list[Violation]) -> str:
        item = self._resolve(artifact, op)
        if item is None:
            raise _Skip("WS-002", f"{op.target_id} in {op.section.value}")
        if item.is_killed:
            raise _Skip("WS-004", item.id)

        payload = self._clean_fields(op, violations)
        fields = dict(item.fields)
        for key, value in payload.items():
            if _is_replace_flag(key, value):
                continue
            existing = fields.get(key)
            replace = payload.get(key + REPLACE_SUFFIX) is True
            if isinstance(value, list) and isinstance(existing, list) and not replace:
                fields[key] = merge_array(existing, value)
            else:
                fields[key] = value
        item.fields = fields
        item.evidence_refs = merge_array(item.evidence_refs, list(op.evidence_refs))
        item.references = _merge_references(item.references, op.references)
        item.revision += 1
        return item.id

    def _kill(self, artifact: Artifact, op: Operation) -> str | None:
        if op.section == Section.RESEARCH_THREAD:
            raise _Skip("WS-006", op.target_id or "")
        item = self._resolve(artifact, op)
        if item is None:
            raise _Skip("WS-003", f"{op.target_id} in {op.section.value}")
        if item.is_killed:
            logger.debug("KILL of %s ignored: already killed", item.id)
            return None
        item.state = ItemState.KILLED
        item.kill_reason = op.payload.get("reason", "")
        item.killed_by = op.sender
        item.killed_at = op.timestamp
        return item.id

    def _clean_fields(self, op: Operation, violations: list[Violation]) -> dict[str, Any]:
        """Drop engine-owned and prototype-style keys, recording one warning."""
        reserved = sorted(k for k in op.payload if k in SYSTEM_KEYS or k in FORBIDDEN_KEYS)
        if reserved:
            violations.append(_violation("WS-005", ", ".join(reserved), op.location))
        return {k: v for k, v in op.payload.items() if k not in SYSTEM_KEYS and k not in FORBIDDEN_KEYS}


def _is_replace_flag(key: str, value: Any) -> bool:
    return key.endswith(REPLACE_SUFFIX) and isinstance(value, bool)
