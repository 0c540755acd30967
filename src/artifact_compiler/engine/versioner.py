"""Snapshot / versioner.

Freezes a merge result into a numbered CompiledSnapshot. Version numbers are
``previous + 1`` starting at 1; callers serialize per session (the workspace
holds the session lock and storage enforces ``(session_id, version)``
uniqueness).

The diff is computed from merge outcomes of operations whose message sequence
lies in ``(previous_cursor, cursor]``, never from rendered text.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from artifact_compiler.engine.hashing import content_hash
from artifact_compiler.engine.ids import id_sort_key
from artifact_compiler.engine.merge import MergeResult, OperationOutcome
from artifact_compiler.models.artifact import Artifact
from artifact_compiler.models.operation import OperationKind
from artifact_compiler.models.sections import SECTION_ORDER
from artifact_compiler.models.snapshot import CompiledSnapshot, DiffSummary, SectionDiff, SectionStats
from artifact_compiler.models.violation import ValidationReport

logger = logging.getLogger(__name__)


def section_statistics(artifact: Artifact) -> dict:
    """Per-section ``{total, active, killed}`` counts."""
    stats = {}
    for section in SECTION_ORDER:
        items = artifact.items(section)
        active = sum(1 for i in items if i.is_active)
        stats[section] = SectionStats(total=len(items), active=active, killed=len(items) - active)
    return stats


def diff_outcomes(
    outcomes: Iterable[OperationOutcome],
    *,
    after: int,
    upto: int,
    previous_version: int | None = None,
) -> DiffSummary:
    """Summarize applied outcomes with ``after < sequence <= upto``.

    An item added in the segment is listed under ``added`` only, even if it
    was also edited. Killing it in the same segment lists it under both.
    """
    added: dict = {s: [] for s in SECTION_ORDER}
    edited: dict = {s: [] for s in SECTION_ORDER}
    killed: dict = {s: [] for s in SECTION_ORDER}
    for outcome in outcomes:
        if not outcome.applied or outcome.item_id is None:
            continue
        if not (after < outcome.sequence <= upto):
            continue
        bucket = {
            OperationKind.ADD: added,
            OperationKind.EDIT: edited,
            OperationKind.KILL: killed,
        }[outcome.kind][outcome.section]
        if outcome.item_id not in bucket:
            bucket.append(outcome.item_id)

    sections = {}
    for section in SECTION_ORDER:
        new = set(added[section])
        sections[section] = SectionDiff(
            added=tuple(sorted(added[section], key=id_sort_key)),
            edited=tuple(sorted((i for i in edited[section] if i not in new), key=id_sort_key)),
            killed=tuple(sorted(killed[section], key=id_sort_key)),
        )
    return DiffSummary(previous_version=previous_version, sections=sections)


class Versioner:
    """Builds immutable snapshots. Holds no state of its own."""

    def build(
        self,
        merge: MergeResult,
        report: ValidationReport,
        *,
        previous: CompiledSnapshot | None,
        cursor: int,
        published: bool = False,
        created_at: datetime | None = None,
    ) -> CompiledSnapshot:
        version = previous.version + 1 if previous is not None else 1
        previous_cursor = previous.log_cursor if previous is not None else 0

        artifact = merge.artifact.model_copy(deep=True)
        artifact.metadata.version = version

        snapshot = CompiledSnapshot(
            session_id=artifact.metadata.session_id,
            version=version,
            created_at=created_at or datetime.now(timezone.utc),
            log_cursor=cursor,
            artifact=artifact,
            statistics=section_statistics(artifact),
            report=report,
            diff=diff_outcomes(
                merge.outcomes,
                after=previous_cursor,
                upto=cursor,
                previous_version=previous.version if previous is not None else None,
            ),
            publishable=report.valid,
            published=published,
            content_hash=content_hash(artifact.to_canonical_dict()),
        )
        logger.info(
            "Built snapshot %s v%d (%s)", snapshot.session_id, version,
            "publishable" if snapshot.publishable else "not publishable",
        )
        return snapshot
