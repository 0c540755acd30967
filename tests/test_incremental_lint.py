"""Tests for incremental (single-delta) linting."""

from __future__ import annotations

from artifact_compiler.engine.ids import IdAllocator
from artifact_compiler.engine.log import OperationLog
from artifact_compiler.engine.merge import MergeEngine
from artifact_compiler.engine.parser import DeltaParser
from artifact_compiler.lint import Linter
from artifact_compiler.models.sections import Section

from tests.conftest import SESSION_ID, add_hypothesis, delta, make_message, valid_messages

H = Section.HYPOTHESIS_SLATE


def _merged():
    log = OperationLog(SESSION_ID)
    log.extend(valid_messages())
    return MergeEngine().merge(log.operations(), session_id=SESSION_ID)


def _op(block: str):
    return DeltaParser().parse(make_message(block, n=90, sequence=90)).operations[0]


class TestLintDelta:
    """Tests for Linter.lint_delta."""

    def test_clean_delta(self) -> None:
        merged = _merged()
        op = _op(delta("EDIT", "hypothesis_slate", {"anchors": ["§14"]}, target_id="H1"))
        report = Linter().lint_delta(merged.artifact, op, allocator=merged.allocator)
        assert report.valid
        assert report.violations == ()

    def test_delta_problem_reported(self) -> None:
        merged = _merged()
        op = _op(add_hypothesis("Fourth", anchors=("§400",)))
        report = Linter().lint_delta(merged.artifact, op, allocator=merged.allocator)
        assert report.rule_ids() == ["EP-P01"]
        assert report.violations[0].location == "hypothesis_slate/H4.anchors"

    def test_input_artifact_untouched(self) -> None:
        merged = _merged()
        op = _op(delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H1"))
        report = Linter().lint_delta(merged.artifact, op, allocator=merged.allocator)
        assert report.rule_ids() == ["EH-001"]
        assert merged.artifact.get_item(H, "H1").is_active

    def test_out_of_scope_sections_not_checked(self) -> None:
        """Problems in unrelated sections are left to the full pass."""
        merged = _merged()
        merged.artifact.get_item(Section.ADVERSARIAL_CRITIQUE, "C1").fields["attack"] = ""
        op = _op(delta("EDIT", "hypothesis_slate", {"claim": "sharper"}, target_id="H2"))
        report = Linter().lint_delta(merged.artifact, op, allocator=merged.allocator)
        assert "EC-002" not in report.rule_ids()
        assert "EC-002" in Linter().lint(merged.artifact).rule_ids()

    def test_document_rules_skipped(self) -> None:
        empty = MergeEngine().merge([], session_id=SESSION_ID).artifact
        op = _op(add_hypothesis("Alone"))
        ids = Linter().lint_delta(empty, op).rule_ids()
        assert "EM-003" not in ids
        assert "WM-001" not in ids
        assert "EP-001" not in ids
        assert "EH-001" in ids
        assert "EH-003" in ids

    def test_referenced_sections_in_scope(self) -> None:
        merged = _merged()
        op = _op(delta("ADD", "predictions_table",
                       {"condition": "Cold shock", "predictions": {"H1": "stall", "H2": "none", "H9": "none"}, "anchors": ["§21"]}))
        report = Linter().lint_delta(merged.artifact, op, allocator=merged.allocator)
        assert report.rule_ids() == ["WX-002"]
        assert report.violations[0].location == "predictions_table/P4"

    def test_merge_rejection_reported(self) -> None:
        merged = _merged()
        op = _op(delta("EDIT", "assumption_ledger", {"load": "high"}, target_id="A9"))
        report = Linter().lint_delta(merged.artifact, op, allocator=merged.allocator)
        assert report.rule_ids() == ["WS-002"]

    def test_default_allocator_from_artifact(self) -> None:
        merged = _merged()
        allocator = IdAllocator.for_artifact(merged.artifact)
        assert allocator.peek(H) == "H4"
        op = _op(add_hypothesis("Fourth", anchors=("§999",)))
        report = Linter().lint_delta(merged.artifact, op)
        assert report.violations[0].location == "hypothesis_slate/H4.anchors"
