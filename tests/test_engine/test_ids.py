"""Tests for section-scoped ID allocation and the assignment ledger."""

from __future__ import annotations

import pytest

from artifact_compiler.engine.ids import (
    Allocation,
    IdAllocator,
    ItemIndex,
    format_id,
    id_sort_key,
    parse_id,
)
from artifact_compiler.engine.merge import MergeEngine
from artifact_compiler.engine.parser import DeltaParser
from artifact_compiler.exceptions import LogCorruptionError
from artifact_compiler.models.sections import Section

from tests.conftest import SESSION_ID, add_hypothesis, delta, make_message


def _ops(*blocks, sequence=1, n=1):
    return list(DeltaParser().parse(make_message(*blocks, n=n, sequence=sequence)).operations)


class TestIdFormat:
    """Tests for ID formatting and parsing."""

    def test_format(self) -> None:
        assert format_id(Section.HYPOTHESIS_SLATE, 3) == "H3"
        assert format_id(Section.RESEARCH_THREAD, 1) == "RT1"

    def test_format_rejects_zero(self) -> None:
        with pytest.raises(ValueError):
            format_id(Section.HYPOTHESIS_SLATE, 0)

    @pytest.mark.parametrize("item_id,expected", [
        ("H12", (Section.HYPOTHESIS_SLATE, 12)),
        ("RT1", (Section.RESEARCH_THREAD, 1)),
        ("X2", (Section.ANOMALY_REGISTER, 2)),
    ])
    def test_parse(self, item_id, expected) -> None:
        assert parse_id(item_id) == expected

    @pytest.mark.parametrize("item_id", ["", "H", "H0", "Q1", "h1", "H1a", "RT"])
    def test_parse_invalid(self, item_id) -> None:
        assert parse_id(item_id) is None

    def test_sort_numeric_within_section(self) -> None:
        ids = ["H10", "P1", "H2", "RT1", "H1"]
        assert sorted(ids, key=id_sort_key) == ["RT1", "H1", "H2", "H10", "P1"]

    def test_unknown_ids_sort_last(self) -> None:
        assert sorted(["zz", "C1"], key=id_sort_key) == ["C1", "zz"]


class TestAllocate:
    """Tests for fresh allocation."""

    def test_counters_are_per_section(self) -> None:
        ops = _ops(
            add_hypothesis("A"),
            delta("ADD", "predictions_table", {"condition": "c", "predictions": {"H1": "x"}}),
            add_hypothesis("B"),
        )
        allocator = IdAllocator()
        assert [allocator.allocate(op) for op in ops] == ["H1", "P1", "H2"]
        assert allocator.counter(Section.HYPOTHESIS_SLATE) == 2
        assert allocator.counter(Section.ASSUMPTION_LEDGER) == 0
        assert allocator.peek(Section.HYPOTHESIS_SLATE) == "H3"

    def test_same_op_gets_same_id(self) -> None:
        op = _ops(add_hypothesis("A"))[0]
        allocator = IdAllocator()
        assert allocator.allocate(op) == allocator.allocate(op) == "H1"
        assert len(allocator) == 1
        assert len(allocator.new_allocations) == 1

    def test_owner_of(self) -> None:
        op = _ops(add_hypothesis("A"), sequence=4)[0]
        allocator = IdAllocator()
        allocator.allocate(op)
        assert allocator.owner_of("4:0") == "H1"
        assert allocator.owner_of("9:9") is None


class TestLedger:
    """Tests for ledger persistence and replay."""

    def test_snapshot_round_trip(self) -> None:
        allocator = IdAllocator()
        for op in _ops(add_hypothesis("A"), add_hypothesis("B")):
            allocator.allocate(op)
        rebuilt = IdAllocator.from_snapshot(allocator.snapshot())
        assert rebuilt.counter(Section.HYPOTHESIS_SLATE) == 2
        assert rebuilt.owner_of("1:1") == "H2"
        assert rebuilt.new_allocations == []

    def test_copy_is_independent(self) -> None:
        allocator = IdAllocator([Allocation("1:0", Section.HYPOTHESIS_SLATE, "H1")])
        clone = allocator.copy()
        clone.allocate(_ops(add_hypothesis("B"), sequence=2)[0])
        assert len(clone) == 2
        assert len(allocator) == 1
        assert allocator.peek(Section.HYPOTHESIS_SLATE) == "H2"

    def test_counter_continues_above_ledger(self) -> None:
        """Gaps in the ledger are never refilled."""
        allocator = IdAllocator([Allocation("1:0", Section.HYPOTHESIS_SLATE, "H5")])
        op = _ops(add_hypothesis("B"), sequence=2)[0]
        assert allocator.allocate(op) == "H6"

    def test_late_message_keeps_existing_ids(self) -> None:
        """An early-timestamped message arriving late gets a fresh ID."""
        first = _ops(add_hypothesis("A"), sequence=1, n=10)
        engine = MergeEngine()
        result = engine.merge(first, session_id=SESSION_ID)
        assert result.artifact.active_items(Section.HYPOTHESIS_SLATE)[0].id == "H1"

        late = _ops(add_hypothesis("Early"), sequence=2, n=1)
        again = engine.merge(first + late, session_id=SESSION_ID, allocator=result.allocator)
        by_name = {i.name: i.id for i in again.artifact.items(Section.HYPOTHESIS_SLATE)}
        assert by_name == {"A": "H1", "Early": "H2"}
        # Late message sorts first by timestamp.
        assert [i.name for i in again.artifact.items(Section.HYPOTHESIS_SLATE)] == ["Early", "A"]

    def test_ledger_section_mismatch_is_corruption(self) -> None:
        with pytest.raises(LogCorruptionError):
            IdAllocator([Allocation("1:0", Section.HYPOTHESIS_SLATE, "P1")])

    def test_conflicting_entries_are_corruption(self) -> None:
        with pytest.raises(LogCorruptionError):
            IdAllocator([
                Allocation("1:0", Section.HYPOTHESIS_SLATE, "H1"),
                Allocation("1:0", Section.HYPOTHESIS_SLATE, "H2"),
            ])

    def test_op_changing_section_is_corruption(self) -> None:
        allocator = IdAllocator([Allocation("1:0", Section.PREDICTIONS_TABLE, "P1")])
        with pytest.raises(LogCorruptionError):
            allocator.allocate(_ops(add_hypothesis("A"))[0])


class TestForArtifact:
    """Tests for allocators derived from merged state."""

    def test_seeded_above_existing(self) -> None:
        result = MergeEngine().merge(_ops(add_hypothesis("A"), add_hypothesis("B")), session_id=SESSION_ID)
        allocator = IdAllocator.for_artifact(result.artifact)
        assert allocator.peek(Section.HYPOTHESIS_SLATE) == "H3"
        assert allocator.peek(Section.PREDICTIONS_TABLE) == "P1"


class TestItemIndex:
    """Tests for ItemIndex lookups."""

    def test_includes_killed_items(self) -> None:
        ops = _ops(
            add_hypothesis("A"),
            add_hypothesis("B"),
            delta("KILL", "hypothesis_slate", {"reason": "gone"}, target_id="H1"),
        )
        index = ItemIndex(MergeEngine().merge(ops, session_id=SESSION_ID).artifact)
        assert "H1" in index
        assert index.is_killed("H1")
        assert not index.is_killed("H2")
        assert not index.is_killed("H9")
        assert index.ids(Section.HYPOTHESIS_SLATE) == ["H1", "H2"]
        assert len(index) == 2
