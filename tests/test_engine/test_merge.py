"""Tests for the merge engine.

Covers global ordering, ADD / EDIT / KILL semantics, merge-vs-replace for
array fields, section limits, skipped operations, and metadata derivation.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from artifact_compiler.engine.ids import IdAllocator
from artifact_compiler.engine.log import OperationLog, order_operations
from artifact_compiler.engine.merge import MergeEngine, merge_array
from artifact_compiler.engine.parser import DeltaParser
from artifact_compiler.exceptions import LogCorruptionError
from artifact_compiler.models.artifact import ArtifactStatus, ItemState
from artifact_compiler.models.config import CompilerConfig
from artifact_compiler.models.operation import CrossReference
from artifact_compiler.models.sections import Section

from tests.conftest import BASE_TIME, SESSION_ID, add_hypothesis, delta, make_message

H = Section.HYPOTHESIS_SLATE


def _merge(*messages, config=None, **kwargs):
    log = OperationLog(SESSION_ID)
    log.extend(messages)
    return MergeEngine(config).merge(log.operations(), session_id=SESSION_ID, **kwargs)


def _rule_ids(result) -> list[str]:
    return [v.rule_id for v in result.violations]


def _research_thread(**extra) -> str:
    payload = {"statement": "Why?", "context": "Because", "anchors": ["§1"]}
    payload.update(extra)
    return delta("ADD", "research_thread", payload)


class TestMergeArray:
    """Tests for union semantics of array fields."""

    def test_union_preserves_order(self) -> None:
        assert merge_array(["a", "b"], ["c", "a", "d"]) == ["a", "b", "c", "d"]

    def test_duplicates_in_incoming_collapsed(self) -> None:
        assert merge_array([], ["x", "x"]) == ["x"]

    def test_non_string_values(self) -> None:
        assert merge_array([{"k": 1}], [{"k": 1}, {"k": 2}]) == [{"k": 1}, {"k": 2}]

    def test_string_and_number_distinct(self) -> None:
        assert merge_array(["1"], [1]) == ["1", 1]


class TestOrdering:
    """Tests for the global total order."""

    def test_timestamp_order_beats_arrival(self) -> None:
        late = make_message(add_hypothesis("Later"), n=5, message_id="a")
        early = make_message(add_hypothesis("Earlier"), n=2, message_id="b")
        result = _merge(late, early)
        names = [i.name for i in result.artifact.items(H)]
        assert names == ["Earlier", "Later"]
        assert result.artifact.get_item(H, "H1").name == "Earlier"

    def test_equal_timestamps_break_on_arrival(self) -> None:
        same = BASE_TIME + timedelta(minutes=3)
        first = make_message(add_hypothesis("First"), message_id="x", timestamp=same)
        second = make_message(add_hypothesis("Second"), message_id="y", timestamp=same)
        result = _merge(first, second)
        assert result.artifact.get_item(H, "H1").name == "First"
        assert result.artifact.get_item(H, "H2").name == "Second"

    def test_block_order_within_message(self) -> None:
        result = _merge(make_message(add_hypothesis("One"), add_hypothesis("Two")))
        assert [i.id for i in result.artifact.items(H)] == ["H1", "H2"]

    def test_input_order_irrelevant(self) -> None:
        log = OperationLog(SESSION_ID)
        log.extend([make_message(add_hypothesis(str(n)), n=n) for n in range(1, 5)])
        ops = log.operations()
        forward = MergeEngine().merge(ops, session_id=SESSION_ID)
        backward = MergeEngine().merge(list(reversed(ops)), session_id=SESSION_ID)
        assert forward.artifact == backward.artifact

    def test_duplicate_keys_are_corruption(self) -> None:
        op = DeltaParser().parse(make_message(add_hypothesis("A"), sequence=1)).operations[0]
        with pytest.raises(LogCorruptionError):
            order_operations([op, op])


class TestAdd:
    """Tests for ADD."""

    def test_three_adds_in_one_message(self) -> None:
        result = _merge(make_message(add_hypothesis("A"), add_hypothesis("B"), add_hypothesis("C")))
        items = result.artifact.items(H)
        assert [i.id for i in items] == ["H1", "H2", "H3"]
        assert all(i.state == ItemState.ACTIVE for i in items)
        assert result.applied_count == 3
        assert result.violations == []

    def test_item_fields(self) -> None:
        result = _merge(make_message(add_hypothesis("A", third=True), n=2, sender="agent-z"))
        item = result.artifact.get_item(H, "H1")
        assert item.fields["third_alternative"] is True
        assert item.anchors == ["§12"]
        assert item.created_by == "agent-z"
        assert item.created_at == BASE_TIME + timedelta(minutes=2)
        assert item.revision == 0

    def test_replace_flags_not_stored(self) -> None:
        block = delta("ADD", "hypothesis_slate",
                      {"name": "A", "claim": "c", "mechanism": "m", "anchors": ["§1"], "anchors_replace": True})
        item = _merge(make_message(block)).artifact.get_item(H, "H1")
        assert "anchors_replace" not in item.fields

    def test_unknown_fields_stored_verbatim(self) -> None:
        block = delta("ADD", "hypothesis_slate", {"name": "A", "claim": "c", "mechanism": "m", "notes": {"x": 1}})
        assert _merge(make_message(block)).artifact.get_item(H, "H1").fields["notes"] == {"x": 1}

    def test_limit_rejects_without_consuming_id(self) -> None:
        config = CompilerConfig(section_limits={H: 2})
        result = _merge(
            make_message(add_hypothesis("A"), add_hypothesis("B"), add_hypothesis("C"), n=1),
            make_message(delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H1"), n=2),
            make_message(add_hypothesis("D"), n=3),
            config=config,
        )
        assert _rule_ids(result) == ["WS-001"]
        assert [i.id for i in result.artifact.items(H)] == ["H1", "H2", "H3"]
        assert result.artifact.get_item(H, "H3").name == "D"
        assert result.allocator.counter(H) == 3

    def test_default_research_thread_singleton(self) -> None:
        result = _merge(make_message(_research_thread(), _research_thread()))
        assert len(result.artifact.items(Section.RESEARCH_THREAD)) == 1
        assert _rule_ids(result) == ["WS-001"]

    def test_default_hypothesis_limit_is_six(self) -> None:
        blocks = [add_hypothesis(f"H{n}") for n in range(7)]
        result = _merge(make_message(*blocks))
        assert len(result.artifact.items(H)) == 6
        assert _rule_ids(result) == ["WS-001"]

    def test_count_killed_items_policy(self) -> None:
        config = CompilerConfig(section_limits={H: 1}, count_killed_items=True)
        result = _merge(
            make_message(add_hypothesis("A"), delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H1")),
            make_message(add_hypothesis("B"), n=2),
            config=config,
        )
        assert _rule_ids(result) == ["WS-001"]

    def test_reserved_keys_dropped_with_warning(self) -> None:
        block = delta("ADD", "hypothesis_slate",
                      {"name": "A", "claim": "c", "mechanism": "m", "id": "H99", "state": "killed", "__proto__": {}})
        result = _merge(make_message(block))
        item = result.artifact.get_item(H, "H1")
        assert item.state == ItemState.ACTIVE
        assert "__proto__" not in item.fields
        assert _rule_ids(result) == ["WS-005"]
        assert "__proto__, id, state" in result.violations[0].message


class TestEdit:
    """Tests for EDIT."""

    def test_scalar_overwrite_and_revision(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A"), n=1),
            make_message(delta("EDIT", "hypothesis_slate", {"claim": "new claim"}, target_id="H1"), n=2),
            make_message(delta("EDIT", "hypothesis_slate", {"mechanism": "new mech"}, target_id="H1"), n=3),
        )
        item = result.artifact.get_item(H, "H1")
        assert item.fields["claim"] == "new claim"
        assert item.fields["mechanism"] == "new mech"
        assert item.fields["name"] == "A"
        assert item.revision == 2

    def test_array_union(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A", anchors=("§161", "§162")), n=1),
            make_message(delta("EDIT", "hypothesis_slate", {"anchors": ["§162", "§205"]}, target_id="H1"), n=2),
        )
        assert result.artifact.get_item(H, "H1").anchors == ["§161", "§162", "§205"]

    def test_array_replace(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A", anchors=("§161",)), n=1),
            make_message(delta("EDIT", "hypothesis_slate",
                               {"anchors": ["§205", "§212"], "anchors_replace": True}, target_id="H1"), n=2),
        )
        item = result.artifact.get_item(H, "H1")
        assert item.fields["anchors"] == ["§205", "§212"]
        assert "anchors_replace" not in item.fields

    def test_replace_flag_false_means_union(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A", anchors=("§1",)), n=1),
            make_message(delta("EDIT", "hypothesis_slate",
                               {"anchors": ["§2"], "anchors_replace": False}, target_id="H1"), n=2),
        )
        assert result.artifact.get_item(H, "H1").anchors == ["§1", "§2"]

    def test_replace_is_per_field(self) -> None:
        add = delta("ADD", "anomaly_register",
                    {"name": "n", "observation": "o", "conflicts_with": ["H1"], "anchors": ["§1"]})
        edit = delta("EDIT", "anomaly_register",
                     {"conflicts_with": ["H2"], "conflicts_with_replace": True, "anchors": ["§2"]},
                     target_id="X1")
        item = _merge(make_message(add, n=1), make_message(edit, n=2)).artifact.get_item(
            Section.ANOMALY_REGISTER, "X1")
        assert item.fields["conflicts_with"] == ["H2"]
        assert item.fields["anchors"] == ["§1", "§2"]

    def test_missing_target_single_violation(self) -> None:
        result = _merge(make_message(
            add_hypothesis("A"),
            delta("EDIT", "hypothesis_slate", {"claim": "x"}, target_id="H7"),
            add_hypothesis("B"),
        ))
        assert _rule_ids(result) == ["WS-002"]
        assert result.violations[0].location == "message:msg-1#delta2"
        assert [i.id for i in result.artifact.items(H)] == ["H1", "H2"]
        assert result.skipped_count == 1

    def test_target_in_other_section_is_missing(self) -> None:
        result = _merge(make_message(
            add_hypothesis("A"),
            delta("EDIT", "predictions_table", {"condition": "x"}, target_id="H1"),
        ))
        assert _rule_ids(result) == ["WS-002"]

    def test_edit_killed_item_skipped(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A"), n=1),
            make_message(delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H1"), n=2),
            make_message(delta("EDIT", "hypothesis_slate", {"claim": "revived"}, target_id="H1"), n=3),
        )
        assert _rule_ids(result) == ["WS-004"]
        assert result.artifact.get_item(H, "H1").fields["claim"] != "revived"

    def test_research_thread_alias(self) -> None:
        result = _merge(
            make_message(_research_thread(), n=1),
            make_message(delta("EDIT", "research_thread", {"context": "Sharper"}, target_id="RT"), n=2),
            make_message(delta("EDIT", "research_thread", {"statement": "Why now?"}, target_id="RT1"), n=3),
        )
        item = result.artifact.get_item(Section.RESEARCH_THREAD, "RT1")
        assert item.fields["context"] == "Sharper"
        assert item.fields["statement"] == "Why now?"
        assert item.revision == 2

    def test_evidence_and_references_union(self) -> None:
        ref = {"session": "RS-1", "item": "H1", "relation": "supports"}
        result = _merge(
            make_message(delta("ADD", "hypothesis_slate", {"name": "A", "claim": "c", "mechanism": "m"},
                               evidence_refs=["EV-001"], references=[ref]), n=1),
            make_message(delta("EDIT", "hypothesis_slate", {"claim": "c2"}, target_id="H1",
                               evidence_refs=["EV-001", "EV-002"], references=[ref]), n=2),
        )
        item = result.artifact.get_item(H, "H1")
        assert item.evidence_refs == ["EV-001", "EV-002"]
        assert item.references == [CrossReference(session="RS-1", item="H1", relation="supports")]


class TestKill:
    """Tests for KILL."""

    def test_kill_retains_item(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A"), add_hypothesis("B"), add_hypothesis("C"), n=1),
            make_message(delta("KILL", "hypothesis_slate", {"reason": "superseded by H4"}, target_id="H2"),
                         n=2, sender="agent-b"),
        )
        item = result.artifact.get_item(H, "H2")
        assert item.state == ItemState.KILLED
        assert item.kill_reason == "superseded by H4"
        assert item.killed_by == "agent-b"
        assert item.killed_at == BASE_TIME + timedelta(minutes=2)
        assert [i.id for i in result.artifact.active_items(H)] == ["H1", "H3"]
        assert len(result.artifact.items(H)) == 3

    def test_killed_id_never_reused(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A"), n=1),
            make_message(delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H1"), n=2),
            make_message(add_hypothesis("B"), n=3),
        )
        assert result.artifact.get_item(H, "H2").name == "B"

    def test_double_kill_is_noop(self) -> None:
        kill = delta("KILL", "hypothesis_slate", {"reason": "first"}, target_id="H1")
        again = delta("KILL", "hypothesis_slate", {"reason": "second"}, target_id="H1")
        result = _merge(make_message(add_hypothesis("A"), kill, again))
        assert result.violations == []
        assert result.artifact.get_item(H, "H1").kill_reason == "first"
        assert [o.applied for o in result.outcomes] == [True, True, False]

    def test_missing_target_single_violation(self) -> None:
        result = _merge(make_message(
            delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H3"),
            add_hypothesis("A"),
        ))
        assert _rule_ids(result) == ["WS-003"]
        assert result.artifact.get_item(H, "H1") is not None

    def test_research_thread_cannot_be_killed(self) -> None:
        result = _merge(make_message(
            _research_thread(),
            delta("KILL", "research_thread", {"reason": "done"}, target_id="RT1"),
        ))
        assert _rule_ids(result) == ["WS-006"]
        assert result.artifact.get_item(Section.RESEARCH_THREAD, "RT1").is_active


class TestMetadata:
    """Tests for artifact metadata derived during merge."""

    def test_empty_log_is_draft(self) -> None:
        result = MergeEngine().merge([], session_id=SESSION_ID)
        assert result.artifact.metadata.status == ArtifactStatus.DRAFT
        assert result.artifact.metadata.created_at is None

    def test_active_after_applied_op(self) -> None:
        result = _merge(make_message(add_hypothesis("A")))
        assert result.artifact.metadata.status == ArtifactStatus.ACTIVE

    def test_only_skipped_ops_stay_draft(self) -> None:
        result = _merge(make_message(delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H1")))
        assert result.artifact.metadata.status == ArtifactStatus.DRAFT

    def test_closed(self) -> None:
        result = _merge(make_message(add_hypothesis("A")), closed=True)
        assert result.artifact.metadata.status == ArtifactStatus.CLOSED

    def test_timestamps_and_version(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A"), n=1),
            make_message(add_hypothesis("B"), n=4),
            make_message(delta("EDIT", "hypothesis_slate", {"claim": "x"}, target_id="H9"), n=9),
            version=3,
        )
        meta = result.artifact.metadata
        assert meta.created_at == BASE_TIME + timedelta(minutes=1)
        assert meta.updated_at == BASE_TIME + timedelta(minutes=4)
        assert meta.version == 3

    def test_explicit_created_at(self) -> None:
        result = _merge(make_message(add_hypothesis("A"), n=5), created_at=BASE_TIME)
        assert result.artifact.metadata.created_at == BASE_TIME

    def test_contributors_first_order_latest_time(self) -> None:
        result = _merge(
            make_message(add_hypothesis("A"), n=1, message_id="m1", sender="bob"),
            make_message(add_hypothesis("B"), n=2, message_id="m2", sender="alice"),
            make_message(add_hypothesis("C"), n=3, message_id="m3", sender="bob"),
            make_message(delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H9"),
                         n=4, message_id="m4", sender="carol"),
        )
        contributors = result.artifact.metadata.contributors
        assert [c.agent for c in contributors] == ["bob", "alice"]
        assert contributors[0].contributed_at == BASE_TIME + timedelta(minutes=3)


class TestAllocatorHandling:
    """Tests for allocator ownership across merges."""

    def test_input_allocator_not_mutated(self) -> None:
        allocator = IdAllocator()
        result = _merge(make_message(add_hypothesis("A")), allocator=allocator)
        assert len(allocator) == 0
        assert len(result.allocator) == 1
        assert [a.item_id for a in result.allocator.new_allocations] == ["H1"]

    def test_remerge_with_ledger_allocates_nothing_new(self) -> None:
        messages = [make_message(add_hypothesis("A"), add_hypothesis("B"))]
        first = _merge(*messages)
        second = _merge(*messages, allocator=first.allocator)
        assert second.allocator.new_allocations == []
        assert second.artifact == first.artifact
