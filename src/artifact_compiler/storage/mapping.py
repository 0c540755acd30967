"""Conversions between ORM rows and domain models.

Rows store datetimes naive (SQLite has no zone); the domain validators
re-attach UTC on the way back in.
"""

from __future__ import annotations

from datetime import datetime

from artifact_compiler.engine.ids import Allocation
from artifact_compiler.models.message import InboundMessage, to_utc
from artifact_compiler.models.operation import CrossReference, Operation
from artifact_compiler.models.snapshot import CompiledSnapshot
from artifact_compiler.models.violation import Severity, Violation
from artifact_compiler.storage.schema import (
    DeltaRejectionRow,
    IdAllocationRow,
    MessageRow,
    OperationRow,
    SnapshotRow,
)


def _naive(dt: datetime) -> datetime:
    return to_utc(dt).replace(tzinfo=None)


def message_to_row(message: InboundMessage, *, total_blocks: int, received_at: datetime) -> MessageRow:
    return MessageRow(
        session_id=message.session_id,
        message_id=message.message_id,
        sequence=message.sequence,
        sender=message.sender,
        timestamp=_naive(message.timestamp),
        subject=message.subject,
        body=message.body,
        total_blocks=total_blocks,
        received_at=_naive(received_at),
    )


def row_to_message(row: MessageRow) -> InboundMessage:
    return InboundMessage(
        message_id=row.message_id,
        session_id=row.session_id,
        sender=row.sender,
        timestamp=row.timestamp,
        subject=row.subject,
        body=row.body,
        sequence=row.sequence,
    )


def operation_to_row(session_id: str, op: Operation) -> OperationRow:
    return OperationRow(
        session_id=session_id,
        message_id=op.message_id,
        sequence=op.sequence,
        block_index=op.index,
        kind=op.kind,
        section=op.section,
        target_id=op.target_id,
        payload_json=op.payload,
        rationale=op.rationale,
        evidence_refs_json=list(op.evidence_refs),
        references_json=[ref.model_dump() for ref in op.references],
        sender=op.sender,
        timestamp=_naive(op.timestamp),
        raw=op.raw,
    )


def row_to_operation(row: OperationRow) -> Operation:
    return Operation(
        kind=row.kind,
        section=row.section,
        target_id=row.target_id,
        payload=dict(row.payload_json),
        rationale=row.rationale,
        evidence_refs=tuple(row.evidence_refs_json or ()),
        references=tuple(CrossReference(**ref) for ref in row.references_json or ()),
        message_id=row.message_id,
        sender=row.sender,
        timestamp=row.timestamp,
        sequence=row.sequence,
        index=row.block_index,
        raw=row.raw,
    )


def violation_to_row(session_id: str, message_id: str, sequence: int, v: Violation) -> DeltaRejectionRow:
    return DeltaRejectionRow(
        session_id=session_id,
        message_id=message_id,
        sequence=sequence,
        rule_id=v.rule_id,
        severity=v.severity.value,
        message=v.message,
        location=v.location,
        fix=v.fix,
    )


def row_to_violation(row: DeltaRejectionRow) -> Violation:
    return Violation(
        rule_id=row.rule_id,
        severity=Severity(row.severity),
        message=row.message,
        location=row.location,
        fix=row.fix,
    )


def allocation_to_row(session_id: str, allocation: Allocation, allocated_at: datetime) -> IdAllocationRow:
    return IdAllocationRow(
        session_id=session_id,
        op_key=allocation.op_key,
        section=allocation.section,
        item_id=allocation.item_id,
        allocated_at=_naive(allocated_at),
    )


def row_to_allocation(row: IdAllocationRow) -> Allocation:
    return Allocation(row.op_key, row.section, row.item_id)


def snapshot_to_row(snapshot: CompiledSnapshot) -> SnapshotRow:
    return SnapshotRow(
        session_id=snapshot.session_id,
        version=snapshot.version,
        created_at=_naive(snapshot.created_at),
        log_cursor=snapshot.log_cursor,
        content_hash=snapshot.content_hash,
        publishable=snapshot.publishable,
        published=snapshot.published,
        snapshot_json=snapshot.model_dump_json(),
    )


def row_to_snapshot(row: SnapshotRow) -> CompiledSnapshot:
    return CompiledSnapshot.model_validate_json(row.snapshot_json)
