"""SQLAlchemy ORM schema for the artifact compiler.

Defines all database tables: sessions, messages, operations,
delta_rejections, id_allocations, snapshots, _artifact_meta.

Messages, operations, rejections and allocations are append-only. Merged
state is never stored except inside a snapshot; it is always recomputable
from the log plus the allocation ledger.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from artifact_compiler.models.operation import OperationKind
from artifact_compiler.models.sections import Section

SCHEMA_VERSION = "1"


class Base(DeclarativeBase):
    """Base class for all compiler ORM models."""

    pass


class SessionRow(Base):
    """A collaboration session (one artifact per session)."""

    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class MessageRow(Base):
    """An inbound message, recorded verbatim.

    ``sequence`` is the per-session insertion order (1, 2, ...); ``id`` is a
    global autoincrement kept for storage bookkeeping.
    """

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("sessions.session_id"), nullable=False
    )
    message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    sender: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    total_blocks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "message_id", name="uq_messages_session_message"),
        UniqueConstraint("session_id", "sequence", name="uq_messages_session_sequence"),
    )


class OperationRow(Base):
    """A parsed, validated delta operation. Immutable once written."""

    __tablename__ = "operations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("sessions.session_id"), nullable=False
    )
    message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    block_index: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[OperationKind] = mapped_column(nullable=False)
    section: Mapped[Section] = mapped_column(nullable=False)
    target_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    rationale: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evidence_refs_json: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    references_json: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    sender: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    raw: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("session_id", "sequence", "block_index", name="uq_operations_key"),
        Index("ix_operations_session_time", "session_id", "timestamp"),
    )


class DeltaRejectionRow(Base):
    """A delta block that failed parsing, with the violation it produced."""

    __tablename__ = "delta_rejections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("sessions.session_id"), nullable=False
    )
    message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    rule_id: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    fix: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_delta_rejections_session", "session_id", "sequence"),)


class IdAllocationRow(Base):
    """Assignment ledger: which ADD operation owns which item ID.

    Counters are derived from this table, so an ID is never handed out twice.
    """

    __tablename__ = "id_allocations"

    session_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("sessions.session_id"), primary_key=True
    )
    op_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    section: Mapped[Section] = mapped_column(nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    allocated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "item_id", name="uq_id_allocations_item"),
    )


class SnapshotRow(Base):
    """A compiled, numbered snapshot. ``(session_id, version)`` is unique."""

    __tablename__ = "snapshots"

    session_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("sessions.session_id"), primary_key=True
    )
    version: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    log_cursor: Mapped[int] = mapped_column(Integer, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    publishable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    snapshot_json: Mapped[str] = mapped_column(Text, nullable=False)


class ArtifactMetaRow(Base):
    """Key-value metadata for the database itself (e.g., schema version)."""

    __tablename__ = "_artifact_meta"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
