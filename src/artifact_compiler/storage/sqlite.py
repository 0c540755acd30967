"""SQLite implementations of repository interfaces.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from artifact_compiler.storage.repositories import (
    AllocationRepository,
    MessageRepository,
    OperationRepository,
    RejectionRepository,
    SessionRepository,
    SnapshotRepository,
)
from artifact_compiler.storage.schema import (
    DeltaRejectionRow,
    IdAllocationRow,
    MessageRow,
    OperationRow,
    SessionRow,
    SnapshotRow,
)


class SqliteSessionRepository(SessionRepository):
    """SQLite implementation of session repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, session_id: str) -> SessionRow | None:
        stmt = select(SessionRow).where(SessionRow.session_id == session_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, row: SessionRow) -> None:
        self._session.add(row)
        self._session.flush()

    def list_ids(self) -> Sequence[str]:
        stmt = select(SessionRow.session_id).order_by(
            SessionRow.created_at, SessionRow.session_id
        )
        return list(self._session.execute(stmt).scalars().all())

    def mark_closed(self, session_id: str, closed_at: datetime) -> None:
        stmt = (
            update(SessionRow)
            .where(SessionRow.session_id == session_id)
            .values(closed=True, closed_at=closed_at)
        )
        self._session.execute(stmt)
        self._session.flush()


class SqliteMessageRepository(MessageRepository):
    """SQLite implementation of the message log."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, session_id: str, message_id: str) -> MessageRow | None:
        stmt = select(MessageRow).where(
            MessageRow.session_id == session_id,
            MessageRow.message_id == message_id,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, row: MessageRow) -> None:
        self._session.add(row)
        self._session.flush()

    def max_sequence(self, session_id: str) -> int:
        stmt = select(func.max(MessageRow.sequence)).where(
            MessageRow.session_id == session_id
        )
        return self._session.execute(stmt).scalar() or 0

    def list(self, session_id: str, up_to: int | None = None) -> Sequence[MessageRow]:
        stmt = select(MessageRow).where(MessageRow.session_id == session_id)
        if up_to is not None:
            stmt = stmt.where(MessageRow.sequence <= up_to)
        return list(self._session.execute(stmt.order_by(MessageRow.sequence)).scalars().all())


class SqliteOperationRepository(OperationRepository):
    """SQLite implementation of operation storage."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def save_many(self, rows: Iterable[OperationRow]) -> None:
        self._session.add_all(list(rows))
        self._session.flush()

    def list(self, session_id: str, up_to: int | None = None) -> Sequence[OperationRow]:
        stmt = select(OperationRow).where(OperationRow.session_id == session_id)
        if up_to is not None:
            stmt = stmt.where(OperationRow.sequence <= up_to)
        stmt = stmt.order_by(OperationRow.sequence, OperationRow.block_index)
        return list(self._session.execute(stmt).scalars().all())


class SqliteRejectionRepository(RejectionRepository):
    """SQLite implementation of parse rejection storage."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def save_many(self, rows: Iterable[DeltaRejectionRow]) -> None:
        self._session.add_all(list(rows))
        self._session.flush()

    def list(self, session_id: str, up_to: int | None = None) -> Sequence[DeltaRejectionRow]:
        stmt = select(DeltaRejectionRow).where(DeltaRejectionRow.session_id == session_id)
        if up_to is not None:
            stmt = stmt.where(DeltaRejectionRow.sequence <= up_to)
        stmt = stmt.order_by(DeltaRejectionRow.sequence, DeltaRejectionRow.id)
        return list(self._session.execute(stmt).scalars().all())


class SqliteAllocationRepository(AllocationRepository):
    """SQLite implementation of the ID assignment ledger."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def list(self, session_id: str) -> Sequence[IdAllocationRow]:
        stmt = (
            select(IdAllocationRow)
            .where(IdAllocationRow.session_id == session_id)
            .order_by(IdAllocationRow.allocated_at, IdAllocationRow.item_id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def save_many(self, rows: Iterable[IdAllocationRow]) -> None:
        self._session.add_all(list(rows))
        self._session.flush()

    def count(self, session_id: str) -> int:
        stmt = select(func.count()).select_from(IdAllocationRow).where(
            IdAllocationRow.session_id == session_id
        )
        return self._session.execute(stmt).scalar() or 0


class SqliteSnapshotRepository(SnapshotRepository):
    """SQLite implementation of snapshot storage.

    Snapshots are immutable; there is no update path.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, session_id: str, version: int) -> SnapshotRow | None:
        stmt = select(SnapshotRow).where(
            SnapshotRow.session_id == session_id,
            SnapshotRow.version == version,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def latest(self, session_id: str) -> SnapshotRow | None:
        stmt = (
            select(SnapshotRow)
            .where(SnapshotRow.session_id == session_id)
            .order_by(SnapshotRow.version.desc())
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def list(self, session_id: str) -> Sequence[SnapshotRow]:
        stmt = (
            select(SnapshotRow)
            .where(SnapshotRow.session_id == session_id)
            .order_by(SnapshotRow.version)
        )
        return list(self._session.execute(stmt).scalars().all())

    def save(self, row: SnapshotRow) -> None:
        self._session.add(row)
        self._session.flush()
