"""Abstract repository interfaces for compiler storage.

Defines ABC interfaces for all database operations. No SQLAlchemy
imports here -- pure abstract contracts.

Concrete implementations are in sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from datetime import datetime

    from artifact_compiler.storage.schema import (
        DeltaRejectionRow,
        IdAllocationRow,
        MessageRow,
        OperationRow,
        SessionRow,
        SnapshotRow,
    )


class SessionRepository(ABC):
    """Abstract interface for session records."""

    @abstractmethod
    def get(self, session_id: str) -> SessionRow | None:
        """Get a session by id. Returns None if not found."""
        ...

    @abstractmethod
    def save(self, row: SessionRow) -> None:
        ...

    @abstractmethod
    def list_ids(self) -> Sequence[str]:
        """All session ids, oldest first."""
        ...

    @abstractmethod
    def mark_closed(self, session_id: str, closed_at: datetime) -> None:
        ...


class MessageRepository(ABC):
    """Abstract interface for the append-only message log."""

    @abstractmethod
    def get(self, session_id: str, message_id: str) -> MessageRow | None:
        ...

    @abstractmethod
    def save(self, row: MessageRow) -> None:
        ...

    @abstractmethod
    def max_sequence(self, session_id: str) -> int:
        """Highest insertion sequence in the session (0 when empty)."""
        ...

    @abstractmethod
    def list(self, session_id: str, up_to: int | None = None) -> Sequence[MessageRow]:
        """Messages in insertion order, optionally up to a cursor (inclusive)."""
        ...


class OperationRepository(ABC):
    """Abstract interface for parsed operations."""

    @abstractmethod
    def save_many(self, rows: Iterable[OperationRow]) -> None:
        ...

    @abstractmethod
    def list(self, session_id: str, up_to: int | None = None) -> Sequence[OperationRow]:
        """Operations whose message sequence is at most ``up_to``."""
        ...


class RejectionRepository(ABC):
    """Abstract interface for parse-level rejections."""

    @abstractmethod
    def save_many(self, rows: Iterable[DeltaRejectionRow]) -> None:
        ...

    @abstractmethod
    def list(self, session_id: str, up_to: int | None = None) -> Sequence[DeltaRejectionRow]:
        ...


class AllocationRepository(ABC):
    """Abstract interface for the ID assignment ledger."""

    @abstractmethod
    def list(self, session_id: str) -> Sequence[IdAllocationRow]:
        ...

    @abstractmethod
    def save_many(self, rows: Iterable[IdAllocationRow]) -> None:
        ...

    @abstractmethod
    def count(self, session_id: str) -> int:
        ...


class SnapshotRepository(ABC):
    """Abstract interface for compiled snapshots."""

    @abstractmethod
    def get(self, session_id: str, version: int) -> SnapshotRow | None:
        ...

    @abstractmethod
    def latest(self, session_id: str) -> SnapshotRow | None:
        """Highest-numbered snapshot, or None if the session has none."""
        ...

    @abstractmethod
    def list(self, session_id: str) -> Sequence[SnapshotRow]:
        """All snapshots, oldest version first."""
        ...

    @abstractmethod
    def save(self, row: SnapshotRow) -> None:
        """Insert a snapshot. Fails if ``(session_id, version)`` exists."""
        ...
