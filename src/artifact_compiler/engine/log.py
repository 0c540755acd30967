"""In-memory operation log for one session.

The log is append-only. Each appended message is stamped with an insertion
sequence and parsed once; the resulting operations and parse violations are
kept alongside it. Readers take a point-in-time view up to a cursor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from artifact_compiler.engine.parser import DeltaParser, ParseResult
from artifact_compiler.exceptions import DuplicateMessageError, LogCorruptionError
from artifact_compiler.models.message import InboundMessage
from artifact_compiler.models.operation import Operation
from artifact_compiler.models.violation import Violation

logger = logging.getLogger(__name__)


def order_operations(operations: Iterable[Operation]) -> list[Operation]:
    """Sort operations into the global merge order.

    Order is message timestamp, then message insertion sequence, then block
    position within the message. Content never affects ordering.

    Raises:
        LogCorruptionError: If two operations share a key.
    """
    ordered = sorted(operations, key=lambda op: op.sort_key)
    seen: set[str] = set()
    for op in ordered:
        if op.key in seen:
            raise LogCorruptionError(f"Duplicate operation key {op.key} in log")
        seen.add(op.key)
    return ordered


@dataclass(frozen=True)
class LogEntry:
    message: InboundMessage
    result: ParseResult

    @property
    def sequence(self) -> int:
        return self.message.sequence or 0


class OperationLog:
    """Append-only message/operation log for a single session."""

    def __init__(self, session_id: str, parser: DeltaParser | None = None) -> None:
        self.session_id = session_id
        self._parser = parser or DeltaParser()
        self._entries: list[LogEntry] = []
        self._message_ids: set[str] = set()

    @classmethod
    def from_entries(cls, session_id: str, entries: Iterable[LogEntry]) -> OperationLog:
        """Rebuild a log from already-parsed entries (e.g. loaded from storage)."""
        log = cls(session_id)
        for entry in sorted(entries, key=lambda e: e.sequence):
            if entry.message.message_id in log._message_ids:
                raise LogCorruptionError(
                    f"Message {entry.message.message_id!r} appears twice in session {session_id!r}"
                )
            log._entries.append(entry)
            log._message_ids.add(entry.message.message_id)
        return log

    def append(self, message: InboundMessage) -> LogEntry:
        """Record a message, assigning the next insertion sequence.

        Raises:
            DuplicateMessageError: If the message id is already in the log.
        """
        if message.message_id in self._message_ids:
            raise DuplicateMessageError(self.session_id, message.message_id)
        stamped = message.with_sequence(self.cursor + 1)
        entry = LogEntry(stamped, self._parser.parse(stamped))
        self._entries.append(entry)
        self._message_ids.add(message.message_id)
        return entry

    def extend(self, messages: Iterable[InboundMessage]) -> list[LogEntry]:
        return [self.append(m) for m in messages]

    @property
    def cursor(self) -> int:
        """Highest insertion sequence in the log (0 when empty)."""
        return self._entries[-1].sequence if self._entries else 0

    def entries(self, cursor: int | None = None) -> Sequence[LogEntry]:
        if cursor is None:
            return list(self._entries)
        return [e for e in self._entries if e.sequence <= cursor]

    def operations(self, cursor: int | None = None) -> list[Operation]:
        """Operations in merge order, up to ``cursor``."""
        return order_operations(
            op for entry in self.entries(cursor) for op in entry.result.operations
        )

    def violations(self, cursor: int | None = None) -> list[Violation]:
        """Parse-level violations, in insertion order."""
        return [v for entry in self.entries(cursor) for v in entry.result.violations]

    def __len__(self) -> int:
        return len(self._entries)
