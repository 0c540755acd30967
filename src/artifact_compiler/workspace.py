"""Workspace -- the public SDK entry point for the artifact compiler.

Ties together storage, the delta parser, the merge engine, the linter and the
versioner. Users interact with ``Workspace.open()``, ``ws.ingest()`` and the
per-session handle returned by ``ws.session()``.

Thread-safe: operations on one session are serialized by a per-session lock,
while unrelated sessions proceed in parallel.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Iterator

from sqlalchemy.exc import IntegrityError

from artifact_compiler.engine.cache import MergeCache
from artifact_compiler.engine.ids import IdAllocator
from artifact_compiler.engine.log import LogEntry, OperationLog, order_operations
from artifact_compiler.engine.merge import MergeEngine, MergeResult
from artifact_compiler.engine.parser import DeltaParser, ParseResult
from artifact_compiler.engine.versioner import Versioner
from artifact_compiler.exceptions import (
    DuplicateMessageError,
    PublishBlockedError,
    SessionClosedError,
    SessionNotFoundError,
    SnapshotConflictError,
    SnapshotNotFoundError,
)
from artifact_compiler.lint.linter import Linter
from artifact_compiler.models.config import CompilerConfig
from artifact_compiler.models.message import InboundMessage, to_utc
from artifact_compiler.storage.engine import create_artifact_engine, create_session_factory, init_db
from artifact_compiler.storage.mapping import (
    allocation_to_row,
    message_to_row,
    operation_to_row,
    row_to_allocation,
    row_to_message,
    row_to_operation,
    row_to_snapshot,
    row_to_violation,
    snapshot_to_row,
    violation_to_row,
)
from artifact_compiler.storage.schema import SessionRow
from artifact_compiler.storage.sqlite import (
    SqliteAllocationRepository,
    SqliteMessageRepository,
    SqliteOperationRepository,
    SqliteRejectionRepository,
    SqliteSessionRepository,
    SqliteSnapshotRepository,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Session, sessionmaker

    from artifact_compiler.lint.linter import ReferenceResolver
    from artifact_compiler.lint.registry import RuleRegistry
    from artifact_compiler.models.operation import Operation
    from artifact_compiler.models.snapshot import CompiledSnapshot
    from artifact_compiler.models.violation import ValidationReport

logger = logging.getLogger(__name__)


class _Repos:
    """Repositories bound to one ORM session (one unit of work)."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.sessions = SqliteSessionRepository(session)
        self.messages = SqliteMessageRepository(session)
        self.operations = SqliteOperationRepository(session)
        self.rejections = SqliteRejectionRepository(session)
        self.allocations = SqliteAllocationRepository(session)
        self.snapshots = SqliteSnapshotRepository(session)


@dataclass(frozen=True)
class SessionStatus:
    """Point-in-time summary of a session's log and snapshots."""

    session_id: str
    created_at: datetime
    closed: bool
    cursor: int
    operations: int
    rejections: int
    allocations: int
    latest_version: int | None
    published_version: int | None


class Workspace:
    """A database of sessions plus the compiler pipeline that serves them.

    Create one via :meth:`Workspace.open`.

    Example::

        with Workspace.open("artifacts.db") as ws:
            ws.ingest(message)
            snapshot = ws.session("RS-20251230-x").compile()
            print(snapshot.report.valid)
    """

    def __init__(
        self,
        *,
        engine: Engine | None,
        session_factory: sessionmaker[Session],
        config: CompilerConfig,
        linter: Linter,
    ) -> None:
        self._engine = engine
        self._session_factory = session_factory
        self._config = config
        self._parser = DeltaParser(config)
        self._merger = MergeEngine(config)
        self._linter = linter
        self._versioner = Versioner()
        self._cache = MergeCache(maxsize=config.merge_cache_maxsize)
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        # SQLite has a single writer; storage transactions are serialized.
        self._io_lock = threading.RLock()
        self._closed = False

    @classmethod
    def open(
        cls,
        path: str | None = None,
        *,
        config: CompilerConfig | None = None,
        registry: RuleRegistry | None = None,
        resolver: ReferenceResolver | None = None,
    ) -> Workspace:
        """Open (or create) a workspace database.

        Args:
            path: SQLite path. Defaults to ``config.db_path`` (``":memory:"``).
            config: Compiler configuration. Defaults created if *None*.
            registry: Rule registry. The built-in catalog by default.
            resolver: Cross-session reference resolver for WX-004.
        """
        if config is None:
            config = CompilerConfig(db_path=path or ":memory:")
        engine = create_artifact_engine(path or config.db_path)
        init_db(engine)
        return cls(
            engine=engine,
            session_factory=create_session_factory(engine),
            config=config,
            linter=Linter(config, registry, resolver),
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> CompilerConfig:
        return self._config

    @property
    def linter(self) -> Linter:
        return self._linter

    @property
    def cache(self) -> MergeCache:
        return self._cache

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            return lock

    @contextmanager
    def _unit_of_work(self) -> Iterator[_Repos]:
        """Yield repositories on a fresh ORM session; commit on success."""
        with self._io_lock, self._session_factory() as session:
            repos = _Repos(session)
            try:
                yield repos
                session.commit()
            except Exception:
                session.rollback()
                raise

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def session(self, session_id: str) -> ArtifactSession:
        """Handle for one session. The session need not exist yet."""
        return ArtifactSession(self, session_id)

    def session_ids(self) -> list[str]:
        with self._unit_of_work() as repos:
            return list(repos.sessions.list_ids())

    def ingest(self, message: InboundMessage) -> LogEntry:
        """Append a message to the log of the session it belongs to."""
        return self.session(message.session_id).ingest(message)

    def ingest_many(
        self, messages: Iterable[InboundMessage], *, skip_duplicates: bool = False
    ) -> list[LogEntry]:
        """Ingest messages in order; sessions are created on first message."""
        entries = []
        for message in messages:
            session = self.session(message.session_id)
            entries.extend(session.ingest_many([message], skip_duplicates=skip_duplicates))
        return entries

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Dispose the engine. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._cache.clear()
        if self._engine is not None:
            self._engine.dispose()

    def __enter__(self) -> Workspace:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Workspace({self._config.db_path!r}, {state})"


class ArtifactSession:
    """Compiler operations for one session.

    Writes (ingest, merge ledger updates, compile, publish, close) hold the
    session lock. Reads fix the log cursor once and work on that
    point-in-time view.
    """

    def __init__(self, workspace: Workspace, session_id: str) -> None:
        self._ws = workspace
        self.session_id = session_id

    @property
    def _lock(self) -> threading.RLock:
        return self._ws._lock_for(self.session_id)

    def _require(self, repos: _Repos) -> SessionRow:
        row = repos.sessions.get(self.session_id)
        if row is None:
            raise SessionNotFoundError(self.session_id)
        return row

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, message: InboundMessage) -> LogEntry:
        """Record a message, parse its delta blocks, and persist the result.

        Raises:
            SessionClosedError: If the session has been closed.
            DuplicateMessageError: If the message id is already recorded.
        """
        if message.session_id != self.session_id:
            message = message.model_copy(update={"session_id": self.session_id})
        with self._lock, self._ws._unit_of_work() as repos:
            row = repos.sessions.get(self.session_id)
            stamp = message.timestamp.replace(tzinfo=None)
            if row is None:
                row = SessionRow(session_id=self.session_id, created_at=stamp, closed=False)
                repos.sessions.save(row)
                logger.info("Created session %s", self.session_id)
            elif row.closed:
                raise SessionClosedError(self.session_id)
            if repos.messages.get(self.session_id, message.message_id) is not None:
                raise DuplicateMessageError(self.session_id, message.message_id)
            # created_at tracks the earliest timestamp in the log, not arrival order.
            if stamp < row.created_at:
                row.created_at = stamp

            stamped = message.with_sequence(repos.messages.max_sequence(self.session_id) + 1)
            result = self._ws._parser.parse(stamped)
            repos.messages.save(message_to_row(
                stamped, total_blocks=result.total_blocks, received_at=datetime.now(timezone.utc),
            ))
            repos.operations.save_many(operation_to_row(self.session_id, op) for op in result.operations)
            repos.rejections.save_many(
                violation_to_row(self.session_id, stamped.message_id, stamped.sequence, v)
                for v in result.violations
            )
        logger.info(
            "Ingested %s into %s as #%d: %d operation(s), %d rejected block(s)",
            stamped.message_id, self.session_id, stamped.sequence,
            result.valid_count, result.invalid_count,
        )
        return LogEntry(stamped, result)

    def ingest_many(
        self, messages: Iterable[InboundMessage], *, skip_duplicates: bool = False
    ) -> list[LogEntry]:
        entries = []
        for message in messages:
            try:
                entries.append(self.ingest(message))
            except DuplicateMessageError:
                if not skip_duplicates:
                    raise
                logger.info("Skipping already recorded message %s", message.message_id)
        return entries

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def exists(self) -> bool:
        with self._ws._unit_of_work() as repos:
            return repos.sessions.get(self.session_id) is not None

    @property
    def cursor(self) -> int:
        """Highest message sequence in the log (0 when empty)."""
        with self._ws._unit_of_work() as repos:
            return repos.messages.max_sequence(self.session_id)

    def log(self, cursor: int | None = None) -> OperationLog:
        """Rebuild the in-memory operation log from storage."""
        with self._ws._unit_of_work() as repos:
            self._require(repos)
            messages = repos.messages.list(self.session_id, cursor)
            operations = repos.operations.list(self.session_id, cursor)
            rejections = repos.rejections.list(self.session_id, cursor)

        ops_by_seq = defaultdict(list)
        for row in operations:
            ops_by_seq[row.sequence].append(row_to_operation(row))
        rejected_by_seq = defaultdict(list)
        for row in rejections:
            rejected_by_seq[row.sequence].append(row_to_violation(row))

        entries = [
            LogEntry(
                row_to_message(row),
                ParseResult(
                    operations=tuple(ops_by_seq[row.sequence]),
                    violations=tuple(rejected_by_seq[row.sequence]),
                    total_blocks=row.total_blocks,
                ),
            )
            for row in messages
        ]
        return OperationLog.from_entries(self.session_id, entries)

    def merge(self, cursor: int | None = None) -> MergeResult:
        """Merge the log up to ``cursor`` (default: the current end).

        Read-only: IDs come from the persisted ledger plus fresh allocations
        in merge order. Fresh allocations are pinned only when
        :meth:`compile` records a snapshot, so merging or linting between
        ingests never changes the IDs a later compile assigns.
        """
        with self._lock:
            with self._ws._unit_of_work() as repos:
                row = self._require(repos)
                if cursor is None:
                    cursor = repos.messages.max_sequence(self.session_id)
                ledger = [row_to_allocation(r) for r in repos.allocations.list(self.session_id)]
                key = (self.session_id, cursor, len(ledger))
                cached = self._ws._cache.get(key)
                if cached is not None:
                    return cached

                operations = [row_to_operation(r) for r in repos.operations.list(self.session_id, cursor)]
                latest = repos.snapshots.latest(self.session_id)
                result = self._ws._merger.merge(
                    operations,
                    session_id=self.session_id,
                    allocator=IdAllocator(ledger),
                    created_at=to_utc(row.created_at),
                    version=(latest.version if latest is not None else 0) + 1,
                    closed=row.closed,
                )
            self._ws._cache.put(key, result)
            return result

    def parse_violations(self, cursor: int | None = None) -> list:
        with self._ws._unit_of_work() as repos:
            return [row_to_violation(r) for r in repos.rejections.list(self.session_id, cursor)]

    def lint(self, cursor: int | None = None) -> ValidationReport:
        """Full validation of the merged artifact, with parse and merge rejections."""
        with self._lock:
            if cursor is None:
                cursor = self.cursor
            merged = self.merge(cursor)
            extra = self.parse_violations(cursor) + list(merged.violations)
            return self._ws._linter.lint(merged.artifact, extra_violations=extra)

    def lint_delta(self, operation: Operation) -> ValidationReport:
        """Incrementally lint one candidate operation against current state.

        Nothing is persisted; the operation is applied to a copy.
        """
        merged = self.merge()
        return self._ws._linter.lint_delta(merged.artifact, operation, allocator=merged.allocator)

    def preview(self, messages: Iterable[InboundMessage]) -> tuple[MergeResult, ValidationReport]:
        """Merge and lint as if ``messages`` were appended, without recording them."""
        with self._lock:
            with self._ws._unit_of_work() as repos:
                row = repos.sessions.get(self.session_id)
                cursor = repos.messages.max_sequence(self.session_id)
                operations = [row_to_operation(r) for r in repos.operations.list(self.session_id)]
                rejections = [row_to_violation(r) for r in repos.rejections.list(self.session_id)]
                ledger = [row_to_allocation(r) for r in repos.allocations.list(self.session_id)]
                latest = repos.snapshots.latest(self.session_id)

            seen = set()
            for offset, message in enumerate(messages, start=1):
                if message.message_id in seen:
                    raise DuplicateMessageError(self.session_id, message.message_id)
                seen.add(message.message_id)
                stamped = message.model_copy(
                    update={"session_id": self.session_id, "sequence": cursor + offset}
                )
                parsed = self._ws._parser.parse(stamped)
                operations.extend(parsed.operations)
                rejections.extend(parsed.violations)

            merged = self._ws._merger.merge(
                order_operations(operations),
                session_id=self.session_id,
                allocator=IdAllocator(ledger),
                created_at=to_utc(row.created_at) if row is not None else None,
                version=(latest.version if latest is not None else 0) + 1,
                closed=row.closed if row is not None else False,
            )
            report = self._ws._linter.lint(
                merged.artifact, extra_violations=rejections + list(merged.violations)
            )
            return merged, report

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def compile(self, *, publish: bool = False) -> CompiledSnapshot:
        """Merge, lint and freeze the current log into the next snapshot.

        A snapshot is always recorded, marked ``publishable`` when the report
        has no errors. With ``publish=True`` errors block the snapshot. IDs
        first issued by this merge are pinned to the ledger with the snapshot.

        Raises:
            PublishBlockedError: ``publish=True`` and errors remain.
            SnapshotConflictError: Another writer took the version first.
        """
        with self._lock:
            cursor = self.cursor
            merged = self.merge(cursor)
            report = self._ws._linter.lint(
                merged.artifact,
                extra_violations=self.parse_violations(cursor) + list(merged.violations),
            )
            if publish and not report.valid:
                logger.warning(
                    "Publish of %s blocked by %d error(s)", self.session_id, report.summary.errors
                )
                raise PublishBlockedError(self.session_id, report)

            with self._ws._unit_of_work() as repos:
                latest = repos.snapshots.latest(self.session_id)
                previous = row_to_snapshot(latest) if latest is not None else None
                snapshot = self._ws._versioner.build(
                    merged, report, previous=previous, cursor=cursor, published=publish,
                )
                new = merged.allocator.new_allocations
                try:
                    repos.allocations.save_many(
                        allocation_to_row(self.session_id, a, snapshot.created_at) for a in new
                    )
                    repos.snapshots.save(snapshot_to_row(snapshot))
                except IntegrityError as exc:
                    raise SnapshotConflictError(self.session_id, snapshot.version) from exc
            if new:
                logger.debug("Pinned %d new allocation(s) for %s", len(new), self.session_id)
            self._ws._cache.invalidate(self.session_id)
            return snapshot

    def publish(self) -> CompiledSnapshot:
        """Compile and mark the snapshot published. Errors block publishing."""
        return self.compile(publish=True)

    def snapshots(self) -> list[CompiledSnapshot]:
        with self._ws._unit_of_work() as repos:
            self._require(repos)
            return [row_to_snapshot(r) for r in repos.snapshots.list(self.session_id)]

    def get_snapshot(self, version: int) -> CompiledSnapshot:
        """Raises SnapshotNotFoundError if the version does not exist."""
        with self._ws._unit_of_work() as repos:
            row = repos.snapshots.get(self.session_id, version)
            if row is None:
                raise SnapshotNotFoundError(self.session_id, version)
            return row_to_snapshot(row)

    def latest_snapshot(self) -> CompiledSnapshot | None:
        with self._ws._unit_of_work() as repos:
            row = repos.snapshots.latest(self.session_id)
            return row_to_snapshot(row) if row is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the session. Later ingestion raises SessionClosedError."""
        with self._lock, self._ws._unit_of_work() as repos:
            row = self._require(repos)
            if not row.closed:
                repos.sessions.mark_closed(self.session_id, datetime.now(timezone.utc).replace(tzinfo=None))
                logger.info("Closed session %s", self.session_id)
        self._ws._cache.invalidate(self.session_id)

    def status(self) -> SessionStatus:
        with self._ws._unit_of_work() as repos:
            row = self._require(repos)
            snapshots = repos.snapshots.list(self.session_id)
            published = [s.version for s in snapshots if s.published]
            return SessionStatus(
                session_id=self.session_id,
                created_at=to_utc(row.created_at),
                closed=row.closed,
                cursor=repos.messages.max_sequence(self.session_id),
                operations=len(repos.operations.list(self.session_id)),
                rejections=len(repos.rejections.list(self.session_id)),
                allocations=repos.allocations.count(self.session_id),
                latest_version=snapshots[-1].version if snapshots else None,
                published_version=published[-1] if published else None,
            )

    def __repr__(self) -> str:
        return f"ArtifactSession({self.session_id!r})"
