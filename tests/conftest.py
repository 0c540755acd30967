"""Shared test fixtures for the artifact compiler.

Provides in-memory SQLite engine, session, and repository fixtures, plus
helpers that build delta messages and a complete, lint-clean artifact.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session, sessionmaker

from artifact_compiler.models.message import InboundMessage
from artifact_compiler.storage.engine import create_artifact_engine, init_db
from artifact_compiler.storage.sqlite import (
    SqliteAllocationRepository,
    SqliteMessageRepository,
    SqliteOperationRepository,
    SqliteRejectionRepository,
    SqliteSessionRepository,
    SqliteSnapshotRepository,
)

SESSION_ID = "RS-20251230-test"
BASE_TIME = datetime(2025, 12, 30, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_artifact_engine(":memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    """Session with automatic rollback after each test."""
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sess = SessionLocal()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_repo(session: Session) -> SqliteSessionRepository:
    return SqliteSessionRepository(session)


@pytest.fixture
def message_repo(session: Session) -> SqliteMessageRepository:
    return SqliteMessageRepository(session)


@pytest.fixture
def operation_repo(session: Session) -> SqliteOperationRepository:
    return SqliteOperationRepository(session)


@pytest.fixture
def rejection_repo(session: Session) -> SqliteRejectionRepository:
    return SqliteRejectionRepository(session)


@pytest.fixture
def allocation_repo(session: Session) -> SqliteAllocationRepository:
    return SqliteAllocationRepository(session)


@pytest.fixture
def snapshot_repo(session: Session) -> SqliteSnapshotRepository:
    return SqliteSnapshotRepository(session)


@pytest.fixture
def workspace():
    """In-memory Workspace, closed after the test."""
    from artifact_compiler.workspace import Workspace

    ws = Workspace.open(":memory:")
    yield ws
    ws.close()


# ------------------------------------------------------------------
# Shared test helpers
# ------------------------------------------------------------------

def delta(operation: str, section: str, payload=None, target_id=None, **extra) -> str:
    """A fenced delta block wrapping one JSON operation."""
    data = {"operation": operation, "section": section, "target_id": target_id}
    if payload is not None:
        data["payload"] = payload
    data.update(extra)
    return "```delta\n" + json.dumps(data) + "\n```"


def make_message(
    *blocks: str,
    n: int = 1,
    message_id: str | None = None,
    sender: str = "agent-a",
    session_id: str = SESSION_ID,
    timestamp: datetime | None = None,
    prose: str = "Notes for the team.",
    sequence: int | None = None,
) -> InboundMessage:
    """A message whose body is some prose followed by the given delta blocks.

    ``n`` sets both the default message id (``msg-<n>``) and the default
    timestamp (``BASE_TIME + n minutes``).
    """
    body = "\n\n".join([prose, *blocks])
    return InboundMessage(
        message_id=message_id or f"msg-{n}",
        thread_id=session_id,
        sender=sender,
        timestamp=timestamp or BASE_TIME + timedelta(minutes=n),
        subject="DELTA[ops]: update",
        body=body,
        sequence=sequence,
    )


def add_hypothesis(name: str, *, third: bool = False, anchors=("§12",)) -> str:
    payload = {
        "name": name,
        "claim": f"{name} explains the observed signal",
        "mechanism": f"Mechanism behind {name}",
        "anchors": list(anchors),
    }
    if third:
        payload["third_alternative"] = True
    return delta("ADD", "hypothesis_slate", payload)


def valid_blocks() -> list[str]:
    """Delta blocks that together build an artifact with no errors."""
    blocks = [
        delta("ADD", "research_thread", {
            "statement": "Why does the cell cycle stall under mild heat?",
            "context": "Recurring observation across three labs",
            "why_it_matters": "It decides which assay the group funds",
            "anchors": ["§10"],
        }),
        add_hypothesis("Chaperone saturation"),
        add_hypothesis("Checkpoint signalling"),
        add_hypothesis("Third alternative: both wrong, membrane effect", third=True),
    ]
    for n, condition in enumerate(("Heat pulse at G1", "Heat pulse at G2", "Chaperone overexpression"), 1):
        blocks.append(delta("ADD", "predictions_table", {
            "condition": condition,
            "predictions": {"H1": f"stall {n}", "H2": "no stall", "H3": "partial"},
            "anchors": ["§20"],
        }))
    for name in ("Chaperone titration", "Checkpoint knockout"):
        blocks.append(delta("ADD", "discriminative_tests", {
            "name": name,
            "procedure": f"Run {name} under a heat pulse",
            "discriminates": "H1 vs H2",
            "expected_outcomes": {"H1": "rescue", "H2": "no rescue"},
            "potency_check": "Positive control per §50",
            "score": {"likelihood_ratio": 3, "cost": 2, "speed": 2, "ambiguity": 1},
            "anchors": ["§30"],
        }))
    blocks.append(delta("ADD", "assumption_ledger", {
        "name": "Heat dose",
        "statement": "The heat pulse reaches the nucleus within a minute",
        "load": "All three hypotheses rely on it",
        "test": "Thermal probe",
        "scale_check": True,
        "calculation": "Diffusion time ~ (10 um)^2 / (1e-7 m^2/s) = 1 ms",
        "anchors": ["§40"],
    }))
    for name in ("Culture uniformity", "Probe calibration"):
        blocks.append(delta("ADD", "assumption_ledger", {
            "name": name,
            "statement": f"{name} holds across plates",
            "load": "Moderate",
            "test": "Replicate plates",
            "anchors": ["§41"],
        }))
    blocks.append(delta("ADD", "adversarial_critique", {
        "name": "Wrong framing",
        "attack": "The stall may be an imaging artifact",
        "evidence": "Stall absent in flow cytometry",
        "current_status": "Open",
        "real_third_alternative": True,
        "anchors": ["§60"],
    }))
    blocks.append(delta("ADD", "adversarial_critique", {
        "name": "Selection bias",
        "attack": "Only stalled cells were imaged",
        "evidence": "Random sampling shows no stall",
        "current_status": "Low concern",
        "anchors": ["§61"],
    }))
    return blocks


def valid_messages(session_id: str = SESSION_ID) -> list[InboundMessage]:
    """One message per valid block, senders alternating between two agents."""
    return [
        make_message(block, n=i, session_id=session_id, sender="agent-a" if i % 2 else "agent-b")
        for i, block in enumerate(valid_blocks(), start=1)
    ]


def stamped(messages: list[InboundMessage]) -> list[InboundMessage]:
    """Assign insertion sequences 1..n the way the log does."""
    return [m.with_sequence(i) for i, m in enumerate(messages, start=1)]
