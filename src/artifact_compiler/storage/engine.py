"""Engine and session factory for compiler storage.

Provides SQLite engine creation with performance pragmas,
session factory creation, and database initialization.
"""

from __future__ import annotations

from sqlalchemy import Engine, create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from artifact_compiler.exceptions import ArtifactCompilerError
from artifact_compiler.storage.schema import SCHEMA_VERSION, ArtifactMetaRow, Base


def create_artifact_engine(
    db_path: str = ":memory:",
    *,
    url: str | None = None,
) -> Engine:
    """Create a SQLAlchemy engine for compiler storage.

    SQLite performance pragmas (WAL, busy_timeout, foreign keys) are
    applied automatically when the engine dialect is SQLite.

    Args:
        db_path: Path to SQLite database file, or ``":memory:"`` for
            in-memory. Ignored when *url* is provided.
        url: Full SQLAlchemy database URL.

    Returns:
        Configured SQLAlchemy Engine.
    """
    if url is not None:
        engine = create_engine(url, echo=False)
    elif db_path == ":memory:":
        # One shared connection so every thread sees the same in-memory database.
        engine = create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(f"sqlite:///{db_path}", echo=False)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to the given engine.

    Uses expire_on_commit=False to prevent lazy-load issues
    when accessing attributes after commit.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize the database: create all tables and set schema version.

    Raises:
        ArtifactCompilerError: If the database was written by a newer
            schema than this release understands.
    """
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    with SessionLocal() as session:
        existing = session.execute(
            select(ArtifactMetaRow).where(ArtifactMetaRow.key == "schema_version")
        ).scalar_one_or_none()

        if existing is None:
            session.add(ArtifactMetaRow(key="schema_version", value=SCHEMA_VERSION))
            session.commit()
        elif int(existing.value) > int(SCHEMA_VERSION):
            raise ArtifactCompilerError(
                f"Database schema v{existing.value} is newer than supported "
                f"v{SCHEMA_VERSION}"
            )
