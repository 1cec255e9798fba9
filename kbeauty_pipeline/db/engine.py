"""Database engine and session management.

SQLite is the default store. DATABASE_URL may point at any SQLAlchemy
backend instead; the schema only relies on features SQLite and
PostgreSQL share.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".kbeauty_pipeline" / "catalog.db"
ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the connection URL.

    An explicit path wins, then DATABASE_URL, then the default catalog
    file. DATABASE_URL holding a full URL (e.g. postgresql+psycopg://...)
    is used as is; a bare path means SQLite.
    """
    if db_path is None:
        configured = os.environ.get("DATABASE_URL")
        if configured and "://" in configured:
            return configured
        db_path = configured or DEFAULT_DB_PATH

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Create an engine for the resolved URL."""
    url = get_database_url(db_path)
    if url.startswith("sqlite"):
        # Worker coroutines and the CLI share one engine across threads
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(db_path))
    return _SessionLocal


def reset_engine() -> None:
    """Drop the process-wide engine so the next call re-reads DATABASE_URL."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Open a session that is closed on exit.

    Callers commit; nothing is committed implicitly.

        with get_session() as session:
            RunTracker(session).list_recent()
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def seed_retailers(db_path: Path | str | None = None) -> int:
    """Insert any missing retailer rows. Returns how many were added."""
    from kbeauty_pipeline.db.repositories import RetailerRepository

    with get_session(db_path) as session:
        added = RetailerRepository(session).ensure_defaults()
        session.commit()
    return added


def init_db(db_path: Path | str | None = None) -> None:
    """
    Create every table directly from the ORM metadata, then seed retailers.

    Meant for tests and local experiments; deployed databases go through
    run_migrations.
    """
    from kbeauty_pipeline.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))
    seed_retailers(db_path)


def run_migrations(db_path: Path | str | None = None) -> None:
    """Upgrade the schema to the latest Alembic revision, then seed retailers."""
    if not ALEMBIC_INI.exists():
        raise FileNotFoundError(f"Alembic config not found: {ALEMBIC_INI}")

    config = Config(str(ALEMBIC_INI))
    config.set_main_option("sqlalchemy.url", get_database_url(db_path))
    command.upgrade(config, "head")
    seed_retailers(db_path)
