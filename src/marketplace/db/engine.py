"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine

from marketplace.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},  # SQLite only; shared with the scheduler
        )
        _enable_wal(_engine)
        init_db(_engine)
    return _engine


def init_db(engine) -> None:
    """Create tables and apply migrations. Idempotent."""
    # Import all models so metadata is populated before create_all
    from marketplace.models.lead import Lead  # noqa
    from marketplace.models.listing import Listing  # noqa
    from marketplace.models.meta import MetaEntry  # noqa
    from marketplace.models.outbox import OutboxItem  # noqa
    from marketplace.models.sync import SyncLog  # noqa
    SQLModel.metadata.create_all(engine)
    from marketplace.db.migrations import run_migrations
    run_migrations(engine)


def _enable_wal(engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
