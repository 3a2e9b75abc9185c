"""SQLModel engine singleton."""
from sqlmodel import SQLModel, create_engine

from hatchsync.config import get_settings

_engine = None


def create_db_engine(database_url: str, timeout: float = 5.0):
    """Create an engine for the outbox database with all tables created.

    Args:
        database_url: SQLAlchemy URL, e.g. "sqlite:///./hatchsync.db".
        timeout: Seconds SQLite waits on a locked database before failing.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout}
    engine = create_engine(database_url, connect_args=connect_args)

    # Import all models so metadata is populated before create_all
    from hatchsync.models.activity import ActivityLog  # noqa
    from hatchsync.models.event import EventRecord  # noqa
    from hatchsync.models.sync import SyncLog  # noqa
    SQLModel.metadata.create_all(engine)
    return engine


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_db_engine(
            settings.database_url, timeout=settings.store_timeout_seconds
        )
    return _engine

