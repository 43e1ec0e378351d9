"""Database engine and session factory."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.settings import get_settings

_sync_engine = None


def get_sync_engine():
    """Get or create the database engine."""
    global _sync_engine
    if _sync_engine is None:
        settings = get_settings()
        kwargs = {"echo": settings.database_echo, "pool_pre_ping": True}
        if settings.database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        _sync_engine = create_engine(settings.database_url, **kwargs)
    return _sync_engine


def get_sync_session_factory():
    return sessionmaker(bind=get_sync_engine(), expire_on_commit=False)


def dispose_engine() -> None:
    """Close pooled connections and forget the cached engine."""
    global _sync_engine
    if _sync_engine is not None:
        _sync_engine.dispose()
        _sync_engine = None


# Convenience alias
SyncSessionLocal = get_sync_session_factory
