"""Database package for Farmheart."""

from src.db.base import Base
from src.db.engine import dispose_engine, get_sync_engine, get_sync_session_factory, SyncSessionLocal
from src.db.models import (
    AnimalRecord,
    AnimalStatHistoryRecord,
    NotificationPreferenceRecord,
    NotificationRecordRow,
    UserRecord,
)

__all__ = [
    "Base",
    "dispose_engine",
    "get_sync_engine",
    "get_sync_session_factory",
    "SyncSessionLocal",
    "AnimalRecord",
    "AnimalStatHistoryRecord",
    "NotificationPreferenceRecord",
    "NotificationRecordRow",
    "UserRecord",
]
