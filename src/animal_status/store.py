"""Persistence interface for the animal status engine.

``StatusStore`` is the narrow surface the engine, inbox, and sweep driver
talk to. ``InMemoryStatusStore`` is a thread-safe implementation used for
tests and single-process deployments; ``SqlStatusStore`` in
``src.animal_status.repository`` backs it with SQLAlchemy.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from src.animal_status.config import (
    EventType,
    LifecycleState,
    NotificationCategory,
    Severity,
)
from src.animal_status.errors import DuplicateCheckUnavailableError, EntityNotFoundError
from src.animal_status.models import (
    ChannelPreference,
    EntityMeta,
    NotificationRecord,
    NotificationStats,
    StatSnapshot,
    StatUpdate,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StatusStore(ABC):
    """Storage operations needed by the engine and its collaborators."""

    def now(self) -> datetime:
        """Current time as seen by the store."""
        return _utc_now()

    # --- Stat history ---

    @abstractmethod
    def get_previous_snapshot(self, entity_id: int) -> Optional[StatSnapshot]:
        """Most recent recorded snapshot for an animal, or None."""

    @abstractmethod
    def record_snapshot(self, entity_id: int, snapshot: StatSnapshot) -> None:
        """Append a snapshot to the animal's history. Must not raise."""

    @abstractmethod
    def purge_snapshots_before(self, cutoff: datetime) -> int:
        """Delete history older than cutoff. Returns rows removed."""

    # --- Animals ---

    @abstractmethod
    def get_owner_and_entity_meta(self, entity_id: int) -> EntityMeta:
        """Owner and display data for an animal.

        Raises:
            EntityNotFoundError: If the animal is unknown.
        """

    @abstractmethod
    def list_active_owner_ids(self) -> list[int]:
        """Distinct owners with at least one Active animal."""

    @abstractmethod
    def list_active_entities(self, owner_id: int) -> list[tuple[int, StatUpdate]]:
        """(entity_id, current stats) for each Active animal of an owner."""

    # --- Preferences ---

    @abstractmethod
    def get_preference(self, owner_id: int) -> Optional[ChannelPreference]:
        """Stored channel preference, or None if never created."""

    @abstractmethod
    def upsert_preference(
        self,
        preference: ChannelPreference,
        overwrite: bool = True,
    ) -> ChannelPreference:
        """Insert a preference, or update it when ``overwrite`` is set.

        With ``overwrite=False`` this is insert-if-absent and returns the
        record that ends up stored.
        """

    # --- Notifications ---

    @abstractmethod
    def find_recent_notification(
        self,
        owner_id: int,
        entity_id: int,
        event_type: EventType,
        window_seconds: int,
    ) -> bool:
        """Whether an undismissed notification of this type exists in the window."""

    @abstractmethod
    def insert_notification(self, record: NotificationRecord) -> NotificationRecord:
        """Persist a notification and return it with its id assigned."""

    @abstractmethod
    def insert_notification_if_absent(
        self,
        record: NotificationRecord,
        window_seconds: int,
    ) -> Optional[NotificationRecord]:
        """Insert unless an undismissed notification of the same type exists in the window.

        The check and the insert are atomic across every writer sharing the
        store. Returns the stored record, or None when it was a duplicate.
        """

    @abstractmethod
    def get_notification(self, owner_id: int, notification_id: int) -> Optional[NotificationRecord]:
        """Fetch one notification owned by the user."""

    @abstractmethod
    def query_notifications(
        self,
        owner_id: int,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        """Undismissed notifications, newest first."""

    @abstractmethod
    def count_notifications(
        self,
        owner_id: int,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
    ) -> int:
        """Count of undismissed notifications matching the filters."""

    @abstractmethod
    def mark_read(
        self,
        owner_id: int,
        notification_ids: Optional[list[int]] = None,
        category: Optional[NotificationCategory] = None,
    ) -> list[int]:
        """Mark unread, undismissed notifications read.

        ``notification_ids=None`` targets every notification (optionally of
        one category). Returns the ids that changed.
        """

    @abstractmethod
    def dismiss(self, owner_id: int, notification_ids: list[int]) -> list[int]:
        """Dismiss undismissed notifications. Returns the ids that changed."""

    @abstractmethod
    def notification_stats(self, owner_id: int, since: datetime) -> NotificationStats:
        """Counters over undismissed notifications; ``today`` counts since ``since``."""

    @abstractmethod
    def purge_notifications_before(self, cutoff: datetime) -> int:
        """Delete notifications older than cutoff. Returns rows removed."""


class InMemoryStatusStore(StatusStore):
    """Thread-safe in-memory store.

    Args:
        clock: Source of "now" for windows and timestamps. Tests pass a
               controllable clock to move time forward.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or _utc_now
        self._lock = threading.RLock()
        self._entities: dict[int, EntityMeta] = {}
        self._current_stats: dict[int, StatUpdate] = {}
        self._history: dict[int, list[StatSnapshot]] = defaultdict(list)
        self._preferences: dict[int, ChannelPreference] = {}
        self._notifications: dict[int, NotificationRecord] = {}
        self._ids = itertools.count(1)

    def now(self) -> datetime:
        return self._clock()

    # --- Seeding helpers ---

    def add_entity(self, meta: EntityMeta, stats: Optional[StatUpdate] = None) -> EntityMeta:
        """Register an animal (and optionally its current stats)."""
        with self._lock:
            self._entities[meta.entity_id] = meta
            if stats is not None:
                self._current_stats[meta.entity_id] = stats
        return meta

    def set_current_stats(self, entity_id: int, stats: StatUpdate) -> None:
        with self._lock:
            self._current_stats[entity_id] = stats

    def set_lifecycle_state(self, entity_id: int, state: LifecycleState) -> None:
        with self._lock:
            meta = self._entities[entity_id]
            self._entities[entity_id] = replace(meta, lifecycle_state=state)

    def snapshot_history(self, entity_id: int) -> list[StatSnapshot]:
        with self._lock:
            return list(self._history.get(entity_id, []))

    def all_notifications(self, owner_id: Optional[int] = None) -> list[NotificationRecord]:
        """Every stored notification, including dismissed, oldest first."""
        with self._lock:
            records = list(self._notifications.values())
        if owner_id is not None:
            records = [r for r in records if r.owner_id == owner_id]
        return records

    # --- Stat history ---

    def get_previous_snapshot(self, entity_id: int) -> Optional[StatSnapshot]:
        with self._lock:
            history = self._history.get(entity_id)
            if not history:
                return None
            # Ties on recorded_at go to the later write.
            return max(enumerate(history), key=lambda p: (p[1].recorded_at, p[0]))[1]

    def record_snapshot(self, entity_id: int, snapshot: StatSnapshot) -> None:
        with self._lock:
            self._history[entity_id].append(snapshot)

    def purge_snapshots_before(self, cutoff: datetime) -> int:
        removed = 0
        with self._lock:
            for entity_id, history in self._history.items():
                kept = [s for s in history if s.recorded_at >= cutoff]
                removed += len(history) - len(kept)
                self._history[entity_id] = kept
        return removed

    # --- Animals ---

    def get_owner_and_entity_meta(self, entity_id: int) -> EntityMeta:
        with self._lock:
            meta = self._entities.get(entity_id)
        if meta is None:
            raise EntityNotFoundError(entity_id)
        return meta

    def list_active_owner_ids(self) -> list[int]:
        with self._lock:
            owners = {
                m.owner_id for m in self._entities.values()
                if m.lifecycle_state == LifecycleState.ACTIVE
            }
        return sorted(owners)

    def list_active_entities(self, owner_id: int) -> list[tuple[int, StatUpdate]]:
        with self._lock:
            return [
                (m.entity_id, self._current_stats.get(m.entity_id, StatUpdate()))
                for m in self._entities.values()
                if m.owner_id == owner_id and m.lifecycle_state == LifecycleState.ACTIVE
            ]

    # --- Preferences ---

    def get_preference(self, owner_id: int) -> Optional[ChannelPreference]:
        with self._lock:
            pref = self._preferences.get(owner_id)
            return replace(pref) if pref else None

    def upsert_preference(
        self,
        preference: ChannelPreference,
        overwrite: bool = True,
    ) -> ChannelPreference:
        with self._lock:
            existing = self._preferences.get(preference.owner_id)
            if existing is not None and not overwrite:
                return replace(existing)
            stored = replace(preference, updated_at=self.now())
            if existing is not None:
                stored.created_at = existing.created_at
            self._preferences[preference.owner_id] = stored
            return replace(stored)

    # --- Notifications ---

    def find_recent_notification(
        self,
        owner_id: int,
        entity_id: int,
        event_type: EventType,
        window_seconds: int,
    ) -> bool:
        cutoff = self.now() - timedelta(seconds=window_seconds)
        with self._lock:
            return any(
                r.owner_id == owner_id
                and r.entity_id == entity_id
                and r.event_type == event_type
                and not r.is_dismissed
                and r.created_at > cutoff
                for r in self._notifications.values()
            )

    def insert_notification(self, record: NotificationRecord) -> NotificationRecord:
        with self._lock:
            stored = replace(record, id=next(self._ids), created_at=self.now())
            self._notifications[stored.id] = stored
            return replace(stored)

    def insert_notification_if_absent(
        self,
        record: NotificationRecord,
        window_seconds: int,
    ) -> Optional[NotificationRecord]:
        with self._lock:
            try:
                duplicate = self.find_recent_notification(
                    record.owner_id, record.entity_id, record.event_type, window_seconds,
                )
            except DuplicateCheckUnavailableError:
                logger.warning(
                    "Duplicate check unavailable for user %s animal %s; inserting unchecked",
                    record.owner_id, record.entity_id,
                )
                duplicate = False
            if duplicate:
                return None
            return self.insert_notification(record)

    def get_notification(self, owner_id: int, notification_id: int) -> Optional[NotificationRecord]:
        with self._lock:
            record = self._notifications.get(notification_id)
            if record is None or record.owner_id != owner_id:
                return None
            return replace(record)

    def _filtered(
        self,
        owner_id: int,
        unread_only: bool,
        category: Optional[NotificationCategory],
    ) -> list[NotificationRecord]:
        return [
            r for r in self._notifications.values()
            if r.owner_id == owner_id
            and not r.is_dismissed
            and (not unread_only or not r.is_read)
            and (category is None or r.category == category)
        ]

    def query_notifications(
        self,
        owner_id: int,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        with self._lock:
            records = self._filtered(owner_id, unread_only, category)
            records.sort(key=lambda r: (r.created_at, r.id or 0), reverse=True)
            end = None if limit is None else offset + limit
            return [replace(r) for r in records[offset:end]]

    def count_notifications(
        self,
        owner_id: int,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
    ) -> int:
        with self._lock:
            return len(self._filtered(owner_id, unread_only, category))

    def mark_read(
        self,
        owner_id: int,
        notification_ids: Optional[list[int]] = None,
        category: Optional[NotificationCategory] = None,
    ) -> list[int]:
        now = self.now()
        changed = []
        with self._lock:
            for record in self._filtered(owner_id, unread_only=True, category=category):
                if notification_ids is not None and record.id not in notification_ids:
                    continue
                record.mark_read(now)
                changed.append(record.id)
        return changed

    def dismiss(self, owner_id: int, notification_ids: list[int]) -> list[int]:
        now = self.now()
        changed = []
        with self._lock:
            for notification_id in notification_ids:
                record = self._notifications.get(notification_id)
                if record is None or record.owner_id != owner_id or record.is_dismissed:
                    continue
                record.mark_dismissed(now)
                changed.append(notification_id)
        return changed

    def notification_stats(self, owner_id: int, since: datetime) -> NotificationStats:
        with self._lock:
            records = self._filtered(owner_id, unread_only=False, category=None)
        return NotificationStats(
            total=len(records),
            unread=sum(1 for r in records if not r.is_read),
            today=sum(1 for r in records if r.created_at >= since),
            critical=sum(1 for r in records if r.severity == Severity.CRITICAL),
        )

    def purge_notifications_before(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [i for i, r in self._notifications.items() if r.created_at < cutoff]
            for notification_id in stale:
                del self._notifications[notification_id]
        return len(stale)
