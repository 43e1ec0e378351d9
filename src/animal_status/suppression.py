"""Duplicate notification suppression.

Drops a candidate event when an undismissed notification of the same type
was already created for the same owner and animal inside the cooldown
window. Two updates racing for the same animal can both detect an edge.
``claim`` serializes them per (owner, animal, event type) inside one
process so the losers skip rendering; the store's
``insert_notification_if_absent`` makes the final decision for writers
that share the store from other engines or processes.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from src.animal_status.config import DEFAULT_COOLDOWN_SECONDS, EventType
from src.animal_status.errors import DuplicateCheckUnavailableError
from src.animal_status.store import StatusStore

logger = logging.getLogger(__name__)

SuppressionKey = tuple[int, int, EventType]


class _KeyedLocks:
    """Short-lived locks created on demand and released when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[SuppressionKey, list] = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key: SuppressionKey) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class DuplicateSuppressor:
    """Time-windowed duplicate check against notification history."""

    def __init__(
        self,
        store: StatusStore,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
    ) -> None:
        self.store = store
        self.cooldown_seconds = cooldown_seconds
        self._locks = _KeyedLocks()

    def is_duplicate(
        self,
        owner_id: int,
        entity_id: int,
        event_type: EventType,
        cooldown_seconds: Optional[int] = None,
    ) -> bool:
        """Check whether an equivalent notification is still in its cooldown.

        Fails open: if history cannot be read the event is treated as new.
        """
        window = self.cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        try:
            duplicate = self.store.find_recent_notification(
                owner_id, entity_id, event_type, window,
            )
        except DuplicateCheckUnavailableError as e:
            logger.warning(
                "Duplicate check unavailable for user %s animal %s (%s): %s",
                owner_id, entity_id, event_type.value, e.message,
            )
            return False
        except Exception:
            logger.warning(
                "Duplicate check failed for user %s animal %s (%s)",
                owner_id, entity_id, event_type.value,
                exc_info=True,
            )
            return False

        if duplicate:
            logger.info(
                "Suppressed duplicate %s for user %s animal %s",
                event_type.value, owner_id, entity_id,
            )
        return duplicate

    @contextmanager
    def claim(
        self,
        owner_id: int,
        entity_id: int,
        event_type: EventType,
    ) -> Iterator[bool]:
        """Hold the per-key lock and yield whether the event is a duplicate.

        Only claims made through this suppressor are serialized. Inserts
        should still go through ``insert_notification_if_absent``.

        Example:
            with suppressor.claim(owner_id, entity_id, event_type) as duplicate:
                if not duplicate:
                    dispatcher.dispatch(event, preference, window_seconds=60)
        """
        with self._locks.hold((owner_id, entity_id, event_type)):
            yield self.is_duplicate(owner_id, entity_id, event_type)

    @property
    def active_claims(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._locks)
