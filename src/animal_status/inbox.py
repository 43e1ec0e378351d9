"""User-facing notification inbox operations.

Listing, read/dismiss state changes, and counters. These are the only
operations that modify a notification after the engine creates it.
"""

import logging
from datetime import timedelta
from typing import Any, Iterable, Optional, Union

from src.animal_status.channels import NullRealtimeSink, RealtimeSink
from src.animal_status.config import NotificationCategory
from src.animal_status.models import NotificationPage, NotificationRecord, NotificationStats
from src.animal_status.store import StatusStore

logger = logging.getLogger(__name__)

_ALL_CATEGORIES = {None, "", "all", "unread"}


def _valid_ids(notification_ids: Iterable[Any]) -> list[int]:
    """Keep ids that parse as positive integers, preserving order."""
    valid = []
    for raw in notification_ids or []:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            continue
        if value > 0 and value not in valid:
            valid.append(value)
    return valid


def _parse_category(
    category: Union[NotificationCategory, str, None],
) -> Optional[NotificationCategory]:
    if isinstance(category, NotificationCategory):
        return category
    if category in _ALL_CATEGORIES:
        return None
    return NotificationCategory(category)


class NotificationInbox:
    """Read and update a user's stored notifications."""

    def __init__(self, store: StatusStore, sink: Optional[RealtimeSink] = None) -> None:
        self.store = store
        self.sink = sink or NullRealtimeSink()

    def list_notifications(
        self,
        owner_id: int,
        limit: int = 10,
        offset: int = 0,
        unread_only: bool = False,
        category: Union[NotificationCategory, str, None] = None,
    ) -> NotificationPage:
        """Get one page of undismissed notifications, newest first.

        Raises:
            ValueError: If category is not a known category name.
        """
        cat = _parse_category(category)
        notifications = self.store.query_notifications(
            owner_id, unread_only=unread_only, category=cat, limit=limit, offset=offset,
        )
        total = self.store.count_notifications(owner_id, unread_only=unread_only, category=cat)
        unread = self.store.count_notifications(owner_id, unread_only=True)
        return NotificationPage(
            notifications=notifications,
            total_count=total,
            unread_count=unread,
            has_more=offset + limit < total,
        )

    def mark_read(self, owner_id: int, notification_id: int) -> Optional[NotificationRecord]:
        """Mark one notification read. Returns None if nothing changed."""
        changed = self.store.mark_read(owner_id, [notification_id])
        if not changed:
            return None
        return self.store.get_notification(owner_id, notification_id)

    def dismiss(self, owner_id: int, notification_id: int) -> Optional[NotificationRecord]:
        """Dismiss one notification. Returns None if nothing changed."""
        changed = self.store.dismiss(owner_id, [notification_id])
        if not changed:
            return None
        return self.store.get_notification(owner_id, notification_id)

    def mark_all_read(
        self,
        owner_id: int,
        category: Union[NotificationCategory, str, None] = None,
    ) -> int:
        """Mark every unread notification read, optionally for one category."""
        changed = self.store.mark_read(owner_id, None, category=_parse_category(category))
        logger.info("Marked %d notifications read for user %s", len(changed), owner_id)
        return len(changed)

    def bulk_mark_read(self, owner_id: int, notification_ids: Iterable[Any]) -> int:
        """Mark several notifications read. Invalid ids are ignored."""
        ids = _valid_ids(notification_ids)
        if not ids:
            return 0
        changed = self.store.mark_read(owner_id, ids)
        if changed:
            self._push_stats(owner_id)
        return len(changed)

    def bulk_dismiss(self, owner_id: int, notification_ids: Iterable[Any]) -> int:
        """Dismiss several notifications. Invalid ids are ignored."""
        ids = _valid_ids(notification_ids)
        if not ids:
            return 0
        changed = self.store.dismiss(owner_id, ids)
        if changed:
            self._push_stats(owner_id)
        return len(changed)

    def stats(self, owner_id: int) -> NotificationStats:
        """Counters over undismissed notifications; "today" is the last 24 hours."""
        since = self.store.now() - timedelta(hours=24)
        return self.store.notification_stats(owner_id, since)

    def _push_stats(self, owner_id: int) -> None:
        try:
            self.sink.push_stats(owner_id, self.stats(owner_id))
        except Exception:
            logger.warning("Could not push notification stats to user %s", owner_id, exc_info=True)
