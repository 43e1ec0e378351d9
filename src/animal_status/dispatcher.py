"""Notification dispatch.

Turns a surviving candidate event into a stored notification and delivers
it over the channels the user and the event type allow.
"""

import logging
from typing import Optional

from src.animal_status.channels import EmailSender, NullRealtimeSink, RealtimeSink
from src.animal_status.config import (
    DEFAULT_STATUS_ENGINE_CONFIG,
    ChannelType,
    StatusEngineConfig,
)
from src.animal_status.models import ChannelPreference, Event, NotificationRecord
from src.animal_status.store import StatusStore
from src.animal_status.templates import render_event

logger = logging.getLogger(__name__)


class Dispatcher:
    """Routes events to in-app and email channels.

    Args:
        store: Where notification records are persisted.
        sink: Real-time push target. None means no push.
        email_sender: Email transport. None means email is never sent.
        config: Engine configuration (email-eligible types).
    """

    def __init__(
        self,
        store: StatusStore,
        sink: Optional[RealtimeSink] = None,
        email_sender: Optional[EmailSender] = None,
        config: Optional[StatusEngineConfig] = None,
    ) -> None:
        self.store = store
        self.sink = sink or NullRealtimeSink()
        self.email_sender = email_sender
        self.config = config or DEFAULT_STATUS_ENGINE_CONFIG

    def eligible_channels(
        self,
        event: Event,
        preference: ChannelPreference,
    ) -> list[ChannelType]:
        """Channels allowed by both the user and the event type."""
        channels = []
        if preference.in_app_enabled:
            channels.append(ChannelType.IN_APP)
        if (
            preference.email_enabled
            and event.event_type in self.config.email_eligible_types
        ):
            channels.append(ChannelType.EMAIL)
        return channels

    def dispatch(
        self,
        event: Event,
        preference: ChannelPreference,
        owner_email: Optional[str] = None,
        window_seconds: Optional[int] = None,
    ) -> Optional[NotificationRecord]:
        """Store and deliver one event.

        Args:
            event: Candidate event that passed duplicate suppression.
            preference: The owner's channel preferences.
            owner_email: Recipient address for email delivery.
            window_seconds: When set, the store skips the insert if an
                            undismissed notification of the same type exists
                            inside this window.

        Returns:
            The stored record, or None when no channel is eligible or the
            store found a duplicate.
        """
        channels = self.eligible_channels(event, preference)
        if not channels:
            logger.debug(
                "No eligible channel for %s (user %s); dropping",
                event.event_type.value, event.owner_id,
            )
            return None

        rendered = render_event(event)
        metadata = event.fields()
        metadata["event_type"] = event.event_type.value

        candidate = NotificationRecord(
            owner_id=event.owner_id,
            entity_id=event.entity_id,
            event_type=event.event_type,
            title=rendered.title,
            message=rendered.message,
            severity=event.severity,
            category=rendered.category,
            metadata=metadata,
        )
        if window_seconds is None:
            record = self.store.insert_notification(candidate)
        else:
            record = self.store.insert_notification_if_absent(candidate, window_seconds)
            if record is None:
                logger.info(
                    "Suppressed duplicate %s for user %s animal %s at insert",
                    event.event_type.value, event.owner_id, event.entity_id,
                )
                return None
        logger.info(
            "Notification %s created for user %s: %s [%s]",
            record.id, record.owner_id, record.title, record.severity.value,
        )

        if ChannelType.IN_APP in channels:
            self._push(record)
        if ChannelType.EMAIL in channels:
            self._email(event, record, owner_email)

        return record

    def _push(self, record: NotificationRecord) -> None:
        try:
            self.sink.push(record.owner_id, record)
        except Exception:
            logger.warning(
                "Failed to push real-time notification %s to user %s",
                record.id, record.owner_id,
                exc_info=True,
            )

    def _email(
        self,
        event: Event,
        record: NotificationRecord,
        owner_email: Optional[str],
    ) -> None:
        if self.email_sender is None:
            logger.debug("No email sender configured; skipping %s", event.event_type.value)
            return
        if not owner_email:
            logger.warning(
                "User %s has no email address for %s notification",
                event.owner_id, event.event_type.value,
            )
            return

        try:
            self.email_sender.send(owner_email, event.event_type, record.metadata)
        except Exception:
            logger.error(
                "Failed to send %s email for animal %s to user %s",
                event.event_type.value, event.entity_id, event.owner_id,
                exc_info=True,
            )
            return

        logger.info(
            "Email notification sent for animal %s (%s) to user %s",
            event.entity_id, event.event_type.value, event.owner_id,
        )
