"""Delivery channels for animal status notifications.

The dispatcher receives a real-time sink and an email sender at
construction. Both are best-effort: implementations raise
``DeliveryFailureError`` and the dispatcher logs it.
"""

import logging
import smtplib
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Mapping, Optional

from src.animal_status.config import EmailConfig, EventType
from src.animal_status.errors import DeliveryFailureError
from src.animal_status.models import NotificationRecord, NotificationStats
from src.animal_status.templates import render_text

logger = logging.getLogger(__name__)


class RealtimeSink(ABC):
    """Pushes stored notifications to a user's connected clients."""

    @abstractmethod
    def push(self, owner_id: int, record: NotificationRecord) -> None:
        """Push a newly created notification.

        Args:
            owner_id: Recipient user.
            record: Stored notification.
        """

    def push_stats(self, owner_id: int, stats: NotificationStats) -> None:
        """Push refreshed inbox counters. Optional for sinks."""


class NullRealtimeSink(RealtimeSink):
    """Sink used when no real-time transport is configured."""

    def push(self, owner_id: int, record: NotificationRecord) -> None:
        logger.debug("No real-time sink configured; skipping push for user %s", owner_id)


class InMemoryRealtimeSink(RealtimeSink):
    """Collects pushed messages per user, keyed like a socket room."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: dict[int, list[dict]] = defaultdict(list)

    def push(self, owner_id: int, record: NotificationRecord) -> None:
        with self._lock:
            self._messages[owner_id].append(
                {"event": "new_notification", "data": record.to_dict()}
            )

    def push_stats(self, owner_id: int, stats: NotificationStats) -> None:
        with self._lock:
            self._messages[owner_id].append(
                {"event": "notification_stats", "data": stats.to_dict()}
            )

    def messages(self, owner_id: int, event: Optional[str] = None) -> list[dict]:
        with self._lock:
            items = list(self._messages.get(owner_id, []))
        if event is not None:
            items = [m for m in items if m["event"] == event]
        return items

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()


class EmailSender(ABC):
    """Sends notification emails for email-eligible event types."""

    @abstractmethod
    def send(self, address: str, event_type: EventType, payload: Mapping[str, Any]) -> None:
        """Send one notification email.

        Args:
            address: Recipient email address.
            event_type: Event being reported.
            payload: Template fields for the event.

        Raises:
            DeliveryFailureError: If the message could not be sent.
        """


class RecordingEmailSender(EmailSender):
    """Keeps sent emails in memory instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[dict] = []

    def send(self, address: str, event_type: EventType, payload: Mapping[str, Any]) -> None:
        rendered = render_text(event_type, payload)
        self.sent.append({
            "to": address,
            "event_type": event_type,
            "subject": f"Farmheart - {rendered.title}",
            "payload": dict(payload),
        })


class SmtpEmailSender(EmailSender):
    """SMTP delivery with STARTTLS."""

    def __init__(self, config: Optional[EmailConfig] = None) -> None:
        self.config = config or EmailConfig()

    def send(self, address: str, event_type: EventType, payload: Mapping[str, Any]) -> None:
        if not self.config.is_configured:
            logger.warning("SMTP not configured; skipping %s email", event_type.value)
            return

        subject, html_body, text_body = self.format_message(event_type, payload)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.config.sender_name} <{self.config.sender_email}>"
        msg["To"] = address
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(
                self.config.smtp_host,
                self.config.smtp_port,
                timeout=self.config.timeout_seconds,
            ) as server:
                if self.config.use_tls:
                    server.starttls()
                if self.config.username:
                    server.login(self.config.username, self.config.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailureError("email", f"SMTP delivery failed: {e}") from e

        logger.info("Email sent to %s: %s", address, subject)

    def format_message(
        self,
        event_type: EventType,
        payload: Mapping[str, Any],
    ) -> tuple[str, str, str]:
        """Build subject, HTML body, and plain-text body."""
        rendered = render_text(event_type, payload)
        subject = f"Farmheart - {rendered.title}"

        link = ""
        action_url = payload.get("action_url")
        if action_url:
            link = f"{self.config.base_url.rstrip('/')}{action_url}"

        text_body = rendered.message
        if link:
            text_body += f"\n\nView your animal: {link}"

        html_body = (
            "<html><body>"
            f"<h2>{escape(rendered.title)}</h2>"
            f"<p>{escape(rendered.message)}</p>"
        )
        if link:
            html_body += f'<p><a href="{escape(link)}">View your animal</a></p>'
        sl_url = payload.get("sl_url")
        if sl_url:
            html_body += f'<p><a href="{escape(sl_url)}">Teleport to location</a></p>'
        html_body += "</body></html>"

        return subject, html_body, text_body
