"""Tests for duplicate suppression, preferences, channels, and dispatch."""

import smtplib
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from src.animal_status.channels import (
    InMemoryRealtimeSink,
    RealtimeSink,
    RecordingEmailSender,
    SmtpEmailSender,
)
from src.animal_status.config import (
    ChannelType,
    EmailConfig,
    EventType,
    NotificationCategory,
    Severity,
)
from src.animal_status.dispatcher import Dispatcher
from src.animal_status.errors import (
    DeliveryFailureError,
    DuplicateCheckUnavailableError,
    PreferenceUnavailableError,
)
from src.animal_status.models import (
    BreedingReadyPayload,
    ChannelPreference,
    EntityMeta,
    Event,
    HungerPayload,
    NotificationRecord,
)
from src.animal_status.preferences import PreferenceResolver
from src.animal_status.store import InMemoryStatusStore
from src.animal_status.suppression import DuplicateSuppressor

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def hunger_event(owner_id=1, entity_id=10):
    meta = EntityMeta(entity_id=entity_id, owner_id=owner_id, display_name="Bessie")
    return Event(
        event_type=EventType.CRITICAL_HUNGER,
        severity=Severity.CRITICAL,
        entity_id=entity_id,
        owner_id=owner_id,
        payload=HungerPayload("Bessie", 96, 80, 95),
        location=meta.location("Sandbox Island"),
    )


def breed_event(owner_id=1, entity_id=10):
    meta = EntityMeta(entity_id=entity_id, owner_id=owner_id, display_name="Daisy")
    return Event(
        event_type=EventType.READY_TO_BREED,
        severity=Severity.MEDIUM,
        entity_id=entity_id,
        owner_id=owner_id,
        payload=BreedingReadyPayload("Daisy", 80, 70, 20),
        email_eligible=True,
        location=meta.location("Sandbox Island"),
    )


def stored(store, owner_id=1, entity_id=10, event_type=EventType.HUNGER):
    return store.insert_notification(NotificationRecord(
        owner_id=owner_id,
        entity_id=entity_id,
        event_type=event_type,
        title="t",
        message="m",
        severity=Severity.HIGH,
        category=NotificationCategory.ANIMAL_CARE,
    ))


class BrokenHistoryStore(InMemoryStatusStore):
    def find_recent_notification(self, *args, **kwargs):
        raise DuplicateCheckUnavailableError("history offline")


class BrokenPreferenceStore(InMemoryStatusStore):
    def get_preference(self, owner_id):
        raise PreferenceUnavailableError(owner_id)


class FailingSink(RealtimeSink):
    def push(self, owner_id, record):
        raise DeliveryFailureError("in_app", "socket closed")


class FailingEmailSender(RecordingEmailSender):
    def send(self, address, event_type, payload):
        raise DeliveryFailureError("email", "smtp down")


# ── Duplicate Suppression ────────────────────────────────────────────


class TestDuplicateSuppressor:
    def setup_method(self):
        self.now = START
        self.store = InMemoryStatusStore(clock=lambda: self.now)
        self.suppressor = DuplicateSuppressor(self.store, cooldown_seconds=3600)

    def test_no_history_is_not_duplicate(self):
        assert not self.suppressor.is_duplicate(1, 10, EventType.HUNGER)

    def test_recent_same_type_is_duplicate(self):
        stored(self.store)
        self.now += timedelta(minutes=30)
        assert self.suppressor.is_duplicate(1, 10, EventType.HUNGER)

    def test_other_type_is_not_duplicate(self):
        stored(self.store)
        assert not self.suppressor.is_duplicate(1, 10, EventType.CRITICAL_HUNGER)

    def test_other_animal_is_not_duplicate(self):
        stored(self.store)
        assert not self.suppressor.is_duplicate(1, 11, EventType.HUNGER)

    def test_expired_window_is_not_duplicate(self):
        stored(self.store)
        self.now += timedelta(seconds=3601)
        assert not self.suppressor.is_duplicate(1, 10, EventType.HUNGER)

    def test_dismissed_is_not_duplicate(self):
        record = stored(self.store)
        self.store.dismiss(1, [record.id])
        assert not self.suppressor.is_duplicate(1, 10, EventType.HUNGER)

    def test_custom_cooldown(self):
        stored(self.store)
        self.now += timedelta(seconds=120)
        assert not self.suppressor.is_duplicate(1, 10, EventType.HUNGER, cooldown_seconds=60)

    def test_fails_open(self):
        suppressor = DuplicateSuppressor(BrokenHistoryStore())
        assert not suppressor.is_duplicate(1, 10, EventType.HUNGER)

    def test_claim_releases_lock(self):
        with self.suppressor.claim(1, 10, EventType.HUNGER) as duplicate:
            assert duplicate is False
            assert self.suppressor.active_claims == 1
        assert self.suppressor.active_claims == 0

    def test_concurrent_claims_store_once(self):
        barrier = threading.Barrier(8)
        created = []

        def worker():
            barrier.wait()
            with self.suppressor.claim(1, 10, EventType.HUNGER) as duplicate:
                if not duplicate:
                    created.append(stored(self.store))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(created) == 1
        assert len(self.store.all_notifications(1)) == 1
        assert self.suppressor.active_claims == 0


# ── Preferences ──────────────────────────────────────────────────────


class TestPreferenceResolver:
    def setup_method(self):
        self.store = InMemoryStatusStore()
        self.resolver = PreferenceResolver(self.store)

    def test_creates_default_on_first_access(self):
        pref = self.resolver.resolve(5)
        assert pref.in_app_enabled is True
        assert pref.email_enabled is False
        assert self.store.get_preference(5) is not None

    def test_returns_stored_preference(self):
        self.store.upsert_preference(ChannelPreference(owner_id=5, in_app_enabled=False, email_enabled=True))
        pref = self.resolver.resolve(5)
        assert pref.in_app_enabled is False
        assert pref.email_enabled is True

    def test_insert_if_absent_keeps_existing(self):
        self.store.upsert_preference(ChannelPreference(owner_id=5, email_enabled=True))
        pref = self.store.upsert_preference(ChannelPreference.default(5), overwrite=False)
        assert pref.email_enabled is True

    def test_falls_back_to_defaults_on_error(self):
        resolver = PreferenceResolver(BrokenPreferenceStore())
        pref = resolver.resolve(5)
        assert pref.in_app_enabled is True
        assert pref.email_enabled is False

    def test_update(self):
        change = self.resolver.update(5, in_app_enabled=True, email_enabled=True)
        assert change.email_changed
        assert change.email_just_enabled
        assert not change.in_app_changed
        assert self.store.get_preference(5).email_enabled is True

    def test_update_rejects_non_bool(self):
        with pytest.raises(ValueError):
            self.resolver.update(5, in_app_enabled="yes", email_enabled=False)

    def test_concurrent_first_access_creates_one_record(self):
        barrier = threading.Barrier(6)
        results = []

        def worker():
            barrier.wait()
            results.append(self.resolver.resolve(9))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 6
        assert all(p.in_app_enabled and not p.email_enabled for p in results)
        assert self.store.get_preference(9) is not None


# ── Channels ─────────────────────────────────────────────────────────


class TestChannels:
    def test_in_memory_sink_records_messages(self):
        sink = InMemoryRealtimeSink()
        record = NotificationRecord(
            owner_id=1, entity_id=2, event_type=EventType.HUNGER,
            title="t", message="m", severity=Severity.HIGH,
            category=NotificationCategory.ANIMAL_CARE, id=3,
        )
        sink.push(1, record)
        messages = sink.messages(1)
        assert len(messages) == 1
        assert messages[0]["event"] == "new_notification"
        assert messages[0]["data"]["id"] == 3
        assert sink.messages(2) == []

    def test_recording_sender(self):
        sender = RecordingEmailSender()
        sender.send("a@example.com", EventType.READY_TO_BREED, {"animal_name": "Daisy"})
        assert sender.sent[0]["to"] == "a@example.com"
        assert sender.sent[0]["subject"] == "Farmheart - Daisy is ready to breed"

    def test_smtp_sender_skips_when_unconfigured(self):
        sender = SmtpEmailSender(EmailConfig())
        with patch("smtplib.SMTP") as smtp:
            sender.send("a@example.com", EventType.BECAME_RETIRED, {"animal_name": "Daisy"})
        smtp.assert_not_called()

    def test_smtp_sender_sends(self):
        sender = SmtpEmailSender(EmailConfig(smtp_host="smtp.example.com", username="u", password="p"))
        with patch("smtplib.SMTP") as smtp:
            server = MagicMock()
            smtp.return_value.__enter__.return_value = server
            sender.send("a@example.com", EventType.BECAME_RETIRED, {"animal_name": "Daisy", "age_days": 40})
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        server.send_message.assert_called_once()

    def test_smtp_failure_raises_delivery_error(self):
        sender = SmtpEmailSender(EmailConfig(smtp_host="smtp.example.com"))
        with patch("smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
            with pytest.raises(DeliveryFailureError) as exc:
                sender.send("a@example.com", EventType.BECAME_RETIRED, {"animal_name": "Daisy"})
        assert exc.value.channel == "email"

    def test_format_message_links(self):
        sender = SmtpEmailSender(EmailConfig(base_url="https://farm.example/"))
        subject, html, text = sender.format_message(EventType.READY_TO_BREED, {
            "animal_name": "Daisy",
            "heat_percent": 80,
            "happiness_percent": 70,
            "hunger_percent": 20,
            "action_url": "/animals/4",
            "sl_url": "secondlife://Sandbox%20Island/128/128/22",
        })
        assert subject == "Farmheart - Daisy is ready to breed"
        assert "https://farm.example/animals/4" in text
        assert "secondlife://" in html


# ── Dispatcher ───────────────────────────────────────────────────────


class TestDispatcher:
    def setup_method(self):
        self.store = InMemoryStatusStore()
        self.sink = InMemoryRealtimeSink()
        self.email = RecordingEmailSender()
        self.dispatcher = Dispatcher(self.store, self.sink, self.email)

    def test_eligible_channels(self):
        both = ChannelPreference(owner_id=1, in_app_enabled=True, email_enabled=True)
        assert self.dispatcher.eligible_channels(breed_event(), both) == [
            ChannelType.IN_APP, ChannelType.EMAIL,
        ]
        assert self.dispatcher.eligible_channels(hunger_event(), both) == [ChannelType.IN_APP]

    def test_in_app_dispatch_stores_and_pushes(self):
        record = self.dispatcher.dispatch(hunger_event(), ChannelPreference.default(1))
        assert record.id is not None
        assert record.title == "Bessie is critically hungry!"
        assert record.category == NotificationCategory.ANIMAL_CARE
        assert record.metadata["event_type"] == "critical_hunger"
        assert record.metadata["hunger_percent"] == 96
        assert record.metadata["sl_url"].startswith("secondlife://")
        assert len(self.sink.messages(1, "new_notification")) == 1
        assert self.email.sent == []

    def test_email_only_eligible_type(self):
        pref = ChannelPreference(owner_id=1, in_app_enabled=False, email_enabled=True)
        record = self.dispatcher.dispatch(breed_event(), pref, "owner@example.com")
        assert record is not None
        assert len(self.email.sent) == 1
        assert self.email.sent[0]["event_type"] == EventType.READY_TO_BREED
        assert self.sink.messages(1) == []
        assert len(self.store.all_notifications(1)) == 1

    def test_email_only_ineligible_type_dropped(self):
        pref = ChannelPreference(owner_id=1, in_app_enabled=False, email_enabled=True)
        assert self.dispatcher.dispatch(hunger_event(), pref, "owner@example.com") is None
        assert self.store.all_notifications(1) == []
        assert self.email.sent == []

    def test_missing_address_skips_email(self):
        pref = ChannelPreference(owner_id=1, in_app_enabled=True, email_enabled=True)
        record = self.dispatcher.dispatch(breed_event(), pref, None)
        assert record is not None
        assert self.email.sent == []

    def test_push_failure_keeps_record(self):
        dispatcher = Dispatcher(self.store, FailingSink(), self.email)
        record = dispatcher.dispatch(hunger_event(), ChannelPreference.default(1))
        assert record is not None
        assert len(self.store.all_notifications(1)) == 1

    def test_email_failure_keeps_record(self):
        dispatcher = Dispatcher(self.store, self.sink, FailingEmailSender())
        pref = ChannelPreference(owner_id=1, in_app_enabled=True, email_enabled=True)
        record = dispatcher.dispatch(breed_event(), pref, "owner@example.com")
        assert record is not None
        assert len(self.sink.messages(1)) == 1

    def test_no_sink_is_noop(self):
        dispatcher = Dispatcher(self.store)
        assert dispatcher.dispatch(hunger_event(), ChannelPreference.default(1)) is not None

    def test_dispatch_with_window_skips_stored_duplicate(self):
        first = self.dispatcher.dispatch(
            hunger_event(), ChannelPreference.default(1), window_seconds=3600,
        )
        second = self.dispatcher.dispatch(
            hunger_event(), ChannelPreference.default(1), window_seconds=3600,
        )
        assert first is not None
        assert second is None
        assert len(self.store.all_notifications(1)) == 1
        assert len(self.sink.messages(1, "new_notification")) == 1


# ── Conditional Insert ───────────────────────────────────────────────


class TestConditionalInsert:
    def setup_method(self):
        self.now = START
        self.store = InMemoryStatusStore(clock=lambda: self.now)

    def candidate(self, event_type=EventType.HUNGER):
        return NotificationRecord(
            owner_id=1,
            entity_id=10,
            event_type=event_type,
            title="t",
            message="m",
            severity=Severity.HIGH,
            category=NotificationCategory.ANIMAL_CARE,
        )

    def test_inserts_when_absent(self):
        record = self.store.insert_notification_if_absent(self.candidate(), 3600)
        assert record.id is not None
        assert record.created_at == START

    def test_skips_inside_window(self):
        self.store.insert_notification_if_absent(self.candidate(), 3600)
        self.now += timedelta(minutes=59)
        assert self.store.insert_notification_if_absent(self.candidate(), 3600) is None
        assert self.store.insert_notification_if_absent(
            self.candidate(EventType.CRITICAL_HUNGER), 3600,
        ) is not None

    def test_inserts_after_window_or_dismissal(self):
        first = self.store.insert_notification_if_absent(self.candidate(), 3600)
        self.store.dismiss(1, [first.id])
        assert self.store.insert_notification_if_absent(self.candidate(), 3600) is not None
        self.now += timedelta(hours=2)
        assert self.store.insert_notification_if_absent(self.candidate(), 3600) is not None

    def test_unreadable_history_inserts(self):
        store = BrokenHistoryStore()
        assert store.insert_notification_if_absent(self.candidate(), 3600) is not None
        assert store.insert_notification_if_absent(self.candidate(), 3600) is not None
