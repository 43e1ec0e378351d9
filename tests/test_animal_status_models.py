"""Tests for animal status data models, config, and templates."""

from datetime import datetime, timezone

import pytest

from src.animal_status.config import (
    EMAIL_ELIGIBLE_TYPES,
    EVENT_TEMPLATES,
    EmailConfig,
    EventType,
    LifecycleState,
    NotificationCategory,
    Severity,
    StatusEngineConfig,
)
from src.animal_status.errors import InvalidStatsError
from src.animal_status.models import (
    ChannelPreference,
    EntityMeta,
    Event,
    HungerPayload,
    NotificationRecord,
    NotificationStats,
    RetiredPayload,
    StatSnapshot,
    StatUpdate,
    clamp_percent,
    parse_flag,
)
from src.animal_status.templates import fill_placeholders, render_event, render_text
from src.settings import Settings


# ── Config Tests ─────────────────────────────────────────────────────


class TestStatusConfig:
    def test_event_type_values(self):
        assert len(EventType) == 7
        assert EventType.HUNGER.value == "hunger"
        assert EventType.CRITICAL_HUNGER.value == "critical_hunger"
        assert EventType.BECAME_RETIRED.value == "became_retired"

    def test_email_eligible_types(self):
        assert EMAIL_ELIGIBLE_TYPES == {
            EventType.BECAME_RETIRED,
            EventType.BECAME_INOPERABLE,
            EventType.READY_TO_BREED,
        }

    def test_every_event_type_has_template(self):
        assert set(EVENT_TEMPLATES) == set(EventType)

    def test_template_categories(self):
        assert EVENT_TEMPLATES[EventType.READY_TO_BREED].category == NotificationCategory.BREEDING
        assert EVENT_TEMPLATES[EventType.BECAME_RETIRED].category == NotificationCategory.ACHIEVEMENT
        assert EVENT_TEMPLATES[EventType.HUNGER].category == NotificationCategory.ANIMAL_CARE

    def test_default_engine_config(self):
        cfg = StatusEngineConfig()
        assert cfg.cooldown_seconds == 3600
        assert cfg.hunger_threshold == 75
        assert cfg.hunger_critical_threshold == 95
        assert cfg.happiness_threshold == 25
        assert cfg.happiness_critical_threshold == 5

    def test_from_settings(self):
        settings = Settings(
            notification_cooldown_seconds=60,
            default_region="Meadow",
            smtp_host="smtp.example.com",
        )
        cfg = StatusEngineConfig.from_settings(settings)
        assert cfg.cooldown_seconds == 60
        assert cfg.default_region == "Meadow"
        assert cfg.email.smtp_host == "smtp.example.com"
        assert cfg.email.is_configured

    def test_settings_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FARMHEART_NOTIFICATION_COOLDOWN_SECONDS", "120")
        assert Settings().notification_cooldown_seconds == 120

    def test_email_not_configured_by_default(self):
        assert not EmailConfig().is_configured


# ── Stat Models ──────────────────────────────────────────────────────


class TestStatModels:
    def test_clamp_percent(self):
        assert clamp_percent(-5) == 0
        assert clamp_percent(150) == 100
        assert clamp_percent(42.6) == 43

    def test_stat_update_clamps(self):
        update = StatUpdate(hunger_percent=120, happiness_percent=-10, heat_percent=50)
        assert update.hunger_percent == 100
        assert update.happiness_percent == 0
        assert update.heat_percent == 50

    def test_stat_update_defaults(self):
        update = StatUpdate()
        assert update.hunger_percent == 0
        assert update.happiness_percent == 100
        assert update.is_operable is True
        assert update.is_breedable is False

    def test_coerce_camel_case(self):
        update = StatUpdate.coerce({
            "hungerPercent": 80,
            "happinessPercent": 40,
            "isOperable": False,
            "isBreedable": True,
        })
        assert update.hunger_percent == 80
        assert update.happiness_percent == 40
        assert update.is_operable is False
        assert update.is_breedable is True

    def test_coerce_snake_case_and_unknown_keys(self):
        update = StatUpdate.coerce({"hunger_percent": 30, "color": "brown"})
        assert update.hunger_percent == 30

    def test_coerce_passthrough(self):
        update = StatUpdate(hunger_percent=5)
        assert StatUpdate.coerce(update) is update

    def test_coerce_rejects_bad_value(self):
        with pytest.raises(InvalidStatsError) as exc:
            StatUpdate.coerce({"hungerPercent": "lots"}, entity_id=3)
        assert exc.value.field == "hungerPercent"
        assert exc.value.entity_id == 3

    def test_coerce_rejects_non_mapping(self):
        with pytest.raises(InvalidStatsError):
            StatUpdate.coerce([1, 2, 3])

    def test_coerce_string_flags(self):
        update = StatUpdate.coerce({"isOperable": "false", "isBreedable": "TRUE"})
        assert update.is_operable is False
        assert update.is_breedable is True
        assert StatUpdate.coerce({"isOperable": "0"}).is_operable is False
        assert StatUpdate.coerce({"isOperable": 1}).is_operable is True

    def test_coerce_rejects_unreadable_flag(self):
        with pytest.raises(InvalidStatsError) as exc:
            StatUpdate.coerce({"isOperable": "maybe"})
        assert exc.value.field == "isOperable"

    def test_parse_flag(self):
        assert parse_flag(True) is True
        assert parse_flag(" no ") is False
        with pytest.raises(ValueError):
            parse_flag(2)

    def test_snapshot_clamps(self):
        snap = StatSnapshot(entity_id=1, hunger_percent=101, happiness_percent=-1, heat_percent=0)
        assert snap.hunger_percent == 100
        assert snap.happiness_percent == 0

    def test_healthy_baseline(self):
        base = StatSnapshot.healthy_baseline(9)
        assert base.hunger_percent == 0
        assert base.happiness_percent == 100
        assert base.is_operable is True
        assert base.is_breedable is False
        assert base.lifecycle_state == LifecycleState.ACTIVE

    def test_snapshot_to_dict(self):
        snap = StatSnapshot.from_update(
            4, StatUpdate(hunger_percent=10), recorded_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        d = snap.to_dict()
        assert d["entity_id"] == 4
        assert d["lifecycle_state"] == "active"
        assert d["recorded_at"].startswith("2026-01-01")


# ── Events ───────────────────────────────────────────────────────────


class TestEvent:
    def test_payload_type_checked(self):
        with pytest.raises(TypeError):
            Event(
                event_type=EventType.HUNGER,
                severity=Severity.HIGH,
                entity_id=1,
                owner_id=2,
                payload=RetiredPayload(animal_name="Bessie", age_days=10),
            )

    def test_fields_include_location(self):
        meta = EntityMeta(entity_id=1, owner_id=2, display_name="Bessie", region="Green Hills")
        event = Event(
            event_type=EventType.HUNGER,
            severity=Severity.HIGH,
            entity_id=1,
            owner_id=2,
            payload=HungerPayload("Bessie", 80, 60, 75),
            location=meta.location("Sandbox Island"),
        )
        fields = event.fields()
        assert fields["animal_name"] == "Bessie"
        assert fields["hunger_percent"] == 80
        assert fields["region"] == "Green Hills"
        assert fields["sl_url"] == "secondlife://Green%20Hills/128/128/22"
        assert fields["action_url"] == "/animals/1"

    def test_location_default_region(self):
        loc = EntityMeta(entity_id=5, owner_id=1).location("Sandbox Island")
        assert loc.region == "Sandbox Island"
        assert loc.sl_url == "secondlife://Sandbox%20Island/128/128/22"


# ── Records ──────────────────────────────────────────────────────────


class TestRecords:
    def test_notification_record_state_changes(self):
        record = NotificationRecord(
            owner_id=1, entity_id=2, event_type=EventType.HUNGER,
            title="t", message="m", severity=Severity.HIGH,
            category=NotificationCategory.ANIMAL_CARE,
        )
        assert not record.is_read
        record.mark_read()
        assert record.is_read and record.read_at is not None
        record.mark_dismissed()
        assert record.is_dismissed and record.dismissed_at is not None

    def test_notification_record_to_dict(self):
        record = NotificationRecord(
            owner_id=1, entity_id=2, event_type=EventType.HUNGER,
            title="t", message="m", severity=Severity.HIGH,
            category=NotificationCategory.ANIMAL_CARE, id=7,
        )
        d = record.to_dict()
        assert d["id"] == 7
        assert d["event_type"] == "hunger"
        assert d["severity"] == "high"
        assert d["category"] == "animal_care"

    def test_default_preference(self):
        pref = ChannelPreference.default(3)
        assert pref.in_app_enabled is True
        assert pref.email_enabled is False
        assert pref.any_enabled

    def test_preference_all_disabled(self):
        pref = ChannelPreference(owner_id=3, in_app_enabled=False, email_enabled=False)
        assert not pref.any_enabled

    def test_stats_to_dict(self):
        stats = NotificationStats(total=4, unread=2, today=1, critical=1)
        assert stats.to_dict() == {
            "total_notifications": 4,
            "unread_count": 2,
            "today_count": 1,
            "critical_count": 1,
        }


# ── Templates ────────────────────────────────────────────────────────


class TestTemplates:
    def test_fill_placeholders(self):
        assert fill_placeholders("{a} and {b}", {"a": 1, "b": "two"}) == "1 and two"

    def test_unknown_placeholder_left_as_is(self):
        assert fill_placeholders("{a} {missing}", {"a": 1}) == "1 {missing}"

    def test_none_value_left_as_is(self):
        assert fill_placeholders("{a}", {"a": None}) == "{a}"

    def test_render_hunger(self):
        rendered = render_text(EventType.HUNGER, {
            "animal_name": "Bessie", "hunger_percent": 80, "previous_hunger": 60,
        })
        assert rendered.title == "Bessie is getting hungry"
        assert "80%" in rendered.message
        assert "up from 60%" in rendered.message
        assert rendered.category == NotificationCategory.ANIMAL_CARE

    def test_render_retired(self):
        rendered = render_text(EventType.BECAME_RETIRED, {"animal_name": "Daisy", "age_days": 120})
        assert rendered.title == "Daisy has retired!"
        assert "120 days" in rendered.message
        assert rendered.category == NotificationCategory.ACHIEVEMENT

    def test_render_event(self):
        event = Event(
            event_type=EventType.BECAME_RETIRED,
            severity=Severity.MEDIUM,
            entity_id=1,
            owner_id=2,
            payload=RetiredPayload(animal_name="Daisy", age_days=5),
        )
        assert render_event(event).title == "Daisy has retired!"
