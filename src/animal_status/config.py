"""Configuration for animal status notifications.

Enums, thresholds, event templates, and engine settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from src.settings import Settings


class LifecycleState(Enum):
    """Coarse-grained lifecycle status of an animal."""
    ACTIVE = "active"
    RETIRED = "retired"
    ARCHIVED = "archived"


class Severity(Enum):
    """Notification severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EventType(Enum):
    """Closed set of events the evaluator can produce."""
    BECAME_RETIRED = "became_retired"
    BECAME_INOPERABLE = "became_inoperable"
    READY_TO_BREED = "ready_to_breed"
    HUNGER = "hunger"
    CRITICAL_HUNGER = "critical_hunger"
    LOW_HAPPINESS = "low_happiness"
    CRITICAL_HAPPINESS = "critical_happiness"


class NotificationCategory(Enum):
    """Notification categories shown in the inbox."""
    ANIMAL_CARE = "animal_care"
    BREEDING = "breeding"
    ACHIEVEMENT = "achievement"


class ChannelType(Enum):
    """Delivery channels."""
    IN_APP = "in_app"
    EMAIL = "email"


# Stat thresholds (percent)
HUNGER_THRESHOLD = 75
HUNGER_CRITICAL_THRESHOLD = 95
HAPPINESS_THRESHOLD = 25
HAPPINESS_CRITICAL_THRESHOLD = 5

STAT_MIN = 0
STAT_MAX = 100

DEFAULT_COOLDOWN_SECONDS = 3600

# Hunger and happiness change too often to be worth an email.
EMAIL_ELIGIBLE_TYPES: frozenset[EventType] = frozenset({
    EventType.BECAME_RETIRED,
    EventType.BECAME_INOPERABLE,
    EventType.READY_TO_BREED,
})

DEFAULT_POSITION: tuple[float, float, float] = (128.0, 128.0, 22.0)


@dataclass(frozen=True)
class EventTemplate:
    """Title/body template for one event type.

    Placeholders use ``{field}`` syntax and are filled from the event payload.
    """
    title: str
    body: str
    category: NotificationCategory


EVENT_TEMPLATES: dict[EventType, EventTemplate] = {
    EventType.HUNGER: EventTemplate(
        title="{animal_name} is getting hungry",
        body=(
            "{animal_name} hunger level has reached {hunger_percent}% "
            "(up from {previous_hunger}%). Please provide food soon to "
            "prevent health issues."
        ),
        category=NotificationCategory.ANIMAL_CARE,
    ),
    EventType.CRITICAL_HUNGER: EventTemplate(
        title="{animal_name} is critically hungry!",
        body=(
            "URGENT: {animal_name} hunger level is at {hunger_percent}% - "
            "immediate feeding required! Your animal will become inoperable "
            "if not fed soon."
        ),
        category=NotificationCategory.ANIMAL_CARE,
    ),
    EventType.LOW_HAPPINESS: EventTemplate(
        title="{animal_name} is feeling sad",
        body=(
            "{animal_name} happiness has dropped to {happiness_percent}% "
            "(down from {previous_happiness}%). Consider brushing or "
            "providing minerals to improve mood."
        ),
        category=NotificationCategory.ANIMAL_CARE,
    ),
    EventType.CRITICAL_HAPPINESS: EventTemplate(
        title="{animal_name} is very unhappy!",
        body=(
            "URGENT: {animal_name} happiness is critically low at "
            "{happiness_percent}%. Immediate care needed - brush your animal "
            "or provide minerals!"
        ),
        category=NotificationCategory.ANIMAL_CARE,
    ),
    EventType.READY_TO_BREED: EventTemplate(
        title="{animal_name} is ready to breed",
        body=(
            "Great news! {animal_name} has reached optimal breeding conditions "
            "with {heat_percent}% heat, {happiness_percent}% happiness, and "
            "{hunger_percent}% hunger."
        ),
        category=NotificationCategory.BREEDING,
    ),
    EventType.BECAME_INOPERABLE: EventTemplate(
        title="{animal_name} has become inoperable",
        body=(
            "CRITICAL: {animal_name} is no longer functional due to neglect "
            "(Hunger: {hunger_percent}%, Happiness: {happiness_percent}%). "
            "Feed and care for your animal immediately to restore "
            "functionality!"
        ),
        category=NotificationCategory.ANIMAL_CARE,
    ),
    EventType.BECAME_RETIRED: EventTemplate(
        title="{animal_name} has retired!",
        body=(
            "Congratulations! {animal_name} has completed its breeding cycle "
            "at {age_days} days old and is now retired. No more feeding or "
            "care required - just enjoy riding and companionship!"
        ),
        category=NotificationCategory.ACHIEVEMENT,
    ),
}


@dataclass
class EmailConfig:
    """SMTP delivery configuration."""
    smtp_host: str = ""
    smtp_port: int = 587
    use_tls: bool = True
    username: str = ""
    password: str = ""
    sender_email: str = "noreply@farmheart.com"
    sender_name: str = "Farmheart"
    timeout_seconds: int = 30
    base_url: str = "http://localhost:3000"

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.sender_email)


@dataclass
class StatusEngineConfig:
    """Top-level status engine configuration."""
    cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS
    hunger_threshold: int = HUNGER_THRESHOLD
    hunger_critical_threshold: int = HUNGER_CRITICAL_THRESHOLD
    happiness_threshold: int = HAPPINESS_THRESHOLD
    happiness_critical_threshold: int = HAPPINESS_CRITICAL_THRESHOLD
    email_eligible_types: frozenset[EventType] = EMAIL_ELIGIBLE_TYPES
    default_region: str = "Sandbox Island"
    default_position: tuple[float, float, float] = DEFAULT_POSITION
    email: EmailConfig = field(default_factory=EmailConfig)

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None) -> "StatusEngineConfig":
        """Build engine config from environment-backed settings."""
        if settings is None:
            from src.settings import get_settings
            settings = get_settings()

        return cls(
            cooldown_seconds=settings.notification_cooldown_seconds,
            default_region=settings.default_region,
            email=EmailConfig(
                smtp_host=settings.smtp_host,
                smtp_port=settings.smtp_port,
                use_tls=settings.smtp_use_tls,
                username=settings.smtp_username,
                password=settings.smtp_password,
                sender_email=settings.from_email,
                timeout_seconds=settings.smtp_timeout_seconds,
                base_url=settings.public_base_url,
            ),
        )


DEFAULT_STATUS_ENGINE_CONFIG = StatusEngineConfig()
