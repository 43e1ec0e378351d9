"""Animal status data models.

Dataclasses for stat snapshots, candidate events and their typed payloads,
stored notification records, and channel preferences.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union
from urllib.parse import quote

from src.animal_status.config import (
    DEFAULT_POSITION,
    STAT_MAX,
    STAT_MIN,
    EventType,
    LifecycleState,
    NotificationCategory,
    Severity,
)
from src.animal_status.errors import InvalidStatsError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clamp_percent(value: Any) -> int:
    """Round a raw stat to an integer percentage in [0, 100]."""
    return max(STAT_MIN, min(STAT_MAX, int(round(float(value)))))


_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no"})


def parse_flag(value: Any) -> bool:
    """Interpret a boolean stat sent as a bool, number, or string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean: {value!r}")


# Inbound field name -> StatUpdate attribute. Accepts both the camelCase keys
# sent by in-world objects and snake_case keys used internally.
_UPDATE_FIELD_ALIASES = {
    "hungerPercent": "hunger_percent",
    "hunger_percent": "hunger_percent",
    "hunger": "hunger_percent",
    "happinessPercent": "happiness_percent",
    "happiness_percent": "happiness_percent",
    "happiness": "happiness_percent",
    "heatPercent": "heat_percent",
    "heat_percent": "heat_percent",
    "heat": "heat_percent",
    "isOperable": "is_operable",
    "is_operable": "is_operable",
    "isBreedable": "is_breedable",
    "is_breedable": "is_breedable",
    "ageDays": "age_days",
    "age_days": "age_days",
}


@dataclass(frozen=True)
class StatUpdate:
    """Raw stats reported for an animal, before classification.

    Percentages are clamped to [0, 100] on construction.
    """

    hunger_percent: int = 0
    happiness_percent: int = 100
    heat_percent: int = 0
    is_operable: bool = True
    is_breedable: bool = False
    age_days: int = 0

    def __post_init__(self) -> None:
        for name in ("hunger_percent", "happiness_percent", "heat_percent"):
            object.__setattr__(self, name, clamp_percent(getattr(self, name)))

    @classmethod
    def coerce(
        cls,
        data: Union["StatUpdate", Mapping[str, Any]],
        entity_id: Optional[int] = None,
    ) -> "StatUpdate":
        """Build a StatUpdate from an update object or a loose mapping.

        Raises:
            InvalidStatsError: If a value cannot be interpreted.
        """
        if isinstance(data, StatUpdate):
            return data
        if not isinstance(data, Mapping):
            raise InvalidStatsError(
                f"Unsupported stats payload: {type(data).__name__}", entity_id,
            )

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            attr = _UPDATE_FIELD_ALIASES.get(key)
            if attr is None or value is None:
                continue
            try:
                if attr in ("is_operable", "is_breedable"):
                    kwargs[attr] = parse_flag(value)
                elif attr == "age_days":
                    kwargs[attr] = int(value)
                else:
                    kwargs[attr] = clamp_percent(value)
            except (TypeError, ValueError) as e:
                raise InvalidStatsError(
                    f"Invalid value for {key}: {value!r}", entity_id, field=key,
                ) from e

        return cls(**kwargs)


@dataclass(frozen=True)
class StatSnapshot:
    """A recorded stat reading for one animal. Immutable once written."""

    entity_id: int
    hunger_percent: int
    happiness_percent: int
    heat_percent: int
    is_operable: bool = True
    is_breedable: bool = False
    lifecycle_state: LifecycleState = LifecycleState.ACTIVE
    recorded_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        for name in ("hunger_percent", "happiness_percent", "heat_percent"):
            object.__setattr__(self, name, clamp_percent(getattr(self, name)))

    @classmethod
    def from_update(
        cls,
        entity_id: int,
        update: StatUpdate,
        lifecycle_state: LifecycleState = LifecycleState.ACTIVE,
        recorded_at: Optional[datetime] = None,
    ) -> "StatSnapshot":
        return cls(
            entity_id=entity_id,
            hunger_percent=update.hunger_percent,
            happiness_percent=update.happiness_percent,
            heat_percent=update.heat_percent,
            is_operable=update.is_operable,
            is_breedable=update.is_breedable,
            lifecycle_state=lifecycle_state,
            recorded_at=recorded_at or _utc_now(),
        )

    @classmethod
    def healthy_baseline(cls, entity_id: int) -> "StatSnapshot":
        """Stand-in for a missing previous snapshot.

        A first-ever evaluation compares against a perfectly healthy animal,
        so only genuinely bad first readings raise alerts.
        """
        return cls(
            entity_id=entity_id,
            hunger_percent=0,
            happiness_percent=100,
            heat_percent=0,
            is_operable=True,
            is_breedable=False,
            lifecycle_state=LifecycleState.ACTIVE,
        )

    def with_state(self, lifecycle_state: LifecycleState, is_operable: bool) -> "StatSnapshot":
        return replace(self, lifecycle_state=lifecycle_state, is_operable=is_operable)

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "hunger_percent": self.hunger_percent,
            "happiness_percent": self.happiness_percent,
            "heat_percent": self.heat_percent,
            "is_operable": self.is_operable,
            "is_breedable": self.is_breedable,
            "lifecycle_state": self.lifecycle_state.value,
            "recorded_at": self.recorded_at.isoformat(),
        }


@dataclass(frozen=True)
class Location:
    """In-world position of an animal, used for teleport links."""

    entity_id: int
    region: str
    x: float = DEFAULT_POSITION[0]
    y: float = DEFAULT_POSITION[1]
    z: float = DEFAULT_POSITION[2]

    @property
    def sl_url(self) -> str:
        """secondlife:// teleport URL for the animal's position."""
        return (
            f"secondlife://{quote(self.region)}/"
            f"{round(self.x)}/{round(self.y)}/{round(self.z)}"
        )

    @property
    def action_url(self) -> str:
        return f"/animals/{self.entity_id}"

    def to_metadata(self) -> dict:
        return {
            "region": self.region,
            "coordinates": {"x": self.x, "y": self.y, "z": self.z},
            "sl_url": self.sl_url,
            "action_url": self.action_url,
        }


@dataclass
class EntityMeta:
    """Owner and descriptive data for an animal, as held by the store."""

    entity_id: int
    owner_id: int
    display_name: str = "Unnamed Animal"
    lifecycle_state: LifecycleState = LifecycleState.ACTIVE
    owner_email: Optional[str] = None
    age_days: int = 0
    region: Optional[str] = None
    position: Optional[tuple[float, float, float]] = None

    def location(
        self,
        default_region: str,
        default_position: tuple[float, float, float] = DEFAULT_POSITION,
    ) -> Location:
        x, y, z = self.position or default_position
        return Location(
            entity_id=self.entity_id,
            region=self.region or default_region,
            x=x,
            y=y,
            z=z,
        )


# ── Event payloads ───────────────────────────────────────────────────


@dataclass(frozen=True)
class RetiredPayload:
    """Payload for the one-time retirement notice."""

    animal_name: str
    age_days: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class InoperablePayload:
    """Payload for an animal that stopped functioning."""

    animal_name: str
    hunger_percent: int
    happiness_percent: int
    heat_percent: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BreedingReadyPayload:
    animal_name: str
    heat_percent: int
    happiness_percent: int
    hunger_percent: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HungerPayload:
    animal_name: str
    hunger_percent: int
    previous_hunger: int
    threshold: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HappinessPayload:
    animal_name: str
    happiness_percent: int
    previous_happiness: int
    threshold: int

    def to_dict(self) -> dict:
        return asdict(self)


EventPayload = Union[
    RetiredPayload,
    InoperablePayload,
    BreedingReadyPayload,
    HungerPayload,
    HappinessPayload,
]

PAYLOAD_TYPES: dict[EventType, type] = {
    EventType.BECAME_RETIRED: RetiredPayload,
    EventType.BECAME_INOPERABLE: InoperablePayload,
    EventType.READY_TO_BREED: BreedingReadyPayload,
    EventType.HUNGER: HungerPayload,
    EventType.CRITICAL_HUNGER: HungerPayload,
    EventType.LOW_HAPPINESS: HappinessPayload,
    EventType.CRITICAL_HAPPINESS: HappinessPayload,
}


@dataclass(frozen=True)
class Event:
    """Candidate event produced by one evaluation pass. Never persisted."""

    event_type: EventType
    severity: Severity
    entity_id: int
    owner_id: int
    payload: EventPayload
    email_eligible: bool = False
    location: Optional[Location] = None

    def __post_init__(self) -> None:
        expected = PAYLOAD_TYPES[self.event_type]
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"{self.event_type.value} requires {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )

    def fields(self) -> dict[str, Any]:
        """Flat field -> value mapping used for template substitution."""
        values = self.payload.to_dict()
        if self.location is not None:
            values.update(self.location.to_metadata())
        return values


# ── Stored records ───────────────────────────────────────────────────


@dataclass
class NotificationRecord:
    """A notification stored for a user.

    Created by the dispatcher; afterwards only read/dismiss change it.
    """

    owner_id: int
    entity_id: int
    event_type: EventType
    title: str
    message: str
    severity: Severity
    category: NotificationCategory
    metadata: dict = field(default_factory=dict)
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_utc_now)
    is_read: bool = False
    is_dismissed: bool = False
    read_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None

    def mark_read(self, when: Optional[datetime] = None) -> None:
        self.is_read = True
        self.read_at = when or _utc_now()

    def mark_dismissed(self, when: Optional[datetime] = None) -> None:
        self.is_dismissed = True
        self.dismissed_at = when or _utc_now()

    def to_dict(self) -> dict:
        """Serialize in the shape pushed to connected clients."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "entity_id": self.entity_id,
            "event_type": self.event_type.value,
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "metadata": self.metadata,
            "is_read": self.is_read,
            "is_dismissed": self.is_dismissed,
            "created_at": self.created_at.isoformat(),
            "read_at": self.read_at.isoformat() if self.read_at else None,
        }


@dataclass
class ChannelPreference:
    """Per-user delivery channel switches."""

    owner_id: int
    in_app_enabled: bool = True
    email_enabled: bool = False
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @classmethod
    def default(cls, owner_id: int) -> "ChannelPreference":
        return cls(owner_id=owner_id)

    @property
    def any_enabled(self) -> bool:
        return self.in_app_enabled or self.email_enabled

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "in_app_enabled": self.in_app_enabled,
            "email_enabled": self.email_enabled,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class PreferenceChange:
    """Result of a user updating their channel preferences."""

    preference: ChannelPreference
    in_app_changed: bool
    email_changed: bool
    email_just_enabled: bool
    email_just_disabled: bool


@dataclass
class NotificationPage:
    """One page of a user's inbox."""

    notifications: list[NotificationRecord]
    total_count: int
    unread_count: int
    has_more: bool


@dataclass
class NotificationStats:
    """Inbox counters over undismissed notifications."""

    total: int = 0
    unread: int = 0
    today: int = 0
    critical: int = 0

    def to_dict(self) -> dict:
        return {
            "total_notifications": self.total,
            "unread_count": self.unread,
            "today_count": self.today,
            "critical_count": self.critical,
        }
