"""Animal Status Notifications.

Edge-triggered evaluation of animal stat updates with duplicate
suppression and delivery to an in-app inbox, real-time push, and email.

Example:
    from src.animal_status import (
        InMemoryRealtimeSink,
        InMemoryStatusStore,
        NotificationInbox,
        StatusEngine,
    )

    store = InMemoryStatusStore()
    sink = InMemoryRealtimeSink()
    engine = StatusEngine(store, sink=sink)

    # Evaluate an inbound update
    created = engine.on_stats_updated(42, {"hungerPercent": 80, "isOperable": True})

    # Read the owner's inbox
    inbox = NotificationInbox(store, sink=sink)
    page = inbox.list_notifications(owner_id=7, unread_only=True)

    # Database-backed store
    from src.animal_status.repository import SqlStatusStore
    engine = StatusEngine(SqlStatusStore(), sink=sink)
"""

from src.animal_status.config import (
    LifecycleState,
    Severity,
    EventType,
    NotificationCategory,
    ChannelType,
    HUNGER_THRESHOLD,
    HUNGER_CRITICAL_THRESHOLD,
    HAPPINESS_THRESHOLD,
    HAPPINESS_CRITICAL_THRESHOLD,
    DEFAULT_COOLDOWN_SECONDS,
    EMAIL_ELIGIBLE_TYPES,
    EVENT_TEMPLATES,
    EventTemplate,
    EmailConfig,
    StatusEngineConfig,
    DEFAULT_STATUS_ENGINE_CONFIG,
)

from src.animal_status.errors import (
    AnimalStatusError,
    EntityNotFoundError,
    InvalidStatsError,
    PreferenceUnavailableError,
    DuplicateCheckUnavailableError,
    DeliveryFailureError,
)

from src.animal_status.models import (
    StatUpdate,
    StatSnapshot,
    Location,
    EntityMeta,
    RetiredPayload,
    InoperablePayload,
    BreedingReadyPayload,
    HungerPayload,
    HappinessPayload,
    Event,
    NotificationRecord,
    ChannelPreference,
    PreferenceChange,
    NotificationPage,
    NotificationStats,
)

from src.animal_status.channels import (
    RealtimeSink,
    NullRealtimeSink,
    InMemoryRealtimeSink,
    EmailSender,
    RecordingEmailSender,
    SmtpEmailSender,
)

from src.animal_status.store import StatusStore, InMemoryStatusStore
from src.animal_status.lifecycle import Classification, LifecycleClassifier
from src.animal_status.evaluator import ThresholdEvaluator
from src.animal_status.templates import RenderedNotification, render_event, render_text
from src.animal_status.suppression import DuplicateSuppressor
from src.animal_status.preferences import PreferenceResolver
from src.animal_status.dispatcher import Dispatcher
from src.animal_status.engine import StatusEngine
from src.animal_status.inbox import NotificationInbox
from src.animal_status.sweep import StatusSweeper, SweepResult

__all__ = [
    # Config
    "LifecycleState",
    "Severity",
    "EventType",
    "NotificationCategory",
    "ChannelType",
    "HUNGER_THRESHOLD",
    "HUNGER_CRITICAL_THRESHOLD",
    "HAPPINESS_THRESHOLD",
    "HAPPINESS_CRITICAL_THRESHOLD",
    "DEFAULT_COOLDOWN_SECONDS",
    "EMAIL_ELIGIBLE_TYPES",
    "EVENT_TEMPLATES",
    "EventTemplate",
    "EmailConfig",
    "StatusEngineConfig",
    "DEFAULT_STATUS_ENGINE_CONFIG",
    # Errors
    "AnimalStatusError",
    "EntityNotFoundError",
    "InvalidStatsError",
    "PreferenceUnavailableError",
    "DuplicateCheckUnavailableError",
    "DeliveryFailureError",
    # Models
    "StatUpdate",
    "StatSnapshot",
    "Location",
    "EntityMeta",
    "RetiredPayload",
    "InoperablePayload",
    "BreedingReadyPayload",
    "HungerPayload",
    "HappinessPayload",
    "Event",
    "NotificationRecord",
    "ChannelPreference",
    "PreferenceChange",
    "NotificationPage",
    "NotificationStats",
    # Channels
    "RealtimeSink",
    "NullRealtimeSink",
    "InMemoryRealtimeSink",
    "EmailSender",
    "RecordingEmailSender",
    "SmtpEmailSender",
    # Components
    "StatusStore",
    "InMemoryStatusStore",
    "Classification",
    "LifecycleClassifier",
    "ThresholdEvaluator",
    "RenderedNotification",
    "render_event",
    "render_text",
    "DuplicateSuppressor",
    "PreferenceResolver",
    "Dispatcher",
    "StatusEngine",
    "NotificationInbox",
    "StatusSweeper",
    "SweepResult",
]
