"""Animal status evaluation and notification dispatch engine.

Entry point for inbound stat updates. For one animal it loads the previous
snapshot, classifies the new reading, evaluates threshold rules, drops
duplicates, and dispatches what remains. The engine is best-effort: it
never raises into the update that triggered it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from src.animal_status.channels import EmailSender, RealtimeSink
from src.animal_status.config import DEFAULT_STATUS_ENGINE_CONFIG, StatusEngineConfig
from src.animal_status.dispatcher import Dispatcher
from src.animal_status.errors import EntityNotFoundError, InvalidStatsError
from src.animal_status.evaluator import ThresholdEvaluator
from src.animal_status.lifecycle import LifecycleClassifier
from src.animal_status.models import (
    ChannelPreference,
    EntityMeta,
    Event,
    StatSnapshot,
    StatUpdate,
)
from src.animal_status.preferences import PreferenceResolver
from src.animal_status.store import StatusStore
from src.animal_status.suppression import DuplicateSuppressor
from src.logging_config import LogContext, log_performance

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StatusEngine:
    """Evaluates stat updates and creates notifications.

    Example:
        engine = StatusEngine(store, sink=InMemoryRealtimeSink())
        created = engine.on_stats_updated(42, {"hungerPercent": 80, "isOperable": True})
    """

    def __init__(
        self,
        store: StatusStore,
        sink: Optional[RealtimeSink] = None,
        email_sender: Optional[EmailSender] = None,
        config: Optional[StatusEngineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or DEFAULT_STATUS_ENGINE_CONFIG
        self.store = store
        self._clock = clock or _utc_now
        self.classifier = LifecycleClassifier()
        self.evaluator = ThresholdEvaluator(self.config)
        self.suppressor = DuplicateSuppressor(store, self.config.cooldown_seconds)
        self.preferences = PreferenceResolver(store)
        self.dispatcher = Dispatcher(store, sink, email_sender, self.config)

    @log_performance(threshold_ms=500)
    def on_stats_updated(
        self,
        entity_id: int,
        new_stats: Union[StatUpdate, Mapping[str, Any]],
    ) -> int:
        """Process a stat update for one animal.

        Args:
            entity_id: Animal the stats belong to.
            new_stats: New readings, as a StatUpdate or a mapping with
                       camelCase or snake_case keys.

        Returns:
            Number of notification records created.
        """
        with LogContext(entity_id=entity_id) as ctx:
            try:
                return self._process(entity_id, new_stats, ctx)
            except EntityNotFoundError:
                logger.warning("Animal %s not found for notification check", entity_id)
                return 0
            except InvalidStatsError as e:
                logger.warning("Rejected stats for animal %s: %s", entity_id, e.message)
                return 0
            except Exception:
                logger.error(
                    "Error checking animal %s status for notifications",
                    entity_id,
                    exc_info=True,
                )
                return 0

    def _process(
        self,
        entity_id: int,
        new_stats: Union[StatUpdate, Mapping[str, Any]],
        ctx: LogContext,
    ) -> int:
        meta = self.store.get_owner_and_entity_meta(entity_id)
        ctx.bind(owner_id=meta.owner_id)
        update = StatUpdate.coerce(new_stats, entity_id)

        previous = self._previous_snapshot(entity_id)
        raw = StatSnapshot.from_update(
            entity_id, update, meta.lifecycle_state, recorded_at=self._clock(),
        )
        classification = self.classifier.assess(raw, previous)
        current = raw.with_state(classification.state, classification.is_operable)

        preference = self.preferences.resolve(meta.owner_id)
        if not preference.any_enabled:
            logger.debug("All channels disabled for user %s", meta.owner_id)
            self._record(entity_id, current)
            return 0

        events = self.evaluator.evaluate(previous, current, meta)
        created = self._deliver(events, preference, meta)

        self._record(entity_id, current)
        if created:
            logger.info(
                "Created %d notifications for animal %s (%d candidates)",
                created, entity_id, len(events),
            )
        return created

    def _deliver(
        self,
        events: list[Event],
        preference: ChannelPreference,
        meta: EntityMeta,
    ) -> int:
        created = 0
        for event in events:
            try:
                with self.suppressor.claim(
                    event.owner_id, event.entity_id, event.event_type,
                ) as duplicate:
                    if duplicate:
                        continue
                    record = self.dispatcher.dispatch(
                        event, preference, meta.owner_email,
                        window_seconds=self.suppressor.cooldown_seconds,
                    )
                if record is not None:
                    created += 1
            except Exception:
                logger.error(
                    "Error creating %s notification for animal %s",
                    event.event_type.value, event.entity_id,
                    exc_info=True,
                )
        return created

    def _previous_snapshot(self, entity_id: int) -> Optional[StatSnapshot]:
        try:
            return self.store.get_previous_snapshot(entity_id)
        except Exception:
            logger.warning(
                "Could not load previous stats for animal %s; treating as first reading",
                entity_id,
                exc_info=True,
            )
            return None

    def _record(self, entity_id: int, snapshot: StatSnapshot) -> None:
        try:
            self.store.record_snapshot(entity_id, snapshot)
        except Exception:
            logger.warning("Could not record stats for animal %s", entity_id, exc_info=True)
