"""Threshold evaluation rules.

Compares the previous and current snapshot of one animal and produces the
candidate events for this update. Rules run in a fixed order because the
later ones are gated on the earlier ones:

1. Lifecycle: Retired emits a single retirement notice on the edge and
   nothing else; Archived emits nothing.
2. Operability: operable -> inoperable emits a critical event.
3. Breeding readiness: not breedable -> breedable (operable animals only).
4. Hunger: rising edge at or above the hunger threshold (operable only).
5. Happiness: falling edge at or below the happiness threshold (operable only).

Hunger and happiness re-fire on every qualifying move while past the
threshold; the duplicate suppressor caps how often that reaches a user.
"""

import logging
from typing import Optional

from src.animal_status.config import (
    DEFAULT_STATUS_ENGINE_CONFIG,
    EventType,
    LifecycleState,
    Severity,
    StatusEngineConfig,
)
from src.animal_status.models import (
    BreedingReadyPayload,
    EntityMeta,
    Event,
    EventPayload,
    HappinessPayload,
    HungerPayload,
    InoperablePayload,
    Location,
    RetiredPayload,
    StatSnapshot,
)

logger = logging.getLogger(__name__)


class ThresholdEvaluator:
    """Edge-triggered rule engine for animal stats."""

    def __init__(self, config: Optional[StatusEngineConfig] = None) -> None:
        self.config = config or DEFAULT_STATUS_ENGINE_CONFIG

    def evaluate(
        self,
        prev: Optional[StatSnapshot],
        curr: StatSnapshot,
        meta: Optional[EntityMeta] = None,
    ) -> list[Event]:
        """Produce candidate events for one update.

        Args:
            prev: Last recorded snapshot, or None on the first reading.
            curr: Classified current snapshot.
            meta: Owner and display data used to fill event payloads.

        Returns:
            Candidate events in rule order.
        """
        baseline = prev or StatSnapshot.healthy_baseline(curr.entity_id)
        meta = meta or EntityMeta(entity_id=curr.entity_id, owner_id=0)
        location = meta.location(
            self.config.default_region, self.config.default_position,
        )
        name = meta.display_name or "Unnamed Animal"
        events: list[Event] = []

        def emit(event_type: EventType, severity: Severity, payload: EventPayload) -> None:
            events.append(self._make_event(
                event_type, severity, meta, payload, location,
            ))

        # 1. Lifecycle
        if curr.lifecycle_state == LifecycleState.ARCHIVED:
            return events
        if curr.lifecycle_state == LifecycleState.RETIRED:
            if baseline.lifecycle_state != LifecycleState.RETIRED:
                emit(
                    EventType.BECAME_RETIRED,
                    Severity.MEDIUM,
                    RetiredPayload(animal_name=name, age_days=meta.age_days),
                )
            return events

        # 2. Operability
        if not curr.is_operable and baseline.is_operable:
            emit(
                EventType.BECAME_INOPERABLE,
                Severity.CRITICAL,
                InoperablePayload(
                    animal_name=name,
                    hunger_percent=curr.hunger_percent,
                    happiness_percent=curr.happiness_percent,
                    heat_percent=curr.heat_percent,
                ),
            )

        if not curr.is_operable:
            return events

        # 3. Breeding readiness
        if curr.is_breedable and not baseline.is_breedable:
            emit(
                EventType.READY_TO_BREED,
                Severity.MEDIUM,
                BreedingReadyPayload(
                    animal_name=name,
                    heat_percent=curr.heat_percent,
                    happiness_percent=curr.happiness_percent,
                    hunger_percent=curr.hunger_percent,
                ),
            )

        # 4. Hunger
        hunger_event = self._check_hunger(prev, baseline, curr, name)
        if hunger_event is not None:
            emit(*hunger_event)

        # 5. Happiness
        happiness_event = self._check_happiness(prev, baseline, curr, name)
        if happiness_event is not None:
            emit(*happiness_event)

        if events:
            logger.debug(
                "Animal %s produced %d candidate events: %s",
                curr.entity_id,
                len(events),
                ", ".join(e.event_type.value for e in events),
            )
        return events

    def _check_hunger(
        self,
        prev: Optional[StatSnapshot],
        baseline: StatSnapshot,
        curr: StatSnapshot,
        name: str,
    ) -> Optional[tuple[EventType, Severity, HungerPayload]]:
        cfg = self.config
        hunger = curr.hunger_percent
        if hunger < cfg.hunger_threshold:
            return None
        if prev is not None and hunger <= baseline.hunger_percent:
            return None

        critical = hunger >= cfg.hunger_critical_threshold
        return (
            EventType.CRITICAL_HUNGER if critical else EventType.HUNGER,
            Severity.CRITICAL if critical else Severity.HIGH,
            HungerPayload(
                animal_name=name,
                hunger_percent=hunger,
                previous_hunger=baseline.hunger_percent,
                threshold=cfg.hunger_critical_threshold if critical else cfg.hunger_threshold,
            ),
        )

    def _check_happiness(
        self,
        prev: Optional[StatSnapshot],
        baseline: StatSnapshot,
        curr: StatSnapshot,
        name: str,
    ) -> Optional[tuple[EventType, Severity, HappinessPayload]]:
        cfg = self.config
        happiness = curr.happiness_percent
        if happiness > cfg.happiness_threshold:
            return None
        if prev is not None and happiness >= baseline.happiness_percent:
            return None

        critical = happiness <= cfg.happiness_critical_threshold
        return (
            EventType.CRITICAL_HAPPINESS if critical else EventType.LOW_HAPPINESS,
            Severity.CRITICAL if critical else Severity.HIGH,
            HappinessPayload(
                animal_name=name,
                happiness_percent=happiness,
                previous_happiness=baseline.happiness_percent,
                threshold=(
                    cfg.happiness_critical_threshold if critical
                    else cfg.happiness_threshold
                ),
            ),
        )

    def _make_event(
        self,
        event_type: EventType,
        severity: Severity,
        meta: EntityMeta,
        payload: EventPayload,
        location: Location,
    ) -> Event:
        return Event(
            event_type=event_type,
            severity=severity,
            entity_id=meta.entity_id,
            owner_id=meta.owner_id,
            payload=payload,
            email_eligible=event_type in self.config.email_eligible_types,
            location=location,
        )
