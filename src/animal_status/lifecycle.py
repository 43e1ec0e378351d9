"""Lifecycle classification.

Reports an animal's lifecycle state and operability so the evaluator can
detect edges. Retirement and archival are decided elsewhere (breeding-count
exhaustion, owner actions); the classifier only keeps the reported state
consistent with what was previously recorded.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.animal_status.config import LifecycleState
from src.animal_status.models import StatSnapshot

logger = logging.getLogger(__name__)

_TERMINAL_STATES = frozenset({LifecycleState.RETIRED, LifecycleState.ARCHIVED})


@dataclass(frozen=True)
class Classification:
    """Lifecycle state plus operability flag for one snapshot."""

    state: LifecycleState
    is_operable: bool

    @property
    def is_active(self) -> bool:
        return self.state == LifecycleState.ACTIVE


class LifecycleClassifier:
    """Derives lifecycle state and operability from raw stats."""

    def classify(
        self,
        current: StatSnapshot,
        previous: Optional[StatSnapshot] = None,
    ) -> LifecycleState:
        """Return the lifecycle state for the current snapshot.

        Transitions are one-directional: Active may become Retired or
        Archived, and both of those are terminal. A previously recorded
        terminal state wins over whatever the current reading claims.
        """
        state = current.lifecycle_state
        if previous is None:
            return state

        if previous.lifecycle_state in _TERMINAL_STATES and state != previous.lifecycle_state:
            logger.debug(
                "Ignoring lifecycle change for animal %s: %s -> %s",
                current.entity_id,
                previous.lifecycle_state.value,
                state.value,
            )
            return previous.lifecycle_state
        return state

    def assess(
        self,
        current: StatSnapshot,
        previous: Optional[StatSnapshot] = None,
    ) -> Classification:
        """Classify a snapshot into lifecycle state and operability."""
        return Classification(
            state=self.classify(current, previous),
            is_operable=bool(current.is_operable),
        )
