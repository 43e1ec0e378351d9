"""Exception hierarchy for the animal status engine.

Each class maps to one failure mode of an evaluation pass. Only
``EntityNotFoundError`` and ``InvalidStatsError`` abort a pass; the rest
degrade gracefully and are logged where they are caught.
"""

from typing import Optional


class AnimalStatusError(Exception):
    """Base exception for all animal status errors."""

    def __init__(self, message: str, entity_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class EntityNotFoundError(AnimalStatusError):
    """Raised when the animal being evaluated does not exist."""

    def __init__(self, entity_id: int, message: Optional[str] = None):
        super().__init__(message or f"Animal {entity_id} not found", entity_id)


class InvalidStatsError(AnimalStatusError):
    """Raised when an inbound stat update cannot be interpreted."""

    def __init__(self, message: str, entity_id: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message, entity_id)
        self.field = field


class PreferenceUnavailableError(AnimalStatusError):
    """Raised by a store when channel preferences cannot be read or written."""

    def __init__(self, owner_id: int, message: str = "Notification preferences unavailable"):
        super().__init__(message)
        self.owner_id = owner_id


class DuplicateCheckUnavailableError(AnimalStatusError):
    """Raised by a store when recent notification history cannot be queried."""


class DeliveryFailureError(AnimalStatusError):
    """Raised by a channel when a push or email could not be delivered."""

    def __init__(self, channel: str, message: str, entity_id: Optional[int] = None):
        super().__init__(message, entity_id)
        self.channel = channel
