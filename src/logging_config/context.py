"""Evaluation Context Management.

Thread-safe logging context using contextvars. Binds the animal, owner,
and a correlation id to every log line emitted while one stat update is
being evaluated.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
_entity_id_var: ContextVar[Optional[int]] = ContextVar("entity_id", default=None)
_owner_id_var: ContextVar[Optional[int]] = ContextVar("owner_id", default=None)
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_correlation_id() -> str:
    """Generate a unique correlation ID using UUID4."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return _correlation_id_var.get()


def get_entity_id() -> Optional[int]:
    """Get the animal currently being evaluated."""
    return _entity_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx: dict[str, Any] = {}
    corr_id = _correlation_id_var.get()
    if corr_id:
        ctx["correlation_id"] = corr_id
    entity_id = _entity_id_var.get()
    if entity_id is not None:
        ctx["entity_id"] = entity_id
    owner_id = _owner_id_var.get()
    if owner_id is not None:
        ctx["owner_id"] = owner_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class LogContext:
    """Context manager for evaluation-scoped logging context.

    Restores the previous context on exit, so contexts can nest (a sweep
    binds its correlation id, each evaluation binds its animal).

    Example:
        with LogContext(entity_id=42):
            logger.info("evaluating")  # includes entity_id=42
    """

    entity_id: Optional[int] = None
    owner_id: Optional[int] = None
    correlation_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.correlation_id:
            self.correlation_id = _correlation_id_var.get() or generate_correlation_id()

    def __enter__(self) -> "LogContext":
        self._tokens = [
            (_correlation_id_var, _correlation_id_var.set(self.correlation_id)),
            (_entity_id_var, _entity_id_var.set(self.entity_id)),
            (_owner_id_var, _owner_id_var.set(self.owner_id)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def bind(self, **kwargs: Any) -> None:
        """Add key-value pairs to the context.

        ``owner_id`` is bound to its dedicated variable; anything else goes
        into the extra mapping.
        """
        if "owner_id" in kwargs:
            self.owner_id = kwargs.pop("owner_id")
            _owner_id_var.set(self.owner_id)
        if kwargs:
            current = _extra_context_var.get()
            _extra_context_var.set({**current, **kwargs})
            self.extra.update(kwargs)
