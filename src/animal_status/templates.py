"""Notification text rendering from event templates."""

import re
from dataclasses import dataclass
from typing import Any, Mapping

from src.animal_status.config import EVENT_TEMPLATES, EventType, NotificationCategory
from src.animal_status.models import Event

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class RenderedNotification:
    title: str
    message: str
    category: NotificationCategory


def fill_placeholders(template: str, values: Mapping[str, Any]) -> str:
    """Replace ``{name}`` placeholders; unknown names are left as-is."""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in values and values[key] is not None:
            return str(values[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def render_text(event_type: EventType, values: Mapping[str, Any]) -> RenderedNotification:
    """Render title and body for an event type from a field mapping."""
    template = EVENT_TEMPLATES[event_type]
    return RenderedNotification(
        title=fill_placeholders(template.title, values),
        message=fill_placeholders(template.body, values),
        category=template.category,
    )


def render_event(event: Event) -> RenderedNotification:
    """Render title and body for a candidate event."""
    return render_text(event.event_type, event.fields())
