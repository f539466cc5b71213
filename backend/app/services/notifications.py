"""Workflow notification dispatch. Best-effort; never blocks a transition.

Events are published after the owning transaction commits. When no
delivery transport is subscribed the event is written to the log, which
is the console mock used in development. A failing subscriber is logged
and skipped; it never rolls back the transition that produced the event.
"""
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from app.core.config import settings

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "pr_submitted",
    "pr_level_approved",
    "pr_approved",
    "pr_rejected",
    "pr_converted",
    "pr_cancelled",
)


@dataclass
class WorkflowEvent:
    event_type: str
    entity_type: str
    entity_id: uuid.UUID
    recipient_ids: list[uuid.UUID] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[WorkflowEvent], None]

_subscribers: list[Subscriber] = []


def subscribe(handler: Subscriber) -> None:
    if handler not in _subscribers:
        _subscribers.append(handler)


def unsubscribe(handler: Subscriber) -> None:
    if handler in _subscribers:
        _subscribers.remove(handler)


def dispatch(event: WorkflowEvent) -> None:
    """Hand an event to every subscriber; swallow and log delivery failures."""
    if not settings.NOTIFICATIONS_ENABLED:
        logger.debug("Notifications disabled; dropping %s for %s", event.event_type, event.entity_id)
        return

    if not _subscribers:
        logger.info(
            "\n"
            "=== WORKFLOW NOTIFICATION ===\n"
            "Event: %s\n"
            "Entity: %s/%s\n"
            "Recipients: %s\n"
            "=============================",
            event.event_type,
            event.entity_type,
            event.entity_id,
            ", ".join(str(r) for r in event.recipient_ids) or "(none)",
        )
        return

    for handler in list(_subscribers):
        try:
            handler(event)
        except Exception as exc:
            logger.warning(
                "Notification delivery failed for %s on %s/%s: %s",
                event.event_type, event.entity_type, event.entity_id, exc,
            )
