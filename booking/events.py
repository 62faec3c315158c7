"""
Lifecycle events for downstream consumers (real-time updates, analytics).

Events are scoped to a resource channel, ``resource-<id>``, so subscribers
watching one resource's calendar only see its changes. Publishing is
fire-and-forget: a sink must not block, and its failures never reach the
booking operation that triggered them.
"""

import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking-created"
BOOKING_UPDATED = "booking-updated"
BOOKING_CANCELLED = "booking-cancelled"
BOOKING_CHECK_IN = "booking-check-in"
BOOKING_CHECK_OUT = "booking-check-out"
BOOKING_FEEDBACK = "booking-feedback"
BOOKING_NO_SHOW = "booking-no-show"


class EventSink(Protocol):
    """Receiver of booking lifecycle events."""

    def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingEventSink:
    """Sink that records events in the log; used when no broker is wired."""

    def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Event {event_type} on {resource_channel(payload)}: {payload}")


def resource_channel(payload: Dict[str, Any]) -> str:
    """Channel name an event belongs to."""
    return f"resource-{payload.get('resource_id', 'unknown')}"


def publish_safely(sink: EventSink, event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Publish without letting sink failures propagate.

    Returns:
        True if the sink accepted the event, False otherwise
    """
    try:
        sink.publish(event_type, payload)
        return True
    except Exception as e:
        logger.warning(
            f"Failed to publish {event_type} for {resource_channel(payload)}: {e}",
            exc_info=True,
        )
        return False
