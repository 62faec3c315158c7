"""Booking core: availability computation and booking admission."""

from .admission import BookingAdmissionController, create_controller
from .availability import (
    AvailabilityService,
    compute_availability,
    create_availability_service,
    intervals_overlap,
)
from .events import EventSink, LoggingEventSink
from .notifications import LoggingNotifier, Notifier

__all__ = [
    "AvailabilityService",
    "BookingAdmissionController",
    "EventSink",
    "LoggingEventSink",
    "LoggingNotifier",
    "Notifier",
    "compute_availability",
    "create_availability_service",
    "create_controller",
    "intervals_overlap",
]
