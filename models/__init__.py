"""Pydantic models for data validation and serialization."""

from .availability import Availability, OperatingWindow, TimeSlot
from .booking import (
    Booking,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    Feedback,
    NotificationType,
)
from .requester import Requester
from .resource import OperatingHours, Resource, ResourceType

__all__ = [
    "Availability",
    "Booking",
    "BookingCreate",
    "BookingStatus",
    "BookingUpdate",
    "Feedback",
    "NotificationType",
    "OperatingHours",
    "OperatingWindow",
    "Requester",
    "Resource",
    "ResourceType",
    "TimeSlot",
]
