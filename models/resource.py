"""Resource models: bookable rooms, equipment and facilities."""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from utils.constants import (
    ALLOWED_BOOKING_INTERVALS,
    DEFAULT_BOOKING_INTERVAL_MINUTES,
    DEFAULT_MAX_BOOKING_DURATION_MINUTES,
    DEFAULT_WEEKDAY_HOURS,
    DEFAULT_WEEKEND_HOURS,
    MAX_RESOURCE_NAME_LENGTH,
    MIN_BOOKING_DURATION_MINUTES,
)


class ResourceType(str, Enum):
    """Resource categories."""

    STUDY_ROOM = "study_room"
    LAB_EQUIPMENT = "lab_equipment"
    SPORTS_FACILITY = "sports_facility"
    CONFERENCE_ROOM = "conference_room"
    LIBRARY_RESOURCE = "library_resource"
    OTHER = "other"


# Types that must declare a capacity
CAPACITY_REQUIRED_TYPES = {
    ResourceType.STUDY_ROOM.value,
    ResourceType.CONFERENCE_ROOM.value,
    ResourceType.SPORTS_FACILITY.value,
}


class DailyHours(BaseModel):
    """Opening window for one day, as "HH:MM" 24-hour strings.

    The strings are not validated here: a malformed value is a data-integrity
    problem that the availability engine reports as zero availability.
    """

    start: str
    end: str


class HoursException(BaseModel):
    """Dated override of the regular hours."""

    date: date
    available: bool = False
    custom_hours: Optional[DailyHours] = None

    @field_validator("date", mode="before")
    @classmethod
    def strip_time(cls, v):
        """Accept full timestamps and keep only the calendar date."""
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v


class OperatingHours(BaseModel):
    """Weekly operating policy of a resource."""

    weekdays: DailyHours = Field(
        default_factory=lambda: DailyHours(
            start=DEFAULT_WEEKDAY_HOURS[0], end=DEFAULT_WEEKDAY_HOURS[1]
        )
    )
    weekends: DailyHours = Field(
        default_factory=lambda: DailyHours(
            start=DEFAULT_WEEKEND_HOURS[0], end=DEFAULT_WEEKEND_HOURS[1]
        )
    )
    exceptions: List[HoursException] = Field(default_factory=list)

    def find_exception(self, day: date) -> Optional[HoursException]:
        """Return the exception registered for ``day``, if any."""
        for exception in self.exceptions:
            if exception.date == day:
                return exception
        return None


class Restrictions(BaseModel):
    """Who may book a resource. Empty lists mean unrestricted."""

    user_roles: List[str] = Field(default_factory=list)
    departments: List[str] = Field(default_factory=list)


class Resource(BaseModel):
    """Resource model."""

    id: Optional[str] = None
    name: str = Field(..., max_length=MAX_RESOURCE_NAME_LENGTH)
    description: Optional[str] = None
    type: ResourceType = ResourceType.OTHER
    capacity: Optional[int] = Field(None, ge=1)
    operating_hours: OperatingHours = Field(default_factory=OperatingHours)
    max_booking_duration: int = Field(
        DEFAULT_MAX_BOOKING_DURATION_MINUTES,
        ge=MIN_BOOKING_DURATION_MINUTES,
        description="Maximum booking length in minutes",
    )
    booking_interval: int = Field(
        DEFAULT_BOOKING_INTERVAL_MINUTES, description="Slot width in minutes"
    )
    restrictions: Optional[Restrictions] = None
    timezone: Optional[str] = Field(
        None, description="IANA time zone; falls back to DEFAULT_TIMEZONE"
    )
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "name": "Study Room 2.14",
                "type": "study_room",
                "capacity": 6,
                "operating_hours": {
                    "weekdays": {"start": "08:00", "end": "20:00"},
                    "weekends": {"start": "10:00", "end": "18:00"},
                    "exceptions": [{"date": "2026-12-24", "available": False}],
                },
                "max_booking_duration": 120,
                "booking_interval": 30,
                "restrictions": {"user_roles": ["student", "faculty"]},
                "timezone": "Europe/Prague",
            }
        }

    @field_validator("booking_interval")
    @classmethod
    def validate_booking_interval(cls, v: int) -> int:
        """Only the supported slot widths are allowed."""
        if v not in ALLOWED_BOOKING_INTERVALS:
            raise ValueError(
                f"booking_interval must be one of {ALLOWED_BOOKING_INTERVALS}"
            )
        return v

    @model_validator(mode="after")
    def validate_capacity(self) -> "Resource":
        """Rooms and facilities need a capacity."""
        resource_type = ResourceType(self.type).value
        if resource_type in CAPACITY_REQUIRED_TYPES and self.capacity is None:
            raise ValueError(f"capacity is required for resource type {self.type}")
        return self
