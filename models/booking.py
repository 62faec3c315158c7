"""Booking models for resource reservations."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from utils.constants import (
    MAX_CANCELLATION_REASON_LENGTH,
    MAX_FEEDBACK_COMMENT_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_PURPOSE_LENGTH,
    MAX_RATING,
    MIN_RATING,
)
from utils.datetime_utils import ensure_aware
from utils.validation import sanitize_text


class BookingStatus(str, Enum):
    """Booking status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that hold a resource; at most one per overlapping interval
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
TERMINAL_STATUSES = (
    BookingStatus.CANCELLED,
    BookingStatus.COMPLETED,
    BookingStatus.NO_SHOW,
)


class NotificationType(str, Enum):
    """Kinds of entries in a booking's notification log."""

    CONFIRMATION = "confirmation"
    REMINDER = "reminder"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    CANCELLATION = "cancellation"
    UPDATE = "update"


class NotificationRecord(BaseModel):
    """Audit entry; the log is append-only."""

    type: NotificationType
    sent_at: datetime
    success: bool = True

    class Config:
        use_enum_values = True


class Attendee(BaseModel):
    """Named attendee."""

    name: Optional[str] = None
    email: Optional[EmailStr] = None


class Attendees(BaseModel):
    """Expected attendance."""

    count: int = Field(1, ge=1)
    list: List[Attendee] = Field(default_factory=list)


class Feedback(BaseModel):
    """Post-use feedback, submitted at most once."""

    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    comment: Optional[str] = Field(None, max_length=MAX_FEEDBACK_COMMENT_LENGTH)
    submitted_at: Optional[datetime] = None


def _aware(v):
    return ensure_aware(v) if isinstance(v, datetime) else v


class Booking(BaseModel):
    """Booking model."""

    id: Optional[str] = None
    resource_id: str = Field(..., description="Resource ID")
    user_id: str = Field(..., description="Owner user ID")
    start_time: datetime
    end_time: datetime
    purpose: str = Field(..., max_length=MAX_PURPOSE_LENGTH)
    status: BookingStatus = BookingStatus.CONFIRMED
    attendees: Attendees = Field(default_factory=Attendees)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = Field(
        None, max_length=MAX_CANCELLATION_REASON_LENGTH
    )
    feedback: Optional[Feedback] = None
    notifications_sent: List[NotificationRecord] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "resource_id": "uuid-here",
                "user_id": "uuid-here",
                "start_time": "2026-10-20T10:00:00Z",
                "end_time": "2026-10-20T11:00:00Z",
                "purpose": "Group study",
                "status": "confirmed",
            }
        }

    @field_validator(
        "start_time",
        "end_time",
        "check_in_time",
        "check_out_time",
        "created_at",
        "updated_at",
    )
    @classmethod
    def normalize_timestamps(cls, v):
        """Store every timestamp as aware UTC."""
        return _aware(v)

    @property
    def duration_minutes(self) -> float:
        """Booking length in minutes."""
        return (self.end_time - self.start_time).total_seconds() / 60

    def is_active(self) -> bool:
        """Whether the booking still holds its interval on the resource."""
        return self.status in ACTIVE_STATUSES

    def has_notification(self, notification_type: NotificationType) -> bool:
        """Whether the log already holds an entry of this type."""
        return any(
            entry.type == notification_type for entry in self.notifications_sent
        )


class BookingCreate(BaseModel):
    """Booking creation model. The owner comes from the requester."""

    resource_id: str
    start_time: datetime
    end_time: datetime
    purpose: str = Field(..., min_length=1, max_length=MAX_PURPOSE_LENGTH)
    attendees: Attendees = Field(default_factory=Attendees)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timestamps(cls, v):
        """Naive timestamps are taken as UTC."""
        return _aware(v)

    @field_validator("purpose")
    @classmethod
    def clean_purpose(cls, v: str) -> str:
        """Purpose must contain something printable."""
        cleaned = sanitize_text(v, MAX_PURPOSE_LENGTH)
        if not cleaned:
            raise ValueError("purpose must not be empty")
        return cleaned


class BookingUpdate(BaseModel):
    """Partial update; status and lifecycle fields are not patchable."""

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    purpose: Optional[str] = Field(None, min_length=1, max_length=MAX_PURPOSE_LENGTH)
    attendees: Optional[Attendees] = None
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)

    class Config:
        extra = "forbid"

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timestamps(cls, v):
        """Naive timestamps are taken as UTC."""
        return _aware(v)

    def changes_time(self) -> bool:
        """Whether the patch names a time field at all."""
        return self.start_time is not None or self.end_time is not None


class FeedbackCreate(BaseModel):
    """Feedback submission. Rating range is checked by the controller."""

    rating: int
    comment: Optional[str] = Field(None, max_length=MAX_FEEDBACK_COMMENT_LENGTH)


class CancelRequest(BaseModel):
    """Cancellation body."""

    reason: Optional[str] = Field(None, max_length=MAX_CANCELLATION_REASON_LENGTH)
