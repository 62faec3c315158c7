"""Test data builders shared by the test modules."""

from datetime import datetime, timedelta, timezone

from models.booking import Booking, BookingStatus

RESOURCE_ID = "res-1"

# Monday 2026-10-19, 09:00 UTC
NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


def at(hour: int, minute: int = 0, day: int = 20) -> datetime:
    """UTC instant in October 2026 (default: Tuesday the 20th)."""
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def make_booking(start: datetime, end: datetime, **overrides) -> Booking:
    """Booking on the sample resource, confirmed unless overridden."""
    data = {
        "resource_id": RESOURCE_ID,
        "user_id": "user-1",
        "start_time": start,
        "end_time": end,
        "purpose": "Group study",
        "status": BookingStatus.CONFIRMED,
    }
    data.update(overrides)
    return Booking(**data)
