"""
Storage interfaces the booking core depends on.

Any BookingStore must refuse, atomically with the write, to persist a
pending/confirmed booking that overlaps another pending/confirmed booking on
the same resource, raising OverlapViolationError. The controller's own
conflict check is only a fast pre-filter in front of that guarantee.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from models.booking import Booking
from models.resource import Resource


class ResourceStore(Protocol):
    """Read access to resource policies."""

    async def get_resource(self, resource_id: str) -> Optional[Resource]:
        ...


class BookingStore(Protocol):
    """Persistence for bookings."""

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    async def find_overlapping(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Active bookings on the resource intersecting [start, end)."""
        ...

    async def create_booking(self, booking: Booking) -> Booking:
        ...

    async def update_booking(
        self, booking: Booking, expected_updated_at: Optional[datetime] = None
    ) -> Optional[Booking]:
        """
        Replace a stored booking; None if it does not exist.

        Raises StaleWriteError when expected_updated_at is given and the
        stored booking no longer carries it.
        """
        ...

    async def find_no_show_candidates(self, ended_before: datetime) -> List[Booking]:
        """Confirmed, never checked-in bookings that ended before the cutoff."""
        ...

    async def find_reminder_candidates(
        self, starts_after: datetime, starts_before: datetime
    ) -> List[Booking]:
        """Confirmed bookings starting within the window."""
        ...
