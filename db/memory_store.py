"""
In-process store for local development and tests.

A per-resource asyncio.Lock serializes every write that can change which
intervals a resource holds, so the overlap check and the write happen as one
step within this process.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from models.booking import Booking, BookingStatus
from models.resource import Resource
from utils.datetime_utils import utc_now
from utils.exceptions import OverlapViolationError, StaleWriteError


class InMemoryStore:
    """Resource and booking store kept in dictionaries."""

    def __init__(self, resources: Optional[Iterable[Resource]] = None):
        self._resources: Dict[str, Resource] = {}
        self._bookings: Dict[str, Booking] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

        for resource in resources or ():
            self._put_resource(resource)

    def _lock_for(self, resource_id: str) -> asyncio.Lock:
        lock = self._locks.get(resource_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[resource_id] = lock
        return lock

    # ========== Resource Operations ==========

    def _put_resource(self, resource: Resource) -> Resource:
        stored = resource.model_copy(
            update={"id": resource.id or str(uuid4())}, deep=True
        )
        self._resources[stored.id] = stored
        return stored

    async def save_resource(self, resource: Resource) -> Resource:
        """Insert or replace a resource (seeding and tests)."""
        return self._put_resource(resource).model_copy(deep=True)

    async def get_resource(self, resource_id: str) -> Optional[Resource]:
        resource = self._resources.get(resource_id)
        return resource.model_copy(deep=True) if resource else None

    # ========== Booking Operations ==========

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    def _overlapping(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        return sorted(
            (
                b
                for b in self._bookings.values()
                if b.resource_id == resource_id
                and b.id != exclude_booking_id
                and b.is_active()
                and b.start_time < end
                and b.end_time > start
            ),
            key=lambda b: b.start_time,
        )

    async def find_overlapping(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        return [
            b.model_copy(deep=True)
            for b in self._overlapping(resource_id, start, end, exclude_booking_id)
        ]

    def _check_overlap(self, booking: Booking) -> None:
        if not booking.is_active():
            return
        clash = self._overlapping(
            booking.resource_id, booking.start_time, booking.end_time, booking.id
        )
        if clash:
            raise OverlapViolationError(
                f"Booking overlaps {clash[0].id} on resource {booking.resource_id}"
            )

    async def create_booking(self, booking: Booking) -> Booking:
        async with self._lock_for(booking.resource_id):
            self._check_overlap(booking)
            now = utc_now()
            stored = booking.model_copy(
                update={
                    "id": booking.id or str(uuid4()),
                    "created_at": now,
                    "updated_at": now,
                },
                deep=True,
            )
            self._bookings[stored.id] = stored
            return stored.model_copy(deep=True)

    async def update_booking(
        self, booking: Booking, expected_updated_at: Optional[datetime] = None
    ) -> Optional[Booking]:
        async with self._lock_for(booking.resource_id):
            existing = self._bookings.get(booking.id)
            if existing is None:
                return None
            if (
                expected_updated_at is not None
                and existing.updated_at != expected_updated_at
            ):
                raise StaleWriteError(f"Booking {booking.id} was modified concurrently")
            self._check_overlap(booking)
            # Strictly increasing, so every write yields a new version
            updated_at = utc_now()
            if existing.updated_at and updated_at <= existing.updated_at:
                updated_at = existing.updated_at + timedelta(microseconds=1)
            stored = booking.model_copy(
                update={"created_at": existing.created_at, "updated_at": updated_at},
                deep=True,
            )
            self._bookings[stored.id] = stored
            return stored.model_copy(deep=True)

    async def find_no_show_candidates(self, ended_before: datetime) -> List[Booking]:
        return [
            b.model_copy(deep=True)
            for b in self._bookings.values()
            if b.status == BookingStatus.CONFIRMED
            and b.check_in_time is None
            and b.end_time < ended_before
        ]

    async def find_reminder_candidates(
        self, starts_after: datetime, starts_before: datetime
    ) -> List[Booking]:
        return [
            b.model_copy(deep=True)
            for b in self._bookings.values()
            if b.status == BookingStatus.CONFIRMED
            and starts_after <= b.start_time <= starts_before
        ]
