"""
Supabase database client with the resource and booking operations the
booking core needs.

Double-booking Protection:
==========================
The bookings table carries an exclusion constraint (see db/schema.sql) that
rejects any pending/confirmed row whose [start_time, end_time) overlaps
another pending/confirmed row of the same resource. PostgreSQL reports it as
SQLSTATE 23P01; this client raises OverlapViolationError for it so that a
race lost after the in-application conflict check surfaces as a slot
conflict rather than a server error.

This client uses the service key which bypasses RLS. User-facing access
rules are enforced by the booking controller, not by RLS policies.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import Client as SupabaseClientType
from supabase import create_client

from config import settings
from models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from models.resource import Resource
from utils.datetime_utils import to_iso_string, utc_now
from utils.exceptions import DatabaseError, OverlapViolationError, StaleWriteError

# exclusion_violation, unique_violation
_OVERLAP_ERROR_CODES = {"23P01", "23505"}

# Columns written on every booking update
_BOOKING_WRITE_EXCLUDE = {"id", "created_at", "updated_at"}


class SupabaseStore:
    """
    Supabase-backed ResourceStore and BookingStore.

    Resources are cached for a short TTL since they change rarely. Bookings
    are never cached: availability must reflect concurrent writes.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        resource_cache_ttl_seconds: Optional[int] = None,
    ):
        self.client: SupabaseClientType = create_client(
            url or settings.supabase_url, key or settings.supabase_key
        )

        # Format: {cache_key: (data, expiry_time)}
        self._cache: Dict[str, Tuple[Any, datetime]] = {}
        ttl = (
            settings.resource_cache_ttl_seconds
            if resource_cache_ttl_seconds is None
            else resource_cache_ttl_seconds
        )
        self._cache_ttl = timedelta(seconds=max(ttl, 0))

    # ========== Cache Helpers ==========

    def _get_from_cache(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key not in self._cache:
            return None

        data, expiry = self._cache[key]
        if utc_now() > expiry:
            del self._cache[key]
            return None

        return data

    def _set_cache(self, key: str, value: Any) -> None:
        """Set value in cache with TTL."""
        if not self._cache_ttl:
            return
        self._cache[key] = (value, utc_now() + self._cache_ttl)

    def clear_cache(self) -> None:
        """Drop all cached resources."""
        self._cache.clear()

    # ========== Query Helpers ==========

    async def _execute(self, query):
        """Run a blocking PostgREST query without stalling the event loop."""
        return await asyncio.to_thread(query.execute)

    @staticmethod
    def _translate_error(error: APIError, action: str) -> DatabaseError:
        if str(getattr(error, "code", "")) in _OVERLAP_ERROR_CODES:
            return OverlapViolationError(
                f"Failed to {action}: interval overlaps an active booking"
            )
        return DatabaseError(f"Failed to {action}: {error}")

    # ========== Resource Operations ==========

    async def get_resource(self, resource_id: str) -> Optional[Resource]:
        """Get resource by ID."""
        cache_key = f"resource:{resource_id}"

        cached = self._get_from_cache(cache_key)
        if cached is not None:
            return cached.model_copy(deep=True)

        try:
            response = await self._execute(
                self.client.table("resources").select("*").eq("id", resource_id)
            )
        except APIError as e:
            raise self._translate_error(e, "get resource") from e
        except Exception as e:
            raise DatabaseError(f"Failed to get resource: {e}") from e

        if not response.data:
            return None

        resource = self._parse_resource(response.data[0])
        self._set_cache(cache_key, resource)
        return resource.model_copy(deep=True)

    # ========== Booking Operations ==========

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get booking by ID."""
        try:
            response = await self._execute(
                self.client.table("bookings").select("*").eq("id", booking_id)
            )
        except APIError as e:
            raise self._translate_error(e, "get booking") from e
        except Exception as e:
            raise DatabaseError(f"Failed to get booking: {e}") from e

        if response.data:
            return self._parse_booking(response.data[0])
        return None

    async def find_overlapping(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Active bookings of a resource intersecting [start, end).

        Args:
            resource_id: Resource to search
            start: Interval start (inclusive)
            end: Interval end (exclusive)
            exclude_booking_id: Booking to ignore, e.g. the one being moved

        Returns:
            Matching bookings ordered by start time
        """
        query = (
            self.client.table("bookings")
            .select("*")
            .eq("resource_id", resource_id)
            .in_("status", [BookingStatus(s).value for s in ACTIVE_STATUSES])
            .lt("start_time", to_iso_string(end))
            .gt("end_time", to_iso_string(start))
        )
        if exclude_booking_id:
            query = query.neq("id", exclude_booking_id)
        query = query.order("start_time", desc=False)

        try:
            response = await self._execute(query)
        except APIError as e:
            raise self._translate_error(e, "find overlapping bookings") from e
        except Exception as e:
            raise DatabaseError(f"Failed to find overlapping bookings: {e}") from e

        return [self._parse_booking(item) for item in response.data]

    async def create_booking(self, booking: Booking) -> Booking:
        """
        Insert a booking.

        Raises:
            OverlapViolationError: If the exclusion constraint rejects the row
            DatabaseError: On any other storage failure
        """
        data = self._serialize_booking(booking)
        if booking.id:
            data["id"] = booking.id

        try:
            response = await self._execute(self.client.table("bookings").insert(data))
        except APIError as e:
            raise self._translate_error(e, "create booking") from e
        except Exception as e:
            raise DatabaseError(f"Failed to create booking: {e}") from e

        if not response.data:
            raise DatabaseError("Failed to create booking: no data returned")

        return self._parse_booking(response.data[0])

    async def update_booking(
        self, booking: Booking, expected_updated_at: Optional[datetime] = None
    ) -> Optional[Booking]:
        """
        Write every mutable field of a booking in one statement.

        With expected_updated_at the write only applies while the row still
        carries that timestamp, so a concurrent change is never overwritten.

        Returns:
            The stored booking, or None if no row has this ID

        Raises:
            OverlapViolationError: If new times overlap an active booking
            StaleWriteError: If the row changed since expected_updated_at
            DatabaseError: On any other storage failure
        """
        data = self._serialize_booking(booking)
        data["updated_at"] = to_iso_string(utc_now())

        query = self.client.table("bookings").update(data).eq("id", booking.id)
        if expected_updated_at is not None:
            query = query.eq("updated_at", to_iso_string(expected_updated_at))

        try:
            response = await self._execute(query)
        except APIError as e:
            raise self._translate_error(e, "update booking") from e
        except Exception as e:
            raise DatabaseError(f"Failed to update booking: {e}") from e

        if not response.data:
            if expected_updated_at is not None and await self.get_booking(booking.id):
                raise StaleWriteError(f"Booking {booking.id} was modified concurrently")
            return None

        return self._parse_booking(response.data[0])

    async def find_no_show_candidates(self, ended_before: datetime) -> List[Booking]:
        """Confirmed bookings never checked in that ended before the cutoff."""
        try:
            response = await self._execute(
                self.client.table("bookings")
                .select("*")
                .eq("status", BookingStatus.CONFIRMED.value)
                .is_("check_in_time", "null")
                .lt("end_time", to_iso_string(ended_before))
            )
        except APIError as e:
            raise self._translate_error(e, "find no-show candidates") from e
        except Exception as e:
            raise DatabaseError(f"Failed to find no-show candidates: {e}") from e

        return [self._parse_booking(item) for item in response.data]

    async def find_reminder_candidates(
        self, starts_after: datetime, starts_before: datetime
    ) -> List[Booking]:
        """Confirmed bookings starting within the reminder window."""
        try:
            response = await self._execute(
                self.client.table("bookings")
                .select("*")
                .eq("status", BookingStatus.CONFIRMED.value)
                .gte("start_time", to_iso_string(starts_after))
                .lte("start_time", to_iso_string(starts_before))
                .order("start_time", desc=False)
            )
        except APIError as e:
            raise self._translate_error(e, "find reminder candidates") from e
        except Exception as e:
            raise DatabaseError(f"Failed to find reminder candidates: {e}") from e

        return [self._parse_booking(item) for item in response.data]

    # ========== Helper Methods ==========

    def _serialize_booking(self, booking: Booking) -> Dict[str, Any]:
        """
        Convert a booking into a row payload.

        Timestamps become ISO strings and nested models become JSON objects
        for the jsonb columns.
        """
        return booking.model_dump(mode="json", exclude=_BOOKING_WRITE_EXCLUDE)

    def _parse_booking(self, item: dict) -> Booking:
        """
        Parse booking data from database response.

        Args:
            item: Raw booking row

        Returns:
            Parsed Booking object
        """
        item = item.copy()
        # jsonb columns may come back null on rows written by other tools
        if item.get("notifications_sent") is None:
            item["notifications_sent"] = []
        if item.get("attendees") is None:
            item.pop("attendees", None)
        return Booking(**item)

    def _parse_resource(self, item: dict) -> Resource:
        """
        Parse resource data from database response.

        Args:
            item: Raw resource row

        Returns:
            Parsed Resource object
        """
        item = item.copy()
        if item.get("operating_hours") is None:
            item.pop("operating_hours", None)
        return Resource(**item)
