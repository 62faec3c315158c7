"""
Availability engine.

Turns a resource's operating-hours policy and its active bookings for one
calendar day into an ordered grid of fixed-width slots, each flagged free or
occupied. The engine itself is pure; AvailabilityService only adds the reads
that feed it and never caches the result, because bookings change
concurrently.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, List, Optional, Tuple

from models.availability import Availability, OperatingWindow, TimeSlot
from models.booking import Booking
from models.resource import DailyHours, Resource
from utils.constants import WEEKEND_DAYS
from utils.datetime_utils import Clock, SystemClock, get_zone, local_date
from utils.exceptions import ResourceNotFoundError
from utils.validation import parse_hhmm

logger = logging.getLogger(__name__)

CLOSED_MESSAGE = "This resource is not available on this date."
MISCONFIGURED_MESSAGE = "Operating hours for this resource are misconfigured."


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """
    Half-open interval overlap test.

    [a_start, a_end) and [b_start, b_end) overlap iff each starts before the
    other ends; intervals that merely touch do not overlap.
    """
    return a_start < b_end and a_end > b_start


def resolve_hours(resource: Resource, day: date) -> Optional[DailyHours]:
    """
    Pick the hours that apply to ``day``.

    Returns:
        The day's hours, or None when an exception closes the resource
    """
    policy = resource.operating_hours
    exception = policy.find_exception(day)
    if exception is not None:
        if not exception.available:
            return None
        if exception.custom_hours is not None:
            return exception.custom_hours

    if day.weekday() in WEEKEND_DAYS:
        return policy.weekends
    return policy.weekdays


def resolve_zone(resource: Resource, default_timezone: str = "UTC") -> tzinfo:
    """Time zone a resource's hours are expressed in."""
    return get_zone(resource.timezone or default_timezone)


def day_bounds(day: date, zone: tzinfo) -> Tuple[datetime, datetime]:
    """UTC instants of local midnight at the start and end of ``day``."""
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def operating_window(
    day: date, hours: DailyHours, zone: tzinfo
) -> Tuple[datetime, datetime]:
    """
    Combine ``day`` with the hour strings and convert to UTC.

    Raises:
        ValueError: If an hour string is malformed or the window is empty
    """
    start_minutes = parse_hhmm(hours.start)
    end_minutes = parse_hhmm(hours.end)

    # Local wall-clock arithmetic first; "24:00" rolls over to next midnight
    midnight = datetime.combine(day, time.min)
    start = (midnight + timedelta(minutes=start_minutes)).replace(tzinfo=zone)
    end = (midnight + timedelta(minutes=end_minutes)).replace(tzinfo=zone)

    start_utc = start.astimezone(timezone.utc)
    end_utc = end.astimezone(timezone.utc)
    if end_utc <= start_utc:
        raise ValueError(
            f"Closing time {hours.end} is not after opening time {hours.start}"
        )
    return start_utc, end_utc


def generate_slots(
    window_start: datetime,
    window_end: datetime,
    interval_minutes: int,
    bookings: Iterable[Booking],
) -> List[TimeSlot]:
    """
    Walk the window in fixed steps and flag each slot.

    Steps are taken on UTC instants, so slots keep their width across DST
    transitions. A trailing step that would cross ``window_end`` is dropped.

    Raises:
        ValueError: If the interval is not positive
    """
    if interval_minutes <= 0:
        raise ValueError(f"Invalid booking interval: {interval_minutes}")

    busy = [(b.start_time, b.end_time) for b in bookings if b.is_active()]
    step = timedelta(minutes=interval_minutes)

    slots: List[TimeSlot] = []
    cursor = window_start
    while cursor + step <= window_end:
        slot_end = cursor + step
        taken = any(
            intervals_overlap(cursor, slot_end, booked_start, booked_end)
            for booked_start, booked_end in busy
        )
        slots.append(TimeSlot(start=cursor, end=slot_end, is_available=not taken))
        cursor = slot_end

    return slots


def _unavailable(resource: Resource, day: date, message: str) -> Availability:
    return Availability(
        resource_id=resource.id or "",
        date=day,
        is_available=False,
        message=message,
    )


def compute_availability(
    resource: Resource,
    day: date,
    bookings: Iterable[Booking],
    default_timezone: str = "UTC",
) -> Availability:
    """
    Build the slot grid of ``resource`` for ``day``.

    Args:
        resource: Resource whose policy applies
        day: Calendar day in the resource's time zone
        bookings: Active bookings intersecting the day
        default_timezone: Zone used when the resource declares none

    Returns:
        Availability with ordered slots; an exception closing the day or a
        misconfigured policy yields no slots and ``is_available=False``
    """
    zone_name = resource.timezone or default_timezone

    hours = resolve_hours(resource, day)
    if hours is None:
        return _unavailable(resource, day, CLOSED_MESSAGE)

    try:
        zone = get_zone(zone_name)
        window_start, window_end = operating_window(day, hours, zone)
        slots = generate_slots(
            window_start, window_end, resource.booking_interval, bookings
        )
    except ValueError as e:
        # Bad stored policy: report nothing bookable rather than fail the query
        logger.error(
            f"Invalid operating hours for resource {resource.id} on {day}: {e}"
        )
        return _unavailable(resource, day, MISCONFIGURED_MESSAGE)

    return Availability(
        resource_id=resource.id or "",
        date=day,
        is_available=True,
        operating_hours=OperatingWindow(
            start=hours.start, end=hours.end, timezone=zone_name
        ),
        time_slots=slots,
    )


class AvailabilityService:
    """Read-side query: loads the inputs and runs the engine on each call."""

    def __init__(self, resources, bookings, clock: Clock, default_timezone: str = "UTC"):
        self._resources = resources
        self._bookings = bookings
        self._clock = clock
        self._default_timezone = default_timezone

    async def get_availability(
        self, resource_id: str, day: Optional[date] = None
    ) -> Availability:
        """
        Slot grid for a resource on ``day`` (default: today in its zone).

        Raises:
            ResourceNotFoundError: If the resource does not exist
        """
        resource = await self._resources.get_resource(resource_id)
        if resource is None:
            raise ResourceNotFoundError(f"Resource {resource_id} not found")

        try:
            zone = resolve_zone(resource, self._default_timezone)
        except ValueError as e:
            logger.error(f"Invalid time zone for resource {resource_id}: {e}")
            fallback_day = day or local_date(self._clock.now(), timezone.utc)
            return _unavailable(resource, fallback_day, MISCONFIGURED_MESSAGE)

        if day is None:
            day = local_date(self._clock.now(), zone)

        day_start, day_end = day_bounds(day, zone)
        bookings = await self._bookings.find_overlapping(
            resource_id, day_start, day_end
        )
        return compute_availability(
            resource, day, bookings, default_timezone=self._default_timezone
        )


def create_availability_service(store=None, clock: Optional[Clock] = None) -> AvailabilityService:
    """Build the availability query wired to the configured store."""
    from config import settings
    from db import get_store

    store = store or get_store()
    return AvailabilityService(
        resources=store,
        bookings=store,
        clock=clock or SystemClock(),
        default_timezone=settings.default_timezone,
    )
