"""
Booking admission controller.

Validates every state-changing booking operation against the resource policy
and the booking lifecycle, then commits it with a single store write.

Lifecycle:
    created            -> confirmed
    confirmed          -> confirmed   (reschedule, check-in)
    confirmed, in      -> completed   (check-out)
    confirmed, not in  -> no_show     (no-show sweep, after the end time)
    pending/confirmed  -> cancelled   (owner or admin, before the start)

cancelled, completed and no_show are terminal. Feedback may be attached once,
to any booking that was not cancelled or marked no-show.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from booking.events import (
    BOOKING_CANCELLED,
    BOOKING_CHECK_IN,
    BOOKING_CHECK_OUT,
    BOOKING_CREATED,
    BOOKING_FEEDBACK,
    BOOKING_NO_SHOW,
    BOOKING_UPDATED,
    EventSink,
    LoggingEventSink,
    publish_safely,
)
from booking.notifications import LoggingNotifier, Notifier
from models.booking import (
    TERMINAL_STATUSES,
    Booking,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    Feedback,
    NotificationRecord,
    NotificationType,
)
from models.requester import Requester
from models.resource import Resource
from utils.constants import MAX_CANCELLATION_REASON_LENGTH, MAX_FEEDBACK_COMMENT_LENGTH
from utils.datetime_utils import Clock, SystemClock, ensure_aware
from utils.exceptions import (
    BookingError,
    BookingNotFoundError,
    DurationExceededError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    InvalidTimeRangeError,
    OverlapViolationError,
    ResourceNotFoundError,
    SlotConflictError,
    StaleWriteError,
)
from utils.validation import sanitize_text, validate_rating

logger = logging.getLogger(__name__)

SLOT_CONFLICT_MESSAGE = "This time slot is already booked."
STALE_WRITE_MESSAGE = "Booking was changed by another request. Reload and try again."


class BookingAdmissionController:
    """Admits or rejects booking operations and drives the lifecycle."""

    def __init__(
        self,
        resources,
        bookings,
        clock: Optional[Clock] = None,
        events: Optional[EventSink] = None,
        notifier: Optional[Notifier] = None,
        admin_roles: Iterable[str] = ("admin",),
        check_in_window_minutes: int = 15,
        default_cancellation_reason: str = "User cancelled",
        no_show_grace_minutes: int = 15,
    ):
        self._resources = resources
        self._bookings = bookings
        self._clock = clock or SystemClock()
        self._events = events or LoggingEventSink()
        self._notifier = notifier or LoggingNotifier()
        self._admin_roles = frozenset(admin_roles)
        self._check_in_window = timedelta(minutes=check_in_window_minutes)
        self._default_cancellation_reason = default_cancellation_reason
        self._no_show_grace = timedelta(minutes=no_show_grace_minutes)

    # ========== Helpers ==========

    @property
    def bookings(self):
        """Booking store this controller commits to."""
        return self._bookings

    def _now(self) -> datetime:
        return ensure_aware(self._clock.now())

    def is_admin(self, requester: Requester) -> bool:
        """Whether the requester may act on bookings it does not own."""
        return bool(requester.role) and requester.role in self._admin_roles

    def _reject(self, operation: str, error: BookingError) -> BookingError:
        logger.info(f"Rejected {operation}: {error.kind}: {error.message}")
        return error

    async def _load_booking(self, operation: str, booking_id: str) -> Booking:
        booking = await self._bookings.get_booking(booking_id)
        if booking is None:
            raise self._reject(
                operation, BookingNotFoundError(f"Booking {booking_id} not found")
            )
        return booking

    async def _load_resource(self, operation: str, resource_id: str) -> Resource:
        resource = await self._resources.get_resource(resource_id)
        if resource is None:
            raise self._reject(
                operation, ResourceNotFoundError(f"Resource {resource_id} not found")
            )
        return resource

    def _require_owner(
        self, operation: str, requester: Requester, booking: Booking
    ) -> None:
        if booking.user_id != requester.user_id:
            raise self._reject(
                operation,
                ForbiddenError(f"Only the booking owner can {operation} this booking"),
            )

    def _require_owner_or_admin(
        self, operation: str, requester: Requester, booking: Booking
    ) -> None:
        if booking.user_id != requester.user_id and not self.is_admin(requester):
            raise self._reject(
                operation,
                ForbiddenError(f"Not authorized to {operation} this booking"),
            )

    def _with_entry(
        self,
        booking: Booking,
        notification_type: NotificationType,
        success: bool = True,
    ) -> List[NotificationRecord]:
        """Notification log with one more entry appended."""
        entry = NotificationRecord(
            type=notification_type, sent_at=self._now(), success=success
        )
        return list(booking.notifications_sent) + [entry]

    async def _commit(self, operation: str, booking: Booking) -> Booking:
        """
        Write a changed booking in one store call.

        The write is conditional on the version the booking was loaded at
        (its updated_at, carried over by model_copy), so of two concurrent
        transitions on the same booking only the first is applied.
        """
        try:
            stored = await self._bookings.update_booking(
                booking, expected_updated_at=booking.updated_at
            )
        except OverlapViolationError as e:
            raise self._reject(operation, SlotConflictError(SLOT_CONFLICT_MESSAGE)) from e
        except StaleWriteError as e:
            raise self._reject(operation, InvalidStateError(STALE_WRITE_MESSAGE)) from e
        if stored is None:
            raise self._reject(
                operation, BookingNotFoundError(f"Booking {booking.id} not found")
            )
        return stored

    def _publish(self, event_type: str, booking: Booking) -> None:
        payload: Dict[str, Any] = {
            "resource_id": booking.resource_id,
            "booking_id": booking.id,
            "booking": booking.model_dump(mode="json"),
        }
        publish_safely(self._events, event_type, payload)

    # ========== Conflict Predicate ==========

    async def has_conflict(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """
        Whether an active booking on the resource overlaps [start, end).

        Touching intervals do not conflict. The store re-checks atomically
        with the write, so a False here is not a reservation.
        """
        candidates = await self._bookings.find_overlapping(
            resource_id, start, end, exclude_booking_id
        )
        return any(
            b.is_active()
            and b.id != exclude_booking_id
            and b.start_time < end
            and b.end_time > start
            for b in candidates
        )

    async def _validate_interval(
        self,
        operation: str,
        resource: Resource,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        """Time rules shared by create and reschedule, in fail-fast order."""
        if start < self._now():
            raise self._reject(
                operation, InvalidTimeRangeError("Start time cannot be in the past")
            )

        if end <= start:
            raise self._reject(
                operation, InvalidTimeRangeError("End time must be after start time")
            )

        duration = (end - start).total_seconds() / 60
        if duration > resource.max_booking_duration:
            raise self._reject(
                operation,
                DurationExceededError(
                    f"Booking duration exceeds maximum allowed "
                    f"({resource.max_booking_duration} minutes)"
                ),
            )

        if await self.has_conflict(resource.id, start, end, exclude_booking_id):
            raise self._reject(operation, SlotConflictError(SLOT_CONFLICT_MESSAGE))

    def _check_restrictions(
        self, operation: str, resource: Resource, requester: Requester
    ) -> None:
        restrictions = resource.restrictions
        if restrictions is None:
            return

        if restrictions.user_roles and requester.role not in restrictions.user_roles:
            raise self._reject(
                operation,
                ForbiddenError("Your role is not allowed to book this resource"),
            )

        if (
            restrictions.departments
            and requester.department not in restrictions.departments
        ):
            raise self._reject(
                operation,
                ForbiddenError("Your department is not allowed to book this resource"),
            )

    # ========== Queries ==========

    async def get_booking(self, requester: Requester, booking_id: str) -> Booking:
        """
        Fetch a booking visible to the requester.

        Raises:
            BookingNotFoundError: If the booking does not exist
            ForbiddenError: If the requester is neither owner nor admin
        """
        booking = await self._load_booking("view", booking_id)
        self._require_owner_or_admin("view", requester, booking)
        return booking

    # ========== Admission ==========

    async def admit_create(self, requester: Requester, data: BookingCreate) -> Booking:
        """
        Admit a new booking.

        Checks run in a fixed order and the first failure wins: resource
        exists, start not in the past, end after start, duration within the
        resource maximum, no conflict, role restriction, department
        restriction.

        Returns:
            The stored booking, status confirmed

        Raises:
            ResourceNotFoundError, InvalidTimeRangeError, DurationExceededError,
            SlotConflictError, ForbiddenError
        """
        operation = "create"
        resource = await self._load_resource(operation, data.resource_id)
        start = ensure_aware(data.start_time)
        end = ensure_aware(data.end_time)

        await self._validate_interval(operation, resource, start, end)
        self._check_restrictions(operation, resource, requester)

        booking = Booking(
            resource_id=resource.id,
            user_id=requester.user_id,
            start_time=start,
            end_time=end,
            purpose=data.purpose,
            status=BookingStatus.CONFIRMED,
            attendees=data.attendees,
            notes=data.notes,
        )
        booking.notifications_sent = self._with_entry(
            booking, NotificationType.CONFIRMATION
        )

        try:
            created = await self._bookings.create_booking(booking)
        except OverlapViolationError as e:
            raise self._reject(operation, SlotConflictError(SLOT_CONFLICT_MESSAGE)) from e

        logger.info(
            f"Booking {created.id} created on resource {created.resource_id} "
            f"for user {created.user_id}: {created.start_time} - {created.end_time}"
        )
        self._publish(BOOKING_CREATED, created)

        try:
            sent = await self._notifier.send_confirmation(created, resource)
            if not sent:
                logger.warning(f"Confirmation not delivered for booking {created.id}")
        except Exception as e:
            logger.warning(
                f"Failed to send confirmation for booking {created.id}: {e}",
                exc_info=True,
            )

        return created

    async def admit_reschedule(
        self, requester: Requester, booking_id: str, patch: BookingUpdate
    ) -> Booking:
        """
        Apply a partial update to an active booking.

        Time changes re-run the interval rules of admit_create against the
        new interval, ignoring the booking's own current interval.

        Raises:
            BookingNotFoundError, ForbiddenError, InvalidStateError,
            ResourceNotFoundError, InvalidTimeRangeError,
            DurationExceededError, SlotConflictError
        """
        operation = "update"
        booking = await self._load_booking(operation, booking_id)
        self._require_owner_or_admin(operation, requester, booking)

        if booking.status in TERMINAL_STATUSES:
            raise self._reject(
                operation,
                InvalidStateError(f"Cannot update a {booking.status} booking"),
            )

        if patch.changes_time() and booking.check_in_time is not None:
            raise self._reject(
                operation,
                InvalidStateError("Cannot change the time of a checked-in booking"),
            )

        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        start = ensure_aware(patch.start_time or booking.start_time)
        end = ensure_aware(patch.end_time or booking.end_time)

        if start != booking.start_time or end != booking.end_time:
            resource = await self._load_resource(operation, booking.resource_id)
            await self._validate_interval(
                operation, resource, start, end, exclude_booking_id=booking.id
            )

        update: Dict[str, Any] = {"start_time": start, "end_time": end}
        if "purpose" in changes:
            update["purpose"] = sanitize_text(patch.purpose) or booking.purpose
        if patch.attendees is not None:
            update["attendees"] = patch.attendees
        if "notes" in changes:
            update["notes"] = patch.notes
        update["notifications_sent"] = self._with_entry(
            booking, NotificationType.UPDATE
        )

        updated = await self._commit(operation, booking.model_copy(update=update))

        logger.info(f"Booking {updated.id} updated by {requester.user_id}")
        self._publish(BOOKING_UPDATED, updated)
        return updated

    # ========== Lifecycle ==========

    async def cancel(
        self, requester: Requester, booking_id: str, reason: Optional[str] = None
    ) -> Booking:
        """
        Cancel a future, active, not checked-in booking. The row is kept.

        Raises:
            BookingNotFoundError, ForbiddenError, InvalidStateError,
            InvalidInputError
        """
        operation = "cancel"
        booking = await self._load_booking(operation, booking_id)
        self._require_owner_or_admin(operation, requester, booking)

        if (
            not booking.is_active()
            or booking.start_time <= self._now()
            or booking.check_in_time is not None
        ):
            raise self._reject(
                operation,
                InvalidStateError("Cannot cancel a past or already completed booking"),
            )

        reason = sanitize_text(reason) or self._default_cancellation_reason
        if len(reason) > MAX_CANCELLATION_REASON_LENGTH:
            raise self._reject(
                operation,
                InvalidInputError(
                    f"Cancellation reason must be at most "
                    f"{MAX_CANCELLATION_REASON_LENGTH} characters"
                ),
            )

        cancelled = await self._commit(
            operation,
            booking.model_copy(
                update={
                    "status": BookingStatus.CANCELLED.value,
                    "cancellation_reason": reason,
                    "notifications_sent": self._with_entry(
                        booking, NotificationType.CANCELLATION
                    ),
                }
            ),
        )

        logger.info(f"Booking {cancelled.id} cancelled by {requester.user_id}: {reason}")
        self._publish(BOOKING_CANCELLED, cancelled)
        return cancelled

    async def check_in(self, requester: Requester, booking_id: str) -> Booking:
        """
        Record the owner's arrival.

        Check-in opens ``check_in_window_minutes`` before the start and
        closes at the end time.

        Raises:
            BookingNotFoundError, ForbiddenError, InvalidStateError
        """
        operation = "check in"
        booking = await self._load_booking(operation, booking_id)
        self._require_owner(operation, requester, booking)

        if booking.status != BookingStatus.CONFIRMED:
            raise self._reject(
                operation,
                InvalidStateError("Only confirmed bookings can be checked in"),
            )

        if booking.check_in_time is not None:
            raise self._reject(operation, InvalidStateError("Already checked in"))

        now = self._now()
        window_minutes = int(self._check_in_window.total_seconds() // 60)
        if now < booking.start_time - self._check_in_window:
            raise self._reject(
                operation,
                InvalidStateError(
                    f"Too early to check in. Check-in opens {window_minutes} "
                    f"minutes before the start time."
                ),
            )
        if now > booking.end_time:
            raise self._reject(
                operation,
                InvalidStateError("Cannot check in after the booking has ended."),
            )

        checked_in = await self._commit(
            operation,
            booking.model_copy(
                update={
                    "check_in_time": now,
                    "notifications_sent": self._with_entry(
                        booking, NotificationType.CHECK_IN
                    ),
                }
            ),
        )

        logger.info(f"Booking {checked_in.id} checked in at {now}")
        self._publish(BOOKING_CHECK_IN, checked_in)
        return checked_in

    async def check_out(self, requester: Requester, booking_id: str) -> Booking:
        """
        Record the owner's departure and complete the booking.

        Raises:
            BookingNotFoundError, ForbiddenError, InvalidStateError
        """
        operation = "check out"
        booking = await self._load_booking(operation, booking_id)
        self._require_owner(operation, requester, booking)

        if booking.check_in_time is None:
            raise self._reject(
                operation, InvalidStateError("Must check in before checking out")
            )

        if booking.check_out_time is not None:
            raise self._reject(operation, InvalidStateError("Already checked out"))

        if booking.status != BookingStatus.CONFIRMED:
            raise self._reject(
                operation,
                InvalidStateError(f"Cannot check out a {booking.status} booking"),
            )

        now = self._now()
        completed = await self._commit(
            operation,
            booking.model_copy(
                update={
                    "check_out_time": now,
                    "status": BookingStatus.COMPLETED.value,
                    "notifications_sent": self._with_entry(
                        booking, NotificationType.CHECK_OUT
                    ),
                }
            ),
        )

        logger.info(f"Booking {completed.id} checked out at {now}")
        self._publish(BOOKING_CHECK_OUT, completed)
        return completed

    async def submit_feedback(
        self,
        requester: Requester,
        booking_id: str,
        rating: Any,
        comment: Optional[str] = None,
    ) -> Booking:
        """
        Attach the owner's rating. Feedback is accepted once.

        Raises:
            BookingNotFoundError, ForbiddenError, InvalidInputError,
            InvalidStateError
        """
        operation = "submit feedback"
        booking = await self._load_booking(operation, booking_id)
        self._require_owner(operation, requester, booking)

        if not validate_rating(rating):
            raise self._reject(
                operation, InvalidInputError("Rating must be between 1 and 5")
            )

        comment = sanitize_text(comment) or None
        if comment and len(comment) > MAX_FEEDBACK_COMMENT_LENGTH:
            raise self._reject(
                operation,
                InvalidInputError(
                    f"Comment must be at most {MAX_FEEDBACK_COMMENT_LENGTH} characters"
                ),
            )

        if booking.status in (BookingStatus.CANCELLED, BookingStatus.NO_SHOW):
            raise self._reject(
                operation,
                InvalidStateError(f"Cannot leave feedback on a {booking.status} booking"),
            )

        if booking.feedback is not None and booking.feedback.submitted_at is not None:
            raise self._reject(
                operation, InvalidStateError("Feedback already submitted")
            )

        feedback = Feedback(rating=rating, comment=comment, submitted_at=self._now())
        updated = await self._commit(
            operation, booking.model_copy(update={"feedback": feedback})
        )

        logger.info(f"Feedback {rating}/5 recorded for booking {updated.id}")
        self._publish(BOOKING_FEEDBACK, updated)
        return updated

    # ========== Sweeps ==========

    async def mark_no_show(self, booking_id: str) -> Booking:
        """
        Mark a confirmed booking nobody checked in to as no_show.

        Allowed only once the end time plus the grace period has passed.

        Raises:
            BookingNotFoundError, InvalidStateError
        """
        operation = "mark no-show"
        booking = await self._load_booking(operation, booking_id)

        if booking.status != BookingStatus.CONFIRMED or booking.check_in_time is not None:
            raise self._reject(
                operation,
                InvalidStateError("Only confirmed bookings without check-in can be no-shows"),
            )

        if self._now() < booking.end_time + self._no_show_grace:
            raise self._reject(
                operation, InvalidStateError("Booking has not ended yet")
            )

        no_show = await self._commit(
            operation,
            booking.model_copy(update={"status": BookingStatus.NO_SHOW.value}),
        )

        logger.info(f"Booking {no_show.id} marked as no-show")
        self._publish(BOOKING_NO_SHOW, no_show)
        return no_show

    async def send_reminder(self, booking_id: str) -> bool:
        """
        Remind the owner of an upcoming booking, once.

        The outcome is appended to the notification log either way, so a
        failed delivery is not retried by the next sweep.

        Returns:
            True if the notifier delivered the reminder, False otherwise

        Raises:
            BookingNotFoundError: If the booking does not exist
        """
        operation = "send reminder"
        booking = await self._load_booking(operation, booking_id)

        if booking.status != BookingStatus.CONFIRMED:
            logger.debug(f"Skipping reminder for {booking.status} booking {booking_id}")
            return False
        if booking.has_notification(NotificationType.REMINDER):
            logger.debug(f"Reminder already sent for booking {booking_id}")
            return False

        resource = await self._resources.get_resource(booking.resource_id)
        try:
            sent = bool(await self._notifier.send_reminder(booking, resource))
        except Exception as e:
            logger.error(
                f"Failed to send reminder for booking {booking_id}: {e}", exc_info=True
            )
            sent = False

        await self._commit(
            operation,
            booking.model_copy(
                update={
                    "notifications_sent": self._with_entry(
                        booking, NotificationType.REMINDER, success=sent
                    )
                }
            ),
        )

        logger.info(f"Reminder for booking {booking_id} recorded (delivered={sent})")
        return sent


def create_controller(
    store=None,
    events: Optional[EventSink] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
) -> BookingAdmissionController:
    """Build a controller wired to the configured store and settings."""
    from config import settings
    from db import get_store

    store = store or get_store()
    return BookingAdmissionController(
        resources=store,
        bookings=store,
        clock=clock,
        events=events,
        notifier=notifier,
        admin_roles=settings.get_admin_roles(),
        check_in_window_minutes=settings.check_in_window_minutes,
        default_cancellation_reason=settings.default_cancellation_reason,
        no_show_grace_minutes=settings.no_show_grace_minutes,
    )
