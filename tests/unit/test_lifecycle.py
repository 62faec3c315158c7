"""
Unit tests for the booking lifecycle: cancel, check-in, check-out, feedback,
no-shows and reminders.
"""

from unittest.mock import AsyncMock

import pytest

from models.booking import BookingCreate, BookingStatus, NotificationType
from utils.exceptions import (
    BookingNotFoundError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
)

from helpers import RESOURCE_ID, at, make_booking


async def _book(controller, requester, start=None, end=None):
    """Confirmed booking on Tuesday 10:00-11:00 unless told otherwise."""
    return await controller.admit_create(
        requester,
        BookingCreate(
            resource_id=RESOURCE_ID,
            start_time=start or at(10),
            end_time=end or at(11),
            purpose="Group study",
        ),
    )


async def _completed(controller, clock, requester):
    booking = await _book(controller, requester)
    clock.current = at(10, 5)
    await controller.check_in(requester, booking.id)
    clock.current = at(10, 55)
    return await controller.check_out(requester, booking.id)


class TestCancel:
    """Cancellation is a soft, audited transition."""

    @pytest.mark.asyncio
    async def test_owner_cancels_with_default_reason(
        self, controller, store, student, events
    ):
        booking = await _book(controller, student)

        cancelled = await controller.cancel(student, booking.id)

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancellation_reason == "User cancelled"
        assert cancelled.notifications_sent[-1].type == NotificationType.CANCELLATION
        assert events.publish.call_args[0][0] == "booking-cancelled"
        # Kept for audit
        assert await store.get_booking(booking.id) is not None

    @pytest.mark.asyncio
    async def test_custom_reason(self, controller, student):
        booking = await _book(controller, student)

        cancelled = await controller.cancel(student, booking.id, "  Exam moved  ")

        assert cancelled.cancellation_reason == "Exam moved"

    @pytest.mark.asyncio
    async def test_reason_too_long(self, controller, student):
        booking = await _book(controller, student)

        with pytest.raises(InvalidInputError):
            await controller.cancel(student, booking.id, "x" * 201)

    @pytest.mark.asyncio
    async def test_admin_may_cancel(self, controller, student, admin):
        booking = await _book(controller, student)

        cancelled = await controller.cancel(admin, booking.id)

        assert cancelled.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, controller, student, other_student):
        booking = await _book(controller, student)

        with pytest.raises(ForbiddenError):
            await controller.cancel(other_student, booking.id)

    @pytest.mark.asyncio
    async def test_cancel_twice(self, controller, student):
        booking = await _book(controller, student)
        await controller.cancel(student, booking.id)

        with pytest.raises(InvalidStateError):
            await controller.cancel(student, booking.id)

    @pytest.mark.asyncio
    async def test_started_booking_cannot_be_cancelled(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(10, 1)

        with pytest.raises(InvalidStateError):
            await controller.cancel(student, booking.id)

    @pytest.mark.asyncio
    async def test_checked_in_booking_cannot_be_cancelled(
        self, controller, clock, student
    ):
        booking = await _book(controller, student)
        clock.current = at(9, 50)
        await controller.check_in(student, booking.id)

        with pytest.raises(InvalidStateError):
            await controller.cancel(student, booking.id)

    @pytest.mark.asyncio
    async def test_cancel_frees_the_slot(self, controller, student, other_student):
        booking = await _book(controller, student)
        await controller.cancel(student, booking.id)

        rebooked = await _book(controller, other_student)

        assert rebooked.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_unknown_booking(self, controller, student):
        with pytest.raises(BookingNotFoundError):
            await controller.cancel(student, "missing")


class TestCheckIn:
    """Check-in window is [start - 15 min, end]."""

    @pytest.mark.asyncio
    async def test_too_early(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(9, 40)

        with pytest.raises(InvalidStateError, match="Too early"):
            await controller.check_in(student, booking.id)

    @pytest.mark.asyncio
    async def test_within_window(self, controller, clock, student, events):
        booking = await _book(controller, student)
        clock.current = at(9, 50)

        checked_in = await controller.check_in(student, booking.id)

        assert checked_in.check_in_time == at(9, 50)
        assert checked_in.status == BookingStatus.CONFIRMED
        assert checked_in.notifications_sent[-1].type == NotificationType.CHECK_IN
        assert events.publish.call_args[0][0] == "booking-check-in"

    @pytest.mark.asyncio
    async def test_window_edges(self, controller, clock, student, other_student):
        early = await _book(controller, student)
        late = await _book(controller, other_student, at(12), at(13))

        clock.current = at(9, 45)
        assert (await controller.check_in(student, early.id)).check_in_time == at(9, 45)

        clock.current = at(13)
        assert (await controller.check_in(other_student, late.id)).check_in_time == at(13)

    @pytest.mark.asyncio
    async def test_too_late(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(11, 1)

        with pytest.raises(InvalidStateError, match="ended"):
            await controller.check_in(student, booking.id)

    @pytest.mark.asyncio
    async def test_only_owner(self, controller, clock, student, admin):
        booking = await _book(controller, student)
        clock.current = at(10)

        with pytest.raises(ForbiddenError):
            await controller.check_in(admin, booking.id)

    @pytest.mark.asyncio
    async def test_already_checked_in(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(10)
        await controller.check_in(student, booking.id)

        with pytest.raises(InvalidStateError, match="Already checked in"):
            await controller.check_in(student, booking.id)

    @pytest.mark.asyncio
    async def test_cancelled_booking(self, controller, clock, student):
        booking = await _book(controller, student)
        await controller.cancel(student, booking.id)
        clock.current = at(10)

        with pytest.raises(InvalidStateError):
            await controller.check_in(student, booking.id)


class TestCheckOut:
    """Check-out completes a checked-in booking."""

    @pytest.mark.asyncio
    async def test_requires_check_in(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(10, 30)

        with pytest.raises(InvalidStateError, match="check in"):
            await controller.check_out(student, booking.id)

        unchanged = await controller.get_booking(student, booking.id)
        assert unchanged.check_out_time is None

    @pytest.mark.asyncio
    async def test_completes_booking(self, controller, clock, student, events):
        completed = await _completed(controller, clock, student)

        assert completed.status == BookingStatus.COMPLETED
        assert completed.check_in_time == at(10, 5)
        assert completed.check_out_time == at(10, 55)
        assert completed.notifications_sent[-1].type == NotificationType.CHECK_OUT
        assert events.publish.call_args[0][0] == "booking-check-out"

    @pytest.mark.asyncio
    async def test_already_checked_out(self, controller, clock, student):
        completed = await _completed(controller, clock, student)

        with pytest.raises(InvalidStateError):
            await controller.check_out(student, completed.id)

    @pytest.mark.asyncio
    async def test_only_owner(self, controller, clock, student, admin):
        booking = await _book(controller, student)
        clock.current = at(10)
        await controller.check_in(student, booking.id)

        with pytest.raises(ForbiddenError):
            await controller.check_out(admin, booking.id)

    @pytest.mark.asyncio
    async def test_completed_booking_is_terminal(self, controller, clock, student):
        completed = await _completed(controller, clock, student)

        with pytest.raises(InvalidStateError):
            await controller.cancel(student, completed.id)
        with pytest.raises(InvalidStateError):
            await controller.check_in(student, completed.id)


class TestFeedback:
    """Feedback is accepted once per booking."""

    @pytest.mark.asyncio
    async def test_submit_after_completion(self, controller, clock, student, events):
        completed = await _completed(controller, clock, student)

        updated = await controller.submit_feedback(
            student, completed.id, 5, "Quiet and clean"
        )

        assert updated.feedback.rating == 5
        assert updated.feedback.comment == "Quiet and clean"
        assert updated.feedback.submitted_at == at(10, 55)
        assert events.publish.call_args[0][0] == "booking-feedback"

    @pytest.mark.asyncio
    async def test_second_submission_rejected(self, controller, clock, student):
        completed = await _completed(controller, clock, student)
        await controller.submit_feedback(student, completed.id, 4)

        with pytest.raises(InvalidStateError, match="already"):
            await controller.submit_feedback(student, completed.id, 5)

        stored = await controller.get_booking(student, completed.id)
        assert stored.feedback.rating == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6, -1, True, 4.5, "5", None])
    async def test_invalid_rating(self, controller, clock, student, rating):
        completed = await _completed(controller, clock, student)

        with pytest.raises(InvalidInputError):
            await controller.submit_feedback(student, completed.id, rating)

    @pytest.mark.asyncio
    async def test_rating_checked_before_state(self, controller, student):
        booking = await _book(controller, student)
        await controller.cancel(student, booking.id)

        with pytest.raises(InvalidInputError):
            await controller.submit_feedback(student, booking.id, 9)

    @pytest.mark.asyncio
    async def test_cancelled_booking(self, controller, student):
        booking = await _book(controller, student)
        await controller.cancel(student, booking.id)

        with pytest.raises(InvalidStateError):
            await controller.submit_feedback(student, booking.id, 3)

    @pytest.mark.asyncio
    async def test_only_owner(self, controller, clock, student, admin):
        completed = await _completed(controller, clock, student)

        with pytest.raises(ForbiddenError):
            await controller.submit_feedback(admin, completed.id, 5)


class TestGetBooking:
    """Read access to a single booking."""

    @pytest.mark.asyncio
    async def test_owner_and_admin(self, controller, student, admin):
        booking = await _book(controller, student)

        assert (await controller.get_booking(student, booking.id)).id == booking.id
        assert (await controller.get_booking(admin, booking.id)).id == booking.id

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, controller, student, other_student):
        booking = await _book(controller, student)

        with pytest.raises(ForbiddenError):
            await controller.get_booking(other_student, booking.id)

    @pytest.mark.asyncio
    async def test_unknown_booking(self, controller, student):
        with pytest.raises(BookingNotFoundError):
            await controller.get_booking(student, "missing")


class TestNoShow:
    """No-shows are marked once the grace period has passed."""

    @pytest.mark.asyncio
    async def test_marks_no_show_after_grace(self, controller, clock, student, events):
        booking = await _book(controller, student)
        clock.current = at(11, 20)

        no_show = await controller.mark_no_show(booking.id)

        assert no_show.status == BookingStatus.NO_SHOW
        assert events.publish.call_args[0][0] == "booking-no-show"

    @pytest.mark.asyncio
    async def test_within_grace(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(11, 10)

        with pytest.raises(InvalidStateError):
            await controller.mark_no_show(booking.id)

    @pytest.mark.asyncio
    async def test_checked_in_booking(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(10)
        await controller.check_in(student, booking.id)
        clock.current = at(12)

        with pytest.raises(InvalidStateError):
            await controller.mark_no_show(booking.id)

    @pytest.mark.asyncio
    async def test_no_show_rejects_feedback(self, controller, clock, student):
        booking = await _book(controller, student)
        clock.current = at(12)
        await controller.mark_no_show(booking.id)

        with pytest.raises(InvalidStateError):
            await controller.submit_feedback(student, booking.id, 2)


class TestReminder:
    """Reminders are sent at most once."""

    @pytest.mark.asyncio
    async def test_sends_and_records(self, controller, student, notifier):
        booking = await _book(controller, student)

        assert await controller.send_reminder(booking.id) is True

        stored = await controller.get_booking(student, booking.id)
        assert stored.has_notification(NotificationType.REMINDER)
        notifier.send_reminder.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_sent_twice(self, controller, student, notifier):
        booking = await _book(controller, student)
        await controller.send_reminder(booking.id)

        assert await controller.send_reminder(booking.id) is False
        notifier.send_reminder.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self, controller, student, notifier):
        notifier.send_reminder = AsyncMock(side_effect=RuntimeError("smtp down"))
        booking = await _book(controller, student)

        assert await controller.send_reminder(booking.id) is False

        stored = await controller.get_booking(student, booking.id)
        entry = stored.notifications_sent[-1]
        assert entry.type == NotificationType.REMINDER
        assert entry.success is False

    @pytest.mark.asyncio
    async def test_cancelled_booking_skipped(self, controller, student, notifier):
        booking = await _book(controller, student)
        await controller.cancel(student, booking.id)

        assert await controller.send_reminder(booking.id) is False
        notifier.send_reminder.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reminder_for_seeded_booking(self, controller, store, notifier):
        booking = await store.create_booking(make_booking(at(10), at(11)))

        assert await controller.send_reminder(booking.id) is True
