"""
Periodic booking sweeps using APScheduler.

- Reminders: confirmed bookings starting within REMINDER_HOURS_BEFORE get one
  reminder through the controller.
- No-shows: confirmed bookings never checked in are marked no_show once their
  end time plus NO_SHOW_GRACE_MINUTES has passed.

Both sweeps go through BookingAdmissionController, so the lifecycle rules
and events are the same as for API-driven transitions.
"""

from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from booking.admission import BookingAdmissionController
from config import settings
from utils.datetime_utils import utc_now
from utils.exceptions import BookingError, DatabaseError
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="scheduler.log", log_dir="logs"
)

scheduler = AsyncIOScheduler()

# Injected via setup_scheduler
_controller: Optional[BookingAdmissionController] = None
_store = None


def set_dependencies(controller: BookingAdmissionController, store) -> None:
    """Set the controller and store the sweeps work with.

    Args:
        controller: Controller that performs the transitions
        store: BookingStore used to find candidates
    """
    global _controller, _store
    _controller = controller
    _store = store
    logger.info("Controller and store set for scheduler")


async def send_reminders() -> int:
    """
    Send reminders for bookings starting within the reminder window.

    Returns:
        Number of reminders delivered
    """
    if not _controller or _store is None:
        logger.error("Scheduler dependencies not set - cannot send reminders")
        return 0

    try:
        now = utc_now()
        bookings = await _store.find_reminder_candidates(
            now, now + timedelta(hours=settings.reminder_hours_before)
        )
    except DatabaseError as e:
        logger.error(f"Database error checking reminders: {e}", exc_info=True)
        return 0

    if not bookings:
        logger.debug("No bookings require reminders at this time")
        return 0

    sent_count = 0
    failed_count = 0

    for booking in bookings:
        if not booking.id:
            logger.warning(f"Booking missing ID, skipping: {booking}")
            failed_count += 1
            continue

        try:
            if await _controller.send_reminder(booking.id):
                sent_count += 1
        except (BookingError, DatabaseError) as e:
            logger.warning(f"Reminder failed for booking {booking.id}: {e}")
            failed_count += 1

    logger.info(
        f"Reminder processing complete: {sent_count} sent, {failed_count} failed"
    )
    return sent_count


async def mark_no_shows() -> int:
    """
    Mark ended, never checked-in bookings as no-shows.

    Returns:
        Number of bookings marked
    """
    if not _controller or _store is None:
        logger.error("Scheduler dependencies not set - cannot mark no-shows")
        return 0

    cutoff = utc_now() - timedelta(minutes=settings.no_show_grace_minutes)
    try:
        bookings = await _store.find_no_show_candidates(cutoff)
    except DatabaseError as e:
        logger.error(f"Database error checking no-shows: {e}", exc_info=True)
        return 0

    marked = 0
    for booking in bookings:
        try:
            await _controller.mark_no_show(booking.id)
            marked += 1
        except (BookingError, DatabaseError) as e:
            # Checked in or changed since the query ran
            logger.warning(f"Could not mark booking {booking.id} as no-show: {e}")

    if marked:
        logger.info(f"Marked {marked} bookings as no-show")
    return marked


def setup_scheduler(
    controller: Optional[BookingAdmissionController] = None, store=None
) -> None:
    """Register the sweeps and start the scheduler.

    Args:
        controller: Controller to inject. If None, must be set via set_dependencies()
        store: Store to inject alongside the controller
    """
    if controller is not None:
        set_dependencies(controller, store)

    scheduler.add_job(
        send_reminders,
        trigger=IntervalTrigger(minutes=settings.sweep_interval_minutes),
        id="send_reminders",
        name="Send upcoming booking reminders",
        replace_existing=True,
    )
    scheduler.add_job(
        mark_no_shows,
        trigger=IntervalTrigger(minutes=settings.sweep_interval_minutes),
        id="mark_no_shows",
        name="Mark missed bookings as no-show",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        f"Scheduler started (sweeps every {settings.sweep_interval_minutes} minutes)"
    )


def shutdown_scheduler() -> None:
    """Shutdown the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
    logger.info("Scheduler stopped")
