"""
Unit tests for scheduler functionality.
Tests the reminder and no-show sweeps with mocked dependencies.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from scheduler.sweeps import mark_no_shows, send_reminders, setup_scheduler
from utils.exceptions import DatabaseError, InvalidStateError

from helpers import NOW, at, make_booking


@pytest.fixture
def mock_controller():
    """Mock booking controller."""
    controller = MagicMock()
    controller.send_reminder = AsyncMock(return_value=True)
    controller.mark_no_show = AsyncMock()
    return controller


@pytest.fixture
def mock_store():
    """Mock booking store."""
    store = MagicMock()
    store.find_reminder_candidates = AsyncMock(return_value=[])
    store.find_no_show_candidates = AsyncMock(return_value=[])
    return store


@pytest.fixture
def wired(mock_controller, mock_store):
    with patch("scheduler.sweeps._controller", mock_controller), patch(
        "scheduler.sweeps._store", mock_store
    ), patch("scheduler.sweeps.utc_now", return_value=NOW):
        yield mock_controller, mock_store


@pytest.mark.asyncio
async def test_send_reminders(wired):
    controller, store = wired
    store.find_reminder_candidates.return_value = [
        make_booking(at(10), at(11), id="b1"),
        make_booking(at(12), at(13), id="b2"),
    ]

    sent = await send_reminders()

    assert sent == 2
    store.find_reminder_candidates.assert_awaited_once_with(
        NOW, at(9)
    )
    assert controller.send_reminder.await_count == 2


@pytest.mark.asyncio
async def test_send_reminders_counts_only_delivered(wired):
    controller, store = wired
    store.find_reminder_candidates.return_value = [
        make_booking(at(10), at(11), id="b1"),
        make_booking(at(12), at(13), id="b2"),
    ]
    controller.send_reminder = AsyncMock(side_effect=[True, False])

    assert await send_reminders() == 1


@pytest.mark.asyncio
async def test_send_reminders_skips_bookings_without_id(wired):
    controller, store = wired
    store.find_reminder_candidates.return_value = [make_booking(at(10), at(11))]

    assert await send_reminders() == 0
    controller.send_reminder.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_reminders_database_error(wired):
    controller, store = wired
    store.find_reminder_candidates.side_effect = DatabaseError("down")

    assert await send_reminders() == 0
    controller.send_reminder.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_reminders_without_dependencies():
    with patch("scheduler.sweeps._controller", None):
        assert await send_reminders() == 0


@pytest.mark.asyncio
async def test_mark_no_shows(wired):
    controller, store = wired
    store.find_no_show_candidates.return_value = [
        make_booking(at(6, day=19), at(7, day=19), id="b1"),
        make_booking(at(7, day=19), at(8, day=19), id="b2"),
    ]
    controller.mark_no_show = AsyncMock(
        side_effect=[MagicMock(), InvalidStateError("Already checked in")]
    )

    marked = await mark_no_shows()

    assert marked == 1
    # Grace period of 15 minutes before the clock
    store.find_no_show_candidates.assert_awaited_once_with(at(8, 45, day=19))


@pytest.mark.asyncio
async def test_mark_no_shows_against_real_controller(controller, store, clock):
    """End to end through the in-memory store."""
    booking = await store.create_booking(make_booking(at(6, day=19), at(7, day=19)))

    with patch("scheduler.sweeps._controller", controller), patch(
        "scheduler.sweeps._store", store
    ), patch("scheduler.sweeps.utc_now", return_value=NOW):
        assert await mark_no_shows() == 1

    stored = await store.get_booking(booking.id)
    assert stored.status == "no_show"


def test_setup_scheduler(mock_controller, mock_store):
    with patch("scheduler.sweeps.scheduler") as mock_scheduler:
        setup_scheduler(mock_controller, mock_store)

        job_ids = [call.kwargs["id"] for call in mock_scheduler.add_job.call_args_list]
        assert job_ids == ["send_reminders", "mark_no_shows"]
        mock_scheduler.start.assert_called_once()
