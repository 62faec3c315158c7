"""
Pytest configuration and shared fixtures.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from booking.admission import BookingAdmissionController
from booking.availability import AvailabilityService
from db.memory_store import InMemoryStore
from models.requester import Requester
from models.resource import DailyHours, OperatingHours, Resource

from helpers import NOW, RESOURCE_ID, FixedClock


@pytest.fixture(autouse=True)
def mock_settings():
    """Mock settings for all tests."""
    with patch("config.settings") as mock_settings:
        mock_settings.storage_backend = "memory"
        mock_settings.supabase_url = "https://test.supabase.co"
        mock_settings.supabase_key = "test_key"
        mock_settings.resource_cache_ttl_seconds = 60
        mock_settings.default_timezone = "UTC"
        mock_settings.check_in_window_minutes = 15
        mock_settings.default_cancellation_reason = "User cancelled"
        mock_settings.get_admin_roles.return_value = frozenset({"admin"})
        mock_settings.scheduler_enabled = False
        mock_settings.sweep_interval_minutes = 5
        mock_settings.reminder_hours_before = 24
        mock_settings.no_show_grace_minutes = 15
        mock_settings.environment = "test"
        mock_settings.host = "0.0.0.0"
        mock_settings.port = 8000
        yield mock_settings


@pytest.fixture
def clock():
    """Clock fixed at Monday 09:00 UTC."""
    return FixedClock(NOW)


@pytest.fixture
def sample_resource():
    """Study room open 08:00-20:00 on weekdays with 30-minute slots."""
    return Resource(
        id=RESOURCE_ID,
        name="Study Room 2.14",
        type="study_room",
        capacity=6,
        operating_hours=OperatingHours(
            weekdays=DailyHours(start="08:00", end="20:00"),
            weekends=DailyHours(start="10:00", end="18:00"),
        ),
        max_booking_duration=120,
        booking_interval=30,
        timezone="UTC",
    )


@pytest.fixture
def store(sample_resource):
    """In-memory store seeded with the sample resource."""
    return InMemoryStore(resources=[sample_resource])


@pytest.fixture
def events():
    """Event sink recording publish calls."""
    return MagicMock()


@pytest.fixture
def notifier():
    """Notifier that always succeeds."""
    mock_notifier = MagicMock()
    mock_notifier.send_confirmation = AsyncMock(return_value=True)
    mock_notifier.send_reminder = AsyncMock(return_value=True)
    return mock_notifier


@pytest.fixture
def controller(store, clock, events, notifier):
    """Controller over the in-memory store."""
    return BookingAdmissionController(
        resources=store,
        bookings=store,
        clock=clock,
        events=events,
        notifier=notifier,
        admin_roles={"admin"},
    )


@pytest.fixture
def availability(store, clock):
    """Availability query over the in-memory store."""
    return AvailabilityService(store, store, clock, default_timezone="UTC")


@pytest.fixture
def student():
    return Requester(user_id="user-1", role="student", department="Computer Science")


@pytest.fixture
def other_student():
    return Requester(user_id="user-2", role="student", department="Physics")


@pytest.fixture
def admin():
    return Requester(user_id="admin-1", role="admin")


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client."""
    mock_client = MagicMock()
    mock_table = MagicMock()
    mock_client.table.return_value = mock_table
    return mock_client, mock_table
