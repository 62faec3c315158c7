"""
User notifications (confirmation and reminder messages).

Delivery itself (email, QR codes) lives outside this service; the controller
only needs a best-effort Notifier whose failure never rolls back a booking.
"""

import logging
from typing import Optional, Protocol

from models.booking import Booking
from models.resource import Resource

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers booking messages to users."""

    async def send_confirmation(
        self, booking: Booking, resource: Optional[Resource]
    ) -> bool:
        ...

    async def send_reminder(
        self, booking: Booking, resource: Optional[Resource]
    ) -> bool:
        ...


class LoggingNotifier:
    """Notifier that only logs; stands in until a delivery channel is wired."""

    async def send_confirmation(
        self, booking: Booking, resource: Optional[Resource]
    ) -> bool:
        name = resource.name if resource else booking.resource_id
        logger.info(
            f"Confirmation for booking {booking.id}: {name} "
            f"{booking.start_time.strftime('%d.%m.%Y %H:%M')}-"
            f"{booking.end_time.strftime('%H:%M')} UTC, user {booking.user_id}"
        )
        return True

    async def send_reminder(
        self, booking: Booking, resource: Optional[Resource]
    ) -> bool:
        name = resource.name if resource else booking.resource_id
        logger.info(
            f"Reminder for booking {booking.id}: {name} at "
            f"{booking.start_time.strftime('%d.%m.%Y %H:%M')} UTC, "
            f"user {booking.user_id}"
        )
        return True
