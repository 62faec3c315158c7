"""Task scheduler for booking reminders and no-show sweeps."""

from .sweeps import (
    mark_no_shows,
    send_reminders,
    set_dependencies,
    setup_scheduler,
    shutdown_scheduler,
)

__all__ = [
    "mark_no_shows",
    "send_reminders",
    "set_dependencies",
    "setup_scheduler",
    "shutdown_scheduler",
]
