"""
Application-wide constants.
Centralizes magic numbers and configuration values.
"""

# Validation limits
MAX_RESOURCE_NAME_LENGTH = 100
MAX_PURPOSE_LENGTH = 200
MAX_NOTES_LENGTH = 500
MAX_FEEDBACK_COMMENT_LENGTH = 500
MAX_CANCELLATION_REASON_LENGTH = 200
MIN_RATING = 1
MAX_RATING = 5

# Resource policy limits
MIN_BOOKING_DURATION_MINUTES = 15
DEFAULT_MAX_BOOKING_DURATION_MINUTES = 120
ALLOWED_BOOKING_INTERVALS = (15, 30, 60)
DEFAULT_BOOKING_INTERVAL_MINUTES = 15

# Default operating hours ("HH:MM", 24-hour)
DEFAULT_WEEKDAY_HOURS = ("08:00", "20:00")
DEFAULT_WEEKEND_HOURS = ("10:00", "18:00")

# Time constants
MINUTES_IN_DAY = 24 * 60
WEEKEND_DAYS = (5, 6)  # date.weekday(): Saturday, Sunday

# HTTP
MAX_REQUEST_BODY_SIZE = 64 * 1024  # 64KB
