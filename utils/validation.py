"""
Input validation utilities for resource policies and API inputs.
"""

import re
from typing import Optional

from utils.constants import MAX_RATING, MINUTES_IN_DAY, MIN_RATING

_HHMM_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")


def parse_hhmm(value: str) -> int:
    """
    Parse an "HH:MM" 24-hour string into minutes after midnight.

    "24:00" is accepted and means midnight at the end of the day.

    Args:
        value: Time of day string

    Returns:
        Minutes after midnight (0..1440)

    Raises:
        ValueError: If the string is not a valid time of day
    """
    if not isinstance(value, str):
        raise ValueError(f"Invalid time of day: {value!r}")

    match = _HHMM_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59:
        raise ValueError(f"Invalid time of day: {value!r}")

    total = hours * 60 + minutes
    if total > MINUTES_IN_DAY:
        raise ValueError(f"Invalid time of day: {value!r}")
    return total


def is_valid_hhmm(value: str) -> bool:
    """
    Check an "HH:MM" string without raising.

    Returns:
        True if valid format, False otherwise
    """
    try:
        parse_hhmm(value)
    except ValueError:
        return False
    return True


def validate_rating(rating) -> bool:
    """
    Validate a feedback rating.

    Args:
        rating: Rating value supplied by the user

    Returns:
        True if rating is an integer within the allowed range
    """
    # bool is an int subclass; True is not a rating
    if isinstance(rating, bool) or not isinstance(rating, int):
        return False
    return MIN_RATING <= rating <= MAX_RATING


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Sanitize user input text.

    Args:
        text: Input text
        max_length: Optional maximum length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove control characters except newlines and tabs
    sanitized = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]', '', str(text))

    # Trim whitespace
    sanitized = sanitized.strip()

    # Apply length limit if specified
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
