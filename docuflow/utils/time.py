"""Time Utilities - UTC timestamps and parsing"""
from datetime import datetime, timezone, timedelta
from dateutil import parser as date_parser

from ..domain.errors import ValidationError


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive UTC values)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted date or datetime string

    Returns:
        Datetime object in UTC

    Raises:
        ValidationError: If the string is not ISO 8601
    """
    try:
        return ensure_utc(date_parser.isoparse(iso_string))
    except (ValueError, OverflowError):
        raise ValidationError(
            f"Invalid date '{iso_string}'",
            details={"expected": "ISO 8601, e.g. 2026-01-31 or 2026-01-31T08:00:00Z"}
        )


def add_seconds(dt: datetime, seconds: float) -> datetime:
    """Add seconds to datetime"""
    return dt + timedelta(seconds=seconds)


def backoff_delay_seconds(attempt: int, base_seconds: float, cap_seconds: float = 3600) -> float:
    """
    Exponential backoff delay for a retry attempt

    Args:
        attempt: 1-based attempt number
        base_seconds: Delay for the first retry
        cap_seconds: Upper bound for the delay

    Returns:
        Delay in seconds (base * 2^(attempt-1), capped)
    """
    if attempt < 1:
        return 0.0
    return min(base_seconds * (2 ** (attempt - 1)), cap_seconds)
