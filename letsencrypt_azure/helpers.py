"""
Certificate expiry helpers used by the status report.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Union


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expiring_soon(
    expires_on: Optional[datetime],
    threshold_days: int = 30,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check if a certificate is expiring within the threshold.

    Args:
        expires_on: Certificate expiration datetime
        threshold_days: Number of days before expiration to consider "soon"
        now: Reference time (defaults to the current UTC time)

    Returns:
        True if the certificate is expired or expiring within threshold.
        A missing certificate (None) always needs renewal.
    """
    if expires_on is None:
        return True

    now = now or datetime.now(timezone.utc)
    return _aware(expires_on) <= now + timedelta(days=threshold_days)


def format_days_remaining(
    expires_on: Optional[datetime],
    now: Optional[datetime] = None,
) -> Union[int, str]:
    """
    Calculate days remaining until expiration.

    Returns:
        Number of days remaining (negative if expired), or "unknown"
    """
    if expires_on is None:
        return "unknown"

    now = now or datetime.now(timezone.utc)
    return (_aware(expires_on) - now).days


def format_expiration_status(
    expires_on: Optional[datetime],
    threshold_days: int = 30,
    now: Optional[datetime] = None,
) -> str:
    """
    Format a human-readable expiration status.

    Args:
        expires_on: Certificate expiration datetime
        threshold_days: Days threshold for "expiring" status
        now: Reference time (defaults to the current UTC time)

    Returns:
        Formatted status string
    """
    days = format_days_remaining(expires_on, now)

    if isinstance(days, str):
        return "Unknown expiration"

    if days < 0:
        return f"EXPIRED ({abs(days)} days ago)"
    elif days == 0:
        return "EXPIRES TODAY"
    elif days <= threshold_days:
        return f"EXPIRING in {days} day{'s' if days != 1 else ''}"
    else:
        return f"Valid ({days} days remaining)"
