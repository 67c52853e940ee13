"""
Timezone utility functions for the repair shop backend.
Invoice dates and monthly report buckets are computed in the display timezone
(configurable through DISPLAY_TIMEZONE, default Asia/Singapore).
"""

from datetime import date, datetime, timezone
import pytz
from flask import current_app, has_app_context
from typing import Optional, Union

DEFAULT_DISPLAY_TIMEZONE = "Asia/Singapore"


def get_display_timezone() -> str:
    """
    Get the configured display timezone.
    Falls back to Asia/Singapore outside an application context.
    """
    if has_app_context():
        return current_app.config.get('DISPLAY_TIMEZONE', DEFAULT_DISPLAY_TIMEZONE)
    return DEFAULT_DISPLAY_TIMEZONE


def utc_now() -> datetime:
    """
    Get current time in UTC.

    Returns:
        Current datetime in UTC
    """
    return datetime.now(timezone.utc)


def convert_utc_to_display(utc_dt: Union[datetime, str]) -> datetime:
    """
    Convert a UTC datetime to the configured display timezone.

    Args:
        utc_dt: UTC datetime object or ISO string; naive values are taken as UTC

    Returns:
        Datetime object in the display timezone
    """
    if isinstance(utc_dt, str):
        utc_dt = datetime.fromisoformat(utc_dt.replace('Z', '+00:00'))
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    display_tz = pytz.timezone(get_display_timezone())
    return utc_dt.astimezone(display_tz)


def local_today(now: Optional[datetime] = None) -> date:
    """Today's date in the display timezone."""
    return convert_utc_to_display(now or utc_now()).date()


def month_key(value: Union[date, datetime]) -> str:
    """Report bucket label such as 'Mar 25'. Datetimes are converted to the display timezone."""
    if isinstance(value, datetime):
        value = convert_utc_to_display(value)
    return value.strftime('%b %y')


def last_month_keys(today: date, months: int = 6) -> list:
    """Bucket labels for the last `months` months, oldest first, ending with today's month."""
    keys = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append(date(year, month, 1).strftime('%b %y'))
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return list(reversed(keys))
