"""
Centralized datetime and timezone utilities.

Rows store naive local timestamps; "today" and "this week" in list filters
are computed in the configured timezone.
"""

from datetime import datetime, date, timedelta
from typing import Optional
import pytz

from ..config import settings


def get_local_tz() -> pytz.BaseTzInfo:
    """Get the configured local timezone."""
    return pytz.timezone(settings.timezone)


def get_local_now() -> datetime:
    """Get current time in local timezone (naive)."""
    local_tz = get_local_tz()
    return datetime.now(local_tz).replace(tzinfo=None)


def get_local_today() -> date:
    return get_local_now().date()


def end_of_week(today: Optional[date] = None) -> date:
    """Sunday of the week containing `today`."""
    today = today or get_local_today()
    return today + timedelta(days=6 - today.weekday())


def inclusive_days(start: date, end: date) -> int:
    """Calendar days from start to end, both included."""
    return (end - start).days + 1
