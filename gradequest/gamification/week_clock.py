"""
Week boundary arithmetic

Weeks run Monday 00:00:00 to Sunday 23:59:59.999 in local time. Sunday is the
last day of its week, so a Sunday maps back to the Monday six days earlier.

All functions are pure; the persisted week marker (an ISO date of the week
start) is owned by callers.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo
import logging

from gradequest import config
from gradequest.exceptions import ValidationError

logger = logging.getLogger(__name__)

WeekMarker = Union[str, date, datetime]


def local_now() -> datetime:
    """
    Current time on the configured calendar

    Uses GRADEQUEST_TIMEZONE when set, otherwise the host's local time (aware).
    """
    if config.GRADEQUEST_TIMEZONE:
        return datetime.now(ZoneInfo(config.GRADEQUEST_TIMEZONE))
    return datetime.now().astimezone()


def current_week_start(now: datetime) -> datetime:
    """
    Most recent Monday at 00:00:00, keeping the tzinfo of `now`

    Examples:
        Wednesday 2024-01-17 15:30 -> Monday 2024-01-15 00:00
        Sunday 2024-01-21 23:00 -> Monday 2024-01-15 00:00
    """
    days_since_monday = now.weekday()  # Monday == 0, Sunday == 6
    monday = now - timedelta(days=days_since_monday)
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def week_end(week_start: datetime) -> datetime:
    """Sunday 23:59:59.999 of the week starting at `week_start`"""
    return (week_start + timedelta(days=6)).replace(hour=23, minute=59, second=59, microsecond=999000)


def week_key(dt: Union[date, datetime]) -> str:
    """ISO date of the week start containing `dt` (the persisted marker format)"""
    if not isinstance(dt, datetime):
        dt = datetime(dt.year, dt.month, dt.day)
    return current_week_start(dt).date().isoformat()


def parse_week_key(value: WeekMarker) -> datetime:
    """
    Parse a stored week marker into a naive midnight datetime

    Accepts an ISO-8601 date or datetime string, a date or a datetime.
    """
    if isinstance(value, datetime):
        return value.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(
            message=f"Malformed week marker '{value}'",
            field="week_marker",
            value=value,
        )
    return parsed.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)


def is_new_week(last_stored_week_start: Optional[WeekMarker], now: datetime) -> bool:
    """
    True when nothing is stored or the stored week start differs from this week's

    Comparison is by calendar date so a stored ISO date, date or datetime all work.
    """
    if last_stored_week_start is None or last_stored_week_start == "":
        return True

    stored = parse_week_key(last_stored_week_start).date()
    return stored != current_week_start(now).date()


def weeks_between(earlier: Union[date, datetime], later: Union[date, datetime]) -> int:
    """Number of week boundaries crossed going from `earlier` to `later`"""
    start = date.fromisoformat(week_key(earlier))
    end = date.fromisoformat(week_key(later))
    return (end - start).days // 7


def week_marker_key(user_id: str) -> str:
    """Storage key of the per-user last-seen week start"""
    return f"last_week_start_{user_id}"
