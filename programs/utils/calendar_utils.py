"""
Calendar utilities shared by program naming and the registrations counter.
"""
import calendar
from datetime import date, datetime, time, timedelta


DAY_NAMES = list(calendar.day_name)  # Monday first, matching date.weekday()


def to_time(value):
    """
    Coerce ``value`` into a ``datetime.time``.

    Accepts ``time`` objects and ``"HH:MM"`` / ``"HH:MM:SS"`` strings.
    """
    if isinstance(value, time):
        return value
    parts = [int(p) for p in str(value).split(':')]
    while len(parts) < 3:
        parts.append(0)
    return time(parts[0], parts[1], parts[2])


def to_date(value):
    """Coerce a ``date``, ``datetime`` or ISO ``YYYY-MM-DD`` string into a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def format_time_display(value):
    """
    Format a time as h:mmam/pm.

    Example: ``18:30:00`` -> ``6:30pm``; midnight -> ``12:00am``.
    """
    t = to_time(value)
    period = 'pm' if t.hour >= 12 else 'am'
    display_hour = t.hour % 12 or 12
    return f"{display_hour}:{t.minute:02d}{period}"


def format_month_day(value):
    """Format a date as M/D without zero padding, e.g. 1/26."""
    d = to_date(value)
    return f"{d.month}/{d.day}"


def get_day_name(value):
    return DAY_NAMES[to_date(value).weekday()]


def pluralize_day(day_name):
    return f"{day_name}s"


def start_of_week(value):
    """Monday of the week containing ``value``."""
    d = to_date(value)
    return d - timedelta(days=d.weekday())


def whole_weeks_between(later, earlier):
    """Number of complete weeks from ``earlier`` to ``later`` (truncated toward zero)."""
    days = (to_date(later) - to_date(earlier)).days
    weeks = abs(days) // 7
    return weeks if days >= 0 else -weeks
