"""Pure date arithmetic used by the recurrence expander and the calendar grid"""
from datetime import date, datetime, time, timedelta
from typing import Union

from dateutil.relativedelta import relativedelta

DAY_KEYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]


def js_weekday(value: Union[date, datetime]) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday"""
    return (value.weekday() + 1) % 7


def day_key(value: Union[date, datetime]) -> str:
    """Lowercase English weekday name, the key used by working-hours config"""
    return DAY_KEYS[js_weekday(value)]


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months keeping the wall-clock time.

    The day is clamped to the last valid day of the resulting month
    (Jan 31 + 1 month -> Feb 28/29). Offsets are applied to the series
    start, not chained, so a clamped month does not shift later ones.
    """
    return value + relativedelta(months=months)


def months_between(start: Union[date, datetime], end: Union[date, datetime]) -> int:
    """Whole calendar months from ``start`` to ``end``"""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def at_hour(value: Union[date, datetime], hour: int, minute: int = 0) -> datetime:
    """Same calendar day at HH:MM (hour 24 means midnight of the next day)"""
    tzinfo = value.tzinfo if isinstance(value, datetime) else None
    day = value.date() if isinstance(value, datetime) else value
    base = datetime.combine(day, time(0, 0), tzinfo=tzinfo)
    return base + timedelta(hours=hour, minutes=minute)


def at_time(value: Union[date, datetime], clock: time) -> datetime:
    """Same calendar day at the given wall-clock time"""
    return at_hour(value, clock.hour, clock.minute)


def end_of_day(value: date, tzinfo=None) -> datetime:
    return datetime.combine(value, time.max, tzinfo=tzinfo)


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60
