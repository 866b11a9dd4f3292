"""Date manipulation utilities"""

from datetime import date, timedelta
from typing import Union


def parse_date(value: Union[date, str]) -> date:
    """Accept a date or an ISO string (YYYY-MM-DD, a time part is ignored)"""
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip()[:10])


def add_days(from_date: date, days: int) -> date:
    """Add calendar days to a date"""
    return from_date + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """Whole days from start to end (negative when end is earlier)"""
    return (end - start).days
