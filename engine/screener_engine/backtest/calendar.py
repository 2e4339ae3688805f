"""
Trading calendar.

A trading day is any weekday. Exchange holidays are not modelled: a
holiday simply produces a date on which no symbol has a new bar.
"""

from datetime import date, timedelta


def is_trading_day(day: date) -> bool:
    return day.weekday() < 5


def generate_trading_dates(start: date, end: date) -> list[date]:
    """
    Weekdays from start to end, both inclusive.

    Returns an empty list if end precedes start.
    """
    if end < start:
        return []
    days = (end - start).days + 1
    return [d for d in (start + timedelta(days=i) for i in range(days)) if is_trading_day(d)]


def count_trading_days(start: date, end: date) -> int:
    """Number of weekdays in [start, end] without materializing the list."""
    if end < start:
        return 0
    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * 5
    for i in range(remainder):
        if is_trading_day(start + timedelta(days=full_weeks * 7 + i)):
            count += 1
    return count


def previous_trading_day(day: date) -> date:
    """Most recent weekday strictly before day."""
    day -= timedelta(days=1)
    while not is_trading_day(day):
        day -= timedelta(days=1)
    return day


def next_trading_day(day: date) -> date:
    """First weekday strictly after day."""
    day += timedelta(days=1)
    while not is_trading_day(day):
        day += timedelta(days=1)
    return day
