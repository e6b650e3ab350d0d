"""
Billable period count for a rental line.

A line is never billed for zero periods. Days past the last full period roll
into one more period only once they exceed the grace window.
"""
import math
from datetime import datetime, timezone

SECONDS_PER_DAY = 24 * 60 * 60

# periodicity -> (period length in days, grace days)
PERIODS = {
    "weekly": (7, 2),
    "monthly": (30, 5),
}


def _aware(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def elapsed_days(start: datetime, end: datetime) -> int:
    seconds = abs((_aware(end) - _aware(start)).total_seconds())
    return math.ceil(seconds / SECONDS_PER_DAY)


def rental_units(start: datetime, end: datetime, periodicity: str) -> int:
    if periodicity not in PERIODS:
        raise ValueError(f"Unknown periodicity: {periodicity}")
    length, grace = PERIODS[periodicity]
    days = elapsed_days(start, end)
    full, extra = divmod(days, length)
    if extra > grace or full == 0:
        return full + 1
    return full
