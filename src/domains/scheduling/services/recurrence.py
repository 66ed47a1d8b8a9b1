"""
Recurring follow-up expansion

Expands one booked follow-up into the remaining occurrences of a one-year
series using calendar month arithmetic.
"""

import calendar
import math
import datetime as dt
from typing import Iterator, Tuple

ALLOWED_INTERVALS = (1, 3, 6, 12)
SERIES_MONTHS = 12


def add_months(base: dt.date, months: int) -> dt.date:
    """Add calendar months, clamping to the last day of the target month"""
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return dt.date(year, month, day)


def occurrence_count(interval_months: int) -> int:
    """Total occurrences in the series, including the already booked base"""
    return math.ceil(SERIES_MONTHS / interval_months)


class RecurrenceSeries:
    """
    Lazy series of (date, time) occurrences following a base appointment.

    Each occurrence is offset from the base date rather than from the previous
    occurrence, so Jan 31 + 1 month is Feb 29 but + 2 months is Mar 31. The base
    occurrence is not included. Iterating again starts from the beginning.
    """

    def __init__(self, base_date: dt.date, base_time: str, interval_months: int):
        if interval_months not in ALLOWED_INTERVALS:
            raise ValueError(
                f"Recurrence interval must be one of {ALLOWED_INTERVALS} months, got {interval_months}"
            )
        self.base_date = base_date
        self.base_time = base_time
        self.interval_months = interval_months

    def __iter__(self) -> Iterator[Tuple[dt.date, str]]:
        for i in range(1, occurrence_count(self.interval_months)):
            yield add_months(self.base_date, self.interval_months * i), self.base_time

    def __len__(self) -> int:
        return occurrence_count(self.interval_months) - 1

    def __repr__(self) -> str:
        return (f"RecurrenceSeries(base_date={self.base_date!r}, base_time={self.base_time!r}, "
                f"interval_months={self.interval_months})")


def expand(base_date: dt.date, base_time: str, interval_months: int) -> RecurrenceSeries:
    """Expand a base follow-up into its recurring occurrences"""
    return RecurrenceSeries(base_date, base_time, interval_months)
