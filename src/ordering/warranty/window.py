"""Warranty window arithmetic.

Durations are calendar months. When the target month is shorter than the
start day (Jan 31 + 1 month), the end date clamps to the month's last day.
"""

import calendar
from datetime import datetime


def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def warranty_window(start: datetime, duration_months: int) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` of a warranty lasting ``duration_months``."""
    if duration_months < 0:
        raise ValueError("Warranty duration cannot be negative")
    return start, add_months(start, duration_months)
