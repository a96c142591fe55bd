"""
Recurrence -- pure schedule arithmetic for recurring journal templates.

Month-based frequencies keep the template's anchor day (the day of month of
its start date) and clamp it to the last day of shorter months, so a
template starting on Jan 31 runs Feb 28/29, Mar 31, Apr 30, ...
"""

import calendar
from datetime import date, timedelta

_DAY_STEPS = {
    "daily": 1,
    "weekly": 7,
}

_MONTH_STEPS = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}

FREQUENCIES = tuple(_DAY_STEPS) + tuple(_MONTH_STEPS)


def add_months(day: date, months: int, anchor_day: int | None = None) -> date:
    """Shift ``day`` by ``months``, clamping to the end of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    wanted = anchor_day if anchor_day is not None else day.day
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(wanted, last_day))


def next_run_date(current: date, frequency, anchor_day: int | None = None) -> date:
    """
    The run date following ``current``.

    Raises:
        ValueError: If frequency is not one of FREQUENCIES.
    """
    frequency = getattr(frequency, "value", frequency)
    if frequency in _DAY_STEPS:
        return current + timedelta(days=_DAY_STEPS[frequency])
    if frequency in _MONTH_STEPS:
        return add_months(current, _MONTH_STEPS[frequency], anchor_day)
    raise ValueError(f"Unknown recurrence frequency: {frequency!r}")
