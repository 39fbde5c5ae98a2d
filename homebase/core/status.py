"""Warranty and maintenance status — pure date logic.

Computes derived dates (warranty expiry, next reminder) and display statuses.
No I/O: this module only transforms data.

Month arithmetic clamps to the end of the target month, so Jan 31 + 1 month
is Feb 28 (or 29), never an overflow into March.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Iterable

from homebase.data.models import ApplianceStats, Frequency, WarrantyStatus

EXPIRING_SOON_DAYS = 30
MAX_HORIZON_DAYS = 3650

_FREQUENCY_MONTHS = {
    Frequency.ONE_TIME: 0,
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.BI_YEARLY: 6,
    Frequency.YEARLY: 12,
}


def parse_date(value: str | date) -> date:
    """Parse a YYYY-MM-DD string. Raises ValueError on anything else."""
    if isinstance(value, date):
        return value
    if len(value) != 10:
        raise ValueError(f"Expected YYYY-MM-DD, got {value!r}")
    return datetime.strptime(value, "%Y-%m-%d").date()


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def warranty_expiry(purchase_date: str | date, warranty_months: int) -> str:
    """Expiry date (YYYY-MM-DD) = purchase date + warranty_months months."""
    return add_months(parse_date(purchase_date), warranty_months).isoformat()


def reminder_date(task_date: str | date, frequency: str | Frequency) -> str:
    """Next reminder (YYYY-MM-DD) for a task: its date plus one interval.

    One-time tasks are reminded on the task date itself.
    """
    months = _FREQUENCY_MONTHS[Frequency(frequency)]
    return add_months(parse_date(task_date), months).isoformat()


def warranty_status(
    expiry_date: str | date,
    now: date | None = None,
    soon_days: int = EXPIRING_SOON_DAYS,
) -> WarrantyStatus:
    """Classify an expiry date relative to today.

    expired: expiry <= now
    expiring-soon: now < expiry <= now + soon_days
    active: anything later
    """
    today = now or date.today()
    expiry = parse_date(expiry_date)
    if expiry <= today:
        return WarrantyStatus.EXPIRED
    if expiry <= horizon_end(today, soon_days):
        return WarrantyStatus.EXPIRING_SOON
    return WarrantyStatus.ACTIVE


def horizon_end(now: date, horizon_days: int) -> date:
    """now + horizon_days, clamped to the last representable date."""
    try:
        return now + timedelta(days=horizon_days)
    except OverflowError:
        return date.max


def is_upcoming(
    reminder: str | date, now: date | None = None, horizon_days: int = 14,
) -> bool:
    """True if now <= reminder <= now + horizon_days."""
    today = now or date.today()
    when = parse_date(reminder)
    return today <= when <= horizon_end(today, horizon_days)


def appliance_stats(
    expiry_dates: Iterable[str], now: date | None = None,
    soon_days: int = EXPIRING_SOON_DAYS,
) -> ApplianceStats:
    """Count appliances per warranty status."""
    stats = ApplianceStats()
    for expiry in expiry_dates:
        stats.total += 1
        status = warranty_status(expiry, now, soon_days)
        if status is WarrantyStatus.EXPIRED:
            stats.expired += 1
        elif status is WarrantyStatus.EXPIRING_SOON:
            stats.expiring_soon += 1
        else:
            stats.active += 1
    return stats
