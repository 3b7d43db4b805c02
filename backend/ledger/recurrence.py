"""
Schedule arithmetic for recurring templates.
"""
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from ledger.models import RecurringInterval


def advance(value: datetime, interval: str) -> datetime:
    """
    Next occurrence after ``value`` for the given interval.

    MONTHLY keeps the day of month, clamped to the last day of the target
    month (Jan 31 -> Feb 28/29). YEARLY moves Feb 29 to Feb 28 in non-leap
    years. relativedelta applies both clamps.
    """
    interval = RecurringInterval(interval)
    if interval == RecurringInterval.DAILY:
        return value + timedelta(days=1)
    if interval == RecurringInterval.WEEKLY:
        return value + timedelta(days=7)
    if interval == RecurringInterval.MONTHLY:
        return value + relativedelta(months=1)
    return value + relativedelta(years=1)
