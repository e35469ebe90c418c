"""Next-due-date arithmetic for recurring rules."""

import logging
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from recurring_scheduler.models import DAILY, FREQUENCIES, MONTHLY, WEEKLY

logger = logging.getLogger(__name__)


def effective_step(interval: int | None) -> int:
    """Step count for a rule; missing or non-positive intervals mean 1."""
    if isinstance(interval, bool) or not isinstance(interval, int):
        return 1
    return interval if interval > 0 else 1


def is_known_frequency(frequency: str | None) -> bool:
    return frequency in FREQUENCIES


def advance(
    due_date: date,
    frequency: str | None,
    interval: int | None = 1,
    *,
    day_of_month: int | None = None,
) -> date:
    """
    Return the next due date after ``due_date``.

    Dates are plain calendar dates, so there is no timezone or DST drift.
    Monthly steps clamp to the last day of the target month:
    2025-01-31 + 1 month is 2025-02-28. When ``day_of_month`` is given the
    monthly step lands on that day (clamped), so an anchor of 31 goes
    Jan 31 -> Feb 28 -> Mar 31 instead of drifting to the 28th.

    Unknown or missing frequencies step monthly.
    """
    step = effective_step(interval)

    if frequency == DAILY:
        return due_date + timedelta(days=step)
    if frequency == WEEKLY:
        return due_date + timedelta(weeks=step)

    if frequency != MONTHLY:
        logger.warning(
            "Unknown recurring frequency %r; stepping monthly.", frequency
        )
    if day_of_month and 1 <= day_of_month <= 31:
        return due_date + relativedelta(months=step, day=day_of_month)
    return due_date + relativedelta(months=step)
