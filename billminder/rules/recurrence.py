"""
Recurrence Engine

Computes the next due date when a recurring bill is paid.

Month arithmetic clamps to the end of the month: Jan 31 + 1 month is the
last day of February. Time of day and timezone are kept from the input.
"""

from datetime import datetime
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from billminder.models.bill import Frequency


# Months added per payment, by frequency
MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.TERMLY: 4,
    Frequency.YEARLY: 12,
}


def months_between_due_dates(
    frequency: Union[Frequency, str],
    interval_months: Optional[int] = None,
) -> Optional[int]:
    """
    Length of one cycle in months, or None for ONE_TIME / unknown values.

    CUSTOM with a missing or invalid interval defaults to 1 month.
    """
    try:
        frequency = Frequency(frequency)
    except ValueError:
        return None

    if frequency == Frequency.CUSTOM:
        if isinstance(interval_months, int) and not isinstance(interval_months, bool) and interval_months >= 1:
            return interval_months
        return 1
    return MONTH_STEPS.get(frequency)


def advance(
    due_date: datetime,
    frequency: Union[Frequency, str],
    interval_months: Optional[int] = None,
) -> datetime:
    """
    Next due date after paying a bill due on `due_date`.

    ONE_TIME and unknown frequencies return the input unchanged.
    """
    months = months_between_due_dates(frequency, interval_months)
    if months is None:
        return due_date
    if months % 12 == 0:
        return due_date + relativedelta(years=months // 12)
    return due_date + relativedelta(months=months)
