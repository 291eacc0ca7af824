"""
Status Resolver

Derives the display status of a bill from its persisted status and due date.

CRITICAL: The result is a projection. It must never be written back onto
the bill, because the same stored record moves from UPCOMING to DUE_TODAY
to OVERDUE purely as time passes.
"""

from datetime import date, datetime, tzinfo
from typing import Optional, Union

from billminder.models.bill import Bill, BillStatus


DateLike = Union[datetime, date, str]


def parse_instant(value: DateLike) -> Optional[Union[datetime, date]]:
    """Accept a datetime, a date or an ISO-8601 string. None if unparseable."""
    if isinstance(value, (datetime, date)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def calendar_day(value: Union[datetime, date], tz: Optional[tzinfo] = None) -> date:
    """Truncate an instant to its calendar day, as seen from `tz`."""
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    return value


def resolve_status(
    due_date: DateLike,
    persisted_status: Union[BillStatus, str],
    now: Optional[datetime] = None,
) -> BillStatus:
    """
    Effective status for display.

    PAID is terminal. Otherwise the due day is compared with today, both
    truncated to midnight in the timezone of `now` (local time by default).
    Bad input fails closed to the persisted status.
    """
    try:
        status = BillStatus(persisted_status)
    except ValueError:
        status = BillStatus.UPCOMING

    if status == BillStatus.PAID:
        return BillStatus.PAID

    due = parse_instant(due_date)
    if due is None:
        return status

    if now is None:
        now = datetime.now().astimezone()
    today = calendar_day(now)
    due_day = calendar_day(due, now.tzinfo)

    if due_day == today:
        return BillStatus.DUE_TODAY
    if due_day < today:
        return BillStatus.OVERDUE
    return BillStatus.UPCOMING


def effective_status(bill: Bill, now: Optional[datetime] = None) -> BillStatus:
    return resolve_status(bill.due_date, bill.status, now)
