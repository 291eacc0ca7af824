"""
Reminder Scan

Decides which bills deserve a reminder right now. Delivery (browser
notification, email, push) is the caller's job.

Reminder windows, in whole days until the due date:
    0  -> due today
    1  -> due tomorrow
    3  -> due in three days
    <0 -> overdue

A bill is reminded at most once per UTC day. After delivering, the caller
stamps the bill with mark_notified() and writes it back through
BillLifecycleController.replace_bill().
"""

import math
from datetime import datetime, timezone
from typing import Iterator, Optional

from pydantic import BaseModel

from billminder.models.bill import Bill, BillStatus
from billminder.reports import format_currency


REMINDER_DAYS = (0, 1, 3)


class Reminder(BaseModel):
    bill_id: str
    bill_name: str
    days_until_due: int
    title: str
    body: str


def days_until(due_date: datetime, now: datetime) -> int:
    """Whole days until `due_date`, rounded up (a partial day counts)."""
    return math.ceil((due_date - now).total_seconds() / 86400)


def _notified_today(bill: Bill, now: datetime) -> bool:
    if bill.last_notified_at is None:
        return False
    last = bill.last_notified_at.astimezone(timezone.utc).date()
    return last == now.astimezone(timezone.utc).date()


def _reminder_for(bill: Bill, days: int) -> Reminder:
    if days < 0:
        title = f"Overdue: {bill.name}"
        body = f"This bill is {abs(days)} day{'s' if abs(days) != 1 else ''} overdue."
    elif days == 0:
        title = f"Due today: {bill.name}"
        body = "This bill is due today."
    elif days == 1:
        title = f"Due tomorrow: {bill.name}"
        body = "This bill is due tomorrow."
    else:
        title = f"Upcoming: {bill.name}"
        body = f"This bill is due in {days} days."

    amount = format_currency(bill.amount, bill.effective_currency())
    if amount:
        body = f"{body} Amount: {amount}"

    return Reminder(
        bill_id=bill.id,
        bill_name=bill.name,
        days_until_due=days,
        title=title,
        body=body,
    )


def scan_reminders(bills: list[Bill], now: Optional[datetime] = None) -> Iterator[Reminder]:
    """Yield one reminder per bill that falls in a reminder window."""
    now = now or datetime.now(timezone.utc)
    for bill in bills:
        if bill.status == BillStatus.PAID:
            continue
        if _notified_today(bill, now):
            continue
        days = days_until(bill.due_date, now)
        if days < 0 or days in REMINDER_DAYS:
            yield _reminder_for(bill, days)


def mark_notified(bill: Bill, now: Optional[datetime] = None) -> Bill:
    now = now or datetime.now(timezone.utc)
    return bill.model_copy(update={"last_notified_at": now, "updated_at": now})
