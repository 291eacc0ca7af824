"""
Report Views

Filtering, ordering and totals shared by the bill list screens and the
exported report. Rendering (PDF, HTML) is left to the caller.

Display status always comes from the status resolver, so a report and a
list screen built at the same instant agree on every row.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from billminder.models.bill import Bill, BillStatus, Frequency, UserProfile
from billminder.rules.status import resolve_status


class ReportType(str, Enum):
    ACTIVE = "ACTIVE"     # not settled for good
    PAID = "PAID"         # settled one-time bills
    HISTORY = "HISTORY"   # anything ever paid
    ALL = "ALL"


REPORT_TITLES = {
    ReportType.ACTIVE: "Active Obligations Report",
    ReportType.PAID: "Settled One-Time Bills Report",
    ReportType.HISTORY: "Payment History Audit Report",
    ReportType.ALL: "Comprehensive Financial Statement",
}


class ReportRow(BaseModel):
    bill_id: str
    name: str
    reference_date: datetime
    frequency: Frequency
    amount: str
    status: BillStatus


class BillReport(BaseModel):
    report_type: ReportType
    title: str
    generated_for: str
    generated_at: datetime
    currency: str
    rows: list[ReportRow] = Field(default_factory=list)
    outstanding_total: Decimal = Decimal("0")
    settled_total: Decimal = Decimal("0")


class DashboardSummary(BaseModel):
    overdue: int
    due_today: int
    upcoming: int
    total_active: int
    next_due: list[Bill] = Field(default_factory=list)


def format_currency(amount: Optional[Decimal], currency_code: str = "NGN") -> str:
    """'NGN 1,500.00'. Empty string for flexible (None) amounts."""
    if amount is None:
        return ""
    return f"{currency_code} {Decimal(amount):,.2f}"


def _settled_at(bill: Bill) -> datetime:
    return bill.last_paid_date or bill.updated_at


def filter_bills(bills: list[Bill], report_type: ReportType) -> list[Bill]:
    """
    Select and order bills for a view.

    ACTIVE/ALL: nearest due date first. PAID/HISTORY: most recently paid first.
    """
    report_type = ReportType(report_type)
    if report_type == ReportType.ACTIVE:
        selected = [b for b in bills if b.status != BillStatus.PAID]
    elif report_type == ReportType.PAID:
        selected = [b for b in bills if b.status == BillStatus.PAID]
    elif report_type == ReportType.HISTORY:
        selected = [b for b in bills if b.last_paid_date is not None]
    else:
        selected = list(bills)

    if report_type in (ReportType.PAID, ReportType.HISTORY):
        return sorted(selected, key=_settled_at, reverse=True)
    return sorted(selected, key=lambda b: b.due_date)


def outstanding_total(bills: list[Bill]) -> Decimal:
    return sum(
        (b.amount for b in bills if b.status != BillStatus.PAID and b.amount is not None),
        Decimal("0"),
    )


def settled_total(bills: list[Bill]) -> Decimal:
    return sum(
        (
            b.amount for b in bills
            if (b.status == BillStatus.PAID or b.last_paid_date) and b.amount is not None
        ),
        Decimal("0"),
    )


def build_report(
    bills: list[Bill],
    profile: Optional[UserProfile],
    report_type: ReportType = ReportType.ALL,
    now: Optional[datetime] = None,
) -> BillReport:
    """
    Report content for one view. Totals always cover every bill.
    """
    report_type = ReportType(report_type)
    now = now or datetime.now().astimezone()
    currency = profile.currency if profile else "NGN"
    historical = report_type in (ReportType.PAID, ReportType.HISTORY)

    rows = []
    for bill in filter_bills(bills, report_type):
        if historical and bill.last_paid_date:
            reference_date = bill.last_paid_date
        else:
            reference_date = bill.due_date
        rows.append(ReportRow(
            bill_id=bill.id,
            name=bill.name,
            reference_date=reference_date,
            frequency=bill.frequency,
            amount=format_currency(bill.amount, bill.effective_currency(profile)) or "N/A",
            status=resolve_status(bill.due_date, bill.status, now),
        ))

    if profile is not None:
        generated_for = profile.display_name or profile.email or "Guest User"
    else:
        generated_for = "Guest User"

    return BillReport(
        report_type=report_type,
        title=REPORT_TITLES[report_type],
        generated_for=generated_for,
        generated_at=now,
        currency=currency,
        rows=rows,
        outstanding_total=outstanding_total(bills),
        settled_total=settled_total(bills),
    )


def dashboard_summary(
    bills: list[Bill],
    now: Optional[datetime] = None,
    upcoming_count: int = 3,
) -> DashboardSummary:
    """Counts by display status over active bills, plus the nearest few."""
    now = now or datetime.now().astimezone()
    active = filter_bills(bills, ReportType.ACTIVE)
    statuses = [resolve_status(b.due_date, b.status, now) for b in active]

    overdue = statuses.count(BillStatus.OVERDUE)
    due_today = statuses.count(BillStatus.DUE_TODAY)
    return DashboardSummary(
        overdue=overdue,
        due_today=due_today,
        upcoming=len(active) - overdue - due_today,
        total_active=len(active),
        next_due=active[:upcoming_count],
    )
