"""
Bill rules package.

Pure decision functions shared by the lifecycle controller, the report
views and the admin overlay. None of them raise on bad input.
"""

from billminder.rules.entitlement import can_create, remaining_slots, resolve_limit
from billminder.rules.recurrence import advance, months_between_due_dates
from billminder.rules.status import effective_status, resolve_status
from billminder.rules.verification import (
    evidence_is_sufficient,
    is_strict_required,
    missing_evidence,
)

__all__ = [
    "advance",
    "can_create",
    "effective_status",
    "evidence_is_sufficient",
    "is_strict_required",
    "missing_evidence",
    "months_between_due_dates",
    "remaining_slots",
    "resolve_limit",
    "resolve_status",
]
