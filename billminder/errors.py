"""
Lifecycle error taxonomy.

Only the lifecycle controller (and the admin overlay) raise these.
The rule functions in billminder.rules never raise.
"""

from typing import Optional


class BillMinderError(Exception):
    """Base exception for user-recoverable core failures."""
    pass


class ValidationFailure(BillMinderError):
    """Input rejected: missing required fields or insufficient payment evidence."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class LimitExceeded(BillMinderError):
    """Free-tier bill cap reached. Callers redirect to the upgrade flow."""

    def __init__(self, limit: int, current_count: int):
        super().__init__(
            f"Free plan limit reached: {current_count} of {limit} bills. "
            "Upgrade to Pro to track more."
        )
        self.limit = limit
        self.current_count = current_count


class NotFound(BillMinderError):
    """Edit targeted a bill id that does not exist."""

    def __init__(self, bill_id: str):
        super().__init__(f"Bill not found: {bill_id}")
        self.bill_id = bill_id


class AdminAccessDenied(BillMinderError):
    """Administrative overlay called by a non-admin actor."""
    pass
