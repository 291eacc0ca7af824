"""
Data Models Package

This package contains all Pydantic models used in BillMinder.
All data flowing through the core must conform to these schemas.
"""

from billminder.models.bill import (
    AdminBillPatch,
    Bill,
    BillDraft,
    BillStatus,
    BillUpdate,
    Entitlement,
    Frequency,
    PaymentEvidence,
    SecurityConfig,
    SystemConfig,
    UserProfile,
    new_id,
    utcnow,
)
from billminder.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Bill models
    "AdminBillPatch",
    "Bill",
    "BillDraft",
    "BillStatus",
    "BillUpdate",
    "Entitlement",
    "Frequency",
    "PaymentEvidence",
    "SecurityConfig",
    "SystemConfig",
    "UserProfile",
    "new_id",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
