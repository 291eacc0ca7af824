"""
Payment Verification Gate

Decides whether settling a bill requires a transaction reference and a
proof image ("strict audit").

DESIGN DECISION: Strict audit is a Pro capability, not just a toggle.
A FREE profile is never forced into strict mode, whatever the bill or
the install-wide security setting says.
"""

from typing import Optional

from billminder.models.bill import (
    Bill,
    Entitlement,
    PaymentEvidence,
    SecurityConfig,
    UserProfile,
)


def is_strict_required(
    bill: Bill,
    profile: Optional[UserProfile],
    security_config: Optional[SecurityConfig],
) -> bool:
    """PRO and (install-wide validation on, or the bill asks for proof)."""
    if profile is None or profile.entitlement != Entitlement.PRO:
        return False
    validation_enabled = bool(security_config and security_config.payment_validation_enabled)
    return validation_enabled or bool(bill.require_proof)


def missing_evidence(evidence: PaymentEvidence) -> list[str]:
    """Names of the strict-mode fields that are absent or blank."""
    missing = []
    if not evidence.reference:
        missing.append("reference")
    if not evidence.proof:
        missing.append("proof")
    return missing


def evidence_is_sufficient(
    bill: Bill,
    profile: Optional[UserProfile],
    security_config: Optional[SecurityConfig],
    evidence: PaymentEvidence,
) -> bool:
    if not is_strict_required(bill, profile, security_config):
        return True
    return evidence.is_complete
