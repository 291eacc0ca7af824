"""
Bill Lifecycle Controller

Owns the in-memory bill collection for one profile and applies every
user intent to it: create, update, delete, pay.

FLOW for each mutating intent:
1. Resolve policy (limit check, verification requirement)
2. Produce the new record (recurrence engine or direct mutation)
3. Write the whole collection to the local store (authoritative)
4. Update the in-memory snapshot
5. Hand the change to the remote mirror (best-effort, not awaited)

DESIGN DECISION: Policy failures abort before step 2, so a rejected
intent never leaves a partial mutation. Remote failures happen after
step 4 and can never roll anything back.
"""

from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from billminder.audit.logger import AuditLogger
from billminder.config import AppSettings, get_settings
from billminder.errors import LimitExceeded, NotFound, ValidationFailure
from billminder.models.audit import AuditEvent, AuditEventBuilder
from billminder.models.bill import (
    Bill,
    BillDraft,
    BillStatus,
    BillUpdate,
    PaymentEvidence,
    UserProfile,
)
from billminder.rules import (
    advance,
    can_create,
    effective_status,
    is_strict_required,
    missing_evidence,
    remaining_slots,
    resolve_limit,
)
from billminder.services.mirror import RemoteMirror
from billminder.services.storage.interface import LocalStoreInterface


logger = structlog.get_logger(__name__)


def local_now() -> datetime:
    """Current instant in the local timezone (aware)."""
    return datetime.now().astimezone()


def _validation_failure(error: ValidationError) -> ValidationFailure:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    message = first.get("msg", "Invalid input")
    if field:
        message = f"{field}: {message}"
    return ValidationFailure(message, field=field)


class BillLifecycleController:
    """
    Single owner of one profile's bill collection.

    Not thread-safe: intents are expected to arrive one at a time. If two
    intents race (e.g. a reminder write-back and a user edit), the later
    write wins with no merge.
    """

    def __init__(
        self,
        local_store: LocalStoreInterface,
        profile: UserProfile,
        mirror: Optional[RemoteMirror] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = local_store
        self._profile = profile
        self._mirror = mirror
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app
        self._clock = clock or local_now
        self._bills: list[Bill] = local_store.get_bills()

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def profile(self) -> UserProfile:
        return self._profile

    def set_profile(self, profile: UserProfile) -> None:
        """Swap the owning profile (sign-in, upgrade, admin tier change)."""
        self._profile = profile

    @property
    def bills(self) -> list[Bill]:
        return list(self._bills)

    def reload(self) -> None:
        """Re-read the collection from the local store."""
        self._bills = self._store.get_bills()

    def get_bill(self, bill_id: str) -> Optional[Bill]:
        for bill in self._bills:
            if bill.id == bill_id:
                return bill
        return None

    def effective_status(self, bill: Bill) -> BillStatus:
        """Display status, derived now. Never stored on the bill."""
        return effective_status(bill, self._clock())

    def free_bill_limit(self) -> int:
        """Read on every decision so admin changes apply immediately."""
        return resolve_limit(self._store.get_system_config(), self._settings.free_bill_limit)

    def can_create_more(self) -> bool:
        return can_create(self._profile, len(self._bills), self.free_bill_limit())

    def remaining_slots(self) -> Optional[int]:
        return remaining_slots(self._profile, len(self._bills), self.free_bill_limit())

    def requires_strict_verification(self, bill_id: str) -> bool:
        """Whether paying this bill needs a reference and proof."""
        bill = self.get_bill(bill_id)
        if bill is None:
            return False
        return is_strict_required(bill, self._profile, self._store.get_security_config())

    # -------------------------------------------------------------------------
    # Write side
    # -------------------------------------------------------------------------

    def _commit(self, bills: list[Bill]) -> None:
        self._store.save_bills(bills)
        self._bills = bills

    def _audit(self, event: AuditEvent) -> None:
        # Guest activity stays in the local log, never the shared audit store
        self._audit_logger.log(event, persist=self._profile.syncs_remotely)

    def _should_mirror(self) -> bool:
        return self._mirror is not None and self._profile.syncs_remotely

    def _mirror_upsert(self, bill: Bill) -> None:
        if self._should_mirror():
            self._mirror.upsert_bill(bill)

    def _replace(self, updated: Bill) -> None:
        self._commit([updated if b.id == updated.id else b for b in self._bills])

    def create_bill(self, draft: Union[BillDraft, Mapping[str, Any]]) -> Bill:
        """
        Create a new bill.

        Raises:
            ValidationFailure: name, due date or frequency missing/invalid
            LimitExceeded: FREE profile already at the configured cap
        """
        if not isinstance(draft, BillDraft):
            try:
                draft = BillDraft.model_validate(dict(draft))
            except ValidationError as e:
                raise _validation_failure(e)

        limit = self.free_bill_limit()
        current_count = len(self._bills)
        if not can_create(self._profile, current_count, limit):
            self._audit(AuditEventBuilder.limit_reached(
                actor=self._profile.uid,
                limit=limit,
                current_count=current_count,
            ))
            raise LimitExceeded(limit=limit, current_count=current_count)

        now = self._clock()
        bill = Bill(
            user_id=self._profile.uid,
            status=BillStatus.UPCOMING,
            created_at=now,
            updated_at=now,
            **draft.model_dump(),
        )

        self._commit(self._bills + [bill])
        self._audit(AuditEventBuilder.bill_created(bill.id, bill.name, self._profile.uid))
        self._mirror_upsert(bill)
        return bill

    def update_bill(self, bill_id: str, patch: Union[BillUpdate, Mapping[str, Any]]) -> Bill:
        """
        Merge user-editable fields onto an existing bill.

        Does not re-run recurrence or verification.

        Raises:
            NotFound: no bill with this id
            ValidationFailure: patch has invalid or non-user fields
        """
        if not isinstance(patch, BillUpdate):
            try:
                patch = BillUpdate.model_validate(dict(patch))
            except ValidationError as e:
                raise _validation_failure(e)

        existing = self.get_bill(bill_id)
        if existing is None:
            raise NotFound(bill_id)

        changes = patch.changes()
        updated = existing.model_copy(update={**changes, "updated_at": self._clock()})

        self._replace(updated)
        self._audit(AuditEventBuilder.bill_updated(
            bill_id,
            sorted(changes),
            self._profile.uid,
        ))
        self._mirror_upsert(updated)
        return updated

    def save_bill(self, data: Mapping[str, Any], bill_id: Optional[str] = None) -> Bill:
        """Form submit: no id means create, an id means edit."""
        if bill_id:
            return self.update_bill(bill_id, data)
        return self.create_bill(data)

    def delete_bill(self, bill_id: str) -> bool:
        """
        Remove a bill. Missing ids are a silent no-op (returns False).

        The remote delete is best-effort; the local removal stands either way.
        """
        if self.get_bill(bill_id) is None:
            logger.debug("delete_missing_bill", bill_id=bill_id)
            return False

        self._commit([b for b in self._bills if b.id != bill_id])
        self._audit(AuditEventBuilder.bill_deleted(bill_id, self._profile.uid))
        if self._should_mirror():
            self._mirror.delete_bill(bill_id)
        return True

    def pay_bill(
        self,
        bill_id: str,
        reference: Optional[str] = None,
        proof: Optional[str] = None,
    ) -> Optional[Bill]:
        """
        Settle a bill.

        Recurring bills move to their next due date and stay active.
        One-time bills become PAID with their due date unchanged.
        Missing ids are a silent no-op (returns None).

        Raises:
            ValidationFailure: strict verification applies and the
                reference or proof is missing
        """
        bill = self.get_bill(bill_id)
        if bill is None:
            logger.debug("pay_missing_bill", bill_id=bill_id)
            return None

        evidence = PaymentEvidence(reference=reference, proof=proof)
        strict = is_strict_required(bill, self._profile, self._store.get_security_config())
        if strict and not evidence.is_complete:
            missing = missing_evidence(evidence)
            self._audit(AuditEventBuilder.payment_rejected(
                bill_id,
                self._profile.uid,
                missing,
            ))
            raise ValidationFailure(
                f"Strict verification requires a transaction reference and proof image "
                f"(missing: {', '.join(missing)})",
                field=missing[0],
            )

        now = self._clock()
        changes: dict[str, Any] = {
            "last_paid_date": now,
            "transaction_ref": evidence.reference or bill.transaction_ref,
            "proof_image": evidence.proof or bill.proof_image,
            "updated_at": now,
        }
        next_due_date = None
        if bill.is_recurring:
            next_due_date = advance(bill.due_date, bill.frequency, bill.interval_months)
            changes["due_date"] = next_due_date
            if bill.status == BillStatus.PAID:
                # Recurring bills never stay PAID
                changes["status"] = BillStatus.UPCOMING
        else:
            changes["status"] = BillStatus.PAID

        updated = bill.model_copy(update=changes)

        self._replace(updated)
        self._audit(AuditEventBuilder.bill_paid(
            bill_id,
            self._profile.uid,
            recurring=bill.is_recurring,
            next_due_date=next_due_date,
            verified=evidence.is_complete,
        ))
        self._mirror_upsert(updated)
        return updated

    def replace_bill(self, bill: Bill) -> bool:
        """
        Write back a bill produced outside the controller (reminder scan).

        Last write wins. Returns False if the bill no longer exists.
        """
        if self.get_bill(bill.id) is None:
            return False
        self._replace(bill)
        self._mirror_upsert(bill)
        return True
