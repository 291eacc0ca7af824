"""
Administrative Overlay

A privileged write path that works directly on the remote store, across
all owners, bypassing the per-user lifecycle controller.

CRITICAL: Nothing here goes through BillLifecycleController, so its
invariants are not enforced for these writes. A bill may change under a
running user session. Every mutation leaves an audit entry with the
actor, the action, the target, before/after values and a reason.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError

from billminder.audit.logger import AuditLogger
from billminder.errors import AdminAccessDenied, NotFound, ValidationFailure
from billminder.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from billminder.models.bill import (
    AdminBillPatch,
    Bill,
    BillStatus,
    Entitlement,
    SystemConfig,
    UserProfile,
    utcnow,
)
from billminder.services.storage.interface import RemoteStoreInterface, StorageError


logger = structlog.get_logger(__name__)


class RestrictionAction(str, Enum):
    DISABLE = "DISABLE"
    RESTRICT = "RESTRICT"
    ENABLE = "ENABLE"


_RESTRICTION_EVENTS = {
    RestrictionAction.DISABLE: AuditEventType.USER_DISABLE,
    RestrictionAction.RESTRICT: AuditEventType.USER_RESTRICT,
    RestrictionAction.ENABLE: AuditEventType.USER_ENABLE,
}


class AdminStats(BaseModel):
    total_users: int
    total_bills: int
    total_volume: Decimal
    total_paid_volume: Decimal
    system_health: str


def _plain(value: Any) -> Any:
    """JSON-friendly representation for audit before/after values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


class AdminOverlay:
    """
    Operator console operations.

    All methods take the acting admin's email and refuse anyone else.
    """

    def __init__(
        self,
        remote: RemoteStoreInterface,
        audit_logger: AuditLogger,
        admin_email: Optional[str],
    ):
        self._remote = remote
        self._audit_logger = audit_logger
        self._admin_email = admin_email

    def check_access(self, email: Optional[str]) -> bool:
        if not self._admin_email or not email:
            return False
        return email.strip().lower() == self._admin_email.strip().lower()

    def _require_admin(self, actor: Optional[str]) -> str:
        if not self.check_access(actor):
            logger.warning("admin_access_denied", actor=actor)
            raise AdminAccessDenied(f"{actor or 'anonymous'} is not an administrator")
        return actor

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def system_config(self, actor: str) -> SystemConfig:
        self._require_admin(actor)
        raw = await self._remote.get_system_config()
        known = {k: v for k, v in raw.items() if k in SystemConfig.model_fields}
        return SystemConfig.model_validate(known)

    async def dashboard_stats(self, actor: str) -> AdminStats:
        self._require_admin(actor)
        bills = await self._remote.fetch_all_bills()
        profiles = await self._remote.fetch_all_profiles()
        config = await self.system_config(actor)

        total_volume = sum((b.amount or Decimal("0") for b in bills), Decimal("0"))
        paid_volume = sum(
            (b.amount or Decimal("0") for b in bills if b.status == BillStatus.PAID),
            Decimal("0"),
        )
        return AdminStats(
            total_users=len(profiles),
            total_bills=len(bills),
            total_volume=total_volume,
            total_paid_volume=paid_volume,
            system_health="Maintenance" if config.maintenance_mode else "Optimal",
        )

    async def list_users(self, actor: str) -> list[UserProfile]:
        self._require_admin(actor)
        return await self._remote.fetch_all_profiles()

    async def list_bills(self, actor: str) -> list[Bill]:
        """All bills across owners, newest first."""
        self._require_admin(actor)
        bills = await self._remote.fetch_all_bills()
        return sorted(bills, key=lambda b: b.created_at, reverse=True)

    def recent_audit_events(self, actor: str, limit: int = 100) -> list[AuditEvent]:
        self._require_admin(actor)
        storage = self._audit_logger.storage
        if storage is None:
            return []
        try:
            return storage.get_recent_events(limit)
        except StorageError as e:
            logger.error("audit_read_failed", error=str(e))
            return []

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _get_profile(self, user_id: str) -> UserProfile:
        for profile in await self._remote.fetch_all_profiles():
            if profile.uid == user_id:
                return profile
        raise NotFound(user_id)

    async def update_user_tier(
        self,
        actor: str,
        user_id: str,
        new_tier: Entitlement,
        reason: str,
    ) -> UserProfile:
        actor = self._require_admin(actor)
        new_tier = Entitlement(new_tier)
        profile = await self._get_profile(user_id)

        updated = profile.model_copy(update={
            "entitlement": new_tier,
            "entitlement_updated_at": utcnow(),
        })
        await self._remote.upsert_profile(updated)

        self._audit_logger.log(AuditEventBuilder.tier_change(
            admin=actor,
            user_id=user_id,
            old_tier=profile.entitlement.value,
            new_tier=new_tier.value,
            reason=reason,
        ))
        return updated

    async def update_user_restriction(
        self,
        actor: str,
        user_id: str,
        action: RestrictionAction,
        reason: str,
    ) -> UserProfile:
        """DISABLE or RESTRICT sets that flag; ENABLE clears both and the reason."""
        actor = self._require_admin(actor)
        action = RestrictionAction(action)
        profile = await self._get_profile(user_id)

        if action == RestrictionAction.ENABLE:
            updates = {"is_disabled": False, "is_restricted": False, "restriction_reason": None}
        elif action == RestrictionAction.DISABLE:
            updates = {"is_disabled": True, "restriction_reason": reason}
        else:
            updates = {"is_restricted": True, "restriction_reason": reason}

        before = {key: getattr(profile, key) for key in updates}
        updated = profile.model_copy(update=updates)
        await self._remote.upsert_profile(updated)

        self._audit_logger.log(AuditEventBuilder.user_restriction(
            admin=actor,
            user_id=user_id,
            event_type=_RESTRICTION_EVENTS[action],
            old_value=before,
            new_value=updates,
            reason=reason,
        ))
        return updated

    async def patch_bill(
        self,
        actor: str,
        bill_id: str,
        patch: AdminBillPatch,
        reason: str,
    ) -> Bill:
        actor = self._require_admin(actor)
        if not isinstance(patch, AdminBillPatch):
            try:
                patch = AdminBillPatch.model_validate(dict(patch))
            except ValidationError as e:
                raise ValidationFailure(str(e))

        bill = next(
            (b for b in await self._remote.fetch_all_bills() if b.id == bill_id),
            None,
        )
        if bill is None:
            raise NotFound(bill_id)

        changes = patch.changes()
        updated = bill.model_copy(update={**changes, "updated_at": utcnow()})
        await self._remote.upsert_bill(updated)

        self._audit_logger.log(AuditEventBuilder.bill_admin_update(
            admin=actor,
            bill_id=bill_id,
            old_value={key: _plain(getattr(bill, key)) for key in changes},
            new_value={key: _plain(value) for key, value in changes.items()},
            reason=reason,
        ))
        return updated

    async def update_config(self, actor: str, key: str, value: Any) -> SystemConfig:
        """
        Change one system config value, e.g. `free_tier_limit`.

        Raises:
            ValidationFailure: unknown key or value of the wrong type
        """
        actor = self._require_admin(actor)
        if key not in SystemConfig.model_fields:
            raise ValidationFailure(f"Unknown config key: {key}", field=key)

        current = await self.system_config(actor)
        try:
            updated = SystemConfig.model_validate({**current.model_dump(), key: value})
        except ValidationError as e:
            raise ValidationFailure(f"Invalid value for {key}: {value!r}", field=key) from e

        new_value = getattr(updated, key)
        await self._remote.upsert_system_config(key, new_value)

        self._audit_logger.log(AuditEventBuilder.config_update(
            admin=actor,
            key=key,
            old_value=getattr(current, key),
            new_value=new_value,
        ))
        return updated

    def purge_audit_log(self, actor: str, reason: str = "Manual operator purge") -> int:
        actor = self._require_admin(actor)
        storage = self._audit_logger.storage
        removed = storage.purge() if storage is not None else 0
        self._audit_logger.log(AuditEventBuilder.logs_purged(admin=actor, reason=reason))
        return removed
