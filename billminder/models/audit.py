"""
Audit Models for BillMinder

Every bill mutation and every administrative action is recorded.
The administrative overlay writes outside the normal lifecycle, so its
entries carry the actor, the before/after values and a human reason.

DESIGN DECISION: Audit logs are append-only. The only removal is an
explicit operator purge, which itself leaves a LOGS_PURGED entry.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from billminder.models.bill import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Bill lifecycle
    BILL_CREATED = "bill_created"
    BILL_UPDATED = "bill_updated"
    BILL_DELETED = "bill_deleted"
    BILL_PAID = "bill_paid"
    PAYMENT_REJECTED = "payment_rejected"
    LIMIT_REACHED = "limit_reached"

    # Profile
    PROFILE_UPDATED = "profile_updated"

    # Remote mirror
    REMOTE_SYNC_FAILED = "remote_sync_failed"

    # Administrative overlay
    TIER_CHANGE = "tier_change"
    USER_DISABLE = "user_disable"
    USER_RESTRICT = "user_restrict"
    USER_ENABLE = "user_enable"
    BILL_ADMIN_UPDATE = "bill_admin_update"
    CONFIG_UPDATE = "config_update"
    LOGS_PURGED = "logs_purged"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who did it and to what
    actor: Optional[str] = Field(
        default=None,
        description="Profile uid or admin email that triggered the event"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'bill', 'user', 'system')"
    )
    entity_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Administrative change tracking
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    reason: Optional[str] = None

    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor": self.actor,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "reason": self.reason,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, actor, entity_type,
         entity_id, description, details_json, old_value_json,
         new_value_json, reason, error_message, is_user_action]
        """
        def as_json(value: Any) -> str:
            return json.dumps(value, default=str) if value is not None else ""

        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.actor or "",
            self.entity_type or "",
            self.entity_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            as_json(self.old_value),
            as_json(self.new_value),
            self.reason or "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.bill_paid(bill, actor, next_due_date)
        event = AuditEventBuilder.tier_change(admin, user_id, old, new, reason)
    """

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @staticmethod
    def bill_created(bill_id: str, name: str, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_CREATED,
            actor=actor,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Bill created: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def bill_updated(bill_id: str, fields: list[str], actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_UPDATED,
            actor=actor,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Bill updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def bill_deleted(bill_id: str, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_DELETED,
            actor=actor,
            entity_type="bill",
            entity_id=bill_id,
            description="Bill deleted",
            is_user_action=True,
        )

    @staticmethod
    def bill_paid(
        bill_id: str,
        actor: str,
        recurring: bool,
        next_due_date: Optional[datetime],
        verified: bool,
    ) -> AuditEvent:
        if recurring:
            description = f"Recurring bill paid, next due {next_due_date.date().isoformat()}"
        else:
            description = "One-time bill settled"
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            actor=actor,
            entity_type="bill",
            entity_id=bill_id,
            description=description,
            details={
                "recurring": recurring,
                "next_due_date": next_due_date.isoformat() if next_due_date else None,
                "verified": verified,
            },
            is_user_action=True,
        )

    @staticmethod
    def payment_rejected(bill_id: str, actor: str, missing: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            actor=actor,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Strict verification failed: missing {', '.join(missing)}",
            details={"missing": missing},
            is_user_action=True,
        )

    @staticmethod
    def limit_reached(actor: str, limit: int, current_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LIMIT_REACHED,
            severity=AuditSeverity.WARNING,
            actor=actor,
            entity_type="user",
            entity_id=actor,
            description=f"Free-tier bill limit reached ({current_count}/{limit})",
            details={"limit": limit, "current_count": current_count},
            is_user_action=True,
        )

    @staticmethod
    def profile_updated(uid: str, field: str, old_value: Any, new_value: Any) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            actor=uid,
            entity_type="user",
            entity_id=uid,
            description=f"Profile {field} changed",
            old_value=old_value,
            new_value=new_value,
            is_user_action=True,
        )

    @staticmethod
    def remote_sync_failed(operation: str, entity_id: Optional[str], error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="remote",
            entity_id=entity_id,
            description=f"Remote mirror call failed: {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    # -------------------------------------------------------------------------
    # Administrative overlay
    # -------------------------------------------------------------------------

    @staticmethod
    def tier_change(
        admin: str,
        user_id: str,
        old_tier: Optional[str],
        new_tier: str,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TIER_CHANGE,
            actor=admin,
            entity_type="user",
            entity_id=user_id,
            description=f"Entitlement changed to {new_tier}",
            old_value=old_tier,
            new_value=new_tier,
            reason=reason,
        )

    @staticmethod
    def user_restriction(
        admin: str,
        user_id: str,
        event_type: AuditEventType,
        old_value: dict,
        new_value: dict,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            actor=admin,
            entity_type="user",
            entity_id=user_id,
            description=f"User access changed: {event_type.value}",
            old_value=old_value,
            new_value=new_value,
            reason=reason,
        )

    @staticmethod
    def bill_admin_update(
        admin: str,
        bill_id: str,
        old_value: dict,
        new_value: dict,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_ADMIN_UPDATE,
            actor=admin,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Admin patched bill fields: {', '.join(sorted(new_value))}",
            old_value=old_value,
            new_value=new_value,
            reason=reason,
        )

    @staticmethod
    def config_update(admin: str, key: str, old_value: Any, new_value: Any) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIG_UPDATE,
            actor=admin,
            entity_type="system",
            entity_id=key,
            description=f"Configuration updated: {key}",
            old_value=old_value,
            new_value=new_value,
        )

    @staticmethod
    def logs_purged(admin: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGS_PURGED,
            severity=AuditSeverity.WARNING,
            actor=admin,
            entity_type="system",
            entity_id="audit_trail",
            description="Audit trail purged",
            reason=reason,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
