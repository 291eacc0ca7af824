"""
Core Data Models for BillMinder

These models define the schemas for every record the core reads or writes:
bills, the owning profile, and the process-wide configuration values.

DESIGN DECISION: Partial updates are typed. A user edit is a BillUpdate,
an administrative edit is an AdminBillPatch. Both forbid unknown fields,
so dispute/waiver/admin notes can never arrive through the user path.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from billminder.config.settings import DEFAULT_CURRENCY


def utcnow() -> datetime:
    """Current instant, timezone-aware (UTC)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # Stored instants are ISO strings; naive ones are taken as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _currency_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    if not value:
        return None
    if len(value) != 3 or not value.isalpha():
        raise ValueError(f"Invalid currency code: {value!r}")
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """How often a bill falls due."""
    ONE_TIME = "ONE_TIME"
    MONTHLY = "MONTHLY"
    TERMLY = "TERMLY"      # every 4 months
    YEARLY = "YEARLY"
    CUSTOM = "CUSTOM"      # every `interval_months` months


class BillStatus(str, Enum):
    """
    Persisted coarse state of a bill.

    CRITICAL: Only ONE_TIME bills keep PAID. For everything else the
    display status is re-derived from the due date on every read.
    """
    UPCOMING = "UPCOMING"
    DUE_TODAY = "DUE_TODAY"
    OVERDUE = "OVERDUE"
    PAID = "PAID"


class Entitlement(str, Enum):
    """Subscription tier."""
    FREE = "FREE"
    PRO = "PRO"


# =============================================================================
# CORE BILL MODEL
# =============================================================================

class Bill(BaseModel):
    """
    A single financial obligation.

    `user_id` is a back-reference to the owning profile, used for lookup only.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: str = Field(
        default_factory=new_id,
        description="Unique bill ID (immutable)"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owning profile uid"
    )

    # What is owed
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Bill label"
    )
    amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Amount due; None means a flexible amount"
    )
    currency: Optional[str] = Field(
        default=None,
        description="3-letter currency code; falls back to the profile currency"
    )

    # When it is owed
    due_date: datetime = Field(
        ...,
        description="Due instant, compared at day granularity"
    )
    frequency: Frequency
    interval_months: Optional[int] = Field(
        default=None,
        ge=1,
        description="Months between due dates for CUSTOM bills"
    )

    # Status tracking
    status: BillStatus = Field(
        default=BillStatus.UPCOMING,
        description="Persisted coarse status"
    )
    last_paid_date: Optional[datetime] = None
    last_notified_at: Optional[datetime] = None

    # Settlement evidence
    transaction_ref: Optional[str] = None
    proof_image: Optional[str] = Field(
        default=None,
        description="Proof payload (data URL or image reference)"
    )
    payment_link: Optional[str] = Field(
        default=None,
        description="External payment URL, informational only"
    )
    require_proof: bool = Field(
        default=True,
        description="Per-bill opt-in to strict verification"
    )

    # Administrative overlay
    is_disputed: bool = False
    waiver_amount: Optional[Decimal] = Field(default=None, ge=0)
    admin_notes: Optional[str] = Field(default=None, max_length=2000)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator(
        'due_date', 'last_paid_date', 'last_notified_at', 'created_at', 'updated_at'
    )
    @classmethod
    def make_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _currency_code(v)

    @property
    def is_recurring(self) -> bool:
        return self.frequency != Frequency.ONE_TIME

    def effective_currency(self, profile: Optional["UserProfile"] = None) -> str:
        """Bill currency, else the profile's, else the install default."""
        if self.currency:
            return self.currency
        if profile is not None and profile.currency:
            return profile.currency
        return DEFAULT_CURRENCY


class BillDraft(BaseModel):
    """
    Input for creating a bill.

    Name, due date and frequency are required; everything else is optional.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    due_date: datetime
    frequency: Frequency
    amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    interval_months: Optional[int] = Field(default=None, ge=1)
    payment_link: Optional[str] = None
    require_proof: bool = True

    @field_validator('due_date')
    @classmethod
    def make_aware(cls, v: datetime) -> datetime:
        return _aware(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _currency_code(v)


class BillUpdate(BaseModel):
    """
    Fields a user may change on an existing bill.

    Only fields explicitly set are merged onto the record.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    due_date: Optional[datetime] = None
    frequency: Optional[Frequency] = None
    interval_months: Optional[int] = Field(default=None, ge=1)
    payment_link: Optional[str] = None
    require_proof: Optional[bool] = None

    @field_validator('due_date')
    @classmethod
    def make_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _currency_code(v)

    @model_validator(mode='after')
    def reject_null_required(self) -> 'BillUpdate':
        """Required bill fields may be changed but not cleared."""
        for name in ('name', 'due_date', 'frequency', 'require_proof'):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class AdminBillPatch(BaseModel):
    """Fields only the administrative overlay may change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    is_disputed: Optional[bool] = None
    waiver_amount: Optional[Decimal] = Field(default=None, ge=0)
    admin_notes: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[BillStatus] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class PaymentEvidence(BaseModel):
    """Reference and proof supplied when settling a bill."""
    model_config = ConfigDict(str_strip_whitespace=True)

    reference: Optional[str] = None
    proof: Optional[str] = None

    @field_validator('reference', 'proof')
    @classmethod
    def blank_is_absent(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def is_complete(self) -> bool:
        """Both a reference and a proof payload are present."""
        return bool(self.reference) and bool(self.proof)


# =============================================================================
# PROFILE AND CONFIGURATION MODELS
# =============================================================================

class UserProfile(BaseModel):
    """
    Owning identity for a bill collection.

    Anonymous (guest) profiles are local-only and never mirrored.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    uid: str = Field(..., min_length=1)
    email: Optional[str] = None
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    is_anonymous: bool = False
    entitlement: Entitlement = Entitlement.FREE
    currency: str = Field(default=DEFAULT_CURRENCY)

    # Administrative flags
    is_disabled: bool = False
    is_restricted: bool = False
    restriction_reason: Optional[str] = None
    entitlement_updated_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _currency_code(v) or DEFAULT_CURRENCY

    @field_validator('entitlement_updated_at', 'created_at')
    @classmethod
    def make_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)

    @property
    def is_pro(self) -> bool:
        return self.entitlement == Entitlement.PRO

    @property
    def syncs_remotely(self) -> bool:
        return not self.is_anonymous


class SecurityConfig(BaseModel):
    """Per-install payment security settings."""

    payment_validation_enabled: bool = False


class SystemConfig(BaseModel):
    """
    Process-wide administrative configuration.

    Values arrive as strings from the admin console; pydantic coerces them.
    """

    free_tier_limit: Optional[int] = Field(default=None, ge=0)
    maintenance_mode: bool = False
    registration_closed: bool = False
    global_audit_lock: bool = False
    system_announcement: str = ""
    announcement_active: bool = False

    def bill_limit(self, default: int) -> int:
        """Configured free-tier cap, or `default` when unset."""
        if self.free_tier_limit is None:
            return default
        return self.free_tier_limit
