"""
Tests for BillMinder models

Test strategy:
1. Unit tests for individual components (models, rules)
2. Integration tests for flows (with an in-memory remote store)
3. No real API calls in tests
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from billminder.models.bill import (
    AdminBillPatch,
    Bill,
    BillDraft,
    BillStatus,
    BillUpdate,
    Entitlement,
    Frequency,
    PaymentEvidence,
    SystemConfig,
    UserProfile,
)
from billminder.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from billminder.services.storage.google_sheets import AUDIT_COLUMNS


class TestBillModels:
    """Tests for bill-related Pydantic models."""

    def test_bill_creation_defaults(self):
        """Test Bill defaults: UPCOMING, proof required, not disputed."""
        bill = Bill(
            user_id="user-1",
            name="Electricity",
            due_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
            frequency=Frequency.MONTHLY,
        )
        assert bill.status == BillStatus.UPCOMING
        assert bill.require_proof is True
        assert bill.is_disputed is False
        assert bill.amount is None
        assert len(bill.id) == 36

    def test_bill_strips_whitespace(self):
        """Test that whitespace is stripped from the bill name."""
        bill = Bill(
            user_id="user-1",
            name="  Rent  ",
            due_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
            frequency="ONE_TIME",
        )
        assert bill.name == "Rent"

    def test_bill_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Bill(
                user_id="user-1",
                name="Test",
                amount=Decimal("-100"),
                due_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
                frequency="MONTHLY",
            )

    def test_naive_due_date_is_taken_as_utc(self):
        """Test that naive timestamps are made timezone-aware (UTC)."""
        bill = Bill(
            user_id="user-1",
            name="Water",
            due_date=datetime(2024, 3, 1, 9, 0),
            frequency="MONTHLY",
        )
        assert bill.due_date.tzinfo == timezone.utc

    def test_currency_is_normalised(self):
        """Test currency codes are upper-cased and validated."""
        bill = Bill(
            user_id="user-1",
            name="Netflix",
            currency="usd",
            due_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
            frequency="MONTHLY",
        )
        assert bill.currency == "USD"

        with pytest.raises(ValueError):
            Bill(
                user_id="user-1",
                name="Netflix",
                currency="dollars",
                due_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
                frequency="MONTHLY",
            )

    def test_effective_currency_falls_back_to_profile(self):
        """Test bill currency falls back to the profile, then the default."""
        bill = Bill(
            user_id="user-1",
            name="Gym",
            due_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
            frequency="MONTHLY",
        )
        assert bill.effective_currency(UserProfile(uid="user-1", currency="GBP")) == "GBP"
        assert bill.effective_currency() == "NGN"

    def test_is_recurring(self):
        """Test only ONE_TIME bills are non-recurring."""
        due = datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert not Bill(user_id="u", name="a", due_date=due, frequency="ONE_TIME").is_recurring
        assert Bill(user_id="u", name="a", due_date=due, frequency="CUSTOM").is_recurring

    def test_bill_json_round_trip_keeps_decimal(self):
        """Test serialized bills load back with exact amounts."""
        bill = Bill(
            user_id="user-1",
            name="School fees",
            amount=Decimal("250000.50"),
            due_date=datetime(2024, 9, 1, tzinfo=timezone.utc),
            frequency="TERMLY",
        )
        loaded = Bill.model_validate(bill.model_dump(mode="json"))
        assert loaded.amount == Decimal("250000.50")
        assert loaded.frequency == Frequency.TERMLY


class TestInputModels:
    """Tests for create/update/admin input models."""

    def test_draft_requires_name(self):
        """Test that a blank name is rejected."""
        with pytest.raises(ValueError):
            BillDraft(name="   ", due_date=datetime(2024, 3, 1), frequency="MONTHLY")

    def test_draft_rejects_unknown_fields(self):
        """Test that admin-only fields cannot be smuggled into a draft."""
        with pytest.raises(ValueError):
            BillDraft(
                name="Rent",
                due_date=datetime(2024, 3, 1),
                frequency="MONTHLY",
                is_disputed=True,
            )

    def test_update_changes_only_set_fields(self):
        """Test BillUpdate.changes() contains only explicitly set fields."""
        patch = BillUpdate(amount=Decimal("10"), payment_link=None)
        assert patch.changes() == {"amount": Decimal("10"), "payment_link": None}

    def test_update_cannot_clear_required_fields(self):
        """Test that name/due_date/frequency cannot be set to None."""
        with pytest.raises(ValueError, match="cannot be cleared"):
            BillUpdate(name=None)

    def test_update_rejects_admin_fields(self):
        """Test that the user patch forbids admin overlay fields."""
        with pytest.raises(ValueError):
            BillUpdate(waiver_amount=Decimal("5"))

    def test_admin_patch_fields(self):
        """Test AdminBillPatch accepts overlay fields only."""
        patch = AdminBillPatch(is_disputed=True, admin_notes="Customer called")
        assert patch.changes() == {"is_disputed": True, "admin_notes": "Customer called"}
        with pytest.raises(ValueError):
            AdminBillPatch(name="Renamed")

    def test_payment_evidence_blank_is_absent(self):
        """Test that blank evidence strings count as missing."""
        evidence = PaymentEvidence(reference="   ", proof="data:image/png;base64,AAA")
        assert evidence.reference is None
        assert evidence.is_complete is False
        assert PaymentEvidence(reference="TX-1", proof="img").is_complete is True


class TestProfileAndConfig:
    """Tests for profile and configuration models."""

    def test_profile_defaults(self):
        """Test a new profile is FREE, NGN and syncs remotely."""
        profile = UserProfile(uid="user-1")
        assert profile.entitlement == Entitlement.FREE
        assert profile.currency == "NGN"
        assert profile.is_pro is False
        assert profile.syncs_remotely is True

    def test_guest_never_syncs(self):
        """Test anonymous profiles are local-only."""
        assert UserProfile(uid="guest_x", is_anonymous=True).syncs_remotely is False

    def test_system_config_bill_limit(self):
        """Test the configured free-tier limit wins over the fallback."""
        assert SystemConfig().bill_limit(50) == 50
        assert SystemConfig(free_tier_limit=10).bill_limit(50) == 10
        assert SystemConfig(free_tier_limit=0).bill_limit(50) == 0

    def test_system_config_coerces_strings(self):
        """Test console string values are coerced."""
        config = SystemConfig.model_validate({"free_tier_limit": "25", "maintenance_mode": "true"})
        assert config.free_tier_limit == 25
        assert config.maintenance_mode is True


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.BILL_CREATED,
            description="Bill created",
        )
        assert event.event_type == AuditEventType.BILL_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.bill_created("bill-1", "Rent", "user-1")
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "bill_created"
        assert log_dict["entity_id"] == "bill-1"
        assert log_dict["details"]["name"] == "Rent"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.tier_change(
            admin="admin@billminder.app",
            user_id="user-1",
            old_tier="FREE",
            new_tier="PRO",
            reason="Support ticket",
        )
        row = event.to_sheets_row()
        assert len(row) == len(AUDIT_COLUMNS)
        assert row[2] == "tier_change"
        assert row[4] == "admin@billminder.app"
        assert row[9] == '"FREE"'
        assert row[10] == '"PRO"'
        assert row[11] == "Support ticket"

    def test_bill_paid_builder_recurring(self):
        """Test AuditEventBuilder.bill_paid for a recurring bill."""
        next_due = datetime(2024, 4, 15, tzinfo=timezone.utc)
        event = AuditEventBuilder.bill_paid(
            "bill-1",
            "user-1",
            recurring=True,
            next_due_date=next_due,
            verified=False,
        )
        assert event.event_type == AuditEventType.BILL_PAID
        assert "2024-04-15" in event.description
        assert event.details["recurring"] is True
        assert event.is_user_action is True

    def test_remote_sync_failed_is_error(self):
        """Test remote failures are recorded at ERROR severity."""
        event = AuditEventBuilder.remote_sync_failed("upsert_bill", "bill-1", "timeout")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "timeout"


class TestEnums:
    """Tests for enum string values."""

    def test_frequency_values(self):
        """Test that expected frequencies exist."""
        for value in ["ONE_TIME", "MONTHLY", "TERMLY", "YEARLY", "CUSTOM"]:
            assert Frequency(value) is not None

    def test_status_values(self):
        """Test status string values."""
        assert BillStatus.DUE_TODAY.value == "DUE_TODAY"
        assert BillStatus.PAID.value == "PAID"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
