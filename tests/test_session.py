"""
Tests for ProfileSession: startup resolution, remote pull, profile edits.
"""

import pytest

from billminder.errors import ValidationFailure
from billminder.models.audit import AuditEventType
from billminder.models.bill import Entitlement, SystemConfig, UserProfile
from billminder.session import AuthUser, ProfileSession, new_guest_id

from conftest import make_bill


@pytest.fixture
def session(local_store, mirror, audit_logger, settings) -> ProfileSession:
    return ProfileSession(local_store, mirror=mirror, audit_logger=audit_logger, settings=settings)


class TestBootstrap:
    """Tests for profile resolution at startup."""

    def test_guest_id_format(self):
        """Test guest ids are 'guest_' plus nine lowercase alphanumerics."""
        uid = new_guest_id()
        assert uid.startswith("guest_")
        assert len(uid) == 15
        assert uid[6:].isalnum() and uid[6:].lower() == uid[6:]

    @pytest.mark.asyncio
    async def test_new_install_gets_guest(self, session, local_store, remote_store):
        """Test an empty store with no login creates a local-only guest."""
        profile = await session.bootstrap()

        assert profile.is_anonymous is True
        assert profile.entitlement == Entitlement.FREE
        assert profile.currency == "NGN"
        assert profile.uid.startswith("guest_")
        assert local_store.get_user().uid == profile.uid
        assert remote_store.calls == []

    @pytest.mark.asyncio
    async def test_stored_profile_is_reused(self, session, local_store, free_profile):
        """Test a stored profile wins when nobody signs in."""
        local_store.save_user(free_profile)
        profile = await session.bootstrap()
        assert profile.uid == free_profile.uid

    @pytest.mark.asyncio
    async def test_sign_in_pulls_remote_data(self, session, local_store, remote_store):
        """Test sign-in replaces local bills and merges the remote profile."""
        local_store.save_bills([make_bill(user_id="guest_x", name="Local only")])
        remote_store.bills["r1"] = make_bill(id="r1", user_id="user-9", name="Remote rent")
        remote_store.profiles["user-9"] = UserProfile(
            uid="user-9",
            display_name="Remote Name",
            entitlement=Entitlement.PRO,
            currency="USD",
        )
        remote_store.config = {"free_tier_limit": 10, "legacy_key": "ignored"}

        profile = await session.bootstrap(AuthUser(uid="user-9", email="ada@example.com"))

        assert profile.is_anonymous is False
        assert profile.entitlement == Entitlement.PRO
        assert profile.currency == "USD"
        assert profile.display_name == "Remote Name"
        assert profile.email == "ada@example.com"
        assert [b.name for b in local_store.get_bills()] == ["Remote rent"]
        assert local_store.get_system_config().free_tier_limit == 10

    @pytest.mark.asyncio
    async def test_sign_in_without_remote_profile(self, session, local_store):
        """Test a first-time sign-in gets a FREE non-anonymous profile."""
        profile = await session.bootstrap(AuthUser(uid="user-2", email="new@example.com", display_name="New"))

        assert profile.uid == "user-2"
        assert profile.entitlement == Entitlement.FREE
        assert profile.display_name == "New"
        assert local_store.get_user().email == "new@example.com"

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local_data(self, session, local_store, remote_store, audit_storage):
        """Test a failed pull leaves local bills untouched."""
        local_store.save_bills([make_bill(name="Keep me")])
        remote_store.fail = True

        ok = await session.sync_from_remote("user-1")

        assert ok is False
        assert [b.name for b in local_store.get_bills()] == ["Keep me"]
        assert audit_storage.get_recent_events()[0].event_type == AuditEventType.REMOTE_SYNC_FAILED

    @pytest.mark.asyncio
    async def test_sync_without_mirror(self, local_store, audit_logger, settings):
        """Test sync is a no-op when no remote is configured."""
        session = ProfileSession(local_store, audit_logger=audit_logger, settings=settings)
        assert await session.sync_from_remote("user-1") is False
        assert await session.pull_system_config() is None


class TestProfileEdits:
    """Tests for currency, upgrade, security toggle and sign-out."""

    @pytest.mark.asyncio
    async def test_update_currency_is_saved_and_mirrored(self, session, local_store, remote_store, mirror, free_profile):
        """Test a currency change is stored locally then upserted remotely."""
        local_store.save_user(free_profile)
        await session.bootstrap()

        profile = session.update_currency("usd")
        await mirror.drain()

        assert profile.currency == "USD"
        assert local_store.get_user().currency == "USD"
        assert remote_store.profiles["user-1"].currency == "USD"

    @pytest.mark.asyncio
    async def test_update_currency_rejects_bad_code(self, session, local_store, free_profile):
        """Test an invalid code raises ValidationFailure and changes nothing."""
        local_store.save_user(free_profile)
        await session.bootstrap()

        with pytest.raises(ValidationFailure):
            session.update_currency("EURO")
        assert local_store.get_user().currency == "NGN"

    @pytest.mark.asyncio
    async def test_guest_profile_edits_stay_local(self, session, remote_store, mirror):
        """Test guest profile changes are never mirrored."""
        await session.bootstrap()
        session.update_currency("GHS")
        await mirror.drain()

        assert remote_store.calls == []

    @pytest.mark.asyncio
    async def test_upgrade_to_pro(self, session, local_store, audit_storage, mirror, free_profile):
        """Test upgrade sets PRO, stamps the time and is audited."""
        local_store.save_user(free_profile)
        await session.bootstrap()

        profile = session.upgrade_to_pro()
        await mirror.drain()

        assert profile.is_pro is True
        assert profile.entitlement_updated_at is not None
        event = audit_storage.get_events_by_entity("user", "user-1")[-1]
        assert event.event_type == AuditEventType.PROFILE_UPDATED
        assert event.old_value == "FREE"
        assert event.new_value == "PRO"

    def test_set_payment_validation(self, session, local_store):
        """Test the install-wide strict toggle is persisted."""
        config = session.set_payment_validation(True)
        assert config.payment_validation_enabled is True
        assert local_store.get_security_config().payment_validation_enabled is True

    @pytest.mark.asyncio
    async def test_sign_out_clears_everything(self, session, local_store):
        """Test sign-out wipes the local store."""
        await session.bootstrap()
        local_store.save_bills([make_bill()])
        local_store.save_system_config(SystemConfig(free_tier_limit=3))

        session.sign_out()

        assert session.profile is None
        assert local_store.get_user() is None
        assert local_store.get_bills() == []
        assert local_store.get_system_config().free_tier_limit is None

    def test_edits_need_a_profile(self, session):
        """Test profile edits before bootstrap are refused."""
        with pytest.raises(RuntimeError):
            session.upgrade_to_pro()
