"""
Shared fixtures for BillMinder tests.

No network: the remote store is an in-process fake that records calls
and can be told to fail.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest

from billminder.audit import AuditLogger
from billminder.config import AppSettings
from billminder.lifecycle import BillLifecycleController
from billminder.models.bill import (
    Bill,
    Entitlement,
    Frequency,
    UserProfile,
)
from billminder.services.mirror import RemoteMirror
from billminder.services.storage import (
    InMemoryAuditStorage,
    InMemoryLocalStore,
    RemoteStoreInterface,
    StorageError,
)


# Fixed "now" for every time-dependent test: 2024-03-15 10:00 UTC
NOW = datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)


class FakeRemoteStore(RemoteStoreInterface):
    """Dict-backed remote store. Set `fail = True` to make every call raise."""

    def __init__(self):
        self.bills: dict[str, Bill] = {}
        self.profiles: dict[str, UserProfile] = {}
        self.config: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []
        self.fail = False

    def _record(self, name: str, arg: Any) -> None:
        self.calls.append((name, arg))
        if self.fail:
            raise StorageError(f"{name} failed")

    async def fetch_bills(self, user_id: str) -> list[Bill]:
        self._record("fetch_bills", user_id)
        return [b for b in self.bills.values() if b.user_id == user_id]

    async def upsert_bill(self, bill: Bill) -> None:
        self._record("upsert_bill", bill.id)
        self.bills[bill.id] = bill

    async def delete_bill(self, bill_id: str) -> bool:
        self._record("delete_bill", bill_id)
        return self.bills.pop(bill_id, None) is not None

    async def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        self._record("get_profile", user_id)
        profile = self.profiles.get(user_id)
        return profile.model_dump() if profile else None

    async def upsert_profile(self, profile: UserProfile) -> None:
        self._record("upsert_profile", profile.uid)
        self.profiles[profile.uid] = profile

    async def fetch_all_bills(self) -> list[Bill]:
        self._record("fetch_all_bills", None)
        return list(self.bills.values())

    async def fetch_all_profiles(self) -> list[UserProfile]:
        self._record("fetch_all_profiles", None)
        return list(self.profiles.values())

    async def get_system_config(self) -> dict[str, Any]:
        self._record("get_system_config", None)
        return dict(self.config)

    async def upsert_system_config(self, key: str, value: Any) -> None:
        self._record("upsert_system_config", key)
        self.config[key] = value

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_bill(
    user_id: str = "user-1",
    name: str = "Electricity",
    due_date: datetime = NOW,
    frequency: Frequency = Frequency.MONTHLY,
    **kwargs,
) -> Bill:
    return Bill(
        user_id=user_id,
        name=name,
        due_date=due_date,
        frequency=frequency,
        amount=kwargs.pop("amount", Decimal("1500.00")),
        **kwargs,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        free_bill_limit=50,
        default_currency="NGN",
        admin_email="admin@billminder.app",
    )


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def remote_store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def mirror(remote_store, audit_logger):
    mirror = RemoteMirror(remote_store, audit_logger=audit_logger)
    yield mirror
    mirror.join(5)


@pytest.fixture
def free_profile() -> UserProfile:
    return UserProfile(
        uid="user-1",
        email="ada@example.com",
        display_name="Ada",
        entitlement=Entitlement.FREE,
    )


@pytest.fixture
def pro_profile() -> UserProfile:
    return UserProfile(
        uid="user-1",
        email="ada@example.com",
        display_name="Ada",
        entitlement=Entitlement.PRO,
    )


@pytest.fixture
def guest_profile() -> UserProfile:
    return UserProfile(
        uid="guest_abc123xyz",
        display_name="Guest",
        is_anonymous=True,
    )


@pytest.fixture
def make_controller(local_store, mirror, audit_logger, settings, clock):
    """Build a controller for a given profile over the shared fixtures."""

    def _make(profile: UserProfile, **overrides) -> BillLifecycleController:
        return BillLifecycleController(
            overrides.pop("local_store", local_store),
            profile,
            mirror=overrides.pop("mirror", mirror),
            audit_logger=overrides.pop("audit_logger", audit_logger),
            settings=overrides.pop("settings", settings),
            clock=overrides.pop("clock", clock),
        )

    return _make


def draft(name: str = "Rent", days_from_now: int = 5, frequency: str = "MONTHLY", **extra) -> dict:
    """Create-form payload as a UI would submit it."""
    return {
        "name": name,
        "due_date": NOW + timedelta(days=days_from_now),
        "frequency": frequency,
        **extra,
    }
