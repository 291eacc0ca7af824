"""
Abstract Storage Interface

DESIGN DECISION: Three contracts, matching how the core uses storage:
1. Local store - synchronous, authoritative, always available
2. Remote store - asynchronous best-effort mirror for signed-in profiles
3. Audit store - append-only trail

The core only ever depends on these interfaces, so the JSON file and
Google Sheets backends can be swapped for anything else.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from billminder.models.audit import AuditEvent
from billminder.models.bill import (
    Bill,
    SecurityConfig,
    SystemConfig,
    UserProfile,
)


class LocalStoreInterface(ABC):
    """
    On-device store. Treated by the core as synchronous and infallible.
    """

    @abstractmethod
    def get_bills(self) -> list[Bill]:
        pass

    @abstractmethod
    def save_bills(self, bills: list[Bill]) -> None:
        """Replace the whole bill collection."""
        pass

    @abstractmethod
    def get_user(self) -> Optional[UserProfile]:
        pass

    @abstractmethod
    def save_user(self, profile: UserProfile) -> None:
        pass

    @abstractmethod
    def get_security_config(self) -> SecurityConfig:
        """Stored security config, or defaults when none was saved."""
        pass

    @abstractmethod
    def save_security_config(self, config: SecurityConfig) -> None:
        pass

    @abstractmethod
    def get_system_config(self) -> SystemConfig:
        """Stored administrative config, or defaults when none was saved."""
        pass

    @abstractmethod
    def save_system_config(self, config: SystemConfig) -> None:
        pass

    @abstractmethod
    def get_welcome_shown(self) -> bool:
        pass

    @abstractmethod
    def set_welcome_shown(self, shown: bool) -> None:
        pass

    @abstractmethod
    def clear_all(self) -> None:
        """Forget everything (sign-out)."""
        pass


class RemoteStoreInterface(ABC):
    """
    Abstract interface for the remote mirror.

    All methods may raise StorageError; callers on the user path catch it.
    """

    @abstractmethod
    async def fetch_bills(self, user_id: str) -> list[Bill]:
        pass

    @abstractmethod
    async def upsert_bill(self, bill: Bill) -> None:
        """Insert or replace by id (last writer wins)."""
        pass

    @abstractmethod
    async def delete_bill(self, bill_id: str) -> bool:
        """Returns False if no such bill existed remotely."""
        pass

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        """
        Partial profile fields as stored remotely, or None.

        Remote profiles do not carry every local field (e.g. email), so
        the result is a partial mapping for the caller to merge.
        """
        pass

    @abstractmethod
    async def upsert_profile(self, profile: UserProfile) -> None:
        pass

    @abstractmethod
    async def fetch_all_bills(self) -> list[Bill]:
        """Every bill across owners (administrative read)."""
        pass

    @abstractmethod
    async def fetch_all_profiles(self) -> list[UserProfile]:
        """Every profile (administrative read)."""
        pass

    @abstractmethod
    async def get_system_config(self) -> dict[str, Any]:
        pass

    @abstractmethod
    async def upsert_system_config(self, key: str, value: Any) -> None:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only; purge is an explicit operator action.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Returns True if stored."""
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events for one entity in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass

    @abstractmethod
    def purge(self) -> int:
        """Remove all events. Returns how many were removed."""
        pass

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for queued appends. Synchronous backends have nothing to wait for."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
