"""
Local Store Implementations

The local store is the authoritative copy of a user's data. It holds one
document with the bill collection, the profile, and the two
configuration records.

Two backends share the same document logic:
- JsonFileLocalStore: one JSON file, written atomically
- InMemoryLocalStore: a dict, for guests without a disk and for tests
"""

import json
import os
import tempfile
from abc import abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from billminder.models.audit import AuditEvent
from billminder.models.bill import (
    Bill,
    SecurityConfig,
    SystemConfig,
    UserProfile,
)
from billminder.services.storage.interface import (
    AuditStorageInterface,
    LocalStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


def _empty_document() -> dict[str, Any]:
    return {
        "bills": [],
        "user": None,
        "security_config": None,
        "system_config": None,
        "welcome_shown": False,
    }


class _DocumentLocalStore(LocalStoreInterface):
    """Shared (de)serialization over a single JSON-compatible document."""

    @abstractmethod
    def _load(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def _dump(self, document: dict[str, Any]) -> None:
        pass

    def _update(self, key: str, value: Any) -> None:
        document = self._load()
        document[key] = value
        self._dump(document)

    def get_bills(self) -> list[Bill]:
        bills = []
        for raw in self._load().get("bills") or []:
            try:
                bills.append(Bill.model_validate(raw))
            except ValidationError as e:
                # Skip malformed records rather than lose the whole collection
                logger.warning(
                    "local_bill_skipped",
                    bill_id=raw.get("id") if isinstance(raw, dict) else None,
                    error=str(e),
                )
        return bills

    def save_bills(self, bills: list[Bill]) -> None:
        self._update("bills", [bill.model_dump(mode="json") for bill in bills])

    def get_user(self) -> Optional[UserProfile]:
        raw = self._load().get("user")
        if not raw:
            return None
        try:
            return UserProfile.model_validate(raw)
        except ValidationError as e:
            logger.warning("local_user_invalid", error=str(e))
            return None

    def save_user(self, profile: UserProfile) -> None:
        self._update("user", profile.model_dump(mode="json"))

    def get_security_config(self) -> SecurityConfig:
        raw = self._load().get("security_config")
        if not raw:
            return SecurityConfig()
        return SecurityConfig.model_validate(raw)

    def save_security_config(self, config: SecurityConfig) -> None:
        self._update("security_config", config.model_dump(mode="json"))

    def get_system_config(self) -> SystemConfig:
        raw = self._load().get("system_config")
        if not raw:
            return SystemConfig()
        return SystemConfig.model_validate(raw)

    def save_system_config(self, config: SystemConfig) -> None:
        self._update("system_config", config.model_dump(mode="json"))

    def get_welcome_shown(self) -> bool:
        return bool(self._load().get("welcome_shown"))

    def set_welcome_shown(self, shown: bool) -> None:
        self._update("welcome_shown", bool(shown))

    def clear_all(self) -> None:
        self._dump(_empty_document())


class InMemoryLocalStore(_DocumentLocalStore):
    """Keeps the document in memory. Nothing survives the process."""

    def __init__(self):
        self._document = _empty_document()

    def _load(self) -> dict[str, Any]:
        # Round-trip through JSON so callers never share mutable state
        return json.loads(json.dumps(self._document))

    def _dump(self, document: dict[str, Any]) -> None:
        self._document = json.loads(json.dumps(document))


class JsonFileLocalStore(_DocumentLocalStore):
    """
    Local store backed by a single JSON file.

    Writes go to a temp file in the same directory and are moved into
    place, so a crash mid-write never leaves a truncated store.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return _empty_document()
        try:
            with self._path.open("r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("local_store_corrupt", path=str(self._path), error=str(e))
            return _empty_document()
        except OSError as e:
            raise StorageError(f"Failed to read local store: {e}")

        if not isinstance(document, dict):
            logger.error("local_store_corrupt", path=str(self._path), error="not an object")
            return _empty_document()

        merged = _empty_document()
        merged.update(document)
        return merged

    def _dump(self, document: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write local store: {e}")


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit trail kept in process memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    def purge(self) -> int:
        removed = len(self._events)
        self._events = []
        return removed
