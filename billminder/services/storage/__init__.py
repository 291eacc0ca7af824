"""
Storage Services Package

Abstract interfaces plus concrete implementations:
- Local: JSON file (authoritative) and in-memory
- Remote: Google Sheets (best-effort mirror)
"""

from billminder.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LocalStoreInterface,
    RemoteStoreInterface,
    StorageError,
)
from billminder.services.storage.local import (
    InMemoryAuditStorage,
    InMemoryLocalStore,
    JsonFileLocalStore,
)
from billminder.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LocalStoreInterface",
    "RemoteStoreInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Local implementations
    "InMemoryAuditStorage",
    "InMemoryLocalStore",
    "JsonFileLocalStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
]
