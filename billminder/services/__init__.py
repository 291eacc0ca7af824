"""
Services package.

The remote mirror lives in billminder.services.mirror and is imported
from there directly.
"""

from billminder.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryAuditStorage,
    InMemoryLocalStore,
    JsonFileLocalStore,
    LocalStoreInterface,
    RemoteStoreInterface,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryAuditStorage",
    "InMemoryLocalStore",
    "JsonFileLocalStore",
    "LocalStoreInterface",
    "RemoteStoreInterface",
    "StorageError",
]
