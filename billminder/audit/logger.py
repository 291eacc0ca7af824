"""
Audit Logger

DESIGN DECISION: Every bill mutation and admin action is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. A trail for the administrative overlay, which writes out of band

The audit logger:
- Is synchronous so the lifecycle controller can call it inline; slow
  backends (the audit sheet) queue the write and return immediately
- Can keep an event local-only (guest activity never leaves the device)
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

import logging
import sys
from typing import Any, Optional

import structlog

from billminder.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from billminder.services.storage.interface import AuditStorageInterface


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog over stdlib logging with JSON output."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(default=str)
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("billminder.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def log(self, event: AuditEvent, persist: bool = True) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available and
        `persist` is True.

        Returns True if storage accepted the event (or was skipped).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage is not None and persist:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_remote_failure(
        self,
        operation: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> None:
        """Record a dropped remote mirror call."""
        self.log(AuditEventBuilder.remote_sync_failed(
            operation=operation,
            entity_id=entity_id,
            error_message=error_message,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        ))


    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for queued storage writes (shutdown and tests)."""
        if self._storage is not None:
            self._storage.flush(timeout)
