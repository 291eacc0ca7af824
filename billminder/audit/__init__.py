"""Audit logging package."""

from billminder.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
