"""
Application Wiring for BillMinder

This module ties the stores, the mirror, the session and the controller
together from settings. UI layers call create_app_components() once and
open_controller() after the profile is known.

DESIGN DECISION: The remote side is optional. If Google Sheets is not
configured (or fails to initialise) the app keeps running local-only
with structlog-only audit logging.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from billminder.admin import AdminOverlay
from billminder.audit import AuditLogger, configure_logging
from billminder.config import AppSettings, get_settings, validate_all_settings
from billminder.lifecycle import BillLifecycleController
from billminder.services.mirror import RemoteMirror
from billminder.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    JsonFileLocalStore,
    LocalStoreInterface,
)
from billminder.session import AuthUser, ProfileSession


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    settings: AppSettings
    local_store: LocalStoreInterface
    audit_logger: AuditLogger
    session: ProfileSession
    mirror: Optional[RemoteMirror] = None
    admin: Optional[AdminOverlay] = None

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Let queued remote writes finish before the process exits."""
        if self.mirror is not None:
            self.mirror.join(timeout)
        self.audit_logger.flush(timeout)


def create_app_components(
    settings: Optional[AppSettings] = None,
    local_store: Optional[LocalStoreInterface] = None,
    use_remote: Optional[bool] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: App settings; loaded from the environment when omitted.
        local_store: Override the JSON file store (tests, guests).
        use_remote: Force the Google Sheets mirror on or off. Defaults
                    to `settings.remote_sync_enabled`.
    """
    settings = settings or get_settings().app
    configure_logging(settings.log_level)

    if use_remote is None:
        use_remote = settings.remote_sync_enabled
    local_store = local_store or JsonFileLocalStore(settings.local_store_file)

    mirror = None
    admin = None
    audit_logger = AuditLogger()

    if use_remote:
        checks = validate_all_settings()
        if not checks["google_sheets"]:
            logger.warning(
                "remote_store_unconfigured",
                error=checks.get("google_sheets_error"),
            )
            use_remote = False

    if use_remote:
        try:
            sheets_client = GoogleSheetsClient()
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
            remote = GoogleSheetsRemoteStore(sheets_client)
            mirror = RemoteMirror(
                remote,
                audit_logger=audit_logger,
                retry_attempts=settings.remote_retry_attempts,
            )
            admin = AdminOverlay(remote, audit_logger, settings.admin_email)
        except Exception as e:
            # Remote not configured - continue local-only
            logger.warning("remote_store_unavailable", error=str(e))
            mirror = None
            admin = None
            audit_logger = AuditLogger()

    session = ProfileSession(
        local_store,
        mirror=mirror,
        audit_logger=audit_logger,
        settings=settings,
    )
    return AppComponents(
        settings=settings,
        local_store=local_store,
        audit_logger=audit_logger,
        session=session,
        mirror=mirror,
        admin=admin,
    )


async def open_controller(
    components: AppComponents,
    auth_user: Optional[AuthUser] = None,
) -> BillLifecycleController:
    """Resolve the owning profile, then hand back its lifecycle controller."""
    profile = await components.session.bootstrap(auth_user)
    return BillLifecycleController(
        components.local_store,
        profile,
        mirror=components.mirror,
        audit_logger=components.audit_logger,
        settings=components.settings,
    )
