"""
Profile Session

Resolves which profile owns the local data at startup and keeps it in
step with the remote mirror.

Startup order:
1. Authenticated user -> non-anonymous FREE profile, then pull remote data
2. Stored local profile -> reuse it
3. Neither -> new guest profile (anonymous, local-only)
"""

import asyncio
import secrets
import string
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError

from billminder.audit.logger import AuditLogger
from billminder.config import AppSettings, get_settings
from billminder.errors import ValidationFailure
from billminder.models.audit import AuditEventBuilder
from billminder.models.bill import (
    Entitlement,
    SecurityConfig,
    SystemConfig,
    UserProfile,
    utcnow,
)
from billminder.services.mirror import RemoteMirror
from billminder.services.storage.interface import LocalStoreInterface


logger = structlog.get_logger(__name__)

_GUEST_ALPHABET = string.ascii_lowercase + string.digits


class AuthUser(BaseModel):
    """What the authentication provider tells us about a signed-in user."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None


def new_guest_id() -> str:
    return "guest_" + "".join(secrets.choice(_GUEST_ALPHABET) for _ in range(9))


class ProfileSession:
    """
    Owns the current profile and its local/remote persistence.
    """

    def __init__(
        self,
        local_store: LocalStoreInterface,
        mirror: Optional[RemoteMirror] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._store = local_store
        self._mirror = mirror
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app
        self._profile: Optional[UserProfile] = None

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    async def bootstrap(self, auth_user: Optional[AuthUser] = None) -> UserProfile:
        """Pick the owning profile for this run (see module docstring)."""
        if auth_user is not None:
            self._profile = UserProfile(
                uid=auth_user.uid,
                email=auth_user.email,
                display_name=auth_user.display_name or "User",
                is_anonymous=False,
                entitlement=Entitlement.FREE,
                currency=self._settings.default_currency,
            )
            self._store.save_user(self._profile)
            await self.sync_from_remote(auth_user.uid)
            return self._profile

        stored = self._store.get_user()
        if stored is not None:
            self._profile = stored
            return stored

        self._profile = UserProfile(
            uid=new_guest_id(),
            display_name="Guest",
            is_anonymous=True,
            entitlement=Entitlement.FREE,
            currency=self._settings.default_currency,
        )
        self._store.save_user(self._profile)
        logger.info("guest_profile_created", uid=self._profile.uid)
        return self._profile

    async def sync_from_remote(self, user_id: str) -> bool:
        """
        Pull bills and profile from the mirror into the local store.

        Remote bills replace the local collection. The profile takes tier,
        currency and display name from remote, email from local. On any
        failure the local data is kept and False is returned.
        """
        if self._mirror is None:
            return False

        remote = self._mirror.remote
        try:
            remote_bills, remote_profile = await asyncio.gather(
                remote.fetch_bills(user_id),
                remote.get_profile(user_id),
            )
        except Exception as e:
            logger.error("remote_pull_failed", user_id=user_id, error=str(e))
            self._audit_logger.log_remote_failure("sync_from_remote", user_id, str(e))
            return False

        self._store.save_bills(remote_bills)

        if remote_profile:
            self._profile = self._merge_profile(user_id, remote_profile)
            self._store.save_user(self._profile)

        await self.pull_system_config()

        logger.info("remote_pull_complete", user_id=user_id, bills=len(remote_bills))
        return True

    async def pull_system_config(self) -> Optional[SystemConfig]:
        """Copy the administrative config (e.g. free-tier limit) to the local store."""
        if self._mirror is None:
            return None
        try:
            raw = await self._mirror.remote.get_system_config()
            known = {k: v for k, v in raw.items() if k in SystemConfig.model_fields}
            config = SystemConfig.model_validate(known)
        except Exception as e:
            logger.warning("system_config_pull_failed", error=str(e))
            return None
        self._store.save_system_config(config)
        return config

    def _merge_profile(self, user_id: str, remote_profile: dict[str, Any]) -> UserProfile:
        local = self._store.get_user()
        return UserProfile(
            uid=user_id,
            email=local.email if local else None,
            display_name=remote_profile.get("display_name"),
            phone_number=remote_profile.get("phone_number"),
            is_anonymous=False,
            entitlement=remote_profile.get("entitlement") or Entitlement.FREE,
            currency=remote_profile.get("currency") or self._settings.default_currency,
            is_disabled=remote_profile.get("is_disabled", False),
            is_restricted=remote_profile.get("is_restricted", False),
            restriction_reason=remote_profile.get("restriction_reason"),
            entitlement_updated_at=remote_profile.get("entitlement_updated_at"),
        )

    def _save_and_mirror(self, profile: UserProfile, field: str, old_value: Any, new_value: Any) -> UserProfile:
        self._profile = profile
        self._store.save_user(profile)
        self._audit_logger.log(
            AuditEventBuilder.profile_updated(profile.uid, field, old_value, new_value),
            persist=profile.syncs_remotely,
        )
        if self._mirror is not None and profile.syncs_remotely:
            self._mirror.upsert_profile(profile)
        return profile

    def _require_profile(self) -> UserProfile:
        if self._profile is None:
            raise RuntimeError("No active profile; call bootstrap() first")
        return self._profile

    def update_currency(self, currency: str) -> UserProfile:
        current = self._require_profile()
        try:
            updated = UserProfile.model_validate({
                **current.model_dump(),
                "currency": currency,
            })
        except ValidationError as e:
            raise ValidationFailure(f"Invalid currency code: {currency!r}", field="currency") from e
        return self._save_and_mirror(updated, "currency", current.currency, updated.currency)

    def upgrade_to_pro(self) -> UserProfile:
        """Grant PRO after a successful checkout."""
        current = self._require_profile()
        updated = current.model_copy(update={
            "entitlement": Entitlement.PRO,
            "entitlement_updated_at": utcnow(),
        })
        return self._save_and_mirror(
            updated,
            "entitlement",
            current.entitlement.value,
            Entitlement.PRO.value,
        )

    def set_payment_validation(self, enabled: bool) -> SecurityConfig:
        """Install-wide strict audit toggle (only bites for PRO profiles)."""
        config = self._store.get_security_config().model_copy(
            update={"payment_validation_enabled": bool(enabled)}
        )
        self._store.save_security_config(config)
        logger.info("payment_validation_changed", enabled=config.payment_validation_enabled)
        return config

    def sign_out(self) -> None:
        """Forget every local record."""
        self._store.clear_all()
        self._profile = None
