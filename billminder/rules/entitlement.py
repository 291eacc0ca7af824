"""
Entitlement & Limit Policy

PRO profiles have no bill cap. FREE profiles may hold fewer than the
configured limit. The limit is passed in at decision time so that an
administrative change applies to the very next creation.
"""

from typing import Optional

from billminder.models.bill import Entitlement, SystemConfig, UserProfile


def can_create(
    profile: Optional[UserProfile],
    current_count: int,
    configured_limit: int,
) -> bool:
    if profile is not None and profile.entitlement == Entitlement.PRO:
        return True
    return current_count < configured_limit


def resolve_limit(system_config: Optional[SystemConfig], fallback: int) -> int:
    """Administrative free-tier limit, else the hardcoded fallback."""
    if system_config is None:
        return fallback
    return system_config.bill_limit(fallback)


def remaining_slots(
    profile: Optional[UserProfile],
    current_count: int,
    configured_limit: int,
) -> Optional[int]:
    """Bills a profile can still add; None means unlimited."""
    if profile is not None and profile.entitlement == Entitlement.PRO:
        return None
    return max(configured_limit - current_count, 0)
