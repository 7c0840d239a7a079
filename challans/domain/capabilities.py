"""Capability sets.

A user's capabilities are computed once per request from their role, any
special-access bundles, unexpired grants and the configured feature flags.
"""

from collections.abc import Iterable
from datetime import datetime

from challans.domain.errors import AuthorizationError
from challans.domain.models import User
from challans.domain.value_objects import Role

CREATE_CHALLANS = "create_challans"
VIEW_OWN_CHALLANS = "view_own_challans"
VIEW_ALL_CHALLANS = "view_all_challans"
MAKE_PAYMENTS = "make_payments"
DISPUTE_CHALLAN = "dispute_challan"
VIEW_PAYMENT_HISTORY = "view_payment_history"
VIEW_REPORTS = "view_reports"
PROCESS_REFUNDS = "process_refunds"

ROLE_CAPABILITIES: dict[Role, frozenset[str]] = {
    Role.CITIZEN: frozenset(
        {
            VIEW_OWN_CHALLANS,
            MAKE_PAYMENTS,
            "update_profile",
            VIEW_PAYMENT_HISTORY,
            DISPUTE_CHALLAN,
        }
    ),
    Role.OFFICER: frozenset(
        {
            CREATE_CHALLANS,
            VIEW_OWN_CHALLANS,
            "update_own_challans",
            "upload_evidence",
            "search_citizens",
            VIEW_REPORTS,
        }
    ),
    Role.ADMIN: frozenset(
        {
            VIEW_ALL_CHALLANS,
            "delete_challans",
            "manage_users",
            "view_system_reports",
            "system_configuration",
            PROCESS_REFUNDS,
            VIEW_REPORTS,
        }
    ),
}

SUPERVISOR_CAPABILITIES = frozenset(
    {"view_team_performance", "assign_cases", "approve_disputes", "generate_team_reports"}
)
BETA_CAPABILITIES = frozenset({"advanced_search", "bulk_operations", "analytics_dashboard"})


def compute_capabilities(
    user: User,
    now: datetime,
    *,
    beta_features_enabled: bool = False,
    disabled: Iterable[str] = (),
) -> frozenset[str]:
    """Return the capability set ``user`` holds at ``now``."""
    if not user.is_active:
        return frozenset()
    capabilities = set(ROLE_CAPABILITIES[user.role])
    if user.role == Role.OFFICER and "supervisor" in user.special_access:
        capabilities |= SUPERVISOR_CAPABILITIES
    if beta_features_enabled and "beta_features" in user.special_access:
        capabilities |= BETA_CAPABILITIES
    capabilities.update(grant.capability for grant in user.grants if grant.is_active(now))
    capabilities.difference_update(disabled)
    return frozenset(capabilities)


def require(capabilities: frozenset[str], capability: str) -> None:
    """Raise AuthorizationError unless ``capability`` is held."""
    if capability not in capabilities:
        raise AuthorizationError(f"Missing capability: {capability}")
