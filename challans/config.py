"""Core configuration.

Values come from the ``CHALLANS`` dict in Django settings and are frozen into
a ``ChallanConfig`` that is passed to the service explicitly.
"""

from dataclasses import dataclass, field
from typing import Any, Self

DEFAULTS: dict[str, Any] = {
    "DUE_DAYS": 30,
    "RECENT_LIMIT": 5,
    "PAGE_SIZE": 10,
    "MAX_PAGE_SIZE": 100,
    "BETA_FEATURES_ENABLED": False,
    "DISABLED_CAPABILITIES": (),
    "NOTIFICATION_FROM_EMAIL": "no-reply@echallan.local",
}


@dataclass(frozen=True)
class ChallanConfig:
    due_days: int = DEFAULTS["DUE_DAYS"]
    recent_limit: int = DEFAULTS["RECENT_LIMIT"]
    page_size: int = DEFAULTS["PAGE_SIZE"]
    max_page_size: int = DEFAULTS["MAX_PAGE_SIZE"]
    beta_features_enabled: bool = DEFAULTS["BETA_FEATURES_ENABLED"]
    disabled_capabilities: frozenset[str] = field(default_factory=frozenset)
    notification_from_email: str = DEFAULTS["NOTIFICATION_FROM_EMAIL"]

    def __post_init__(self) -> None:
        if self.due_days <= 0:
            raise ValueError("DUE_DAYS must be positive")
        if not 0 < self.page_size <= self.max_page_size:
            raise ValueError("PAGE_SIZE must be between 1 and MAX_PAGE_SIZE")

    @classmethod
    def from_settings(cls, settings: Any = None) -> Self:
        """Build from ``settings.CHALLANS``, falling back to defaults per key."""
        if settings is None:
            from django.conf import settings
        options = {**DEFAULTS, **getattr(settings, "CHALLANS", {})}
        return cls(
            due_days=int(options["DUE_DAYS"]),
            recent_limit=int(options["RECENT_LIMIT"]),
            page_size=int(options["PAGE_SIZE"]),
            max_page_size=int(options["MAX_PAGE_SIZE"]),
            beta_features_enabled=bool(options["BETA_FEATURES_ENABLED"]),
            disabled_capabilities=frozenset(options["DISABLED_CAPABILITIES"]),
            notification_from_email=str(options["NOTIFICATION_FROM_EMAIL"]),
        )
