"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. Conditional saves are how
the service applies a state transition atomically: the write happens only if
the persisted status still equals ``expected_status``.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from challans.domain import (
    Challan,
    ChallanId,
    ChallanStatus,
    Money,
    Payment,
    PaymentId,
    PaymentStatus,
    User,
    UserId,
)


@dataclass(frozen=True)
class ChallanQuery:
    """Filters for counting, listing and summarizing challans."""

    citizen_id: UserId | None = None
    officer_id: UserId | None = None
    status: ChallanStatus | None = None
    created_since: datetime | None = None


@dataclass(frozen=True)
class PaymentQuery:
    """Filters for summarizing payments."""

    citizen_id: UserId | None = None
    officer_id: UserId | None = None


@dataclass(frozen=True)
class StatusTotals:
    """Row count and summed amount for one status."""

    count: int = 0
    amount: Money = Money.zero()
    fees: Money = Money.zero()


class ChallanStore(ABC):
    """Interface for challan, payment and user persistence operations."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager[Any]:
        """Context manager under which all writes commit or roll back together."""
        ...

    @abstractmethod
    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the enclosing transaction commits.

        Outside a transaction the callback runs immediately. Callbacks
        registered inside a block that rolls back are discarded.
        """
        ...

    @abstractmethod
    def find_user_by_id(self, user_id: UserId) -> User | None:
        """Return a user by ID, or None if not found."""
        ...

    @abstractmethod
    def find_user_by_email(self, email: str) -> User | None:
        """Return a user by email (case-insensitive), or None if not found."""
        ...

    @abstractmethod
    def find_challan_by_id(self, challan_id: ChallanId) -> Challan | None:
        """Return a challan by ID, or None if not found."""
        ...

    @abstractmethod
    def save_challan(self, challan: Challan, expected_status: ChallanStatus | None = None) -> bool:
        """Insert or update a challan.

        With ``expected_status`` the update applies only if the stored status
        still matches; returns False when it does not.
        """
        ...

    @abstractmethod
    def find_payment_by_id(self, payment_id: PaymentId) -> Payment | None:
        """Return a payment by ID, or None if not found."""
        ...

    @abstractmethod
    def find_payments_by_challan(self, challan_id: ChallanId) -> list[Payment]:
        """Return all payments for a challan, newest first."""
        ...

    @abstractmethod
    def find_payments_by_citizen(self, citizen_id: UserId) -> list[Payment]:
        """Return all payments made by a citizen, newest first."""
        ...

    @abstractmethod
    def save_payment(self, payment: Payment, expected_status: PaymentStatus | None = None) -> bool:
        """Insert or update a payment, conditionally as for ``save_challan``."""
        ...

    @abstractmethod
    def count_challans(self, query: ChallanQuery) -> int:
        """Return the number of challans matching ``query``."""
        ...

    @abstractmethod
    def list_challans(self, query: ChallanQuery, page: int, limit: int) -> list[Challan]:
        """Return one page (1-based) of matching challans, newest first."""
        ...

    @abstractmethod
    def summarize_challans(self, query: ChallanQuery) -> dict[ChallanStatus, StatusTotals]:
        """Return count and summed fine per status for matching challans."""
        ...

    @abstractmethod
    def summarize_payments(self, query: PaymentQuery) -> dict[PaymentStatus, StatusTotals]:
        """Return count, summed amount and summed fee per payment status."""
        ...

    @abstractmethod
    def record_activity(
        self,
        event: str,
        challan_id: str | None,
        user_id: str | None,
        details: dict[str, Any],
    ) -> None:
        """Append an audit-trail entry."""
        ...
