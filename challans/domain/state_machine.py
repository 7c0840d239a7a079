"""Legal status transitions for a challan.

    pending --pay-----> paid --refund--> cancelled
    pending --dispute-> disputed

Every other transition is rejected. The machine only decides; callers persist
the result with the store's conditional update so the check and the write
happen against the same current status.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from challans.domain.errors import IllegalTransitionError, ValidationError
from challans.domain.models import Challan, utc_now
from challans.domain.value_objects import ChallanStatus

TRANSITIONS: dict[ChallanStatus, frozenset[ChallanStatus]] = {
    ChallanStatus.PENDING: frozenset({ChallanStatus.PAID, ChallanStatus.DISPUTED}),
    ChallanStatus.PAID: frozenset({ChallanStatus.CANCELLED}),
    ChallanStatus.DISPUTED: frozenset(),
    ChallanStatus.CANCELLED: frozenset(),
}


def can_transition(current: ChallanStatus, target: ChallanStatus) -> bool:
    return target in TRANSITIONS[current]


class ChallanStateMachine:
    """Apply status transitions to challans, returning updated copies."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def ensure(self, challan: Challan, target: ChallanStatus) -> None:
        """Raise IllegalTransitionError unless ``challan`` may move to ``target``."""
        if can_transition(challan.status, target):
            return
        if challan.status == target:
            message = f"Challan already {target.value}"
        else:
            message = f"Cannot move challan from {challan.status.value} to {target.value}"
        raise IllegalTransitionError(message, current=challan.status.value, target=target.value)

    def mark_paid(self, challan: Challan, paid_at: datetime | None = None) -> Challan:
        self.ensure(challan, ChallanStatus.PAID)
        return replace(
            challan,
            status=ChallanStatus.PAID,
            payment_date=paid_at if paid_at is not None else self._clock(),
        )

    def mark_disputed(self, challan: Challan, reason: str) -> Challan:
        if not isinstance(reason, str) or not reason.strip():
            raise ValidationError(
                "Dispute reason is required", fields={"reason": ["This field may not be blank."]}
            )
        self.ensure(challan, ChallanStatus.DISPUTED)
        return replace(
            challan,
            status=ChallanStatus.DISPUTED,
            dispute_reason=reason.strip(),
            dispute_date=self._clock(),
        )

    def mark_cancelled(self, challan: Challan) -> Challan:
        """Cancel a paid challan. Only the refund flow calls this."""
        self.ensure(challan, ChallanStatus.CANCELLED)
        return replace(challan, status=ChallanStatus.CANCELLED)
