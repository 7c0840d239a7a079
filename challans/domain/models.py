"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in challans/models.py (persistence layer).
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar

from challans.domain.value_objects import (
    ChallanId,
    ChallanStatus,
    EventKind,
    Money,
    PaymentId,
    PaymentMethod,
    PaymentStatus,
    Role,
    UserId,
    ViolationKind,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CapabilityGrant:
    """A capability granted to one user, optionally until a point in time."""

    capability: str
    expires_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or now <= self.expires_at


@dataclass(frozen=True)
class User:
    """Domain representation of a citizen, officer or admin."""

    id: UserId
    name: str
    email: str
    role: Role
    phone: str | None = None
    special_access: tuple[str, ...] = ()
    grants: tuple[CapabilityGrant, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class Speeding:
    kind: ClassVar[ViolationKind] = ViolationKind.SPEEDING

    speed_limit: int
    actual_speed: int
    radar_reading: str | None = None


@dataclass(frozen=True)
class Parking:
    kind: ClassVar[ViolationKind] = ViolationKind.PARKING

    zone_type: str
    duration_minutes: int


@dataclass(frozen=True)
class Helmet:
    kind: ClassVar[ViolationKind] = ViolationKind.HELMET

    vehicle_type: str
    passenger_count: int = 1

    def __post_init__(self) -> None:
        if self.passenger_count < 1:
            raise ValueError("Passenger count must be at least 1")


@dataclass(frozen=True)
class RedLight:
    kind: ClassVar[ViolationKind] = ViolationKind.RED_LIGHT

    intersection_id: str
    camera_id: str
    seconds_after_red: Decimal


@dataclass(frozen=True)
class MobileUsage:
    kind: ClassVar[ViolationKind] = ViolationKind.MOBILE_USAGE

    evidence_type: str


@dataclass(frozen=True)
class Generic:
    kind: ClassVar[ViolationKind] = ViolationKind.GENERIC

    custom_fine: Decimal | None = None


ViolationPayload = Speeding | Parking | Helmet | RedLight | MobileUsage | Generic

PAYLOAD_TYPES: dict[ViolationKind, type] = {
    payload_type.kind: payload_type
    for payload_type in (Speeding, Parking, Helmet, RedLight, MobileUsage, Generic)
}


@dataclass(frozen=True)
class Violation:
    """A single violation: the common record plus exactly one kind payload."""

    payload: ViolationPayload
    vehicle_number: str
    location: str
    occurred_at: datetime
    officer_id: UserId
    citizen_id: UserId
    description: str = ""

    @property
    def kind(self) -> ViolationKind:
        return self.payload.kind


@dataclass(frozen=True)
class Challan:
    """Domain representation of a Challan."""

    id: ChallanId
    challan_number: str
    violation: Violation
    fine_amount: Money
    type_label: str
    status: ChallanStatus
    due_date: datetime
    created_at: datetime
    payment_date: datetime | None = None
    dispute_reason: str | None = None
    dispute_date: datetime | None = None

    @property
    def citizen_id(self) -> UserId:
        return self.violation.citizen_id

    @property
    def officer_id(self) -> UserId:
        return self.violation.officer_id


@dataclass(frozen=True)
class Payment:
    """Domain representation of a Payment. The total is always amount + fee."""

    id: PaymentId
    transaction_id: str
    challan_id: ChallanId
    citizen_id: UserId
    amount: Money
    fee: Money
    method: PaymentMethod
    gateway: str
    status: PaymentStatus
    paid_at: datetime
    card_last4: str | None = None
    upi_id: str | None = None
    refund_amount: Money | None = None
    refund_date: datetime | None = None

    @property
    def total_amount(self) -> Money:
        return self.amount + self.fee


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of a successful payment strategy dispatch."""

    transaction_id: str
    method: PaymentMethod
    amount: Money
    fee: Money
    gateway: str
    processed_at: datetime

    @property
    def total_amount(self) -> Money:
        return self.amount + self.fee


@dataclass(frozen=True)
class RefundResult:
    """Outcome of a gateway refund."""

    refund_id: str
    transaction_id: str
    amount: Money
    gateway: str
    status: str
    processed_at: datetime


@dataclass(frozen=True)
class NotificationEvent:
    """Ephemeral event handed to the notification bus. Never persisted."""

    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)
