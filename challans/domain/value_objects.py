"""Domain primitives that enforce validity at creation time."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Self
from uuid import UUID, uuid4

CENT = Decimal("0.01")


@dataclass(frozen=True)
class UserId:
    """Unique identifier for a User."""

    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(str(value)))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class ChallanId:
    """Unique identifier for a Challan."""

    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(str(value)))

    @classmethod
    def new(cls) -> Self:
        return cls(value=uuid4())

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class PaymentId:
    """Unique identifier for a Payment."""

    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(str(value)))

    @classmethod
    def new(cls) -> Self:
        return cls(value=uuid4())

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Money:
    """Non-negative amount, always held to two decimal places."""

    amount: Decimal

    def __post_init__(self) -> None:
        amount = Decimal(str(self.amount))
        if amount < 0:
            raise ValueError("Money amount cannot be negative")
        object.__setattr__(self, "amount", amount.quantize(CENT, rounding=ROUND_HALF_UP))

    @classmethod
    def zero(cls) -> Self:
        return cls(Decimal("0"))

    def __add__(self, other: "Money") -> "Money":
        return Money(self.amount + other.amount)

    def times(self, factor: Decimal | int | str) -> "Money":
        return Money(self.amount * Decimal(str(factor)))

    def __lt__(self, other: "Money") -> bool:
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        return self.amount <= other.amount

    def __str__(self) -> str:
        return f"{self.amount:.2f}"


class Role(str, Enum):
    CITIZEN = "citizen"
    OFFICER = "officer"
    ADMIN = "admin"


class ChallanStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    UPI = "upi"
    NET_BANKING = "net_banking"
    CASH = "cash"


class ViolationKind(str, Enum):
    SPEEDING = "speeding"
    PARKING = "parking"
    HELMET = "helmet"
    RED_LIGHT = "red_light"
    MOBILE_USAGE = "mobile_usage"
    GENERIC = "generic"


class ZoneType(str, Enum):
    NO_PARKING = "no-parking"
    HANDICAP = "handicap"
    FIRE_LANE = "fire-lane"
    EXPIRED_METER = "expired-meter"


class VehicleType(str, Enum):
    MOTORCYCLE = "motorcycle"
    SCOOTER = "scooter"


class EventKind(str, Enum):
    CHALLAN_CREATED = "challan_created"
    PAYMENT_RECEIVED = "payment_received"
    CHALLAN_DISPUTED = "challan_disputed"
    PAYMENT_REFUNDED = "payment_refunded"
