from challans.domain.models import (
    CapabilityGrant,
    Challan,
    Generic,
    Helmet,
    MobileUsage,
    NotificationEvent,
    Parking,
    Payment,
    PaymentResult,
    RedLight,
    RefundResult,
    Speeding,
    User,
    Violation,
    ViolationPayload,
)
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
    VehicleType,
    ViolationKind,
    ZoneType,
)

__all__ = [
    "CapabilityGrant",
    "Challan",
    "Payment",
    "PaymentResult",
    "RefundResult",
    "NotificationEvent",
    "User",
    "Violation",
    "ViolationPayload",
    "Speeding",
    "Parking",
    "Helmet",
    "RedLight",
    "MobileUsage",
    "Generic",
    "UserId",
    "ChallanId",
    "PaymentId",
    "Money",
    "Role",
    "ChallanStatus",
    "PaymentStatus",
    "PaymentMethod",
    "ViolationKind",
    "ZoneType",
    "VehicleType",
    "EventKind",
]
