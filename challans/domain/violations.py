"""Fine rules per violation kind.

Each kind has exactly one rule function; ``compute_fine`` selects it by the
payload's kind tag. The rules are pure and never fail for a well-formed
payload. Unknown kinds are rejected earlier, by ``resolve_kind``.
"""

from collections.abc import Callable
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any

from challans.domain.errors import ValidationError
from challans.domain.models import (
    PAYLOAD_TYPES,
    Generic,
    Helmet,
    MobileUsage,
    Parking,
    RedLight,
    Speeding,
    Violation,
    ViolationPayload,
)
from challans.domain.value_objects import Money, ViolationKind, ZoneType

SPEEDING_BASE_FINE = Decimal("500")
PARKING_DEFAULT_FINE = Decimal("200")
PARKING_LONG_STAY_MINUTES = 120
HELMET_FINE_PER_RIDER = Decimal("300")
RED_LIGHT_BASE_FINE = Decimal("1000")
RED_LIGHT_FLAGRANT_SECONDS = 3
MOBILE_USAGE_FINE = Decimal("1000")
GENERIC_DEFAULT_FINE = Decimal("500")

PARKING_ZONE_FINES: dict[str, Decimal] = {
    ZoneType.NO_PARKING.value: Decimal("200"),
    ZoneType.HANDICAP.value: Decimal("1000"),
    ZoneType.FIRE_LANE.value: Decimal("1500"),
    ZoneType.EXPIRED_METER.value: Decimal("100"),
}

TYPE_LABELS: dict[ViolationKind, str] = {
    ViolationKind.SPEEDING: "Speeding",
    ViolationKind.PARKING: "Wrong Parking",
    ViolationKind.HELMET: "No Helmet",
    ViolationKind.RED_LIGHT: "Red Light",
    ViolationKind.MOBILE_USAGE: "Mobile Phone Usage",
    ViolationKind.GENERIC: "Other",
}

# Spellings accepted for each kind, after lower-casing and mapping "_"/"-" to spaces.
KIND_ALIASES: dict[str, ViolationKind] = {
    "speeding": ViolationKind.SPEEDING,
    "parking": ViolationKind.PARKING,
    "wrong parking": ViolationKind.PARKING,
    "helmet": ViolationKind.HELMET,
    "no helmet": ViolationKind.HELMET,
    "red light": ViolationKind.RED_LIGHT,
    "mobile usage": ViolationKind.MOBILE_USAGE,
    "mobile phone usage": ViolationKind.MOBILE_USAGE,
    "generic": ViolationKind.GENERIC,
    "other": ViolationKind.GENERIC,
}


@dataclass(frozen=True)
class FineAssessment:
    """Fine amount and canonical label for one violation."""

    amount: Money
    type_label: str


def _speeding_fine(payload: Speeding) -> Decimal:
    difference = payload.actual_speed - payload.speed_limit
    if difference > 20:
        return SPEEDING_BASE_FINE * 2
    if difference > 10:
        return SPEEDING_BASE_FINE * Decimal("1.5")
    return SPEEDING_BASE_FINE


def _parking_fine(payload: Parking) -> Decimal:
    fine = PARKING_ZONE_FINES.get(str(payload.zone_type), PARKING_DEFAULT_FINE)
    if payload.duration_minutes > PARKING_LONG_STAY_MINUTES:
        fine *= Decimal("1.5")
    return fine


def _helmet_fine(payload: Helmet) -> Decimal:
    return HELMET_FINE_PER_RIDER * payload.passenger_count


def _red_light_fine(payload: RedLight) -> Decimal:
    if payload.seconds_after_red > RED_LIGHT_FLAGRANT_SECONDS:
        return RED_LIGHT_BASE_FINE * Decimal("1.5")
    return RED_LIGHT_BASE_FINE


def _mobile_usage_fine(payload: MobileUsage) -> Decimal:
    return MOBILE_USAGE_FINE


def _generic_fine(payload: Generic) -> Decimal:
    return payload.custom_fine if payload.custom_fine else GENERIC_DEFAULT_FINE


FINE_RULES: dict[ViolationKind, Callable[..., Decimal]] = {
    ViolationKind.SPEEDING: _speeding_fine,
    ViolationKind.PARKING: _parking_fine,
    ViolationKind.HELMET: _helmet_fine,
    ViolationKind.RED_LIGHT: _red_light_fine,
    ViolationKind.MOBILE_USAGE: _mobile_usage_fine,
    ViolationKind.GENERIC: _generic_fine,
}


def assess_payload(payload: ViolationPayload) -> FineAssessment:
    """Return the fine and type label for a bare violation payload."""
    rule = FINE_RULES[payload.kind]
    return FineAssessment(amount=Money(rule(payload)), type_label=TYPE_LABELS[payload.kind])


def compute_fine(violation: Violation) -> FineAssessment:
    """Return the fine and type label for a violation."""
    return assess_payload(violation.payload)


def resolve_kind(raw: object) -> ViolationKind:
    """Map a caller-supplied violation type to its kind.

    Raises:
        ValidationError: If the type is missing or not one of the known kinds.
    """
    if isinstance(raw, ViolationKind):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(
            "Violation type is required",
            fields={"violation_type": ["This field is required."]},
        )
    normalized = " ".join(raw.replace("_", " ").replace("-", " ").lower().split())
    try:
        return KIND_ALIASES[normalized]
    except KeyError:
        raise ValidationError(
            f"Unknown violation type: {raw}",
            fields={"violation_type": [f"'{raw}' is not a supported violation type."]},
        ) from None


def payload_to_dict(payload: ViolationPayload) -> dict[str, Any]:
    """JSON-safe attributes of a payload. Decimals become strings."""
    return {
        key: str(value) if isinstance(value, Decimal) else value
        for key, value in asdict(payload).items()
    }


def payload_from_dict(kind: ViolationKind, data: dict[str, Any]) -> ViolationPayload:
    """Inverse of ``payload_to_dict``."""
    values = dict(data)
    if kind == ViolationKind.RED_LIGHT:
        values["seconds_after_red"] = Decimal(str(values["seconds_after_red"]))
    elif kind == ViolationKind.GENERIC and values.get("custom_fine") is not None:
        values["custom_fine"] = Decimal(str(values["custom_fine"]))
    return PAYLOAD_TYPES[kind](**values)


def violation_catalog() -> list[dict[str, object]]:
    """Supported kinds with their label and fine range."""
    return [
        {
            "kind": ViolationKind.SPEEDING.value,
            "label": TYPE_LABELS[ViolationKind.SPEEDING],
            "min_fine": Money(SPEEDING_BASE_FINE),
            "max_fine": Money(SPEEDING_BASE_FINE * 2),
            "description": "Exceeding speed limit",
        },
        {
            "kind": ViolationKind.PARKING.value,
            "label": TYPE_LABELS[ViolationKind.PARKING],
            "min_fine": Money(min(PARKING_ZONE_FINES.values())),
            "max_fine": Money(max(PARKING_ZONE_FINES.values()) * Decimal("1.5")),
            "description": "Parking in restricted area",
        },
        {
            "kind": ViolationKind.HELMET.value,
            "label": TYPE_LABELS[ViolationKind.HELMET],
            "min_fine": Money(HELMET_FINE_PER_RIDER),
            "max_fine": None,
            "description": "Riding without helmet",
        },
        {
            "kind": ViolationKind.RED_LIGHT.value,
            "label": TYPE_LABELS[ViolationKind.RED_LIGHT],
            "min_fine": Money(RED_LIGHT_BASE_FINE),
            "max_fine": Money(RED_LIGHT_BASE_FINE * Decimal("1.5")),
            "description": "Running red light",
        },
        {
            "kind": ViolationKind.MOBILE_USAGE.value,
            "label": TYPE_LABELS[ViolationKind.MOBILE_USAGE],
            "min_fine": Money(MOBILE_USAGE_FINE),
            "max_fine": Money(MOBILE_USAGE_FINE),
            "description": "Using a mobile phone while driving",
        },
        {
            "kind": ViolationKind.GENERIC.value,
            "label": TYPE_LABELS[ViolationKind.GENERIC],
            "min_fine": None,
            "max_fine": None,
            "description": "Other violation with an officer-assessed fine",
        },
    ]
