"""Serializers for violation input and challan/payment output.

Input serializers validate the raw attributes an officer submits for a
violation; ``build_violation`` turns them into a domain ``Violation`` or raises
the domain ``ValidationError``. Output serializers render domain models into
JSON-ready dicts for ``OperationResult`` payloads.
"""

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from rest_framework import serializers

from challans.domain import (
    UserId,
    VehicleType,
    Violation,
    ViolationKind,
    ZoneType,
)
from challans.domain.errors import ValidationError
from challans.domain.models import PAYLOAD_TYPES
from challans.domain.violations import payload_to_dict, resolve_kind

# Alternate spellings accepted for payload attributes.
FIELD_ALIASES = {
    "duration": "duration_minutes",
    "time_after_red": "seconds_after_red",
    "passengers": "passenger_count",
}


class ViolationCommonSerializer(serializers.Serializer):
    """Fields every violation carries."""

    vehicle_number = serializers.CharField(max_length=32)
    location = serializers.CharField(max_length=255)
    description = serializers.CharField(allow_blank=True, default="")
    occurred_at = serializers.DateTimeField(required=False)


class SpeedingSerializer(serializers.Serializer):
    speed_limit = serializers.IntegerField(min_value=1)
    actual_speed = serializers.IntegerField(min_value=0)
    radar_reading = serializers.CharField(allow_null=True, allow_blank=True, default=None)


class ParkingSerializer(serializers.Serializer):
    zone_type = serializers.ChoiceField(choices=[zone.value for zone in ZoneType])
    duration_minutes = serializers.IntegerField(min_value=0)


class HelmetSerializer(serializers.Serializer):
    vehicle_type = serializers.ChoiceField(choices=[vehicle.value for vehicle in VehicleType])
    passenger_count = serializers.IntegerField(min_value=1, default=1)


class RedLightSerializer(serializers.Serializer):
    intersection_id = serializers.CharField(max_length=64)
    camera_id = serializers.CharField(max_length=64)
    seconds_after_red = serializers.DecimalField(
        max_digits=6, decimal_places=2, min_value=Decimal("0")
    )


class MobileUsageSerializer(serializers.Serializer):
    evidence_type = serializers.CharField(max_length=64)


class GenericSerializer(serializers.Serializer):
    custom_fine = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0"), allow_null=True, default=None
    )


PAYLOAD_SERIALIZERS: dict[ViolationKind, type[serializers.Serializer]] = {
    ViolationKind.SPEEDING: SpeedingSerializer,
    ViolationKind.PARKING: ParkingSerializer,
    ViolationKind.HELMET: HelmetSerializer,
    ViolationKind.RED_LIGHT: RedLightSerializer,
    ViolationKind.MOBILE_USAGE: MobileUsageSerializer,
    ViolationKind.GENERIC: GenericSerializer,
}


def _field_errors(errors: Mapping[str, Any]) -> dict[str, list[str]]:
    fields = {}
    for name, messages in errors.items():
        if isinstance(messages, (list, tuple)):
            fields[name] = [str(message) for message in messages]
        else:
            fields[name] = [str(messages)]
    return fields


def _with_aliases(attrs: Mapping[str, Any]) -> dict[str, Any]:
    data = dict(attrs)
    for alias, name in FIELD_ALIASES.items():
        if alias in data and name not in data:
            data[name] = data.pop(alias)
    return data


def build_violation(
    attrs: Mapping[str, Any],
    officer_id: UserId,
    citizen_id: UserId,
    now: datetime,
) -> Violation:
    """Build a Violation from raw attributes.

    ``attrs["violation_type"]`` selects the payload; ``occurred_at`` defaults
    to ``now``.

    Raises:
        ValidationError: If the type is unknown or any attribute is invalid.
    """
    kind = resolve_kind(attrs.get("violation_type"))
    data = _with_aliases(attrs)

    common = ViolationCommonSerializer(data=data)
    payload_serializer = PAYLOAD_SERIALIZERS[kind](data=data)
    common_valid = common.is_valid()
    payload_valid = payload_serializer.is_valid()
    if not (common_valid and payload_valid):
        errors = {**_field_errors(common.errors), **_field_errors(payload_serializer.errors)}
        raise ValidationError(f"Invalid {kind.value} violation", fields=errors)

    payload = PAYLOAD_TYPES[kind](**payload_serializer.validated_data)
    values = common.validated_data
    return Violation(
        payload=payload,
        vehicle_number=values["vehicle_number"].strip().upper(),
        location=values["location"],
        occurred_at=values.get("occurred_at") or now,
        officer_id=officer_id,
        citizen_id=citizen_id,
        description=values["description"],
    )


class MoneyField(serializers.DecimalField):
    """Renders a ``Money`` attribute as a two-place decimal string."""

    def __init__(self, **kwargs):
        kwargs.setdefault("max_digits", 12)
        kwargs.setdefault("decimal_places", 2)
        super().__init__(**kwargs)


class ChallanSerializer(serializers.Serializer):
    """Serializer for the Challan domain model."""

    id = serializers.UUIDField(source="id.value")
    challan_number = serializers.CharField()
    violation_kind = serializers.CharField(source="violation.kind.value")
    violation_type = serializers.CharField(source="type_label")
    details = serializers.SerializerMethodField()
    vehicle_number = serializers.CharField(source="violation.vehicle_number")
    location = serializers.CharField(source="violation.location")
    description = serializers.CharField(source="violation.description")
    occurred_at = serializers.DateTimeField(source="violation.occurred_at")
    citizen_id = serializers.UUIDField(source="citizen_id.value")
    officer_id = serializers.UUIDField(source="officer_id.value")
    fine_amount = MoneyField(source="fine_amount.amount")
    status = serializers.CharField(source="status.value")
    due_date = serializers.DateTimeField()
    created_at = serializers.DateTimeField()
    payment_date = serializers.DateTimeField(allow_null=True)
    dispute_reason = serializers.CharField(allow_null=True)
    dispute_date = serializers.DateTimeField(allow_null=True)

    def get_details(self, challan) -> dict[str, Any]:
        return payload_to_dict(challan.violation.payload)


class PaymentSerializer(serializers.Serializer):
    """Serializer for the Payment domain model."""

    id = serializers.UUIDField(source="id.value")
    transaction_id = serializers.CharField()
    challan_id = serializers.UUIDField(source="challan_id.value")
    citizen_id = serializers.UUIDField(source="citizen_id.value")
    amount = MoneyField(source="amount.amount")
    fee = MoneyField(source="fee.amount")
    total_amount = MoneyField(source="total_amount.amount")
    method = serializers.CharField(source="method.value")
    gateway = serializers.CharField()
    status = serializers.CharField(source="status.value")
    paid_at = serializers.DateTimeField()
    card_last4 = serializers.CharField(allow_null=True)
    upi_id = serializers.CharField(allow_null=True)
    refund_amount = MoneyField(source="refund_amount.amount", allow_null=True)
    refund_date = serializers.DateTimeField(allow_null=True)


class RefundSerializer(serializers.Serializer):
    """Serializer for a gateway RefundResult."""

    refund_id = serializers.CharField()
    transaction_id = serializers.CharField()
    amount = MoneyField(source="amount.amount")
    gateway = serializers.CharField()
    status = serializers.CharField()
    processed_at = serializers.DateTimeField()
