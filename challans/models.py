"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py.
"""

import uuid

from django.db import models
from django.db.models import Q

from challans.domain.value_objects import (
    ChallanStatus,
    PaymentMethod,
    PaymentStatus,
    Role,
    ViolationKind,
)


def _choices(enum_cls) -> list[tuple[str, str]]:
    return [(member.value, member.value.replace("_", " ").title()) for member in enum_cls]


class User(models.Model):
    """Persistence model for citizens, officers and admins."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=32, blank=True, default="")
    role = models.CharField(max_length=16, choices=_choices(Role), default=Role.CITIZEN.value)
    badge_number = models.CharField(max_length=64, blank=True, default="")
    department = models.CharField(max_length=128, blank=True, default="")
    special_access = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["role"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.role})"


class CapabilityGrant(models.Model):
    """A capability granted to a user, optionally until ``expires_at``."""

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="grants")
    capability = models.CharField(max_length=64)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.capability} -> {self.user_id}"


class Challan(models.Model):
    """Persistence model for challans. ``details`` holds the violation payload."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    challan_number = models.CharField(max_length=32, unique=True)
    citizen = models.ForeignKey(User, on_delete=models.PROTECT, related_name="challans_received")
    officer = models.ForeignKey(User, on_delete=models.PROTECT, related_name="challans_issued")
    violation_kind = models.CharField(max_length=16, choices=_choices(ViolationKind))
    violation_type = models.CharField(max_length=32)
    details = models.JSONField(default=dict)
    vehicle_number = models.CharField(max_length=32)
    location = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    occurred_at = models.DateTimeField()
    fine_amount = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(
        max_length=16, choices=_choices(ChallanStatus), default=ChallanStatus.PENDING.value
    )
    due_date = models.DateTimeField()
    payment_date = models.DateTimeField(null=True, blank=True)
    dispute_reason = models.TextField(null=True, blank=True)
    dispute_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["citizen", "status"]),
            models.Index(fields=["officer", "-created_at"]),
        ]

    def __str__(self) -> str:
        return self.challan_number


class Payment(models.Model):
    """Persistence model for payments. ``total_amount`` is derived on save."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transaction_id = models.CharField(max_length=64, unique=True)
    challan = models.ForeignKey(Challan, on_delete=models.PROTECT, related_name="payments")
    citizen = models.ForeignKey(User, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    method = models.CharField(max_length=16, choices=_choices(PaymentMethod))
    gateway = models.CharField(max_length=32)
    status = models.CharField(
        max_length=16, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING.value
    )
    paid_at = models.DateTimeField()
    card_last4 = models.CharField(max_length=4, null=True, blank=True)
    upi_id = models.CharField(max_length=128, null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    refund_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-paid_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["challan"],
                condition=Q(status=PaymentStatus.COMPLETED.value),
                name="one_completed_payment_per_challan",
            ),
        ]
        indexes = [
            models.Index(fields=["citizen", "-paid_at"]),
        ]

    def save(self, *args, **kwargs) -> None:
        self.total_amount = self.amount + self.fee
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.transaction_id} - {self.total_amount}"


class ActivityLog(models.Model):
    """Audit trail written by the audit-log notification channel."""

    event = models.CharField(max_length=64)
    challan_id = models.UUIDField(null=True, blank=True)
    user_id = models.UUIDField(null=True, blank=True)
    details = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["challan_id"]),
        ]

    def __str__(self) -> str:
        return f"{self.event} @ {self.created_at}"
