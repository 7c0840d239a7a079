"""Django ORM implementation of the ChallanStore."""

import functools
import logging
from typing import Any

from django.db import DatabaseError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from challans import models as orm
from challans.domain import (
    CapabilityGrant,
    Challan,
    ChallanId,
    ChallanStatus,
    Money,
    Payment,
    PaymentId,
    PaymentMethod,
    PaymentStatus,
    Role,
    User,
    UserId,
    Violation,
    ViolationKind,
)
from challans.domain.errors import PersistenceError
from challans.domain.violations import payload_from_dict, payload_to_dict
from challans.stores.interfaces import ChallanQuery, ChallanStore, PaymentQuery, StatusTotals

logger = logging.getLogger(__name__)


def _translate_errors(method):
    """Surface ORM failures as PersistenceError."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except DatabaseError as exc:
            logger.error("Store operation %s failed: %s", method.__name__, exc)
            raise PersistenceError(f"Storage failure during {method.__name__}") from exc

    return wrapper


def _user_to_domain(row: orm.User) -> User:
    return User(
        id=UserId(row.id),
        name=row.name,
        email=row.email,
        role=Role(row.role),
        phone=row.phone or None,
        special_access=tuple(row.special_access or ()),
        grants=tuple(
            CapabilityGrant(capability=grant.capability, expires_at=grant.expires_at)
            for grant in row.grants.all()
        ),
        is_active=row.is_active,
    )


def _challan_to_domain(row: orm.Challan) -> Challan:
    kind = ViolationKind(row.violation_kind)
    violation = Violation(
        payload=payload_from_dict(kind, row.details),
        vehicle_number=row.vehicle_number,
        location=row.location,
        occurred_at=row.occurred_at,
        officer_id=UserId(row.officer_id),
        citizen_id=UserId(row.citizen_id),
        description=row.description,
    )
    return Challan(
        id=ChallanId(row.id),
        challan_number=row.challan_number,
        violation=violation,
        fine_amount=Money(row.fine_amount),
        type_label=row.violation_type,
        status=ChallanStatus(row.status),
        due_date=row.due_date,
        created_at=row.created_at,
        payment_date=row.payment_date,
        dispute_reason=row.dispute_reason,
        dispute_date=row.dispute_date,
    )


def _payment_to_domain(row: orm.Payment) -> Payment:
    return Payment(
        id=PaymentId(row.id),
        transaction_id=row.transaction_id,
        challan_id=ChallanId(row.challan_id),
        citizen_id=UserId(row.citizen_id),
        amount=Money(row.amount),
        fee=Money(row.fee),
        method=PaymentMethod(row.method),
        gateway=row.gateway,
        status=PaymentStatus(row.status),
        paid_at=row.paid_at,
        card_last4=row.card_last4,
        upi_id=row.upi_id,
        refund_amount=Money(row.refund_amount) if row.refund_amount is not None else None,
        refund_date=row.refund_date,
    )


def _challan_fields(challan: Challan) -> dict[str, Any]:
    violation = challan.violation
    return {
        "challan_number": challan.challan_number,
        "citizen_id": violation.citizen_id.value,
        "officer_id": violation.officer_id.value,
        "violation_kind": violation.kind.value,
        "violation_type": challan.type_label,
        "details": payload_to_dict(violation.payload),
        "vehicle_number": violation.vehicle_number,
        "location": violation.location,
        "description": violation.description,
        "occurred_at": violation.occurred_at,
        "fine_amount": challan.fine_amount.amount,
        "status": challan.status.value,
        "due_date": challan.due_date,
        "payment_date": challan.payment_date,
        "dispute_reason": challan.dispute_reason,
        "dispute_date": challan.dispute_date,
        "created_at": challan.created_at,
    }


def _payment_fields(payment: Payment) -> dict[str, Any]:
    return {
        "transaction_id": payment.transaction_id,
        "challan_id": payment.challan_id.value,
        "citizen_id": payment.citizen_id.value,
        "amount": payment.amount.amount,
        "fee": payment.fee.amount,
        "total_amount": payment.total_amount.amount,
        "method": payment.method.value,
        "gateway": payment.gateway,
        "status": payment.status.value,
        "paid_at": payment.paid_at,
        "card_last4": payment.card_last4,
        "upi_id": payment.upi_id,
        "refund_amount": payment.refund_amount.amount if payment.refund_amount else None,
        "refund_date": payment.refund_date,
    }


class DjangoChallanStore(ChallanStore):
    """Relational challan store using Django ORM."""

    def atomic(self):
        return transaction.atomic()

    def on_commit(self, callback):
        transaction.on_commit(callback)

    @_translate_errors
    def find_user_by_id(self, user_id: UserId) -> User | None:
        row = orm.User.objects.prefetch_related("grants").filter(pk=user_id.value).first()
        return _user_to_domain(row) if row else None

    @_translate_errors
    def find_user_by_email(self, email: str) -> User | None:
        row = orm.User.objects.prefetch_related("grants").filter(email__iexact=email).first()
        return _user_to_domain(row) if row else None

    @_translate_errors
    def find_challan_by_id(self, challan_id: ChallanId) -> Challan | None:
        row = orm.Challan.objects.filter(pk=challan_id.value).first()
        return _challan_to_domain(row) if row else None

    @_translate_errors
    def save_challan(self, challan: Challan, expected_status: ChallanStatus | None = None) -> bool:
        fields = _challan_fields(challan)
        if expected_status is None:
            orm.Challan.objects.update_or_create(pk=challan.id.value, defaults=fields)
            return True
        updated = orm.Challan.objects.filter(
            pk=challan.id.value, status=expected_status.value
        ).update(updated_at=timezone.now(), **fields)
        return updated == 1

    @_translate_errors
    def find_payment_by_id(self, payment_id: PaymentId) -> Payment | None:
        row = orm.Payment.objects.filter(pk=payment_id.value).first()
        return _payment_to_domain(row) if row else None

    @_translate_errors
    def find_payments_by_challan(self, challan_id: ChallanId) -> list[Payment]:
        rows = orm.Payment.objects.filter(challan_id=challan_id.value).order_by("-paid_at")
        return [_payment_to_domain(row) for row in rows]

    @_translate_errors
    def find_payments_by_citizen(self, citizen_id: UserId) -> list[Payment]:
        rows = orm.Payment.objects.filter(citizen_id=citizen_id.value).order_by("-paid_at")
        return [_payment_to_domain(row) for row in rows]

    @_translate_errors
    def save_payment(self, payment: Payment, expected_status: PaymentStatus | None = None) -> bool:
        fields = _payment_fields(payment)
        if expected_status is None:
            orm.Payment.objects.update_or_create(pk=payment.id.value, defaults=fields)
            return True
        updated = orm.Payment.objects.filter(
            pk=payment.id.value, status=expected_status.value
        ).update(updated_at=timezone.now(), **fields)
        return updated == 1

    def _challan_queryset(self, query: ChallanQuery):
        queryset = orm.Challan.objects.all()
        if query.citizen_id is not None:
            queryset = queryset.filter(citizen_id=query.citizen_id.value)
        if query.officer_id is not None:
            queryset = queryset.filter(officer_id=query.officer_id.value)
        if query.status is not None:
            queryset = queryset.filter(status=query.status.value)
        if query.created_since is not None:
            queryset = queryset.filter(created_at__gte=query.created_since)
        return queryset

    @_translate_errors
    def count_challans(self, query: ChallanQuery) -> int:
        return self._challan_queryset(query).count()

    @_translate_errors
    def list_challans(self, query: ChallanQuery, page: int, limit: int) -> list[Challan]:
        offset = (page - 1) * limit
        rows = self._challan_queryset(query).order_by("-created_at")[offset : offset + limit]
        return [_challan_to_domain(row) for row in rows]

    @_translate_errors
    def summarize_challans(self, query: ChallanQuery) -> dict[ChallanStatus, StatusTotals]:
        rows = (
            self._challan_queryset(query)
            .order_by()
            .values("status")
            .annotate(count=Count("id"), amount=Sum("fine_amount"))
        )
        return {
            ChallanStatus(row["status"]): StatusTotals(
                count=row["count"], amount=Money(row["amount"] or 0)
            )
            for row in rows
        }

    @_translate_errors
    def summarize_payments(self, query: PaymentQuery) -> dict[PaymentStatus, StatusTotals]:
        queryset = orm.Payment.objects.all()
        if query.citizen_id is not None:
            queryset = queryset.filter(citizen_id=query.citizen_id.value)
        if query.officer_id is not None:
            queryset = queryset.filter(challan__officer_id=query.officer_id.value)
        rows = (
            queryset.order_by()
            .values("status")
            .annotate(count=Count("id"), amount=Sum("amount"), fees=Sum("fee"))
        )
        return {
            PaymentStatus(row["status"]): StatusTotals(
                count=row["count"],
                amount=Money(row["amount"] or 0),
                fees=Money(row["fees"] or 0),
            )
            for row in rows
        }

    @_translate_errors
    def record_activity(
        self,
        event: str,
        challan_id: str | None,
        user_id: str | None,
        details: dict[str, Any],
    ) -> None:
        orm.ActivityLog.objects.create(
            event=event, challan_id=challan_id, user_id=user_id, details=details
        )
