"""Challan service - all use-case orchestration lives here.

Services:
- Depend only on interfaces (stores, gateways, notification bus)
- Check capabilities and ownership before any write
- Apply status transitions as conditional updates inside one transaction
- Publish notifications only after the transaction has committed
- Map every domain error to a failed OperationResult
"""

import logging
import math
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from challans.config import ChallanConfig
from challans.domain import (
    Challan,
    ChallanId,
    ChallanStatus,
    EventKind,
    Money,
    NotificationEvent,
    Payment,
    PaymentId,
    PaymentMethod,
    PaymentStatus,
    Role,
    User,
    UserId,
)
from challans.domain.capabilities import (
    CREATE_CHALLANS,
    DISPUTE_CHALLAN,
    MAKE_PAYMENTS,
    PROCESS_REFUNDS,
    VIEW_ALL_CHALLANS,
    VIEW_OWN_CHALLANS,
    VIEW_PAYMENT_HISTORY,
    VIEW_REPORTS,
    compute_capabilities,
    require,
)
from challans.domain.errors import (
    AuthorizationError,
    DomainError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from challans.domain.models import utc_now
from challans.domain.payments import PaymentStrategyDispatcher
from challans.domain.state_machine import ChallanStateMachine
from challans.domain.violations import compute_fine
from challans.gateways import GatewayRegistry, default_gateways
from challans.notifications import NotificationBus
from challans.serializers import (
    ChallanSerializer,
    PaymentSerializer,
    RefundSerializer,
    build_violation,
)
from challans.stores.interfaces import ChallanQuery, ChallanStore, PaymentQuery

logger = logging.getLogger(__name__)


def new_challan_number() -> str:
    return f"CH-{secrets.token_hex(6).upper()}"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a use case: data on success, error message and code on failure."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_code: str | None = None
    field_errors: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: dict[str, Any]) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: DomainError) -> "OperationResult":
        return cls(
            success=False,
            error=error.message,
            error_code=error.code.value,
            field_errors=dict(getattr(error, "fields", None) or {}),
        )

    def as_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, **self.data}
        result: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "error_code": self.error_code,
        }
        if self.field_errors:
            result["fields"] = self.field_errors
        return result


def _parse_id(id_type, raw: Any, field_name: str):
    if isinstance(raw, id_type):
        return raw
    try:
        return id_type.from_string(raw)
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(
            f"Invalid {field_name}", fields={field_name: ["Must be a valid UUID."]}
        ) from None


def _masked_details(
    method: PaymentMethod, details: Mapping[str, Any] | None
) -> dict[str, str | None]:
    details = details or {}
    if method in (PaymentMethod.CREDIT_CARD, PaymentMethod.DEBIT_CARD):
        return {"card_last4": str(details.get("card_number", ""))[-4:] or None, "upi_id": None}
    if method == PaymentMethod.UPI:
        return {"card_last4": None, "upi_id": str(details.get("upi_id"))}
    return {"card_last4": None, "upi_id": None}


def _challan_event_payload(
    challan: Challan, citizen: User | None, officer: User | None, actor: User | None
) -> dict[str, Any]:
    return {
        "challan_id": str(challan.id),
        "challan_number": challan.challan_number,
        "vehicle_number": challan.violation.vehicle_number,
        "violation_type": challan.type_label,
        "fine_amount": str(challan.fine_amount),
        "status": challan.status.value,
        "due_date": challan.due_date.isoformat(),
        "citizen_id": str(challan.citizen_id),
        "citizen_email": citizen.email if citizen else None,
        "citizen_phone": citizen.phone if citizen else None,
        "officer_id": str(challan.officer_id),
        "officer_email": officer.email if officer else None,
        "actor_id": str(actor.id) if actor else None,
    }


class ChallanService:
    """Facade over the challan lifecycle: issue, pay, refund, dispute, report."""

    def __init__(
        self,
        store: ChallanStore,
        config: ChallanConfig,
        bus: NotificationBus,
        dispatcher: PaymentStrategyDispatcher | None = None,
        gateways: GatewayRegistry | None = None,
        state_machine: ChallanStateMachine | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._config = config
        self._bus = bus
        self._clock = clock
        self._dispatcher = dispatcher or PaymentStrategyDispatcher(clock=clock)
        self._gateways = gateways or default_gateways()
        self._state_machine = state_machine or ChallanStateMachine(clock=clock)

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    # Public use cases. None of these raise a DomainError.

    def issue_challan(self, officer_id: str, violation_attrs: Mapping[str, Any]) -> OperationResult:
        return self._run("issue_challan", self._issue_challan, officer_id, violation_attrs)

    def process_payment(
        self,
        citizen_id: str,
        challan_id: str,
        method: PaymentMethod | str,
        method_details: Mapping[str, Any] | None,
    ) -> OperationResult:
        return self._run(
            "process_payment", self._process_payment, citizen_id, challan_id, method, method_details
        )

    def refund_payment(
        self, payment_id: str, amount: Any = None, actor_id: str | None = None
    ) -> OperationResult:
        return self._run("refund_payment", self._refund_payment, payment_id, amount, actor_id)

    def dispute_challan(self, citizen_id: str, challan_id: str, reason: str) -> OperationResult:
        return self._run("dispute_challan", self._dispute_challan, citizen_id, challan_id, reason)

    def get_dashboard(self, user_id: str) -> OperationResult:
        return self._run("get_dashboard", self._get_dashboard, user_id)

    def list_challans(self, user_id: str, page: Any = 1, limit: Any = None) -> OperationResult:
        return self._run("list_challans", self._list_challans, user_id, page, limit)

    def get_payment_history(self, user_id: str, citizen_id: str | None = None) -> OperationResult:
        return self._run("get_payment_history", self._get_payment_history, user_id, citizen_id)

    def _run(
        self, operation: str, handler: Callable[..., dict[str, Any]], *args
    ) -> OperationResult:
        try:
            data = handler(*args)
        except DomainError as exc:
            logger.warning("%s failed [%s]: %s", operation, exc.code.value, exc.message)
            return OperationResult.failure(exc)
        logger.info("%s succeeded", operation)
        return OperationResult.ok(data)

    # Loading and authorization

    def _load_user(self, raw_id: Any, label: str = "User", field_name: str = "user_id") -> User:
        user_id = _parse_id(UserId, raw_id, field_name)
        user = self._store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError(label, str(user_id))
        return user

    def _load_challan(self, raw_id: Any) -> Challan:
        challan_id = _parse_id(ChallanId, raw_id, "challan_id")
        challan = self._store.find_challan_by_id(challan_id)
        if challan is None:
            raise NotFoundError("Challan", str(challan_id))
        return challan

    def _capabilities(self, user: User) -> frozenset[str]:
        return compute_capabilities(
            user,
            self._clock(),
            beta_features_enabled=self._config.beta_features_enabled,
            disabled=self._config.disabled_capabilities,
        )

    def _publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        event = NotificationEvent(kind=kind, payload=payload)
        self._store.on_commit(lambda: self._deliver(event))

    def _deliver(self, event: NotificationEvent) -> None:
        outcomes = self._bus.publish(event)
        logger.debug(
            "Published %s: %s",
            event.kind.value,
            ", ".join(f"{outcome.channel}={outcome.status.value}" for outcome in outcomes),
        )

    # Use-case bodies

    def _issue_challan(self, officer_id: Any, violation_attrs: Mapping[str, Any]) -> dict[str, Any]:
        officer = self._load_user(officer_id, "Officer", "officer_id")
        require(self._capabilities(officer), CREATE_CHALLANS)

        if not isinstance(violation_attrs, Mapping):
            raise ValidationError(
                "Violation details must be an object",
                fields={"non_field_errors": ["Expected a dictionary of items."]},
            )
        email = violation_attrs.get("citizen_email")
        if not email:
            raise ValidationError(
                "Citizen email is required",
                fields={"citizen_email": ["This field is required."]},
            )
        citizen = self._store.find_user_by_email(str(email).strip())
        if citizen is None or citizen.role != Role.CITIZEN:
            raise NotFoundError("Citizen", str(email))

        now = self._clock()
        violation = build_violation(
            violation_attrs, officer_id=officer.id, citizen_id=citizen.id, now=now
        )
        assessment = compute_fine(violation)
        challan = Challan(
            id=ChallanId.new(),
            challan_number=new_challan_number(),
            violation=violation,
            fine_amount=assessment.amount,
            type_label=assessment.type_label,
            status=ChallanStatus.PENDING,
            due_date=now + timedelta(days=self._config.due_days),
            created_at=now,
        )
        self._store.save_challan(challan)
        logger.info(
            "Challan %s issued by %s: %s fine %s",
            challan.challan_number,
            officer.id,
            challan.type_label,
            challan.fine_amount,
        )

        self._publish(
            EventKind.CHALLAN_CREATED, _challan_event_payload(challan, citizen, officer, officer)
        )
        return {"challan": ChallanSerializer(challan).data}

    def _process_payment(
        self,
        citizen_id: Any,
        challan_id: Any,
        method: PaymentMethod | str,
        method_details: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        citizen = self._load_user(citizen_id, "Citizen", "citizen_id")
        require(self._capabilities(citizen), MAKE_PAYMENTS)
        challan = self._load_challan(challan_id)
        if challan.citizen_id != citizen.id:
            raise AuthorizationError("Challan does not belong to this citizen")

        # Raises for paid, disputed and cancelled challans before any charge.
        self._state_machine.ensure(challan, ChallanStatus.PAID)
        result = self._dispatcher.process_payment(challan.fine_amount, method_details, method)

        paid = self._state_machine.mark_paid(challan, paid_at=result.processed_at)
        payment = Payment(
            id=PaymentId.new(),
            transaction_id=result.transaction_id,
            challan_id=challan.id,
            citizen_id=citizen.id,
            amount=result.amount,
            fee=result.fee,
            method=result.method,
            gateway=result.gateway,
            status=PaymentStatus.COMPLETED,
            paid_at=result.processed_at,
            **_masked_details(result.method, method_details),
        )
        with self._store.atomic():
            if not self._store.save_challan(paid, expected_status=ChallanStatus.PENDING):
                raise IllegalTransitionError(
                    "Challan is no longer pending",
                    current=None,
                    target=ChallanStatus.PAID.value,
                )
            self._store.save_payment(payment)
        logger.info(
            "Payment %s completed for challan %s: %s via %s",
            payment.transaction_id,
            challan.challan_number,
            payment.total_amount,
            payment.gateway,
        )

        officer = self._store.find_user_by_id(challan.officer_id)
        event_payload = _challan_event_payload(paid, citizen, officer, citizen)
        event_payload.update(
            transaction_id=payment.transaction_id,
            payment_id=str(payment.id),
            method=payment.method.value,
            amount=str(payment.total_amount),
            fee=str(payment.fee),
        )
        self._publish(EventKind.PAYMENT_RECEIVED, event_payload)
        return {
            "payment": PaymentSerializer(payment).data,
            "challan": ChallanSerializer(paid).data,
        }

    def _refund_amount(self, payment: Payment, amount: Any) -> Money:
        if amount is None:
            return payment.amount
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError(
                "Invalid refund amount", fields={"amount": ["A valid number is required."]}
            ) from None
        if not value.is_finite() or value <= 0 or value > payment.amount.amount:
            raise ValidationError(
                f"Refund amount must be greater than 0 and at most {payment.amount}",
                fields={"amount": ["Out of range."]},
            )
        return Money(value)

    def _refund_payment(self, payment_id: Any, amount: Any, actor_id: Any) -> dict[str, Any]:
        actor = None
        if actor_id is not None:
            actor = self._load_user(actor_id, "User", "actor_id")
            require(self._capabilities(actor), PROCESS_REFUNDS)

        reference = _parse_id(PaymentId, payment_id, "payment_id")
        payment = self._store.find_payment_by_id(reference)
        if payment is None:
            raise NotFoundError("Payment", str(reference))
        if payment.status != PaymentStatus.COMPLETED:
            raise IllegalTransitionError(
                f"Cannot refund a {payment.status.value} payment",
                current=payment.status.value,
                target=PaymentStatus.REFUNDED.value,
            )
        refund_amount = self._refund_amount(payment, amount)
        challan = self._load_challan(payment.challan_id)
        cancelled = self._state_machine.mark_cancelled(challan)

        gateway = self._gateways.get(payment.gateway)
        refund = gateway.refund(payment.transaction_id, refund_amount)

        refunded = replace(
            payment,
            status=PaymentStatus.REFUNDED,
            refund_amount=refund_amount,
            refund_date=refund.processed_at,
        )
        with self._store.atomic():
            if not self._store.save_payment(refunded, expected_status=PaymentStatus.COMPLETED):
                raise IllegalTransitionError(
                    "Payment is no longer completed",
                    target=PaymentStatus.REFUNDED.value,
                )
            if not self._store.save_challan(cancelled, expected_status=ChallanStatus.PAID):
                raise IllegalTransitionError(
                    "Challan is no longer paid",
                    target=ChallanStatus.CANCELLED.value,
                )
        logger.info(
            "Refund %s of %s recorded for payment %s",
            refund.refund_id,
            refund_amount,
            payment.transaction_id,
        )

        citizen = self._store.find_user_by_id(payment.citizen_id)
        officer = self._store.find_user_by_id(challan.officer_id)
        event_payload = _challan_event_payload(cancelled, citizen, officer, actor)
        event_payload.update(
            payment_id=str(payment.id),
            transaction_id=payment.transaction_id,
            refund_id=refund.refund_id,
            refund_amount=str(refund_amount),
        )
        self._publish(EventKind.PAYMENT_REFUNDED, event_payload)
        return {
            "refund": RefundSerializer(refund).data,
            "payment": PaymentSerializer(refunded).data,
        }

    def _dispute_challan(self, citizen_id: Any, challan_id: Any, reason: str) -> dict[str, Any]:
        citizen = self._load_user(citizen_id, "Citizen", "citizen_id")
        require(self._capabilities(citizen), DISPUTE_CHALLAN)
        challan = self._load_challan(challan_id)
        if challan.citizen_id != citizen.id:
            raise AuthorizationError("Challan does not belong to this citizen")

        disputed = self._state_machine.mark_disputed(challan, reason)
        with self._store.atomic():
            if not self._store.save_challan(disputed, expected_status=ChallanStatus.PENDING):
                raise IllegalTransitionError(
                    "Challan is no longer pending",
                    target=ChallanStatus.DISPUTED.value,
                )
        logger.info("Challan %s disputed by %s", challan.challan_number, citizen.id)

        officer = self._store.find_user_by_id(challan.officer_id)
        event_payload = _challan_event_payload(disputed, citizen, officer, citizen)
        event_payload["reason"] = disputed.dispute_reason
        self._publish(EventKind.CHALLAN_DISPUTED, event_payload)
        return {"challan": ChallanSerializer(disputed).data}

    # Read-only views

    def _scope_for(self, user: User) -> ChallanQuery:
        capabilities = self._capabilities(user)
        if user.role == Role.ADMIN:
            require(capabilities, VIEW_ALL_CHALLANS)
            return ChallanQuery()
        require(capabilities, VIEW_OWN_CHALLANS)
        if user.role == Role.OFFICER:
            return ChallanQuery(officer_id=user.id)
        return ChallanQuery(citizen_id=user.id)

    def _recent(self, query: ChallanQuery) -> list[dict[str, Any]]:
        challans = self._store.list_challans(query, page=1, limit=self._config.recent_limit)
        return ChallanSerializer(challans, many=True).data

    def _get_dashboard(self, user_id: Any) -> dict[str, Any]:
        user = self._load_user(user_id)
        query = self._scope_for(user)
        totals = self._store.summarize_challans(query)
        by_status = {
            status.value: {
                "count": totals[status].count if status in totals else 0,
                "amount": str(totals[status].amount if status in totals else Money.zero()),
            }
            for status in ChallanStatus
        }
        total_fines = Money.zero()
        for status_totals in totals.values():
            total_fines = total_fines + status_totals.amount
        dashboard: dict[str, Any] = {
            "role": user.role.value,
            "by_status": by_status,
            "total_challans": sum(status_totals.count for status_totals in totals.values()),
            "total_fines": str(total_fines),
        }

        if user.role == Role.CITIZEN:
            dashboard["pending_amount"] = by_status[ChallanStatus.PENDING.value]["amount"]
            dashboard["paid_amount"] = by_status[ChallanStatus.PAID.value]["amount"]
        elif user.role == Role.OFFICER:
            now = self._clock()
            start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
            start_of_month = start_of_day.replace(day=1)
            dashboard["issued_today"] = self._store.count_challans(
                replace(query, created_since=start_of_day)
            )
            dashboard["issued_this_month"] = self._store.count_challans(
                replace(query, created_since=start_of_month)
            )
        else:
            payments = self._store.summarize_payments(PaymentQuery())
            completed = payments.get(PaymentStatus.COMPLETED)
            refunded = payments.get(PaymentStatus.REFUNDED)
            dashboard["payments"] = {
                "completed_count": completed.count if completed else 0,
                "revenue": str(completed.amount if completed else Money.zero()),
                "fees": str(completed.fees if completed else Money.zero()),
                "refunded_count": refunded.count if refunded else 0,
            }

        dashboard["recent_challans"] = self._recent(query)
        return {"dashboard": dashboard}

    def _page_arguments(self, page: Any, limit: Any) -> tuple[int, int]:
        try:
            page = int(page)
            limit = self._config.page_size if limit is None else int(limit)
        except (TypeError, ValueError):
            raise ValidationError(
                "Page and limit must be integers",
                fields={"page": ["A valid integer is required."]},
            ) from None
        if page < 1 or limit < 1:
            raise ValidationError(
                "Page and limit must be positive",
                fields={"page": ["Ensure this value is greater than or equal to 1."]},
            )
        return page, min(limit, self._config.max_page_size)

    def _list_challans(self, user_id: Any, page: Any, limit: Any) -> dict[str, Any]:
        user = self._load_user(user_id)
        query = self._scope_for(user)
        page, limit = self._page_arguments(page, limit)
        total = self._store.count_challans(query)
        challans = self._store.list_challans(query, page=page, limit=limit)
        return {
            "challans": ChallanSerializer(challans, many=True).data,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }

    def _get_payment_history(self, user_id: Any, citizen_id: Any) -> dict[str, Any]:
        user = self._load_user(user_id)
        capabilities = self._capabilities(user)
        if user.role == Role.CITIZEN:
            require(capabilities, VIEW_PAYMENT_HISTORY)
            if citizen_id is not None and _parse_id(UserId, citizen_id, "citizen_id") != user.id:
                raise AuthorizationError("Citizens may only view their own payments")
            target = user.id
        else:
            if not capabilities & {VIEW_REPORTS, VIEW_ALL_CHALLANS}:
                raise AuthorizationError(f"Missing capability: {VIEW_REPORTS}")
            if citizen_id is None:
                raise ValidationError(
                    "Citizen id is required", fields={"citizen_id": ["This field is required."]}
                )
            target = self._load_user(citizen_id, "Citizen", "citizen_id").id

        payments = self._store.find_payments_by_citizen(target)
        total_paid = Money.zero()
        for payment in payments:
            if payment.status == PaymentStatus.COMPLETED:
                total_paid = total_paid + payment.total_amount
        return {
            "payments": PaymentSerializer(payments, many=True).data,
            "summary": {"count": len(payments), "total_paid": str(total_paid)},
        }


def build_challan_service(
    config: ChallanConfig | None = None, store: ChallanStore | None = None
) -> ChallanService:
    """Wire the service with the Django store and the default channels."""
    from challans.notifications import AuditLogChannel, EmailChannel, SmsChannel
    from challans.stores.django_store import DjangoChallanStore

    config = config or ChallanConfig.from_settings()
    store = store or DjangoChallanStore()
    bus = NotificationBus(
        [
            EmailChannel(from_email=config.notification_from_email),
            SmsChannel(),
            AuditLogChannel(store),
        ]
    )
    return ChallanService(store=store, config=config, bus=bus)
