"""Email, SMS and audit-log notification channels."""

import logging
from abc import ABC, abstractmethod

from django.core.mail import send_mail

from challans.domain import EventKind, NotificationEvent
from challans.notifications.bus import DeliveryOutcome, NotificationChannel
from challans.stores.interfaces import ChallanStore

logger = logging.getLogger(__name__)

EMAIL_SUBJECTS = {
    EventKind.CHALLAN_CREATED: "New Traffic Violation - E-Challan Issued",
    EventKind.PAYMENT_RECEIVED: "Payment Confirmation - E-Challan",
    EventKind.CHALLAN_DISPUTED: "Challan Disputed - Review Required",
    EventKind.PAYMENT_REFUNDED: "Refund Processed - E-Challan",
}


def _email_body(event: NotificationEvent) -> str:
    data = event.payload
    number = data.get("challan_number", "")
    if event.kind == EventKind.CHALLAN_CREATED:
        return (
            f"Challan {number} has been issued for vehicle {data.get('vehicle_number', '')}.\n"
            f"Violation: {data.get('violation_type', '')}\n"
            f"Fine amount: {data.get('fine_amount', '')}\n"
            f"Due date: {data.get('due_date', '')}\n"
        )
    if event.kind == EventKind.PAYMENT_RECEIVED:
        return (
            f"Payment for challan {number} was received.\n"
            f"Transaction ID: {data.get('transaction_id', '')}\n"
            f"Amount paid: {data.get('amount', '')}\n"
        )
    if event.kind == EventKind.CHALLAN_DISPUTED:
        return f"Challan {number} was disputed.\nReason: {data.get('reason', '')}\n"
    return (
        f"A refund of {data.get('refund_amount', '')} was issued for challan {number}.\n"
        f"Refund ID: {data.get('refund_id', '')}\n"
    )


class EmailChannel(NotificationChannel):
    """Sends event emails through Django's configured email backend."""

    name = "email"

    def __init__(self, from_email: str | None = None) -> None:
        self._from_email = from_email

    def handle(self, event: NotificationEvent) -> DeliveryOutcome:
        subject = EMAIL_SUBJECTS.get(event.kind)
        if subject is None:
            return self.skipped(f"no email for {event.kind.value}")
        if event.kind == EventKind.CHALLAN_DISPUTED:
            recipient = event.payload.get("officer_email")
        else:
            recipient = event.payload.get("citizen_email")
        if not recipient:
            return self.skipped("no recipient")
        send_mail(subject, _email_body(event), self._from_email, [recipient], fail_silently=False)
        return self.delivered(recipient)


class SmsSender(ABC):
    """Transport for short text messages."""

    @abstractmethod
    def send(self, phone: str, message: str) -> None:
        ...


class LoggingSmsSender(SmsSender):
    """Writes messages to the log instead of a carrier."""

    def send(self, phone: str, message: str) -> None:
        logger.info("SMS to %s: %s", phone, message)


class SmsChannel(NotificationChannel):
    """Texts the citizen when a challan is issued or paid."""

    name = "sms"

    def __init__(self, sender: SmsSender | None = None) -> None:
        self._sender = sender or LoggingSmsSender()

    def handle(self, event: NotificationEvent) -> DeliveryOutcome:
        data = event.payload
        if event.kind == EventKind.CHALLAN_CREATED:
            message = (
                f"New traffic violation issued. Challan: {data.get('challan_number')}. "
                f"Fine: {data.get('fine_amount')}. Pay online to avoid penalties."
            )
        elif event.kind == EventKind.PAYMENT_RECEIVED:
            message = (
                f"Payment confirmed for Challan {data.get('challan_number')}. "
                f"Amount: {data.get('amount')}. Thank you."
            )
        else:
            return self.skipped(f"no sms for {event.kind.value}")
        phone = data.get("citizen_phone")
        if not phone:
            return self.skipped("no phone number")
        self._sender.send(phone, message)
        return self.delivered(phone)


class AuditLogChannel(NotificationChannel):
    """Records every event in the store's activity log."""

    name = "audit_log"

    def __init__(self, store: ChallanStore) -> None:
        self._store = store

    def handle(self, event: NotificationEvent) -> DeliveryOutcome:
        data = event.payload
        self._store.record_activity(
            event=event.kind.value,
            challan_id=data.get("challan_id"),
            user_id=data.get("actor_id"),
            details=dict(data),
        )
        return self.delivered()
