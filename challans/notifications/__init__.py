from challans.notifications.bus import (
    DeliveryOutcome,
    DeliveryStatus,
    NotificationBus,
    NotificationChannel,
)
from challans.notifications.channels import (
    AuditLogChannel,
    EmailChannel,
    LoggingSmsSender,
    SmsChannel,
    SmsSender,
)

__all__ = [
    "NotificationBus",
    "NotificationChannel",
    "DeliveryOutcome",
    "DeliveryStatus",
    "EmailChannel",
    "SmsChannel",
    "SmsSender",
    "LoggingSmsSender",
    "AuditLogChannel",
]
