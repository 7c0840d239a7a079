"""In-process notification fan-out.

``NotificationBus.publish`` hands an event to every registered channel in
registration order. Each channel runs in its own failure domain: an exception
from one channel is logged and recorded as a failed outcome, the remaining
channels still run, and ``publish`` itself never raises.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from challans.domain import NotificationEvent

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
    """What one channel did with one event."""

    channel: str
    status: DeliveryStatus
    detail: str = ""


class NotificationChannel(ABC):
    """A notification recipient with its own delivery semantics."""

    name: str

    @abstractmethod
    def handle(self, event: NotificationEvent) -> DeliveryOutcome:
        """Deliver ``event``. May raise; the bus isolates failures."""
        ...

    def delivered(self, detail: str = "") -> DeliveryOutcome:
        return DeliveryOutcome(channel=self.name, status=DeliveryStatus.DELIVERED, detail=detail)

    def skipped(self, detail: str = "") -> DeliveryOutcome:
        return DeliveryOutcome(channel=self.name, status=DeliveryStatus.SKIPPED, detail=detail)


class NotificationBus:
    """Fixed, ordered set of channels with per-channel failure isolation."""

    def __init__(self, channels: Iterable[NotificationChannel] = ()) -> None:
        self._channels = tuple(channels)

    @property
    def channels(self) -> tuple[NotificationChannel, ...]:
        return self._channels

    def publish(self, event: NotificationEvent) -> tuple[DeliveryOutcome, ...]:
        outcomes = []
        for channel in self._channels:
            outcomes.append(self._deliver(channel, event))
        return tuple(outcomes)

    def _deliver(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryOutcome:
        name = getattr(channel, "name", type(channel).__name__)
        try:
            outcome = channel.handle(event)
            if outcome is None:
                return DeliveryOutcome(channel=name, status=DeliveryStatus.DELIVERED)
            if not isinstance(outcome, DeliveryOutcome):
                logger.warning(
                    "Channel %s returned %s for %s",
                    name,
                    type(outcome).__name__,
                    event.kind.value,
                )
                return DeliveryOutcome(
                    channel=name,
                    status=DeliveryStatus.FAILED,
                    detail=f"Unexpected outcome {outcome!r}",
                )
            if outcome.status == DeliveryStatus.FAILED:
                logger.warning("Channel %s rejected %s: %s", name, event.kind.value, outcome.detail)
            return outcome
        except Exception as exc:
            logger.exception("Channel %s failed to handle %s", name, event.kind.value)
            return DeliveryOutcome(channel=name, status=DeliveryStatus.FAILED, detail=str(exc))
