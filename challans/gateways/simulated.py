"""In-process gateways that settle refunds without calling out.

Each keeps its own refund ledger so a transaction cannot be refunded past its
settled amount.
"""

import logging
import secrets
from collections.abc import Callable, Iterable
from datetime import datetime

from challans.domain import Money, RefundResult
from challans.domain.errors import GatewayError, UnsupportedMethodError
from challans.domain.models import utc_now
from challans.gateways.interfaces import PaymentGateway

logger = logging.getLogger(__name__)

REFUND_PREFIXES = {
    "stripe": "re",
    "razorpay": "rfnd",
    "payu": "payu_rf",
}


class SimulatedGateway(PaymentGateway):
    """Gateway that accepts every refund once per transaction."""

    def __init__(self, name: str, clock: Callable[[], datetime] = utc_now) -> None:
        self.name = name
        self._clock = clock
        self._refunded: dict[str, Money] = {}

    def refund(self, transaction_id: str, amount: Money) -> RefundResult:
        if not transaction_id:
            raise GatewayError("Transaction id is required for a refund", gateway=self.name)
        if transaction_id in self._refunded:
            raise GatewayError(f"Transaction {transaction_id} already refunded", gateway=self.name)
        self._refunded[transaction_id] = amount
        prefix = REFUND_PREFIXES.get(self.name, "rf")
        result = RefundResult(
            refund_id=f"{prefix}_{secrets.token_hex(6)}",
            transaction_id=transaction_id,
            amount=amount,
            gateway=self.name,
            status="succeeded",
            processed_at=self._clock(),
        )
        logger.info("Refund %s issued by %s for %s", result.refund_id, self.name, amount)
        return result


class GatewayRegistry:
    """Gateways keyed by name."""

    def __init__(self, gateways: Iterable[PaymentGateway]) -> None:
        self._gateways = {gateway.name: gateway for gateway in gateways}

    def get(self, name: str) -> PaymentGateway:
        """Raises UnsupportedMethodError when no gateway has ``name``."""
        try:
            return self._gateways[name]
        except KeyError:
            raise UnsupportedMethodError(name, kind="payment gateway") from None

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._gateways)


def default_gateways() -> GatewayRegistry:
    return GatewayRegistry(SimulatedGateway(name) for name in REFUND_PREFIXES)
