"""Payment gateway interface.

A gateway settles payments for the methods routed to it and can refund them.
The service looks gateways up by the name recorded on the payment.
"""

from abc import ABC, abstractmethod

from challans.domain import Money, RefundResult


class PaymentGateway(ABC):
    """Interface for a payment gateway's refund operations."""

    name: str

    @abstractmethod
    def refund(self, transaction_id: str, amount: Money) -> RefundResult:
        """Refund ``amount`` against a settled transaction.

        Raises:
            GatewayError: If the gateway rejects or fails the refund.
        """
        ...
