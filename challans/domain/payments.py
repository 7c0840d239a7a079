"""Payment strategy dispatch.

Each supported method maps to a validation predicate, a fee function, a
transaction id prefix and the gateway that settles it. Dispatch is stateless:
the method is chosen per call.
"""

import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from challans.domain.errors import UnsupportedMethodError, ValidationError
from challans.domain.models import PaymentResult, utc_now
from challans.domain.value_objects import Money, PaymentMethod

CREDIT_CARD_RATE = Decimal("0.029")
CREDIT_CARD_MIN_FEE = Decimal("10")
DEBIT_CARD_RATE = Decimal("0.015")
DEBIT_CARD_MAX_FEE = Decimal("25")

MethodDetails = Mapping[str, Any]


def _text(details: MethodDetails, key: str) -> str:
    value = details.get(key)
    return "" if value is None else str(value)


def _validate_credit_card(details: MethodDetails) -> None:
    if len(_text(details, "card_number")) < 16:
        raise ValidationError("Invalid card number", fields={"card_number": ["Invalid card number"]})
    if len(_text(details, "cvv")) < 3:
        raise ValidationError("Invalid CVV", fields={"cvv": ["Invalid CVV"]})
    if not _text(details, "holder_name").strip():
        raise ValidationError(
            "Card holder name required", fields={"holder_name": ["Card holder name required"]}
        )


def _validate_debit_card(details: MethodDetails) -> None:
    if len(_text(details, "card_number")) < 16:
        raise ValidationError("Invalid card number", fields={"card_number": ["Invalid card number"]})
    if len(_text(details, "pin")) != 4:
        raise ValidationError("Invalid PIN", fields={"pin": ["Invalid PIN"]})


def _validate_upi(details: MethodDetails) -> None:
    if "@" not in _text(details, "upi_id"):
        raise ValidationError("Invalid UPI ID", fields={"upi_id": ["Invalid UPI ID"]})
    if len(_text(details, "pin")) != 4:
        raise ValidationError("Invalid UPI PIN", fields={"pin": ["Invalid UPI PIN"]})


def _credit_card_fee(amount: Money) -> Money:
    return Money(max(amount.amount * CREDIT_CARD_RATE, CREDIT_CARD_MIN_FEE))


def _debit_card_fee(amount: Money) -> Money:
    return Money(min(amount.amount * DEBIT_CARD_RATE, DEBIT_CARD_MAX_FEE))


def _no_fee(amount: Money) -> Money:
    return Money.zero()


@dataclass(frozen=True)
class PaymentStrategy:
    """Validation, fee and settlement details for one payment method."""

    method: PaymentMethod
    prefix: str
    gateway: str
    validate: Callable[[MethodDetails], None]
    fee: Callable[[Money], Money]


STRATEGIES: dict[PaymentMethod, PaymentStrategy] = {
    PaymentMethod.CREDIT_CARD: PaymentStrategy(
        method=PaymentMethod.CREDIT_CARD,
        prefix="CC",
        gateway="stripe",
        validate=_validate_credit_card,
        fee=_credit_card_fee,
    ),
    PaymentMethod.DEBIT_CARD: PaymentStrategy(
        method=PaymentMethod.DEBIT_CARD,
        prefix="DC",
        gateway="razorpay",
        validate=_validate_debit_card,
        fee=_debit_card_fee,
    ),
    PaymentMethod.UPI: PaymentStrategy(
        method=PaymentMethod.UPI,
        prefix="UPI",
        gateway="payu",
        validate=_validate_upi,
        fee=_no_fee,
    ),
}


def new_transaction_id(prefix: str) -> str:
    """Method-prefixed id: epoch milliseconds plus 36 random bits."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class PaymentStrategyDispatcher:
    """Select and run the strategy for a payment method at call time."""

    def __init__(
        self,
        strategies: Mapping[PaymentMethod, PaymentStrategy] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._strategies = dict(STRATEGIES if strategies is None else strategies)
        self._clock = clock

    @property
    def supported_methods(self) -> tuple[PaymentMethod, ...]:
        return tuple(self._strategies)

    def strategy_for(self, method: PaymentMethod | str) -> PaymentStrategy:
        """Return the strategy for a method.

        Raises:
            UnsupportedMethodError: If the method is unknown or has no strategy.
        """
        try:
            resolved = PaymentMethod(method)
        except ValueError:
            raise UnsupportedMethodError(str(method)) from None
        strategy = self._strategies.get(resolved)
        if strategy is None:
            raise UnsupportedMethodError(resolved.value)
        return strategy

    def quote_fee(self, amount: Money, method: PaymentMethod | str) -> Money:
        """Fee the method would charge on ``amount``, without validating details."""
        return self.strategy_for(method).fee(amount)

    def process_payment(
        self, amount: Money, method_details: MethodDetails | None, method: PaymentMethod | str
    ) -> PaymentResult:
        """Validate details and compute the fee and transaction id for a payment.

        Raises:
            UnsupportedMethodError: If the method is not supported.
            ValidationError: If ``method_details`` is not a mapping or lacks a
                required field.
        """
        strategy = self.strategy_for(method)
        if method_details is None:
            method_details = {}
        if not isinstance(method_details, Mapping):
            raise ValidationError(
                "Payment details must be an object",
                fields={"method_details": ["Expected a dictionary of items."]},
            )
        strategy.validate(method_details)
        return PaymentResult(
            transaction_id=new_transaction_id(strategy.prefix),
            method=strategy.method,
            amount=amount,
            fee=strategy.fee(amount),
            gateway=strategy.gateway,
            processed_at=self._clock(),
        )
