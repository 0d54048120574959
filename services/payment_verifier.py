"""Checks a claimed payment against the gateway's own record."""

from dataclasses import dataclass
from decimal import Decimal

from services.errors import AmountMismatch, PaymentInvalid, PaymentNotCaptured
from services.gateways import GatewayOrder, PaymentGateway
from services.pricing import round2, to_minor_units
from utils.logging_config import get_logger

logger = get_logger().bind(log_type="payment")

SETTLED_STATUSES = frozenset({"captured", "authorized"})


@dataclass(frozen=True)
class VerifiedPayment:
    reference: str
    provider: str
    status: str
    amount_minor: int
    currency: str


class PaymentVerifier:
    def __init__(self, gateway: PaymentGateway, currency: str = "INR") -> None:
        self._gateway = gateway
        self._currency = currency.upper()

    @property
    def provider(self) -> str:
        return self._gateway.name

    def open_order(self, amount: Decimal, receipt: str, notes: dict) -> GatewayOrder:
        """Open a gateway order for a server-priced ``amount``."""
        return self._gateway.create_order(to_minor_units(round2(amount)), self._currency, receipt, notes)

    def verify(self, payment_ref: str, expected_amount: Decimal,
               order_id: str | None = None, signature: str | None = None) -> VerifiedPayment:
        """Verify ``payment_ref`` paid exactly ``expected_amount``.

        ``expected_amount`` must come from the server-side pricing of the
        persisted venue rate, never from the client. When the checkout
        returned ``order_id`` and ``signature`` they must both be given; the
        signature is checked before the gateway is called and the payment
        must belong to that order.

        Raises:
            PaymentNotCaptured: Gateway status is not captured/authorized.
            AmountMismatch: Amount or currency differs from what was expected.
            PaymentInvalid: Unknown or malformed payment reference, bad signature.
            GatewayUnreachable: The gateway could not be reached in time.
        """
        payment_ref = (payment_ref or "").strip()
        if not payment_ref:
            raise PaymentInvalid("payment_ref required")

        if order_id or signature:
            if not (order_id and signature):
                raise PaymentInvalid("order_id and signature must be sent together")
            if not self._gateway.verify_signature(order_id, payment_ref, signature):
                logger.error(f"Payment signature verification failed | payment={payment_ref} | order={order_id}")
                raise PaymentInvalid("Invalid payment signature")

        record = self._gateway.fetch_payment(payment_ref)
        expected_minor = to_minor_units(round2(expected_amount))

        if record.reference != payment_ref:
            logger.error(f"Gateway returned a different payment | asked={payment_ref} got={record.reference}")
            raise PaymentInvalid("Gateway record does not match payment reference")

        if order_id and record.order_id != order_id:
            logger.error(f"Payment belongs to another order | payment={payment_ref} | order={record.order_id}")
            raise PaymentInvalid("Payment does not belong to this order")

        if record.status not in SETTLED_STATUSES:
            logger.info(f"Payment not settled | payment={payment_ref} | status={record.status}")
            raise PaymentNotCaptured(f"Payment status is {record.status}. Expected captured or authorized.")

        if record.currency != self._currency:
            logger.warning(
                f"Payment currency mismatch | payment={payment_ref} | expected={self._currency} got={record.currency}"
            )
            raise AmountMismatch("Payment currency does not match booking currency")

        if record.amount_minor != expected_minor:
            logger.warning(
                f"Payment amount mismatch | payment={payment_ref} | expected={expected_minor} got={record.amount_minor}"
            )
            raise AmountMismatch("Payment amount does not match booking amount")

        logger.info(f"Payment verified | payment={payment_ref} | amount={record.amount_minor} {record.currency}")
        return VerifiedPayment(
            reference=record.reference,
            provider=self._gateway.name,
            status=record.status,
            amount_minor=record.amount_minor,
            currency=record.currency,
        )
