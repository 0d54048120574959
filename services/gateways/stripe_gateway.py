"""Stripe Checkout Sessions: creation and lookup."""

import stripe

from services.errors import GatewayUnreachable, PaymentInvalid
from services.gateways.base import GatewayOrder, GatewayPayment, PaymentGateway
from utils.logging_config import get_logger

logger = get_logger().bind(log_type="payment")

# Checkout Session payment_status -> gateway-neutral status
_STATUS_MAP = {
    "paid": "captured",
    "unpaid": "created",
    "no_payment_required": "created",
}


def _unreachable(error: stripe.StripeError, what: str) -> GatewayUnreachable:
    if isinstance(error, stripe.AuthenticationError):
        logger.error("Stripe rejected credentials (STRIPE_SECRET_KEY)")
        return GatewayUnreachable("Payment gateway rejected credentials")
    logger.warning(f"Stripe error | {what} | {type(error).__name__}: {error}")
    return GatewayUnreachable("Payment gateway unreachable")


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(self, api_key: str, timeout: float = 10, client=None,
                 success_url: str | None = None, cancel_url: str | None = None) -> None:
        if client is None and api_key:
            client = stripe.StripeClient(
                api_key,
                http_client=stripe.RequestsClient(timeout=timeout),
                max_network_retries=0,
            )
        self._client = client
        self._success_url = success_url
        self._cancel_url = cancel_url

    def _require_client(self):
        if self._client is None:
            logger.error("Stripe secret key missing (STRIPE_SECRET_KEY)")
            raise GatewayUnreachable("Payment gateway not configured")
        return self._client

    def fetch_payment(self, payment_ref: str) -> GatewayPayment:
        if not (payment_ref or "").startswith("cs_"):
            raise PaymentInvalid("Malformed Stripe checkout session id")
        client = self._require_client()

        try:
            session = client.checkout.sessions.retrieve(payment_ref)
        except stripe.InvalidRequestError:
            raise PaymentInvalid("Payment not found at gateway")
        except stripe.StripeError as e:
            raise _unreachable(e, f"session={payment_ref}")

        amount = session.get("amount_total")
        currency = session.get("currency")
        if amount is None or not currency:
            raise PaymentInvalid("Malformed payment record from gateway")

        return GatewayPayment(
            reference=session["id"],
            status=_STATUS_MAP.get(session.get("payment_status"), "failed"),
            amount_minor=int(amount),
            currency=str(currency).upper(),
        )

    def create_order(self, amount_minor: int, currency: str, receipt: str, notes: dict) -> GatewayOrder:
        client = self._require_client()
        if not self._success_url or not self._cancel_url:
            logger.error("Stripe success/cancel URLs not configured (STRIPE_SUCCESS_URL, STRIPE_CANCEL_URL)")
            raise GatewayUnreachable("Payment gateway not configured")

        params = {
            "mode": "payment",
            "line_items": [{
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {"name": f"Turf booking ({receipt})"},
                    "unit_amount": amount_minor,
                },
                "quantity": 1,
            }],
            "success_url": self._success_url,
            "cancel_url": self._cancel_url,
            "client_reference_id": receipt,
            "metadata": {k: str(v) for k, v in notes.items()},
        }
        try:
            session = client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            raise _unreachable(e, f"receipt={receipt}")

        logger.info(f"Stripe checkout session created | session={session['id']} | amount={amount_minor}")
        return GatewayOrder(
            reference=session["id"],
            amount_minor=int(session.get("amount_total") or amount_minor),
            currency=str(session.get("currency") or currency).upper(),
            checkout_url=session.get("url"),
        )
