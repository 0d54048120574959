"""Razorpay orders and payment lookup over the REST API."""

import hashlib
import hmac
import re

import requests

from services.errors import GatewayUnreachable, PaymentInvalid
from services.gateways.base import GatewayOrder, GatewayPayment, PaymentGateway
from utils.logging_config import get_logger

logger = get_logger().bind(log_type="payment")

_PAYMENT_ID = re.compile(r"^pay_[A-Za-z0-9]+$")


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    def __init__(self, key_id: str, key_secret: str, base_url: str = "https://api.razorpay.com/v1",
                 timeout: float = 10, session: requests.Session | None = None) -> None:
        self._auth = (key_id or "", key_secret or "")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _request(self, method: str, path: str, ref: str, json: dict | None = None):
        if not all(self._auth):
            # misconfiguration, not the payer's fault
            logger.error("Razorpay credentials not configured")
            raise GatewayUnreachable("Payment gateway not configured")

        try:
            response = self._session.request(
                method,
                f"{self._base_url}/{path}",
                auth=self._auth,
                json=json,
                timeout=self._timeout,
            )
        except requests.Timeout:
            logger.warning(f"Razorpay timeout | {method} {path}")
            raise GatewayUnreachable("Payment gateway timed out")
        except requests.RequestException as e:
            logger.warning(f"Razorpay connection error | {method} {path} | {e}")
            raise GatewayUnreachable("Payment gateway unreachable")

        if response.status_code in (401, 403):
            logger.error(f"Razorpay rejected credentials | status={response.status_code}")
            raise GatewayUnreachable("Payment gateway rejected credentials")
        if response.status_code >= 500:
            logger.warning(f"Razorpay error | {ref} | status={response.status_code}")
            raise GatewayUnreachable(f"Payment gateway returned {response.status_code}")
        return response

    def fetch_payment(self, payment_ref: str) -> GatewayPayment:
        if not _PAYMENT_ID.match(payment_ref or ""):
            raise PaymentInvalid("Malformed Razorpay payment id")

        response = self._request("GET", f"payments/{payment_ref}", ref=f"payment={payment_ref}")
        if response.status_code in (400, 404):
            raise PaymentInvalid("Payment not found at gateway")
        if response.status_code != 200:
            logger.warning(f"Razorpay error | payment={payment_ref} | status={response.status_code}")
            raise GatewayUnreachable(f"Payment gateway returned {response.status_code}")

        try:
            body = response.json()
            return GatewayPayment(
                reference=str(body["id"]),
                status=str(body["status"]).lower(),
                amount_minor=int(body["amount"]),
                currency=str(body["currency"]).upper(),
                order_id=body.get("order_id"),
            )
        except (ValueError, KeyError, TypeError, AttributeError):
            raise PaymentInvalid("Malformed payment record from gateway")

    def create_order(self, amount_minor: int, currency: str, receipt: str, notes: dict) -> GatewayOrder:
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt[:40],
            "notes": notes,
        }
        response = self._request("POST", "orders", ref=f"receipt={receipt}", json=payload)
        if response.status_code != 200:
            # a rejected order means our own request or account is wrong
            logger.error(f"Razorpay refused order | receipt={receipt} | status={response.status_code}")
            raise GatewayUnreachable("Payment gateway refused the order")

        try:
            body = response.json()
            order = GatewayOrder(
                reference=str(body["id"]),
                amount_minor=int(body["amount"]),
                currency=str(body["currency"]).upper(),
            )
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.error(f"Malformed order from Razorpay | receipt={receipt}")
            raise GatewayUnreachable("Malformed order from payment gateway")

        logger.info(f"Razorpay order created | order={order.reference} | amount={order.amount_minor}")
        return order

    def verify_signature(self, order_id: str, payment_ref: str, signature: str) -> bool:
        """Checkout signature: hex HMAC-SHA256 of ``order_id|payment_id`` under the key secret."""
        if not self._auth[1]:
            logger.error("Razorpay credentials not configured")
            raise GatewayUnreachable("Payment gateway not configured")
        expected = hmac.new(
            self._auth[1].encode(), f"{order_id}|{payment_ref}".encode(), hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected, signature or "")
