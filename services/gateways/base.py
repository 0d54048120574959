from abc import ABC, abstractmethod
from dataclasses import dataclass

from services.errors import PaymentInvalid


@dataclass(frozen=True)
class GatewayPayment:
    """A payment as the gateway records it. ``amount_minor`` is in paise."""

    reference: str
    status: str
    amount_minor: int
    currency: str
    order_id: str | None = None


@dataclass(frozen=True)
class GatewayOrder:
    """An order opened at the gateway for a server-priced amount."""

    reference: str
    amount_minor: int
    currency: str
    checkout_url: str | None = None


class PaymentGateway(ABC):
    """Interface for opening orders and reading authoritative payment records."""

    name = "gateway"

    @abstractmethod
    def fetch_payment(self, payment_ref: str) -> GatewayPayment:
        """Return the gateway record for ``payment_ref``.

        Raises:
            PaymentInvalid: If the gateway does not know the reference.
            GatewayUnreachable: On timeout, connection failure or gateway 5xx.
        """
        ...

    @abstractmethod
    def create_order(self, amount_minor: int, currency: str, receipt: str, notes: dict) -> GatewayOrder:
        """Open an order the payer will settle. Raises ``GatewayUnreachable``."""
        ...

    def verify_signature(self, order_id: str, payment_ref: str, signature: str) -> bool:
        raise PaymentInvalid(f"{self.name} payments do not carry a signature")
