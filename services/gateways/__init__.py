"""Payment gateway adapters.

Each adapter opens orders for server-priced amounts, returns
the gateway's authoritative record for a payment reference, and maps
transport failures to ``GatewayUnreachable``.
"""

from services.gateways.base import GatewayOrder, GatewayPayment, PaymentGateway


def build_payment_gateway(config) -> PaymentGateway:
    provider = (config.get("PAYMENT_PROVIDER") or "razorpay").lower()
    timeout = float(config.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10))

    if provider == "razorpay":
        from services.gateways.razorpay_gateway import RazorpayGateway

        return RazorpayGateway(
            key_id=config.get("RAZORPAY_KEY_ID"),
            key_secret=config.get("RAZORPAY_KEY_SECRET"),
            base_url=config.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1"),
            timeout=timeout,
        )
    if provider == "stripe":
        from services.gateways.stripe_gateway import StripeGateway

        return StripeGateway(
            api_key=config.get("STRIPE_SECRET_KEY"),
            timeout=timeout,
            success_url=config.get("STRIPE_SUCCESS_URL"),
            cancel_url=config.get("STRIPE_CANCEL_URL"),
        )

    raise ValueError(f"Unknown PAYMENT_PROVIDER: {provider}")


__all__ = ["GatewayOrder", "GatewayPayment", "PaymentGateway", "build_payment_gateway"]
