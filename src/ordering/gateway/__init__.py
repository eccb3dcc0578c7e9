"""Payment gateway factory.

``PAYMENT_GATEWAY`` selects the adapter:
- ``fake`` (default) for development and testing
- ``paymongo`` for the hosted PayMongo checkout
"""

import os

from ordering.gateway.fake_adapter import FakeGateway
from ordering.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    adapter = os.environ.get("PAYMENT_GATEWAY", "fake")
    if adapter == "fake":
        return FakeGateway()
    if adapter == "paymongo":
        from ordering.gateway.paymongo_adapter import DEFAULT_BASE_URL, PayMongoGateway

        secret_key = os.environ.get("PAYMONGO_SECRET_KEY")
        if not secret_key:
            raise ValueError("PAYMONGO_SECRET_KEY must be set when PAYMENT_GATEWAY=paymongo")
        return PayMongoGateway(
            secret_key=secret_key,
            webhook_secret=os.environ.get("PAYMONGO_WEBHOOK_SECRET"),
            base_url=os.environ.get("PAYMONGO_BASE_URL", DEFAULT_BASE_URL),
            timeout=float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "10")),
        )
    raise ValueError(f"Unknown payment gateway: {adapter}")


def get_payment_gateway() -> PaymentGateway:
    """Return the configured payment gateway (singleton)."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_payment_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_payment_gateway() -> None:
    global _current_gateway
    _current_gateway = None
