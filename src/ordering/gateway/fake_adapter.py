"""Configurable fake payment gateway for development and testing.

No external calls are made. Session statuses can be set globally or per
reference, and the gateway can be told to behave as if the provider timed out.
"""

from uuid import uuid4

from ordering.errors import ExternalDependencyError
from ordering.gateway.port import CheckoutLine, CheckoutSession, PaymentGateway


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.default_status: str = "paid"
        self.unreachable: bool = False
        self.statuses: dict[str, str] = {}
        self.sessions: dict[str, dict] = {}
        self.calls: list[dict] = []

    def configure(self, default_status: str = "paid", unreachable: bool = False) -> None:
        """Configure gateway behavior at runtime."""
        self.default_status = default_status
        self.unreachable = unreachable

    def set_status(self, reference: str, status: str) -> None:
        self.statuses[reference] = status

    def create_checkout_session(
        self,
        amount: float,
        lines: list[CheckoutLine],
        transaction_hash: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> CheckoutSession:
        self.calls.append(
            {
                "method": "create_checkout_session",
                "amount": amount,
                "lines": list(lines),
                "transaction_hash": transaction_hash,
            }
        )
        if self.unreachable:
            raise ExternalDependencyError("Payment provider timed out", provider="fake")

        reference = f"cs_fake_{uuid4().hex[:16]}"
        self.sessions[reference] = {"amount": amount, "transaction_hash": transaction_hash}
        return CheckoutSession(
            reference=reference,
            redirect_url=f"https://checkout.example.test/{reference}",
        )

    def get_session_status(self, reference: str) -> str:
        self.calls.append({"method": "get_session_status", "reference": reference})
        if self.unreachable:
            raise ExternalDependencyError("Payment provider timed out", provider="fake")
        return self.statuses.get(reference, self.default_status)

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
