"""Payment gateway port (abstract interface).

The ordering core only needs to open a hosted checkout session and later ask
whether a session reference was settled. Adapters translate transport
failures into ``ExternalDependencyError`` so callers can treat them as
"unknown, retry later".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CheckoutLine:
    name: str
    quantity: int
    unit_price: float


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted checkout opened with the provider."""

    reference: str
    redirect_url: str
    raw: dict = field(default_factory=dict, compare=False)


class PaymentGateway(ABC):
    @abstractmethod
    def create_checkout_session(
        self,
        amount: float,
        lines: list[CheckoutLine],
        transaction_hash: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> CheckoutSession:
        """Open a hosted checkout for ``amount``; returns the redirect URL and reference."""
        ...

    @abstractmethod
    def get_session_status(self, reference: str) -> str:
        """Return ``paid``, ``unpaid`` or ``unknown`` for a session reference."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the provider."""
        ...
