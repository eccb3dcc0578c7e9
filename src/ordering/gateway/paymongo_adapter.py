"""PayMongo payment gateway adapter.

Talks to the PayMongo REST API with ``requests``:

- ``POST /checkout_sessions`` opens a hosted checkout (amounts in centavos)
- ``GET /checkout_sessions/{id}`` reports whether the session was paid
- webhook payloads are signed with HMAC-SHA256 over ``"{t}.{body}"`` and sent
  in the ``Paymongo-Signature: t=...,te=...,li=...`` header
"""

import hashlib
import hmac

import requests
import structlog

from ordering.errors import ExternalDependencyError
from ordering.gateway.port import CheckoutLine, CheckoutSession, PaymentGateway

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.paymongo.com/v1"
PAYMENT_METHOD_TYPES = ["gcash", "card"]
CURRENCY = "PHP"


def to_centavos(amount: float) -> int:
    return int(round(amount * 100))


class PayMongoGateway(PaymentGateway):
    def __init__(
        self,
        secret_key: str,
        webhook_secret: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                **kwargs,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning("PayMongo unreachable", method=method, path=path, error=str(exc))
            raise ExternalDependencyError("Payment provider unreachable", provider="paymongo") from exc

        if response.status_code >= 500:
            logger.warning("PayMongo server error", method=method, path=path, status_code=response.status_code)
            raise ExternalDependencyError(
                f"Payment provider returned {response.status_code}",
                provider="paymongo",
                status_code=response.status_code,
            )
        return response

    def create_checkout_session(
        self,
        amount: float,
        lines: list[CheckoutLine],
        transaction_hash: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> CheckoutSession:
        payload = {
            "data": {
                "attributes": {
                    "line_items": [
                        {
                            "currency": CURRENCY,
                            "amount": to_centavos(line.unit_price),
                            "name": line.name,
                            "quantity": line.quantity,
                        }
                        for line in lines
                    ],
                    "payment_method_types": PAYMENT_METHOD_TYPES,
                    "description": f"Order {transaction_hash}",
                    "send_email_receipt": False,
                    "show_description": True,
                    "show_line_items": True,
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": {"transaction_hash": transaction_hash},
                }
            }
        }

        response = self._request("POST", "/checkout_sessions", json=payload)
        if not response.ok:
            logger.error(
                "PayMongo rejected checkout session",
                transaction_hash=transaction_hash,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ExternalDependencyError(
                "Payment provider rejected the checkout session",
                provider="paymongo",
                status_code=response.status_code,
            )

        data = response.json()["data"]
        logger.info("PayMongo checkout session created", reference=data["id"], amount=amount)
        return CheckoutSession(
            reference=data["id"],
            redirect_url=data["attributes"]["checkout_url"],
            raw=data,
        )

    def get_session_status(self, reference: str) -> str:
        response = self._request("GET", f"/checkout_sessions/{reference}")
        if response.status_code == 404:
            return "unpaid"
        if not response.ok:
            return "unknown"

        attributes = response.json()["data"]["attributes"]
        payments = attributes.get("payments") or []
        if any(p.get("attributes", {}).get("status") == "paid" for p in payments):
            return "paid"

        intent = attributes.get("payment_intent") or {}
        if intent.get("attributes", {}).get("status") == "succeeded":
            return "paid"
        return "unpaid"

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        if not self.webhook_secret or not signature:
            return False

        parts = dict(part.split("=", 1) for part in signature.split(",") if "=" in part)
        timestamp = parts.get("t")
        if not timestamp:
            return False

        expected = hmac.new(
            self.webhook_secret.encode("utf-8"),
            f"{timestamp}.{payload}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        candidates = [parts[key] for key in ("li", "te") if parts.get(key)]
        return any(hmac.compare_digest(expected, candidate) for candidate in candidates)
