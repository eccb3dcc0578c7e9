"""Tests for the payment gateway adapters and factory."""

import hashlib
import hmac
from unittest.mock import MagicMock

import pytest
import requests
from ordering.errors import ExternalDependencyError
from ordering.gateway import get_payment_gateway, reset_payment_gateway, set_payment_gateway
from ordering.gateway.fake_adapter import FakeGateway
from ordering.gateway.paymongo_adapter import PayMongoGateway, to_centavos
from ordering.gateway.port import CheckoutLine


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.json.return_value = body or {}
    response.text = ""
    return response


def _paymongo(response=None, side_effect=None, webhook_secret="whsk_test"):
    session = MagicMock()
    if side_effect is not None:
        session.request.side_effect = side_effect
    else:
        session.request.return_value = response
    return PayMongoGateway(secret_key="sk_test", webhook_secret=webhook_secret, session=session), session


def _session_body(payments=(), intent_status=None):
    attributes = {"payments": [{"attributes": {"status": s}} for s in payments]}
    if intent_status:
        attributes["payment_intent"] = {"attributes": {"status": intent_status}}
    return {"data": {"id": "cs_123", "attributes": attributes}}


class TestFakeGateway:
    def test_default_status_is_paid(self):
        assert FakeGateway().get_session_status("cs_any") == "paid"

    def test_per_reference_status(self):
        gateway = FakeGateway()
        gateway.set_status("cs_1", "unpaid")
        assert gateway.get_session_status("cs_1") == "unpaid"
        assert gateway.get_session_status("cs_2") == "paid"

    def test_unreachable(self):
        gateway = FakeGateway()
        gateway.configure(unreachable=True)
        with pytest.raises(ExternalDependencyError):
            gateway.get_session_status("cs_1")

    def test_session_reference(self):
        session = FakeGateway().create_checkout_session(100.0, [CheckoutLine("Chair", 1, 100.0)], "u1-1")
        assert session.reference.startswith("cs_fake_")

    def test_webhook_signature(self):
        gateway = FakeGateway()
        assert gateway.verify_webhook_signature("{}", "test-signature") is True
        assert gateway.verify_webhook_signature("{}", "forged") is False


class TestGatewayFactory:
    def test_fake_by_default(self, monkeypatch):
        monkeypatch.delenv("PAYMENT_GATEWAY", raising=False)
        reset_payment_gateway()
        assert isinstance(get_payment_gateway(), FakeGateway)

    def test_singleton(self):
        assert get_payment_gateway() is get_payment_gateway()

    def test_override(self):
        custom = FakeGateway()
        set_payment_gateway(custom)
        assert get_payment_gateway() is custom

    def test_paymongo_requires_secret_key(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_GATEWAY", "paymongo")
        monkeypatch.delenv("PAYMONGO_SECRET_KEY", raising=False)
        reset_payment_gateway()
        with pytest.raises(ValueError):
            get_payment_gateway()

    def test_paymongo_selected(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_GATEWAY", "paymongo")
        monkeypatch.setenv("PAYMONGO_SECRET_KEY", "sk_test")
        reset_payment_gateway()
        assert isinstance(get_payment_gateway(), PayMongoGateway)

    def test_unknown_adapter(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_GATEWAY", "carrier-pigeon")
        reset_payment_gateway()
        with pytest.raises(ValueError):
            get_payment_gateway()


class TestPayMongoCheckoutSession:
    def test_request_payload(self):
        body = {"data": {"id": "cs_123", "attributes": {"checkout_url": "https://pay.test/cs_123"}}}
        gateway, session = _paymongo(_response(200, body))

        result = gateway.create_checkout_session(
            3150.0,
            [CheckoutLine("Dining Chair", 2, 1500.0), CheckoutLine("Shipping fee", 1, 150.0)],
            "u1-1",
            success_url="https://shop.test/ok",
            cancel_url="https://shop.test/cart",
        )

        assert result.reference == "cs_123"
        assert result.redirect_url == "https://pay.test/cs_123"

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        attributes = kwargs["json"]["data"]["attributes"]
        assert method == "POST"
        assert url == "https://api.paymongo.com/v1/checkout_sessions"
        assert kwargs["auth"] == ("sk_test", "")
        assert attributes["line_items"][0] == {
            "currency": "PHP",
            "amount": 150000,
            "name": "Dining Chair",
            "quantity": 2,
        }
        assert attributes["metadata"] == {"transaction_hash": "u1-1"}
        assert attributes["payment_method_types"] == ["gcash", "card"]

    def test_rejected_session(self):
        gateway, _ = _paymongo(_response(400))
        with pytest.raises(ExternalDependencyError):
            gateway.create_checkout_session(100.0, [CheckoutLine("Chair", 1, 100.0)], "u1-1")

    def test_centavos_rounding(self):
        assert to_centavos(10725.0) == 1072500
        assert to_centavos(0.1 + 0.2) == 30


class TestPayMongoSessionStatus:
    def test_paid_payment(self):
        gateway, _ = _paymongo(_response(200, _session_body(payments=["paid"])))
        assert gateway.get_session_status("cs_123") == "paid"

    def test_succeeded_payment_intent(self):
        gateway, _ = _paymongo(_response(200, _session_body(intent_status="succeeded")))
        assert gateway.get_session_status("cs_123") == "paid"

    def test_no_payment(self):
        gateway, _ = _paymongo(_response(200, _session_body(intent_status="awaiting_payment_method")))
        assert gateway.get_session_status("cs_123") == "unpaid"

    def test_missing_session(self):
        gateway, _ = _paymongo(_response(404))
        assert gateway.get_session_status("cs_123") == "unpaid"

    def test_client_error_is_unknown(self):
        gateway, _ = _paymongo(_response(401))
        assert gateway.get_session_status("cs_123") == "unknown"

    def test_server_error(self):
        gateway, _ = _paymongo(_response(502))
        with pytest.raises(ExternalDependencyError):
            gateway.get_session_status("cs_123")

    def test_timeout(self):
        gateway, _ = _paymongo(side_effect=requests.Timeout("read timed out"))
        with pytest.raises(ExternalDependencyError):
            gateway.get_session_status("cs_123")

    def test_connection_error(self):
        gateway, _ = _paymongo(side_effect=requests.ConnectionError("refused"))
        with pytest.raises(ExternalDependencyError):
            gateway.get_session_status("cs_123")


class TestPayMongoWebhookSignature:
    PAYLOAD = '{"data": {"attributes": {"type": "checkout_session.completed"}}}'

    def _sign(self, secret="whsk_test", timestamp="1700000000"):
        return hmac.new(secret.encode(), f"{timestamp}.{self.PAYLOAD}".encode(), hashlib.sha256).hexdigest()

    def test_live_signature(self):
        gateway, _ = _paymongo()
        header = f"t=1700000000,te=,li={self._sign()}"
        assert gateway.verify_webhook_signature(self.PAYLOAD, header) is True

    def test_test_mode_signature(self):
        gateway, _ = _paymongo()
        header = f"t=1700000000,te={self._sign()},li="
        assert gateway.verify_webhook_signature(self.PAYLOAD, header) is True

    def test_wrong_secret(self):
        gateway, _ = _paymongo()
        header = f"t=1700000000,te={self._sign(secret='other')},li="
        assert gateway.verify_webhook_signature(self.PAYLOAD, header) is False

    def test_tampered_payload(self):
        gateway, _ = _paymongo()
        header = f"t=1700000000,te={self._sign()},li="
        assert gateway.verify_webhook_signature(self.PAYLOAD + " ", header) is False

    def test_missing_timestamp(self):
        gateway, _ = _paymongo()
        assert gateway.verify_webhook_signature(self.PAYLOAD, f"te={self._sign()}") is False

    def test_no_webhook_secret(self):
        gateway, _ = _paymongo(webhook_secret=None)
        header = f"t=1700000000,te={self._sign()},li="
        assert gateway.verify_webhook_signature(self.PAYLOAD, header) is False
