"""Checkout sessions: the server-side hand-off to the payment provider.

Opening a session validates the pending order, asks the gateway for a hosted
checkout and stores the payload under the customer's idempotency token. The
provider webhook and the customer's post-redirect confirmation both finalize
from this record, so neither depends on state held by the browser.
"""

import json
import os
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.checkout.validation import check_transaction_hash, validate_pending_order
from ordering.domain import ordering
from ordering.errors import Forbidden
from ordering.gateway import get_payment_gateway
from ordering.gateway.port import CheckoutLine

logger = structlog.get_logger(__name__)

FINALIZATION_REJECTED = "finalization_rejected"


@ordering.aggregate
class PendingCheckout:
    transaction_hash = String(required=True, max_length=255, unique=True)
    customer_id = Identifier(required=True)
    payload = Text(required=True)  # JSON: the pending order as submitted
    amount = Float(required=True, min_value=0.0)
    payment_reference = String(max_length=255)
    redirect_url = String(max_length=2048)
    created_at = DateTime()
    needs_review = Boolean(default=False)
    review_notes = Text()  # JSON list of {code, detail, recorded_at}

    @classmethod
    def open(cls, transaction_hash, customer_id, payload, amount, payment_reference, redirect_url):
        return cls(
            transaction_hash=transaction_hash,
            customer_id=customer_id,
            payload=json.dumps(payload, default=str),
            amount=amount,
            payment_reference=payment_reference,
            redirect_url=redirect_url,
            created_at=datetime.now(UTC),
        )

    @property
    def pending_order(self) -> dict:
        return json.loads(self.payload)

    @property
    def notes(self) -> list[dict]:
        return json.loads(self.review_notes) if self.review_notes else []

    def flag_for_review(self, code, detail):
        """Keep a paid session that produced no order in front of an operator."""
        notes = self.notes
        if not any(n["code"] == code and n["detail"] == detail for n in notes):
            notes.append({"code": code, "detail": detail, "recorded_at": datetime.now(UTC).isoformat()})
            self.review_notes = json.dumps(notes)
        self.needs_review = True


@ordering.repository(part_of=PendingCheckout)
class PendingCheckoutRepository:
    def get_by_transaction_hash(self, transaction_hash) -> PendingCheckout | None:
        sessions = self._dao.query.filter(transaction_hash=transaction_hash).all().items
        return sessions[0] if sessions else None

    def find_needing_review(self) -> list[PendingCheckout]:
        sessions = self._dao.query.filter(needs_review=True).all().items
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)


@ordering.command(part_of="PendingCheckout")
class OpenCheckout:
    customer_id = Identifier(required=True)
    transaction_hash = String(required=True, max_length=255)
    payload = Text(required=True)  # JSON pending order
    success_url = String(max_length=2048)
    cancel_url = String(max_length=2048)


def _default_url(path):
    return f"{os.environ.get('FRONTEND_URL', 'http://localhost:3000').rstrip('/')}{path}"


@ordering.command_handler(part_of=PendingCheckout)
class CheckoutSessionHandler:
    @handle(OpenCheckout)
    def open_checkout(self, command):
        repo = current_domain.repository_for(PendingCheckout)

        existing = repo.get_by_transaction_hash(command.transaction_hash)
        if existing is not None:
            if str(existing.customer_id) != str(command.customer_id):
                raise Forbidden(
                    "Checkout session belongs to another customer",
                    transaction_hash=command.transaction_hash,
                )
            logger.info("Checkout session reused", transaction_hash=command.transaction_hash)
            return existing

        check_transaction_hash(command.transaction_hash, command.customer_id)
        payload = json.loads(command.payload)
        checkout = validate_pending_order(payload)

        session = get_payment_gateway().create_checkout_session(
            amount=checkout.amount,
            lines=[
                CheckoutLine(name=line["item_name"], quantity=line["quantity"], unit_price=line["unit_price"])
                for line in checkout.lines
            ]
            + (
                [CheckoutLine(name="Shipping fee", quantity=1, unit_price=checkout.shipping_fee)]
                if checkout.shipping_fee
                else []
            ),
            transaction_hash=command.transaction_hash,
            success_url=command.success_url or _default_url(f"/payment-success?hash={command.transaction_hash}"),
            cancel_url=command.cancel_url or _default_url("/cart"),
        )

        pending = PendingCheckout.open(
            transaction_hash=command.transaction_hash,
            customer_id=command.customer_id,
            payload=payload,
            amount=checkout.amount,
            payment_reference=session.reference,
            redirect_url=session.redirect_url,
        )
        repo.add(pending)

        logger.info(
            "Checkout session opened",
            transaction_hash=command.transaction_hash,
            customer_id=str(command.customer_id),
            payment_reference=session.reference,
            amount=checkout.amount,
        )
        return pending
