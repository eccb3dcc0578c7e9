"""Order aggregate: a finalized checkout and its status lifecycle.

An order is created exactly once per checkout attempt (``transaction_hash``)
in status On Process. Lines snapshot the item, price and customization at
creation time and ``amount`` is fixed from them.

State Machine:
    ON_PROCESS → DELIVERED | REQUESTING_FOR_REFUND | CANCELLED
    REQUESTING_FOR_REFUND → REFUNDED
    DELIVERED → REFUNDED

A status change is checked in a fixed order: the edge must exist
(InvalidTransition), the principal's role must own the edge (Forbidden),
then the edge's guards run (delivery proof, refund policy).
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    Date,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
)

from ordering.domain import ordering
from ordering.errors import (
    Forbidden,
    InvalidTransition,
    MissingDeliveryProof,
    RefundNotEligible,
)
from ordering.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderFlaggedForReview,
    OrderPlaced,
    OrderRefunded,
    PaymentStatusRecorded,
    RefundRequested,
)
from ordering.pricing.engine import money, prices_match
from ordering.principal import Principal, Role


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    ON_PROCESS = "On Process"
    DELIVERED = "Delivered"
    REQUESTING_FOR_REFUND = "Requesting for Refund"
    REFUNDED = "Refunded"
    CANCELLED = "Cancelled"


class DeliveryOption(Enum):
    SHIPPING = "shipping"
    PICKUP = "pickup"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    UNPAID = "unpaid"
    UNKNOWN = "unknown"


class StockStatus(Enum):
    PENDING = "pending"
    RESERVED = "reserved"
    SHORTFALL = "shortfall"


class ReviewCode(Enum):
    STOCK_SHORTFALL = "stock_shortfall"
    PAYMENT_NOT_SETTLED = "payment_not_settled"
    RESERVATION_INCOMPLETE = "reservation_incomplete"


_VALID_TRANSITIONS = {
    OrderStatus.ON_PROCESS: {
        OrderStatus.DELIVERED,
        OrderStatus.REQUESTING_FOR_REFUND,
        OrderStatus.CANCELLED,
    },
    OrderStatus.REQUESTING_FOR_REFUND: {OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# Which role may drive an order into each state
_TRANSITION_ROLES = {
    OrderStatus.DELIVERED: Role.ADMIN,
    OrderStatus.REFUNDED: Role.ADMIN,
    OrderStatus.CANCELLED: Role.ADMIN,
    OrderStatus.REQUESTING_FOR_REFUND: Role.CUSTOMER,
}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderLine:
    """Snapshot of an item, quantity and price at order-creation time."""

    item_id = Identifier(required=True)
    item_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    is_customizable = Boolean(default=False)
    length = Float()
    width = Float()
    height = Float()
    frame_material = String(max_length=100)
    tabletop_material = String(max_length=100)
    labor_days = Integer()
    stock_status = String(choices=StockStatus, default=StockStatus.PENDING.value)

    @property
    def line_total(self) -> float:
        return money(self.unit_price * self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "item_id": str(self.item_id),
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "is_customizable": self.is_customizable,
            "length": self.length,
            "width": self.width,
            "height": self.height,
            "frame_material": self.frame_material,
            "tabletop_material": self.tabletop_material,
            "labor_days": self.labor_days,
            "stock_status": self.stock_status,
        }


@ordering.entity(part_of="Order")
class StatusChange:
    from_status = String(max_length=50)  # Empty for the initial entry
    to_status = String(required=True, max_length=50)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=20)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_id = Identifier(required=True)
    transaction_hash = String(required=True, max_length=255, unique=True)
    lines = HasMany(OrderLine)
    amount = Float(required=True, min_value=0.0)
    delivery_option = String(choices=DeliveryOption, default=DeliveryOption.SHIPPING.value)
    shipping_fee = Float(default=0.0, min_value=0.0)
    scheduled_date = Date()
    status = String(choices=OrderStatus, default=OrderStatus.ON_PROCESS.value)
    status_history = HasMany(StatusChange)
    payment_reference = String(max_length=255)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_confirmed_at = DateTime()
    delivery_proof = String(max_length=1024)
    delivered_at = DateTime()
    needs_review = Boolean(default=False)
    review_notes = Text()  # JSON list of {code, detail, line_id, recorded_at}
    cart_reconciled = Boolean(default=False)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def amount_matches_lines(self):
        if not self.lines or self.amount is None:
            return
        expected = sum(line.line_total for line in self.lines) + (self.shipping_fee or 0.0)
        if not prices_match(self.amount, expected):
            raise ValidationError({"amount": ["Order amount must equal the line totals plus shipping fee"]})

    @invariant.post
    def delivery_proof_only_once_delivered(self):
        if self.delivery_proof and self.delivered_at is None:
            raise ValidationError({"delivery_proof": ["Delivery proof can only be attached on delivery"]})

    @invariant.post
    def delivered_orders_carry_proof(self):
        if self.status == OrderStatus.DELIVERED.value and not self.delivery_proof:
            raise ValidationError({"delivery_proof": ["Delivered orders must carry a delivery proof"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        transaction_hash,
        lines,
        delivery_option=DeliveryOption.SHIPPING.value,
        shipping_fee=0.0,
        scheduled_date=None,
        payment_reference=None,
        placed_by: Principal | None = None,
    ):
        """Create an order in On Process from validated line snapshots.

        Args:
            lines: List of dicts with item_id, item_name, quantity, unit_price,
                   is_customizable and, for customized lines, the dimensions,
                   materials and labor_days used to price them.
        """
        if not lines:
            raise ValidationError({"lines": ["An order needs at least one line"]})

        now = datetime.now(UTC)
        order_lines = [OrderLine(**line) for line in lines]
        shipping_fee = money(shipping_fee or 0.0)
        amount = money(sum(line.line_total for line in order_lines) + shipping_fee)
        actor = placed_by or Principal(user_id=str(customer_id))

        order = cls(
            customer_id=customer_id,
            transaction_hash=transaction_hash,
            lines=order_lines,
            amount=amount,
            delivery_option=delivery_option,
            shipping_fee=shipping_fee,
            scheduled_date=scheduled_date,
            payment_reference=payment_reference,
            status=OrderStatus.ON_PROCESS.value,
            payment_status=PaymentStatus.PENDING.value,
            review_notes=json.dumps([]),
            status_history=[
                StatusChange(
                    from_status=None,
                    to_status=OrderStatus.ON_PROCESS.value,
                    actor_id=actor.user_id,
                    actor_role=actor.role.value,
                    changed_at=now,
                )
            ],
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                transaction_hash=transaction_hash,
                payment_reference=payment_reference,
                lines=json.dumps([line.to_dict() for line in order.lines]),
                amount=amount,
                delivery_option=delivery_option,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def has_customized_lines(self) -> bool:
        return any(line.is_customizable for line in self.lines)

    @property
    def pending_lines(self) -> list[OrderLine]:
        return [line for line in self.lines if line.stock_status == StockStatus.PENDING.value]

    @property
    def notes(self) -> list[dict]:
        return json.loads(self.review_notes) if self.review_notes else []

    def is_owned_by(self, principal: Principal) -> bool:
        return str(self.customer_id) == str(principal.user_id)

    def visible_to(self, principal: Principal) -> bool:
        return principal.is_admin or principal.role == Role.SYSTEM or self.is_owned_by(principal)

    def line(self, line_id) -> OrderLine:
        line = next((ln for ln in self.lines if str(ln.id) == str(line_id)), None)
        if line is None:
            raise ValidationError({"line_id": [f"Line {line_id} is not part of order {self.id}"]})
        return line

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def refund_ineligibility(self) -> list[str]:
        """Reason codes that block a refund request; empty when eligible."""
        reasons = []
        if self.status != OrderStatus.ON_PROCESS.value:
            reasons.append(RefundNotEligible.WRONG_STATUS)
        if self.has_customized_lines:
            reasons.append(RefundNotEligible.CONTAINS_CUSTOMIZED_ITEMS)
        return reasons

    def assert_can_transition(self, target, actor: Principal) -> OrderStatus:
        """Check the edge and the actor's role; guards are left to ``transition_to``."""
        current = OrderStatus(self.status)
        try:
            target = OrderStatus(target)
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status: {target}"]}) from None

        if target not in _VALID_TRANSITIONS[current]:
            raise InvalidTransition(current.value, target.value)

        if actor.role != _TRANSITION_ROLES[target]:
            raise Forbidden(
                f"Role {actor.role.value} cannot move an order to {target.value}",
                order_id=str(self.id),
                target=target.value,
            )
        return target

    def transition_to(self, target, actor: Principal, delivery_proof=None):
        """Apply one status change, enforcing edge, role and guards in that order."""
        target = self.assert_can_transition(target, actor)

        if delivery_proof and target != OrderStatus.DELIVERED:
            raise ValidationError(
                {"delivery_proof": ["Delivery proof can only be attached when marking an order as Delivered"]}
            )

        if target == OrderStatus.DELIVERED:
            self._deliver(actor, delivery_proof)
        elif target == OrderStatus.REQUESTING_FOR_REFUND:
            self._request_refund(actor)
        elif target == OrderStatus.REFUNDED:
            self._refund(actor)
        else:
            self._cancel(actor)

    def deliver(self, actor: Principal, delivery_proof):
        self.transition_to(OrderStatus.DELIVERED.value, actor, delivery_proof=delivery_proof)

    def request_refund(self, actor: Principal):
        """Customer-initiated refund request on their own order.

        Unlike a generic status change, a request on an order that is no
        longer On Process reports ``wrong_status`` through RefundNotEligible.
        """
        if actor.role != Role.CUSTOMER or not self.is_owned_by(actor):
            raise Forbidden(
                "Only the customer who placed the order can request a refund",
                order_id=str(self.id),
            )

        reasons = self.refund_ineligibility()
        if reasons:
            raise RefundNotEligible(reasons)

        self._request_refund(actor)

    def refund(self, actor: Principal):
        self.transition_to(OrderStatus.REFUNDED.value, actor)

    def cancel(self, actor: Principal):
        self.transition_to(OrderStatus.CANCELLED.value, actor)

    def _deliver(self, actor, delivery_proof):
        if not delivery_proof:
            raise MissingDeliveryProof()

        now = datetime.now(UTC)
        # Assignment order keeps the delivery-proof invariants satisfied after each step
        self.delivered_at = now
        self.delivery_proof = delivery_proof
        self._record_transition(OrderStatus.DELIVERED, actor, now)
        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                delivery_proof=delivery_proof,
                delivered_by=actor.user_id,
                delivered_at=now,
            )
        )

    def _request_refund(self, actor):
        if not self.is_owned_by(actor):
            raise Forbidden(
                "Only the customer who placed the order can request a refund",
                order_id=str(self.id),
            )
        if self.has_customized_lines:
            raise RefundNotEligible([RefundNotEligible.CONTAINS_CUSTOMIZED_ITEMS])

        now = datetime.now(UTC)
        self._record_transition(OrderStatus.REQUESTING_FOR_REFUND, actor, now)
        self.raise_(
            RefundRequested(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                requested_at=now,
            )
        )

    def _refund(self, actor):
        now = datetime.now(UTC)
        previous = self.status
        self._record_transition(OrderStatus.REFUNDED, actor, now)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                amount=self.amount,
                refunded_from=previous,
                refunded_by=actor.user_id,
                refunded_at=now,
            )
        )

    def _cancel(self, actor):
        now = datetime.now(UTC)
        self._record_transition(OrderStatus.CANCELLED, actor, now)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                cancelled_by=actor.user_id,
                cancelled_at=now,
            )
        )

    def _record_transition(self, target: OrderStatus, actor: Principal, now):
        self.add_status_history(
            StatusChange(
                from_status=self.status,
                to_status=target.value,
                actor_id=actor.user_id,
                actor_role=actor.role.value,
                changed_at=now,
            )
        )
        self.status = target.value
        self.updated_at = now

    # -------------------------------------------------------------------
    # Finalization bookkeeping
    # -------------------------------------------------------------------
    def mark_line_reserved(self, line_id):
        self.line(line_id).stock_status = StockStatus.RESERVED.value
        self.updated_at = datetime.now(UTC)

    def record_stock_shortfall(self, line_id, detail):
        self.line(line_id).stock_status = StockStatus.SHORTFALL.value
        self.flag_for_review(ReviewCode.STOCK_SHORTFALL.value, detail, line_id=line_id)

    def flag_for_review(self, code, detail, line_id=None):
        """Record why this order needs a human decision. Repeated notes are kept once."""
        notes = self.notes
        if any(n["code"] == code and n.get("line_id") == (str(line_id) if line_id else None) for n in notes):
            return

        now = datetime.now(UTC)
        notes.append(
            {
                "code": code,
                "detail": detail,
                "line_id": str(line_id) if line_id else None,
                "recorded_at": now.isoformat(),
            }
        )
        self.review_notes = json.dumps(notes)
        self.needs_review = True
        self.updated_at = now
        self.raise_(
            OrderFlaggedForReview(
                order_id=str(self.id),
                transaction_hash=self.transaction_hash,
                code=code,
                detail=detail,
                line_id=str(line_id) if line_id else None,
                flagged_at=now,
            )
        )

    def mark_cart_reconciled(self):
        self.cart_reconciled = True
        self.updated_at = datetime.now(UTC)

    def record_payment_status(self, status):
        """Store the provider's answer; an unsettled payment sends the order to review."""
        status = PaymentStatus(status)
        if self.payment_status == PaymentStatus.PAID.value:
            return

        now = datetime.now(UTC)
        self.payment_status = status.value
        if status == PaymentStatus.PAID:
            self.payment_confirmed_at = now
        elif status == PaymentStatus.UNPAID:
            self.flag_for_review(
                ReviewCode.PAYMENT_NOT_SETTLED.value,
                f"Payment provider reports reference {self.payment_reference} as unpaid",
            )
        self.updated_at = now

        self.raise_(
            PaymentStatusRecorded(
                order_id=str(self.id),
                payment_reference=self.payment_reference,
                payment_status=status.value,
                recorded_at=now,
            )
        )
