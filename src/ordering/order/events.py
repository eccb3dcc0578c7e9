"""Domain events for the Order aggregate.

Every accepted status transition raises exactly one event; the remaining
events describe facts recorded while finalizing an order.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A paid checkout was finalized into an order in On Process."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    transaction_hash = String(required=True)
    payment_reference = String()
    lines = Text(required=True)  # JSON: list of line snapshots
    amount = Float(required=True)
    delivery_option = String(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    __version__ = "v1"

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    delivery_proof = String(required=True)
    delivered_by = String(required=True)
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class RefundRequested:
    __version__ = "v1"

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    requested_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    __version__ = "v1"

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_from = String(required=True)
    refunded_by = String(required=True)
    refunded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    __version__ = "v1"

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    cancelled_by = String(required=True)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentStatusRecorded:
    """The provider's view of the payment reference was checked."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    payment_reference = String()
    payment_status = String(required=True)
    recorded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderFlaggedForReview:
    """The order needs a human decision (stock shortfall, unsettled payment)."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    transaction_hash = String(required=True)
    code = String(required=True)
    detail = Text()
    line_id = Identifier()
    flagged_at = DateTime(required=True)
