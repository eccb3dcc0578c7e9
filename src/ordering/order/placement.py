"""Order placement steps: commands and handler.

Each step commits in its own unit of work so that a failure in a later step
never undoes an order that was already created:

- PlaceOrder persists the order in On Process (unique per transaction hash)
- ReserveOrderLine decrements stock for one line, exactly once
- MarkCartReconciled records that the buyer's cart was cleared
- FlagOrderForReview records a step that could not be completed
"""

import json

import structlog
from protean import handle
from protean.fields import Date, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import InsufficientStock
from ordering.item.item import Item
from ordering.order.order import Order, StockStatus
from ordering.principal import Principal, Role

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    transaction_hash = String(required=True, max_length=255)
    lines = Text(required=True)  # JSON: validated line snapshots
    delivery_option = String(required=True, max_length=20)
    shipping_fee = Float(default=0.0)
    scheduled_date = Date()
    payment_reference = String(required=True, max_length=255)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=20)


@ordering.command(part_of="Order")
class ReserveOrderLine:
    order_id = Identifier(required=True)
    line_id = Identifier(required=True)


@ordering.command(part_of="Order")
class MarkCartReconciled:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class FlagOrderForReview:
    order_id = Identifier(required=True)
    code = String(required=True, max_length=50)
    detail = String(required=True, max_length=1000)
    line_id = Identifier()


@ordering.command_handler(part_of=Order)
class OrderPlacementHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.place(
            customer_id=command.customer_id,
            transaction_hash=command.transaction_hash,
            lines=json.loads(command.lines),
            delivery_option=command.delivery_option,
            shipping_fee=command.shipping_fee,
            scheduled_date=command.scheduled_date,
            payment_reference=command.payment_reference,
            placed_by=Principal(user_id=command.actor_id, role=Role(command.actor_role)),
        )
        current_domain.repository_for(Order).create(order)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            customer_id=str(order.customer_id),
            transaction_hash=order.transaction_hash,
            amount=order.amount,
        )
        return str(order.id)

    @handle(ReserveOrderLine)
    def reserve_order_line(self, command):
        """Decrement stock for a line unless it was already handled.

        The decrement and the line's new stock status commit together, so a
        line is never decremented twice. A shortfall decrements nothing and
        flags the order instead.
        """
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        line = order.line(command.line_id)
        if line.stock_status != StockStatus.PENDING.value:
            return line.stock_status

        try:
            item = current_domain.repository_for(Item).reserve(line.item_id, line.quantity)
        except InsufficientStock as exc:
            order.record_stock_shortfall(
                line.id,
                f"Item {line.item_id} had {exc.available} in stock, {exc.requested} required",
            )
            order_repo.add(order)
            logger.error(
                "Stock shortfall after order creation",
                order_id=str(order.id),
                transaction_hash=order.transaction_hash,
                line_id=str(line.id),
                item_id=str(line.item_id),
                requested=exc.requested,
                available=exc.available,
            )
            return StockStatus.SHORTFALL.value

        order.mark_line_reserved(line.id)
        order_repo.add(order)
        logger.debug("Stock reserved", order_id=str(order.id), item_id=str(item.id), remaining=item.stock)
        return StockStatus.RESERVED.value

    @handle(MarkCartReconciled)
    def mark_cart_reconciled(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if not order.cart_reconciled:
            order.mark_cart_reconciled()
            repo.add(order)

    @handle(FlagOrderForReview)
    def flag_order_for_review(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.flag_for_review(command.code, command.detail, line_id=command.line_id)
        repo.add(order)
        logger.warning(
            "Order flagged for review",
            order_id=str(order.id),
            transaction_hash=order.transaction_hash,
            code=command.code,
            line_id=command.line_id,
        )
