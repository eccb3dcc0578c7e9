"""Cart reconciler: removes finalized items from the buyer's cart.

Removal is tolerant: items no longer in the cart, or a customer without a
cart at all, count as success.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.domain import ordering

logger = structlog.get_logger(__name__)


@ordering.command(part_of="ShoppingCart")
class RemoveCartItems:
    customer_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON list of item ids
    order_id = Identifier()


@ordering.command_handler(part_of=ShoppingCart)
class CartReconciliationHandler:
    @handle(RemoveCartItems)
    def remove_cart_items(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.find_for_customer(command.customer_id)
        if cart is None:
            logger.debug("No cart to reconcile", customer_id=str(command.customer_id))
            return 0

        removed = cart.clear_items(json.loads(command.item_ids))
        if removed:
            repo.add(cart)

        logger.info(
            "Cart reconciled",
            customer_id=str(command.customer_id),
            order_id=str(command.order_id) if command.order_id else None,
            removed_count=removed,
        )
        return removed


def remove_items(customer_id, item_ids, order_id=None) -> int:
    """Remove every cart entry for ``item_ids``; returns how many entries left the cart."""
    return current_domain.process(
        RemoveCartItems(
            customer_id=str(customer_id),
            item_ids=json.dumps([str(i) for i in item_ids]),
            order_id=str(order_id) if order_id else None,
        ),
        asynchronous=False,
    )
