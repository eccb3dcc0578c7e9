"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Identifier, Integer, Text

from ordering.domain import ordering


@ordering.event(part_of="ShoppingCart")
class CartItemAdded:
    __version__ = "v1"

    cart_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    entry_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)


@ordering.event(part_of="ShoppingCart")
class CartItemsCleared:
    """Entries for items committed into a finalized order left the cart."""

    __version__ = "v1"

    cart_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON list of item ids that were removed
    removed_count = Integer(required=True)
