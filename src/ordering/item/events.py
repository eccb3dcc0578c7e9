"""Domain events for the Item aggregate."""

from protean.fields import Boolean, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Item")
class ItemRegistered:
    """An item was added to the sellable catalogue with an opening stock count."""

    __version__ = "v1"

    item_id = Identifier(required=True)
    name = String(required=True)
    price = Float(required=True)
    stock = Integer(required=True)
    is_customizable = Boolean(default=False)


@ordering.event(part_of="Item")
class StockReserved:
    """Stock was decremented for a finalized order line."""

    __version__ = "v1"

    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    remaining = Integer(required=True)


@ordering.event(part_of="Item")
class ItemRestocked:
    __version__ = "v1"

    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    stock = Integer(required=True)
