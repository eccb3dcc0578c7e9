"""Item registration and restocking: commands and handler."""

import json

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.item.item import Item


@ordering.command(part_of="Item")
class RegisterItem:
    name = String(required=True, max_length=255)
    price = Float(default=0.0, min_value=0.0)
    stock = Integer(default=0, min_value=0)
    is_customizable = Boolean(default=False)
    customization = Text()  # JSON: labor_cost_per_day, profit_margin, overhead_cost, estimated_days
    materials = Text()  # JSON: list of {name, plank_3x3x10_cost, plank_2x12x10_cost}


@ordering.command(part_of="Item")
class RestockItem:
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@ordering.command_handler(part_of=Item)
class StockingHandler:
    @handle(RegisterItem)
    def register_item(self, command):
        item = Item.register(
            name=command.name,
            price=command.price,
            stock=command.stock,
            is_customizable=command.is_customizable,
            customization=json.loads(command.customization) if command.customization else None,
            materials=json.loads(command.materials) if command.materials else None,
        )
        current_domain.repository_for(Item).add(item)
        return str(item.id)

    @handle(RestockItem)
    def restock_item(self, command):
        repo = current_domain.repository_for(Item)
        item = repo.get(command.item_id)
        item.restock(command.quantity)
        repo.add(item)
