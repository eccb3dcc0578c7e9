"""Item aggregate: sellable furniture with a stock count and optional customization.

Standard items sell at their catalogue ``price``. Customizable items are
priced per order line by the pricing engine from buyer-supplied dimensions and
the item's customization options (labor rate, margin, overhead, estimated
build days and the material plank-cost table).

Stock is only ever decremented through :meth:`Item.reserve`, once per
finalized order line.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Integer, String, ValueObject

from ordering.domain import ordering
from ordering.errors import InsufficientStock
from ordering.item.events import ItemRegistered, ItemRestocked, StockReserved
from ordering.pricing.engine import CostModel, MaterialCost, calculate_price


@ordering.value_object(part_of="Item")
class CustomizationOptions:
    labor_cost_per_day = Float(required=True, min_value=0.0)
    profit_margin = Float(required=True, min_value=0.0)
    overhead_cost = Float(default=0.0, min_value=0.0)
    estimated_days = Integer(required=True, min_value=1)


@ordering.entity(part_of="Item")
class Material:
    """A wood option with its cost per 10 ft plank of each stock size."""

    name = String(required=True, max_length=100)
    plank_3x3x10_cost = Float(required=True, min_value=0.0)
    plank_2x12x10_cost = Float(required=True, min_value=0.0)


@ordering.aggregate
class Item:
    name = String(required=True, max_length=255)
    price = Float(default=0.0, min_value=0.0)
    stock = Integer(default=0)
    is_customizable = Boolean(default=False)
    customization = ValueObject(CustomizationOptions)
    materials = HasMany(Material)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def stock_cannot_be_negative(self):
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})

    @invariant.post
    def customizable_items_need_customization_options(self):
        if self.is_customizable and self.customization is None:
            raise ValidationError({"customization": ["Customizable items require customization options"]})

    @classmethod
    def register(cls, name, price, stock=0, is_customizable=False, customization=None, materials=None):
        now = datetime.now(UTC)
        item = cls(
            name=name,
            price=price,
            stock=stock,
            is_customizable=is_customizable,
            customization=CustomizationOptions(**customization) if customization else None,
            materials=[Material(**m) for m in (materials or [])],
            created_at=now,
            updated_at=now,
        )
        item.raise_(
            ItemRegistered(
                item_id=str(item.id),
                name=name,
                price=price,
                stock=stock,
                is_customizable=is_customizable,
            )
        )
        return item

    # -------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------
    def has_stock_for(self, quantity) -> bool:
        return (self.stock or 0) >= quantity

    def reserve(self, quantity):
        """Conditional decrement: ``stock - quantity`` only when ``stock >= quantity``."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if not self.has_stock_for(quantity):
            raise InsufficientStock(self.id, quantity, self.stock or 0)

        self.stock -= quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(StockReserved(item_id=str(self.id), quantity=quantity, remaining=self.stock))

    def restock(self, quantity):
        if quantity < 1:
            raise ValidationError({"quantity": ["Restock quantity must be at least 1"]})

        self.stock = (self.stock or 0) + quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(ItemRestocked(item_id=str(self.id), quantity=quantity, stock=self.stock))

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    def cost_model(self) -> CostModel:
        if not self.is_customizable:
            raise ValidationError({"item": [f"Item {self.name} is not customizable"]})

        options = self.customization
        return CostModel(
            labor_cost_per_day=options.labor_cost_per_day,
            profit_margin=options.profit_margin,
            overhead_cost=options.overhead_cost or 0.0,
            estimated_days=options.estimated_days,
            materials=tuple(
                MaterialCost(
                    name=m.name,
                    plank_3x3x10_cost=m.plank_3x3x10_cost,
                    plank_2x12x10_cost=m.plank_2x12x10_cost,
                )
                for m in self.materials
            ),
        )

    def quote(self, length, width, height, frame_material, tabletop_material, labor_days=None):
        return calculate_price(
            self.cost_model(),
            length=length,
            width=width,
            height=height,
            frame_material=frame_material,
            tabletop_material=tabletop_material,
            labor_days=labor_days,
        )
