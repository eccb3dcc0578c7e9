"""Shopping cart aggregate: one active cart per customer.

Entries are added by the storefront and removed by the cart reconciler once
the corresponding items are committed into a finalized order.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from ordering.cart.events import CartItemAdded, CartItemsCleared
from ordering.domain import ordering


@ordering.entity(part_of="ShoppingCart")
class CartItem:
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    length = Float()
    width = Float()
    height = Float()
    frame_material = String(max_length=100)
    tabletop_material = String(max_length=100)
    labor_days = Integer()
    added_at = DateTime()

    @property
    def is_customized(self):
        return self.length is not None


@ordering.aggregate
class ShoppingCart:
    customer_id = Identifier(required=True)
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(customer_id=customer_id, created_at=now, updated_at=now)

    def add_item(self, item_id, quantity, customization=None):
        """Add an entry; a standard item already in the cart gets its quantity bumped."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        now = datetime.now(UTC)
        existing = None
        if not customization:
            existing = next(
                (e for e in self.items if str(e.item_id) == str(item_id) and not e.is_customized),
                None,
            )

        if existing:
            existing.quantity += quantity
            entry = existing
        else:
            entry = CartItem(item_id=item_id, quantity=quantity, added_at=now, **(customization or {}))
            self.add_items(entry)

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                customer_id=str(self.customer_id),
                entry_id=str(entry.id),
                item_id=str(item_id),
                quantity=quantity,
            )
        )

    def clear_items(self, item_ids) -> int:
        """Drop every entry for the given items. Absent items are ignored."""
        wanted = {str(i) for i in item_ids}
        entries = [e for e in self.items if str(e.item_id) in wanted]
        if not entries:
            return 0

        for entry in entries:
            self.remove_items(entry)

        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartItemsCleared(
                cart_id=str(self.id),
                customer_id=str(self.customer_id),
                item_ids=json.dumps(sorted({str(e.item_id) for e in entries})),
                removed_count=len(entries),
            )
        )
        return len(entries)
