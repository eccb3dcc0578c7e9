"""Validation of a pending order payload against the catalogue.

The same rules guard opening a checkout session and finalizing an order: a
payload that passes produces line snapshots priced by the server, and a
payload that fails raises before anything is written.

Payload shape::

    {
        "lines": [
            {"item_id": ..., "quantity": 2, "unit_price": 1500.0},
            {"item_id": ..., "quantity": 1, "unit_price": 10725.0,
             "customization": {"length": 5, "width": 3, "height": 4,
                               "frame_material": "Narra", "tabletop_material": "Narra",
                               "labor_days": 7}},
        ],
        "delivery_option": "shipping",
        "shipping_fee": 150.0,
        "scheduled_date": "2026-11-02",
        "amount": 12375.0,
    }
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from ordering.errors import InsufficientStock
from ordering.item.item import Item
from ordering.order.order import DeliveryOption
from ordering.pricing.engine import money, prices_match

_CUSTOM_FIELDS = ("length", "width", "height", "frame_material", "tabletop_material")


@dataclass
class ValidatedCheckout:
    lines: list[dict] = field(default_factory=list)
    delivery_option: str = DeliveryOption.SHIPPING.value
    shipping_fee: float = 0.0
    scheduled_date: date | None = None
    amount: float = 0.0


def check_transaction_hash(transaction_hash, customer_id) -> None:
    """Tokens are ``{userId}-{counter}``; a token minted for another user is rejected."""
    if not transaction_hash:
        raise ValidationError({"transaction_hash": ["Transaction hash is required"]})
    if not str(transaction_hash).startswith(f"{customer_id}-"):
        raise ValidationError({"transaction_hash": ["Transaction hash does not belong to this customer"]})


def _load_item(item_id, index) -> Item:
    try:
        return current_domain.repository_for(Item).get(item_id)
    except ObjectNotFoundError:
        raise ValidationError({f"lines[{index}].item_id": [f"Item {item_id} does not exist"]}) from None


def _quantity(raw, index) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise ValidationError({f"lines[{index}].quantity": ["Quantity must be a whole number of at least 1"]})
    return raw


def _snapshot_line(raw: dict, index: int) -> tuple[dict, Item]:
    item = _load_item(raw.get("item_id"), index)
    quantity = _quantity(raw.get("quantity"), index)
    submitted_price = raw.get("unit_price")
    if submitted_price is None:
        raise ValidationError({f"lines[{index}].unit_price": ["Unit price is required"]})

    customization = raw.get("customization") or None
    line = {
        "item_id": str(item.id),
        "item_name": item.name,
        "quantity": quantity,
        "is_customizable": bool(item.is_customizable),
    }

    if item.is_customizable:
        if not customization:
            raise ValidationError(
                {f"lines[{index}].customization": [f"Item {item.name} must be ordered with its dimensions"]}
            )
        quote = item.quote(
            length=customization.get("length"),
            width=customization.get("width"),
            height=customization.get("height"),
            frame_material=customization.get("frame_material"),
            tabletop_material=customization.get("tabletop_material"),
            labor_days=customization.get("labor_days"),
        )
        expected_price = quote.final_selling_price
        line.update({f: customization.get(f) for f in _CUSTOM_FIELDS})
        line["labor_days"] = quote.labor_days
    else:
        if customization:
            raise ValidationError({f"lines[{index}].customization": [f"Item {item.name} cannot be customized"]})
        expected_price = item.price

    if not prices_match(submitted_price, expected_price):
        raise ValidationError(
            {
                f"lines[{index}].unit_price": [
                    f"Submitted price {submitted_price} does not match the current price {expected_price:.2f}"
                ]
            }
        )

    line["unit_price"] = money(expected_price)
    return line, item


def validate_pending_order(payload: dict) -> ValidatedCheckout:
    """Check a pending order and return server-priced line snapshots.

    Raises ValidationError (or one of its subclasses such as
    InsufficientStock and InvalidDimensions) on the first failing rule.
    """
    raw_lines = payload.get("lines") or []
    if not raw_lines:
        raise ValidationError({"lines": ["An order needs at least one line"]})

    lines = []
    demand = defaultdict(int)
    items = {}
    for index, raw in enumerate(raw_lines):
        line, item = _snapshot_line(raw, index)
        lines.append(line)
        demand[line["item_id"]] += line["quantity"]
        items[line["item_id"]] = item

    # All-or-nothing: any line short of stock rejects the whole order
    for item_id, quantity in demand.items():
        item = items[item_id]
        if not item.has_stock_for(quantity):
            raise InsufficientStock(item_id, quantity, item.stock or 0)

    delivery_option = payload.get("delivery_option") or DeliveryOption.SHIPPING.value
    if delivery_option not in {option.value for option in DeliveryOption}:
        raise ValidationError({"delivery_option": [f"Unknown delivery option: {delivery_option}"]})

    shipping_fee = payload.get("shipping_fee") or 0.0
    if shipping_fee < 0:
        raise ValidationError({"shipping_fee": ["Shipping fee cannot be negative"]})
    if delivery_option == DeliveryOption.PICKUP.value and shipping_fee:
        raise ValidationError({"shipping_fee": ["Pickup orders carry no shipping fee"]})
    shipping_fee = money(shipping_fee)

    scheduled_date = payload.get("scheduled_date")
    if isinstance(scheduled_date, str):
        try:
            scheduled_date = date.fromisoformat(scheduled_date)
        except ValueError:
            raise ValidationError({"scheduled_date": [f"Invalid date: {scheduled_date}"]}) from None

    amount = money(sum(money(line["unit_price"] * line["quantity"]) for line in lines) + shipping_fee)
    submitted_amount = payload.get("amount")
    if submitted_amount is not None and not prices_match(submitted_amount, amount):
        raise ValidationError({"amount": [f"Submitted amount {submitted_amount} does not match {amount:.2f}"]})

    return ValidatedCheckout(
        lines=lines,
        delivery_option=delivery_option,
        shipping_fee=shipping_fee,
        scheduled_date=scheduled_date,
        amount=amount,
    )
