import json

import pytest
from protean import current_domain

from ordering.checkout.finalization import finalize_checkout
from ordering.gateway import get_payment_gateway
from ordering.item.stocking import RegisterItem
from ordering.principal import Principal, Role

NARRA = {"name": "Narra", "plank_3x3x10_cost": 450.0, "plank_2x12x10_cost": 1200.0}
MAHOGANY = {"name": "Mahogany", "plank_3x3x10_cost": 380.0, "plank_2x12x10_cost": 950.0}

TABLE_OPTIONS = {
    "labor_cost_per_day": 350.0,
    "profit_margin": 0.5,
    "overhead_cost": 500.0,
    "estimated_days": 7,
}

# 5 x 3 x 4 ft, 7 labor days, Narra for frame and tabletop
GOLDEN_DIMENSIONS = {
    "length": 5,
    "width": 3,
    "height": 4,
    "frame_material": "Narra",
    "tabletop_material": "Narra",
    "labor_days": 7,
}
GOLDEN_PRICE = 10725.0


@pytest.fixture()
def item_factory():
    def _register(name="Dining Chair", price=1500.0, stock=10, customizable=False):
        command = RegisterItem(
            name=name,
            price=price,
            stock=stock,
            is_customizable=customizable,
            customization=json.dumps(TABLE_OPTIONS) if customizable else None,
            materials=json.dumps([NARRA, MAHOGANY]) if customizable else None,
        )
        return current_domain.process(command, asynchronous=False)

    return _register


@pytest.fixture()
def chair_id(item_factory):
    return item_factory(name="Dining Chair", price=1500.0, stock=10)


@pytest.fixture()
def table_id(item_factory):
    return item_factory(name="Custom Table", price=0.0, stock=5, customizable=True)


@pytest.fixture()
def customer():
    return Principal(user_id="u1", role=Role.CUSTOMER)


@pytest.fixture()
def admin():
    return Principal(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture()
def gateway():
    return get_payment_gateway()


@pytest.fixture()
def place_order(customer, chair_id, table_id):
    """Finalize a paid checkout for ``customer`` and return the order.

    ``customized=True`` adds one golden-dimension table to the chair line.
    """
    counter = {"n": 0}

    def _place(customized=False, quantity=1, principal=None):
        counter["n"] += 1
        buyer = principal or customer
        lines = [{"item_id": chair_id, "quantity": quantity, "unit_price": 1500.0}]
        if customized:
            lines.append(
                {"item_id": table_id, "quantity": 1, "unit_price": GOLDEN_PRICE, "customization": GOLDEN_DIMENSIONS}
            )
        result = finalize_checkout(
            buyer,
            customer_id=buyer.user_id,
            transaction_hash=f"{buyer.user_id}-{counter['n']}",
            payload={"lines": lines, "delivery_option": "pickup"},
            payment_reference=f"cs_ref_{counter['n']}",
        )
        return result.order

    return _place
