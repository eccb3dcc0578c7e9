"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.order.order import Order
from ordering.principal import Principal, Role
from pytest_bdd import given, parsers, then

CUSTOMER = Principal(user_id="u1", role=Role.CUSTOMER)
ADMIN = Principal(user_id="admin-1", role=Role.ADMIN)
PROOF = "memory://delivery-proofs/abc-photo.jpg"

_STANDARD_LINE = {
    "item_id": "item-001",
    "item_name": "Dining Chair",
    "quantity": 2,
    "unit_price": 1500.0,
    "is_customizable": False,
}

_CUSTOM_LINE = {
    "item_id": "item-002",
    "item_name": "Custom Table",
    "quantity": 1,
    "unit_price": 10725.0,
    "is_customizable": True,
    "length": 5,
    "width": 3,
    "height": 4,
    "frame_material": "Narra",
    "tabletop_material": "Narra",
    "labor_days": 7,
}


@pytest.fixture()
def error():
    """Container for the exception a When step captured."""
    return {"exc": None}


def _place(lines):
    order = Order.place(
        customer_id=CUSTOMER.user_id,
        transaction_hash="u1-1",
        lines=lines,
        shipping_fee=150.0,
        payment_reference="cs_ref_1",
    )
    order._events.clear()
    return order


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a standard order", target_fixture="order")
def standard_order():
    return _place([_STANDARD_LINE])


@given("a customized order", target_fixture="order")
def customized_order():
    return _place([_STANDARD_LINE, _CUSTOM_LINE])


@given("the order was delivered")
def order_was_delivered(order):
    order.deliver(ADMIN, PROOF)
    order._events.clear()


@given("the customer requested a refund")
def customer_requested_refund(order):
    order.request_refund(CUSTOMER)
    order._events.clear()


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert order.status == status
