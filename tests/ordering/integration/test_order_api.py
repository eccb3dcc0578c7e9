"""Integration tests for the order lifecycle endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api import ROUTERS, register_exception_handlers
from ordering.gateway import get_payment_gateway
from ordering.item.item import Item
from ordering.order.order import Order
from ordering.storage import get_image_storage
from protean import current_domain

CUSTOMER = {"X-User-Id": "u1"}
OTHER_CUSTOMER = {"X-User-Id": "u2"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
SYSTEM = {"X-User-Id": "scheduler", "X-User-Role": "system"}

GOLDEN_CUSTOMIZATION = {
    "length": 5,
    "width": 3,
    "height": 4,
    "frame_material": "Narra",
    "tabletop_material": "Narra",
    "labor_days": 7,
}


@pytest.fixture()
def client():
    app = FastAPI()
    for router in ROUTERS:
        app.include_router(router)
    register_exception_handlers(app)
    return TestClient(app)


def _finalize(client, chair_id, transaction_hash="u1-1", quantity=1, table_id=None, headers=CUSTOMER):
    lines = [{"item_id": chair_id, "quantity": quantity, "unit_price": 1500.0}]
    if table_id:
        lines.append(
            {"item_id": table_id, "quantity": 1, "unit_price": 10725.0, "customization": GOLDEN_CUSTOMIZATION}
        )
    return client.post(
        "/orders",
        json={
            "transaction_hash": transaction_hash,
            "payment_reference": f"cs_{transaction_hash}",
            "order": {"lines": lines, "delivery_option": "shipping", "shipping_fee": 150.0},
        },
        headers=headers,
    )


def _create_order(client, chair_id, **kwargs):
    response = _finalize(client, chair_id, **kwargs)
    assert response.status_code == 201
    return response.json()["order"]["order_id"]


def _deliver(client, order_id, headers=ADMIN, **form):
    return client.post(
        f"/orders/{order_id}/delivery-proof",
        files={"file": ("proof.jpg", b"\xff\xd8\xff\xe0jpeg", "image/jpeg")},
        data=form,
        headers=headers,
    )


class TestAuthentication:
    def test_missing_user_header(self, client):
        response = client.get("/users/me/orders")
        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"

    def test_unknown_role(self, client):
        response = client.get("/users/me/orders", headers={"X-User-Id": "u1", "X-User-Role": "superuser"})
        assert response.status_code == 401


class TestFinalizeOrder:
    def test_created(self, client, chair_id):
        response = _finalize(client, chair_id, quantity=2)

        assert response.status_code == 201
        body = response.json()
        assert body["created"] is True
        assert body["order"]["status"] == "On Process"
        assert body["order"]["amount"] == 3150.0
        assert body["order"]["payment_status"] == "paid"
        assert body["order"]["lines"][0]["stock_status"] == "reserved"

    def test_replay_returns_same_order(self, client, chair_id):
        first = _finalize(client, chair_id)
        second = _finalize(client, chair_id)

        assert second.status_code == 200
        assert second.json()["created"] is False
        assert second.json()["order"]["order_id"] == first.json()["order"]["order_id"]
        assert current_domain.repository_for(Item).get(chair_id).stock == 9

    def test_price_mismatch(self, client, chair_id):
        response = client.post(
            "/orders",
            json={
                "transaction_hash": "u1-1",
                "payment_reference": "cs_1",
                "order": {"lines": [{"item_id": chair_id, "quantity": 1, "unit_price": 1.0}]},
            },
            headers=CUSTOMER,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] is True
        assert body["code"] == "validation_error"
        assert "lines[0].unit_price" in body["details"]

    def test_insufficient_stock(self, client, chair_id):
        response = _finalize(client, chair_id, quantity=11)
        assert response.status_code == 400
        assert response.json()["code"] == "insufficient_stock"

    def test_out_of_range_dimensions(self, client, chair_id, table_id):
        response = client.post(
            "/orders",
            json={
                "transaction_hash": "u1-1",
                "payment_reference": "cs_1",
                "order": {
                    "lines": [
                        {
                            "item_id": table_id,
                            "quantity": 1,
                            "unit_price": 10725.0,
                            "customization": {**GOLDEN_CUSTOMIZATION, "height": 2},
                        }
                    ]
                },
            },
            headers=CUSTOMER,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "invalid_dimensions"
        assert body["details"]["bound"] == "min"
        assert "height" in body["details"]

    def test_token_of_another_customer(self, client, chair_id):
        _create_order(client, chair_id)
        response = _finalize(client, chair_id, headers=OTHER_CUSTOMER)
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_admin_cannot_finalize(self, client, chair_id):
        response = _finalize(client, chair_id, transaction_hash="admin-1-1", headers=ADMIN)
        assert response.status_code == 403

    def test_request_schema_validation(self, client):
        response = client.post("/orders", json={"transaction_hash": "u1-1"}, headers=CUSTOMER)
        assert response.status_code == 422


class TestReadOrders:
    def test_owner_reads_order(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.get(f"/orders/{order_id}", headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()["status_history"][0]["to_status"] == "On Process"

    def test_other_customer_cannot_read(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.get(f"/orders/{order_id}", headers=OTHER_CUSTOMER)
        assert response.status_code == 403

    def test_admin_reads_any_order(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        assert client.get(f"/orders/{order_id}", headers=ADMIN).status_code == 200

    def test_unknown_order(self, client):
        response = client.get("/orders/does-not-exist", headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_my_orders(self, client, chair_id):
        _create_order(client, chair_id, transaction_hash="u1-1")
        _create_order(client, chair_id, transaction_hash="u1-2")

        response = client.get("/users/me/orders", headers=CUSTOMER)
        assert response.status_code == 200
        assert {o["transaction_hash"] for o in response.json()} == {"u1-1", "u1-2"}
        assert client.get("/users/me/orders", headers=OTHER_CUSTOMER).json() == []

    def test_admin_lists_by_status(self, client, chair_id):
        first = _create_order(client, chair_id, transaction_hash="u1-1")
        _create_order(client, chair_id, transaction_hash="u1-2")
        client.put(f"/orders/{first}/status", json={"status": "Cancelled"}, headers=ADMIN)

        response = client.get("/orders", params={"status": "Cancelled"}, headers=ADMIN)

        assert response.status_code == 200
        assert [o["order_id"] for o in response.json()] == [first]

    def test_list_requires_admin(self, client):
        assert client.get("/orders", headers=CUSTOMER).status_code == 403

    def test_list_rejects_unknown_status(self, client):
        assert client.get("/orders", params={"status": "Lost"}, headers=ADMIN).status_code == 400


class TestStatusChanges:
    def test_admin_cancels(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.put(
            f"/orders/{order_id}/status",
            json={"status": "Cancelled", "expected_status": "On Process"},
            headers=ADMIN,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "Cancelled"

    def test_invalid_transition(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.put(f"/orders/{order_id}/status", json={"status": "Refunded"}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_transition"

    def test_unknown_status(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.put(f"/orders/{order_id}/status", json={"status": "Shipped"}, headers=ADMIN)
        assert response.status_code == 400

    def test_customer_cannot_cancel(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.put(f"/orders/{order_id}/status", json={"status": "Cancelled"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_delivered_without_proof(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.put(f"/orders/{order_id}/status", json={"status": "Delivered"}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["code"] == "missing_delivery_proof"

    def test_stale_expected_status(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        client.put(f"/orders/{order_id}/status", json={"status": "Cancelled"}, headers=ADMIN)

        response = client.put(
            f"/orders/{order_id}/status",
            json={"status": "Delivered", "expected_status": "On Process", "delivery_proof": "memory://p.jpg"},
            headers=ADMIN,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "conflict"


class TestRequestRefund:
    def test_standard_order(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.put(f"/orders/{order_id}/request-refund", headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()["status"] == "Requesting for Refund"

    def test_customized_order(self, client, chair_id, table_id):
        order_id = _create_order(client, chair_id, table_id=table_id)

        response = client.put(f"/orders/{order_id}/request-refund", headers=CUSTOMER)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "refund_not_eligible"
        assert body["details"]["reasons"] == ["contains_customized_items"]

    def test_other_customer(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        assert client.put(f"/orders/{order_id}/request-refund", headers=OTHER_CUSTOMER).status_code == 403


class TestDeliveryProof:
    def test_upload_marks_delivered(self, client, chair_id):
        order_id = _create_order(client, chair_id)

        response = _deliver(client, order_id, expected_status="On Process")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "Delivered"
        assert body["delivery_proof"].startswith("memory://delivery-proofs/")
        assert body["delivered_at"] is not None
        assert get_image_storage().objects[body["delivery_proof"]].startswith(b"\xff\xd8")

    def test_customer_cannot_upload(self, client, chair_id):
        order_id = _create_order(client, chair_id)

        response = _deliver(client, order_id, headers=CUSTOMER)

        assert response.status_code == 403
        assert get_image_storage().objects == {}

    def test_rejected_transition_stores_nothing(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        client.put(f"/orders/{order_id}/status", json={"status": "Cancelled"}, headers=ADMIN)

        response = _deliver(client, order_id)

        assert response.status_code == 400
        assert get_image_storage().objects == {}

    def test_status_conflict_discards_upload(self, client, chair_id):
        order_id = _create_order(client, chair_id)

        response = _deliver(client, order_id, expected_status="Requesting for Refund")

        assert response.status_code == 409
        assert get_image_storage().objects == {}
        assert current_domain.repository_for(Order).get(order_id).status == "On Process"

    def test_non_image_upload(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        response = client.post(
            f"/orders/{order_id}/delivery-proof",
            files={"file": ("proof.txt", b"hello", "text/plain")},
            headers=ADMIN,
        )
        assert response.status_code == 400
        assert current_domain.repository_for(Order).get(order_id).status == "On Process"

    def test_storage_unavailable(self, client, chair_id):
        order_id = _create_order(client, chair_id)
        get_image_storage().configure(unavailable=True)

        response = _deliver(client, order_id)

        assert response.status_code == 503
        assert response.json()["code"] == "external_dependency"
        assert current_domain.repository_for(Order).get(order_id).status == "On Process"


class TestMaintenance:
    def test_reconcile_carts(self, client):
        response = client.post("/maintenance/reconcile-carts", headers=SYSTEM)
        assert response.status_code == 200
        assert response.json() == {"processed": 0}

    def test_confirm_payments(self, client, chair_id):
        get_payment_gateway().configure(unreachable=True)
        _create_order(client, chair_id)
        get_payment_gateway().configure(unreachable=False)

        response = client.post("/maintenance/confirm-payments", headers=ADMIN)

        assert response.status_code == 200
        assert response.json() == {"processed": 1}

    def test_resume_reservations(self, client):
        response = client.post("/maintenance/resume-reservations", headers=SYSTEM)
        assert response.status_code == 200
        assert response.json() == {"processed": 0}

    def test_customers_are_rejected(self, client):
        assert client.post("/maintenance/reconcile-carts", headers=CUSTOMER).status_code == 403
