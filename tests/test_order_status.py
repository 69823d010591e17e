from datetime import datetime, timezone
from itertools import product as pairs

import pytest
from bson import ObjectId

import order_service
from errors import BadRequest, NotFound
from schemas import ORDER_STATUSES

FORWARD = {
    ("PLACED", "CONFIRMED"),
    ("CONFIRMED", "SHIPPED"),
    ("SHIPPED", "DELIVERED"),
    ("PLACED", "CANCELLED"),
    ("CONFIRMED", "CANCELLED"),
    ("SHIPPED", "CANCELLED"),
}


@pytest.fixture
def make_order(db, customer):
    def _make_order(order_status="PLACED", payment_status="PENDING", payment_method="cash_on_delivery", products=None, prescription=None):
        order = {
            "order_id": "ABC123",
            "customer_id": customer["_id"],
            "products": products or [],
            "customer_name": "Jane Doe",
            "customer_email": "jane@example.com",
            "customer_phone": "+8801700000000",
            "address": "12 Lake Road",
            "city": "Dhaka",
            "postal_code": "1207",
            "payment_method": payment_method,
            "prescription": prescription,
            "subtotal": 500,
            "delivery_charge": 50,
            "grand_total": 550,
            "transaction_id": "TRX-ABCDEF1234",
            "order_status": order_status,
            "payment_status": payment_status,
            "created_at": datetime.now(timezone.utc),
        }
        db["order"].insert_one(order)
        db["payment"].insert_one(
            {
                "order_id": order["_id"],
                "amount": 550,
                "transaction_id": order["transaction_id"],
                "payment_status": payment_status,
                "payment_gateway_data": {"gateway": "demo"} if payment_status == "PAID" else None,
            }
        )
        return order

    return _make_order


def snapshot_item(product, quantity):
    return {
        "product_id": product["_id"],
        "name": product["name"],
        "price": product["price"],
        "discount": 0,
        "discount_type": "PERCENTAGE",
        "quantity": quantity,
        "requires_prescription": product.get("requires_prescription", False),
    }


@pytest.mark.parametrize("current,target", list(pairs(ORDER_STATUSES, ORDER_STATUSES)))
def test_transition_table_is_total(db, make_order, current, target):
    order = make_order(order_status=current)
    if (current, target) in FORWARD:
        updated = order_service.update_order_status(db, str(order["_id"]), target)
        assert updated["order_status"] == target
    else:
        with pytest.raises(BadRequest):
            order_service.update_order_status(db, str(order["_id"]), target)
        assert db["order"].find_one({"_id": order["_id"]})["order_status"] == current


def test_can_transition_matches_forward_table():
    for current, target in pairs(ORDER_STATUSES, ORDER_STATUSES):
        assert order_service.can_transition(current, target) == ((current, target) in FORWARD)


def test_unknown_status(db, make_order):
    order = make_order()
    with pytest.raises(BadRequest, match="Invalid order status"):
        order_service.update_order_status(db, str(order["_id"]), "LOST")


def test_missing_order(db):
    with pytest.raises(NotFound):
        order_service.update_order_status(db, str(ObjectId()), "CONFIRMED")
    with pytest.raises(NotFound):
        order_service.update_order_status(db, "garbage", "CONFIRMED")


def test_confirm_requires_prescription(db, make_order, make_product):
    rx = make_product(requires_prescription=True)
    order = make_order(products=[snapshot_item(rx, 1)])
    with pytest.raises(BadRequest, match="without prescription"):
        order_service.update_order_status(db, str(order["_id"]), "CONFIRMED")


def test_confirm_with_prescription(db, make_order, make_product):
    rx = make_product(requires_prescription=True)
    order = make_order(products=[snapshot_item(rx, 1)], prescription="https://cdn.example.com/rx.pdf")
    assert order_service.update_order_status(db, str(order["_id"]), "CONFIRMED")["order_status"] == "CONFIRMED"


def test_ship_online_order_requires_payment(db, make_order):
    order = make_order(order_status="CONFIRMED", payment_method="online_payment")
    with pytest.raises(BadRequest, match="incomplete payment"):
        order_service.update_order_status(db, str(order["_id"]), "SHIPPED")


def test_ship_paid_online_order(db, make_order):
    order = make_order(order_status="CONFIRMED", payment_method="online_payment", payment_status="PAID")
    assert order_service.update_order_status(db, str(order["_id"]), "SHIPPED")["order_status"] == "SHIPPED"


def test_deliver_cash_on_delivery_marks_paid(db, make_order):
    order = make_order(order_status="SHIPPED")
    updated = order_service.update_order_status(db, str(order["_id"]), "DELIVERED")
    assert updated["payment_status"] == "PAID"
    assert db["payment"].find_one({"order_id": order["_id"]})["payment_status"] == "PAID"


def test_cancel_paid_order_restocks(db, make_order, make_product):
    a = make_product(name="A", stock=0)
    b = make_product(name="B", stock=4)
    order = make_order(
        order_status="CONFIRMED",
        payment_method="online_payment",
        payment_status="PAID",
        products=[snapshot_item(a, 3), snapshot_item(b, 2)],
    )

    updated = order_service.update_order_status(db, str(order["_id"]), "CANCELLED")
    assert updated["order_status"] == "CANCELLED"
    assert updated["payment_status"] == "CANCELLED"

    stored_a = db["product"].find_one({"_id": a["_id"]})
    assert stored_a["stock"] == 3 and stored_a["in_stock"] is True
    assert db["product"].find_one({"_id": b["_id"]})["stock"] == 6

    payment = db["payment"].find_one({"order_id": order["_id"]})
    assert payment["payment_status"] == "CANCELLED"
    assert payment["payment_gateway_data"] is None


def test_cancel_unpaid_order_leaves_payment_alone(db, make_order, make_product):
    a = make_product(stock=4)
    order = make_order(products=[snapshot_item(a, 2)])
    updated = order_service.update_order_status(db, str(order["_id"]), "CANCELLED")
    assert updated["payment_status"] == "PENDING"
    assert db["payment"].find_one({"order_id": order["_id"]})["payment_status"] == "PENDING"
    assert db["product"].find_one({"_id": a["_id"]})["stock"] == 4


def test_cancel_rolls_back_on_failure(db, make_order, make_product, monkeypatch):
    a = make_product(stock=1)
    order = make_order(
        order_status="SHIPPED",
        payment_method="online_payment",
        payment_status="PAID",
        products=[snapshot_item(a, 2)],
    )
    before = db.snapshot()

    def broken_update(filter, update, upsert=False, session=None):
        raise RuntimeError("write conflict")

    monkeypatch.setattr(db["product"], "update_one", broken_update)
    with pytest.raises(RuntimeError):
        order_service.update_order_status(db, str(order["_id"]), "CANCELLED")
    assert db.snapshot() == before


def test_status_route(client, db, make_order, admin_headers, customer_headers):
    order = make_order()
    url = f"/orders/{order['_id']}/status"
    assert client.patch(url, json={"status": "CONFIRMED"}, headers=customer_headers).status_code == 403

    res = client.patch(url, json={"status": "CONFIRMED"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["order_status"] == "CONFIRMED"

    res = client.patch(url, json={"status": "PLACED"}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"] == 'Invalid status change "CONFIRMED" → "PLACED"'
