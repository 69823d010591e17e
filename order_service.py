"""
Order workflow

Order creation and status transitions each run inside one multi-document
transaction: the order, its payment record and every stock change commit
together or not at all.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import UploadFile
from pydantic import TypeAdapter, ValidationError
from pymongo import DESCENDING
from pymongo.client_session import ClientSession
from pymongo.database import Database

import uploads
from database import create_document, run_transaction
from errors import BadRequest, NotFound, Unauthorized
from log import get_logger
from query_builder import QueryBuilder
from schemas import ORDER_STATUSES, Order, OrderForm, OrderItem, OrderLine, Payment
from utils import (
    calculate_delivery_charge,
    calculate_discounted_price,
    generate_order_id,
    generate_transaction_id,
    oid,
    serialize_doc,
)

logger = get_logger(__name__)

CASH_ON_DELIVERY = "cash_on_delivery"
SEARCHABLE_FIELDS = ["order_id", "customer_name", "customer_email", "customer_phone"]
NUMERIC_FIELDS = ["subtotal", "delivery_charge", "grand_total"]

# current status -> statuses it may move to
ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    "PLACED": frozenset({"CONFIRMED", "CANCELLED"}),
    "CONFIRMED": frozenset({"SHIPPED", "CANCELLED"}),
    "SHIPPED": frozenset({"DELIVERED", "CANCELLED"}),
    "DELIVERED": frozenset(),
    "CANCELLED": frozenset(),
}

_order_lines = TypeAdapter(List[OrderLine])


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def parse_order_lines(raw: str) -> List[OrderLine]:
    try:
        lines = _order_lines.validate_json(raw)
    except ValidationError:
        raise BadRequest("Products must be a JSON list of {product_id, quantity}")
    if not lines:
        raise BadRequest("At least one product is required")
    seen = set()
    for line in lines:
        if not oid(line.product_id):
            raise BadRequest(f"Invalid product id {line.product_id}")
        if line.product_id in seen:
            raise BadRequest(f"Duplicate product {line.product_id}")
        seen.add(line.product_id)
    return lines


def price_order(products: Dict[str, Dict[str, Any]], lines: List[OrderLine]) -> Dict[str, Any]:
    """Snapshot line items and compute subtotal, delivery charge and grand total."""
    subtotal = 0.0
    items = []
    for line in lines:
        product = products[line.product_id]
        final_price = calculate_discounted_price(
            product["price"], product.get("discount"), product.get("discount_type")
        )
        subtotal += final_price * line.quantity
        items.append(
            OrderItem(
                product_id=product["_id"],
                name=product["name"],
                price=product["price"],
                dosage=product.get("dosage"),
                discount=product.get("discount") or 0,
                discount_type=product.get("discount_type") or "PERCENTAGE",
                quantity=line.quantity,
                requires_prescription=bool(product.get("requires_prescription")),
            )
        )
    subtotal = round(subtotal, 2)
    delivery_charge = calculate_delivery_charge(subtotal)
    return {
        "products": items,
        "subtotal": subtotal,
        "delivery_charge": delivery_charge,
        "grand_total": subtotal + delivery_charge,
    }


def create_order(db: Database, form: OrderForm, file: Optional[UploadFile], current_user: Dict[str, Any]) -> Dict[str, Any]:
    lines = parse_order_lines(form.products)
    # generated once so a retried transaction reuses the same ids
    order_id = generate_order_id()
    transaction_id = generate_transaction_id()

    def place(session: ClientSession) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        user = db["user"].find_one(
            {"_id": current_user["_id"], "status": "ACTIVE", "is_deleted": False},
            session=session,
        )
        if not user:
            raise Unauthorized("User not found")

        product_ids = [oid(line.product_id) for line in lines]
        found = db["product"].find({"_id": {"$in": product_ids}, "is_deleted": False}, session=session)
        products = {str(p["_id"]): p for p in found}
        if len(products) != len(product_ids):
            raise NotFound("Product not found")

        for line in lines:
            product = products[line.product_id]
            if product.get("stock", 0) < line.quantity:
                raise BadRequest(f"Insufficient stock for {product['name']}")

        prescription = None
        if any(p.get("requires_prescription") for p in products.values()):
            if file is None:
                raise BadRequest("Prescription required")
            prescription = uploads.upload_prescription(file, public_id=order_id)

        pricing = price_order(products, lines)

        order = Order(
            order_id=order_id,
            customer_id=user["_id"],
            customer_name=form.customer_name,
            customer_email=form.customer_email,
            customer_phone=form.customer_phone,
            address=form.address,
            city=form.city,
            postal_code=form.postal_code,
            notes=form.notes,
            payment_method=form.payment_method,
            prescription=prescription,
            transaction_id=transaction_id,
            **pricing,
        )
        order_oid = oid(create_document(db, "order", order, session=session))

        now = datetime.now(timezone.utc)
        for line in lines:
            product = products[line.product_id]
            new_stock = product["stock"] - line.quantity
            # compare-and-set on the stock we validated against
            res = db["product"].update_one(
                {"_id": product["_id"], "stock": product["stock"]},
                {"$set": {"stock": new_stock, "in_stock": new_stock > 0, "updated_at": now}},
                session=session,
            )
            if res.matched_count == 0:
                raise BadRequest(f"Insufficient stock for {product['name']}")

        create_document(
            db,
            "payment",
            Payment(order_id=order_oid, amount=pricing["grand_total"], transaction_id=transaction_id),
            session=session,
        )
        return user, db["order"].find_one({"_id": order_oid}, session=session)

    user, created = run_transaction(db, place)

    logger.info(
        "order_created",
        order_id=order_id,
        customer_id=str(user["_id"]),
        items=len(lines),
        grand_total=created["grand_total"],
    )
    return serialize_doc(created)


def get_my_orders(db: Database, current_user: Dict[str, Any]) -> List[Dict[str, Any]]:
    cursor = db["order"].find({"customer_id": current_user["_id"]}).sort("created_at", DESCENDING)
    return [serialize_doc(o) for o in cursor]


def get_my_order(db: Database, order_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
    order = db["order"].find_one({"order_id": order_id, "customer_id": current_user["_id"]})
    if not order:
        raise NotFound("Order not found")
    return serialize_doc(order)


def get_all_orders(db: Database, query: Dict[str, Any]) -> Dict[str, Any]:
    builder = (
        QueryBuilder(db["order"], query, numeric_fields=NUMERIC_FIELDS)
        .search(SEARCHABLE_FIELDS)
        .filter_fields()
        .sort()
        .fields()
        .paginate()
    )
    total = builder.count()
    orders = [serialize_doc(o) for o in builder.execute()]
    return {"meta": {"total": total, **builder.pagination(total)}, "data": orders}


def update_order_status(db: Database, order_id: str, status: str) -> Dict[str, Any]:
    _id = oid(order_id)
    if not _id:
        raise NotFound("Order not found")

    def apply(session: ClientSession) -> Tuple[str, Dict[str, Any]]:
        order = db["order"].find_one({"_id": _id}, session=session)
        if not order:
            raise NotFound("Order not found")

        if status not in ORDER_STATUSES:
            raise BadRequest("Invalid order status")

        current = order["order_status"]
        if not can_transition(current, status):
            raise BadRequest(f'Invalid status change "{current}" → "{status}"')

        payment_status = order["payment_status"]
        now = datetime.now(timezone.utc)

        if status == "CONFIRMED":
            needs_prescription = any(item.get("requires_prescription") for item in order["products"])
            if needs_prescription and not order.get("prescription"):
                raise BadRequest("Cannot confirm order without prescription")

        elif status == "SHIPPED":
            if order["payment_method"] != CASH_ON_DELIVERY and payment_status != "PAID":
                raise BadRequest("Cannot ship an order with incomplete payment")

        elif status == "DELIVERED":
            if order["payment_method"] == CASH_ON_DELIVERY:
                payment_status = "PAID"
                db["payment"].update_one(
                    {"order_id": _id},
                    {"$set": {"payment_status": "PAID", "updated_at": now}},
                    session=session,
                )

        elif status == "CANCELLED":
            if payment_status == "PAID":
                payment_status = "CANCELLED"
                db["payment"].update_one(
                    {"order_id": _id},
                    {"$set": {"payment_status": "CANCELLED", "payment_gateway_data": None, "updated_at": now}},
                    session=session,
                )
                for item in order["products"]:
                    db["product"].update_one(
                        {"_id": item["product_id"]},
                        {"$inc": {"stock": item["quantity"]}, "$set": {"in_stock": True, "updated_at": now}},
                        session=session,
                    )

        db["order"].update_one(
            {"_id": _id},
            {"$set": {"order_status": status, "payment_status": payment_status, "updated_at": now}},
            session=session,
        )
        return current, db["order"].find_one({"_id": _id}, session=session)

    current, updated = run_transaction(db, apply)

    logger.info("order_status_changed", order_id=updated["order_id"], previous=current, status=status)
    return serialize_doc(updated)
