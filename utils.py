import uuid
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

import config


def oid(value: Optional[str]) -> Optional[ObjectId]:
    if value is None:
        return None
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    # Never send password hash
    doc.pop("password", None)
    return doc


def to_jsonable(data: Any) -> Any:
    return jsonable_encoder(data, custom_encoder={ObjectId: str})


def send_response(status_code: int = 200, message: str = "", data: Any = None, meta: Optional[Dict[str, Any]] = None, success: bool = True) -> JSONResponse:
    body: Dict[str, Any] = {
        "statusCode": status_code,
        "success": success,
        "message": message,
        "data": to_jsonable(data),
    }
    if meta is not None:
        body["meta"] = to_jsonable(meta)
    return JSONResponse(status_code=status_code, content=body)


# Identifiers

def _alphanumeric_uuid() -> str:
    return "".join(ch for ch in str(uuid.uuid4()) if ch.isalnum())


def generate_order_id() -> str:
    return _alphanumeric_uuid()[:6].upper()


def generate_transaction_id() -> str:
    return f"TRX-{_alphanumeric_uuid()[:10].upper()}"


def generate_product_slug() -> str:
    return f"med-{_alphanumeric_uuid()[:6]}"


# Pricing

def calculate_discounted_price(price: float, discount: Optional[float], discount_type: Optional[str]) -> float:
    final_price = price
    if discount and discount_type:
        if discount_type == "PERCENTAGE":
            final_price = price - (price * discount) / 100
        elif discount_type == "FLAT":
            final_price = price - discount
    return max(final_price, 0)


def calculate_delivery_charge(subtotal: float) -> float:
    return 0 if subtotal > config.FREE_DELIVERY_THRESHOLD else config.DELIVERY_CHARGE
