from typing import Any, Dict, List

from pymongo.database import Database

from utils import calculate_discounted_price, oid, serialize_doc


def get_cart_products(db: Database, product_ids: List[str]) -> List[Dict[str, Any]]:
    """Resolve the ids a client keeps in its cart to current, priced products."""
    ids = [oid(pid) for pid in product_ids if oid(pid)]
    if not ids:
        return []
    products = []
    for product in db["product"].find({"_id": {"$in": ids}, "is_deleted": False}):
        item = serialize_doc(product)
        item["final_price"] = calculate_discounted_price(
            product["price"], product.get("discount"), product.get("discount_type")
        )
        products.append(item)
    return products
