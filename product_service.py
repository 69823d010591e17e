from datetime import datetime, timezone
from typing import Any, Dict, List

from pymongo.database import Database

from database import create_document
from errors import BadRequest, NotFound
from log import get_logger
from query_builder import QueryBuilder
from schemas import Product, ProductCreateBody, ProductUpdateBody
from utils import generate_product_slug, oid, serialize_doc

logger = get_logger(__name__)

SEARCHABLE_FIELDS = ["name", "description", "manufacturer", "category"]
NUMERIC_FIELDS = ["price", "discount", "stock"]


def _build_product(payload: ProductCreateBody) -> Product:
    return Product(
        **payload.model_dump(),
        slug=generate_product_slug(),
        in_stock=payload.stock > 0,
    )


def create_product(db: Database, payload: ProductCreateBody) -> Dict[str, Any]:
    product_id = create_document(db, "product", _build_product(payload))
    logger.info("product_created", product_id=product_id, name=payload.name)
    return serialize_doc(db["product"].find_one({"_id": oid(product_id)}))


def create_products(db: Database, payloads: List[ProductCreateBody]) -> List[Dict[str, Any]]:
    if not payloads:
        raise BadRequest("No products to create")
    ids = [oid(create_document(db, "product", _build_product(p))) for p in payloads]
    logger.info("products_created", count=len(ids))
    return [serialize_doc(d) for d in db["product"].find({"_id": {"$in": ids}})]


def get_products(db: Database, query: Dict[str, Any]) -> Dict[str, Any]:
    builder = (
        QueryBuilder(db["product"], query, base_filter={"is_deleted": False}, numeric_fields=NUMERIC_FIELDS)
        .search(SEARCHABLE_FIELDS)
        .filter_fields()
        .sort()
        .fields()
        .paginate()
    )
    total = builder.count()
    products = [serialize_doc(p) for p in builder.execute()]
    return {"meta": {"total": total, **builder.pagination(total)}, "data": products}


def get_product(db: Database, id_or_slug: str) -> Dict[str, Any]:
    _id = oid(id_or_slug)
    lookup = {"_id": _id} if _id else {"slug": id_or_slug}
    product = db["product"].find_one({**lookup, "is_deleted": False})
    if not product:
        raise NotFound("Product not found")
    return serialize_doc(product)


def update_product(db: Database, product_id: str, payload: ProductUpdateBody) -> Dict[str, Any]:
    _id = oid(product_id)
    if not _id:
        raise NotFound("Product not found")
    update = payload.model_dump(exclude_unset=True)
    if not update:
        raise BadRequest("No fields to update")
    if "stock" in update:
        update["in_stock"] = update["stock"] > 0
    update["updated_at"] = datetime.now(timezone.utc)
    res = db["product"].update_one({"_id": _id, "is_deleted": False}, {"$set": update})
    if res.matched_count == 0:
        raise NotFound("Product not found")
    logger.info("product_updated", product_id=product_id, fields=sorted(update))
    return serialize_doc(db["product"].find_one({"_id": _id}))


def delete_product(db: Database, product_id: str) -> None:
    _id = oid(product_id)
    if not _id:
        raise NotFound("Product not found")
    res = db["product"].update_one(
        {"_id": _id, "is_deleted": False},
        {"$set": {"is_deleted": True, "updated_at": datetime.now(timezone.utc)}},
    )
    if res.matched_count == 0:
        raise NotFound("Product not found")
    logger.info("product_deleted", product_id=product_id)
