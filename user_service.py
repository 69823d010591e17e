from typing import Any, Dict

from pymongo.database import Database

from errors import BadRequest, NotFound
from log import get_logger
from query_builder import QueryBuilder
from utils import oid, serialize_doc

logger = get_logger(__name__)

USER_PROJECTION = {"password": 0}


def get_all_users(db: Database, query: Dict[str, Any]) -> Dict[str, Any]:
    builder = (
        QueryBuilder(db["user"], query, base_filter={"is_deleted": False})
        .search(["name", "email"])
        .filter_fields()
        .sort()
        .fields()
        .paginate()
    )
    total = builder.count()
    users = [serialize_doc(u) for u in builder.execute()]
    return {"meta": {"total": total, **builder.pagination(total)}, "data": users}


def _get_user(db: Database, user_id: str) -> Dict[str, Any]:
    _id = oid(user_id)
    user = db["user"].find_one({"_id": _id, "is_deleted": False}, USER_PROJECTION) if _id else None
    if not user:
        raise NotFound("User not found")
    return user


def update_user_status(db: Database, user_id: str, is_blocked: bool, admin: Dict[str, Any]) -> Dict[str, Any]:
    user = _get_user(db, user_id)
    if user["_id"] == admin["_id"]:
        raise BadRequest("You cannot change your own status")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"is_blocked": is_blocked}})
    logger.info("user_status_changed", user_id=user_id, is_blocked=is_blocked)
    return serialize_doc(db["user"].find_one({"_id": user["_id"]}, USER_PROJECTION))


def delete_user(db: Database, user_id: str, admin: Dict[str, Any]) -> None:
    user = _get_user(db, user_id)
    if user["_id"] == admin["_id"]:
        raise BadRequest("You cannot delete your own account")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"is_deleted": True}})
    logger.info("user_deleted", user_id=user_id)
