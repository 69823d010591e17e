from typing import Any, Dict

from pymongo.database import Database

import config
from database import create_document
from errors import Conflict, Forbidden, NotFound, Unauthorized
from log import get_logger
from schemas import ChangePasswordBody, LoginBody, RegisterBody, User
from security import (
    create_access_token,
    hash_password,
    issue_tokens,
    verify_password,
    verify_token,
)
from utils import oid

logger = get_logger(__name__)


def find_user_by_email(db: Database, email: str):
    return db["user"].find_one({"email": email.lower(), "is_deleted": False})


def login(db: Database, payload: LoginBody) -> Dict[str, str]:
    user = find_user_by_email(db, payload.email)
    if not user:
        raise NotFound("No user found with this email")
    if user.get("is_blocked"):
        raise Forbidden("User is blocked")
    if user.get("status", "ACTIVE") != "ACTIVE":
        raise Forbidden("User is not active")
    if not verify_password(payload.password, user.get("password", "")):
        raise Unauthorized("Invalid password")
    logger.info("user_logged_in", user_id=str(user["_id"]), role=user["role"])
    return issue_tokens(user)


def register(db: Database, payload: RegisterBody) -> Dict[str, str]:
    if find_user_by_email(db, payload.email):
        raise Conflict("User already exists")
    user_model = User(
        name=payload.name,
        email=payload.email.lower(),
        password=hash_password(payload.password),
        role="CUSTOMER",
    )
    user_id = create_document(db, "user", user_model)
    user = db["user"].find_one({"_id": oid(user_id)})
    logger.info("user_registered", user_id=user_id)
    return issue_tokens(user)


def refresh_token(db: Database, token: str) -> Dict[str, str]:
    if not token:
        raise Unauthorized("Refresh token is required")
    decoded = verify_token(token, config.JWT_REFRESH_SECRET)
    user_id = oid(decoded.get("id"))
    user = db["user"].find_one({"_id": user_id, "is_blocked": False, "is_deleted": False}) if user_id else None
    if not user:
        raise NotFound("No user found")
    return {"access_token": create_access_token(user)}


def change_password(db: Database, payload: ChangePasswordBody, current_user: Dict[str, Any]) -> None:
    user = db["user"].find_one({"_id": current_user["_id"], "is_blocked": False})
    if not user:
        raise NotFound("No user found")
    if not verify_password(payload.old_password, user.get("password", "")):
        raise Unauthorized("Invalid password")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(payload.new_password)}},
    )
    logger.info("password_changed", user_id=str(user["_id"]))
