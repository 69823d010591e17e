from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import get_db
from errors import Forbidden, Unauthorized
from utils import oid

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_token(data: dict, secret: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, secret, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[config.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except JWTError:
        raise Unauthorized("Invalid token")


def token_payload(user: Dict[str, Any]) -> dict:
    return {"id": str(user["_id"]), "email": user["email"], "role": user["role"]}


def create_access_token(user: Dict[str, Any]) -> str:
    return create_token(
        token_payload(user),
        config.JWT_ACCESS_SECRET,
        timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user: Dict[str, Any]) -> str:
    return create_token(
        token_payload(user),
        config.JWT_REFRESH_SECRET,
        timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def issue_tokens(user: Dict[str, Any]) -> Dict[str, str]:
    return {
        "access_token": create_access_token(user),
        "refresh_token": create_refresh_token(user),
    }


# Dependency to get current user

def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Database = Depends(get_db),
) -> Dict[str, Any]:
    if not authorization:
        raise Unauthorized("You are not authorized")
    token = authorization.split(" ", 1)[1] if authorization.startswith("Bearer ") else authorization
    payload = verify_token(token, config.JWT_ACCESS_SECRET)
    user_id = oid(payload.get("id"))
    if not user_id:
        raise Unauthorized("Invalid token")
    user = db["user"].find_one({"_id": user_id, "is_deleted": False})
    if not user:
        raise Unauthorized("User not found")
    if user.get("is_blocked"):
        raise Forbidden("User is blocked")
    return user


def require_roles(*roles: str):
    def guard(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if roles and user.get("role") not in roles:
            raise Forbidden("You do not have permission to access this resource")
        return user

    return guard
