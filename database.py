"""
Database helpers (MongoDB)

One MongoClient per process. Services receive the database through the
`get_db` dependency so tests can swap it out.
"""

from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database

import config
from log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

client = MongoClient(config.DATABASE_URL, tz_aware=True)
db = client[config.DATABASE_NAME]


def get_db() -> Database:
    return db


def create_document(database: Database, collection_name: str, data: Any, session=None) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict, session=session)
    return str(result.inserted_id)


def run_transaction(database: Database, callback: Callable[[ClientSession], T]) -> T:
    """Run `callback(session)` inside a multi-document transaction and return its result.

    pymongo's `with_transaction` re-runs the callback on TransientTransactionError
    (write conflicts) and retries the commit on UnknownTransactionCommitResult, so
    the callback must be safe to repeat. Any other exception aborts the
    transaction and propagates unchanged.
    """
    with database.client.start_session() as session:
        try:
            return session.with_transaction(callback)
        except Exception as exc:
            logger.warning("transaction_aborted", error=type(exc).__name__, detail=str(exc))
            raise
