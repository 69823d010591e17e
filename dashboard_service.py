"""
Admin dashboard rollups. Read-only; every figure reflects the store at query time.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

import config
from schemas import ORDER_STATUSES
from utils import serialize_doc

REVENUE_MONTHS = 6


def _paid_payments(db: Database) -> List[Dict[str, Any]]:
    return list(db["payment"].find({"payment_status": "PAID"}, {"amount": 1, "created_at": 1}))


def get_stats_summary(db: Database) -> Dict[str, Any]:
    orders_by_status = {
        status: db["order"].count_documents({"order_status": status}) for status in ORDER_STATUSES
    }
    return {
        "total_customers": db["user"].count_documents({"role": "CUSTOMER", "is_deleted": False}),
        "total_products": db["product"].count_documents({"is_deleted": False}),
        "total_orders": db["order"].count_documents({}),
        "orders_by_status": orders_by_status,
        "total_revenue": round(sum(p.get("amount", 0) for p in _paid_payments(db)), 2),
    }


def _month_keys(today: date, months: int) -> List[str]:
    keys = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def get_revenue_summary(db: Database, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or datetime.now(timezone.utc).date()
    payments = _paid_payments(db)
    total = sum(p.get("amount", 0) for p in payments)

    monthly = OrderedDict((key, 0.0) for key in _month_keys(today, REVENUE_MONTHS))
    for p in payments:
        created = p.get("created_at")
        if isinstance(created, datetime):
            key = created.strftime("%Y-%m")
            if key in monthly:
                monthly[key] += p.get("amount", 0)

    pending = db["payment"].find({"payment_status": "PENDING"}, {"amount": 1})
    return {
        "total_revenue": round(total, 2),
        "paid_orders": len(payments),
        "average_order_value": round(total / len(payments), 2) if payments else 0,
        "pending_amount": round(sum(p.get("amount", 0) for p in pending), 2),
        "monthly": [{"month": k, "revenue": round(v, 2)} for k, v in monthly.items()],
    }


def get_recent_orders(db: Database, limit: int = config.RECENT_ORDERS_LIMIT) -> List[Dict[str, Any]]:
    cursor = db["order"].find({}).sort("created_at", DESCENDING).limit(limit)
    return [serialize_doc(o) for o in cursor]


def get_low_stock_products(db: Database, threshold: int = config.LOW_STOCK_THRESHOLD) -> List[Dict[str, Any]]:
    cursor = db["product"].find({"is_deleted": False, "stock": {"$lt": threshold}}).sort("stock", ASCENDING)
    return [serialize_doc(p) for p in cursor]


def get_expiring_products(db: Database, days: int = config.EXPIRY_WINDOW_DAYS, today: Optional[date] = None) -> List[Dict[str, Any]]:
    # expiry_date is stored as YYYY-MM-DD, so string comparison orders by date
    today = today or datetime.now(timezone.utc).date()
    window = {"$gte": today.isoformat(), "$lte": (today + timedelta(days=days)).isoformat()}
    cursor = db["product"].find({"is_deleted": False, "expiry_date": window}).sort("expiry_date", ASCENDING)
    return [serialize_doc(p) for p in cursor]
