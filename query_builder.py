"""
Query building for list endpoints.

Turns query-string parameters into a pymongo filter, sort, projection and
page window. Reserved keys: search, sort, fields, page, limit. Anything else
is an equality filter, and-ed with the caller's base filter so it can narrow
the result but never widen it.
"""

import math
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

from errors import BadRequest

RESERVED_KEYS = ("search", "sort", "fields", "page", "limit")
DEFAULT_SORT = "-created_at"
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def _coerce(value: Any, numeric: bool) -> Any:
    if not isinstance(value, str):
        return value
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if not numeric:
        return value
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class QueryBuilder:
    def __init__(
        self,
        collection: Collection,
        query: Dict[str, Any],
        base_filter: Optional[Dict[str, Any]] = None,
        numeric_fields: Iterable[str] = (),
    ):
        self.collection = collection
        self.query = dict(query or {})
        self.base_filter: Dict[str, Any] = dict(base_filter or {})
        self.numeric_fields = set(numeric_fields)
        self.user_filter: Dict[str, Any] = {}
        self.sort_spec: List[Tuple[str, int]] = []
        self.projection: Optional[Dict[str, int]] = None
        self.page = 1
        self.limit = DEFAULT_LIMIT

    @property
    def filter(self) -> Dict[str, Any]:
        if not self.user_filter:
            return dict(self.base_filter)
        if not self.base_filter:
            return dict(self.user_filter)
        return {"$and": [self.base_filter, self.user_filter]}

    def search(self, fields: Iterable[str]) -> "QueryBuilder":
        term = self.query.get("search")
        if term:
            pattern = re.escape(str(term))
            self.user_filter["$or"] = [{f: {"$regex": pattern, "$options": "i"}} for f in fields]
        return self

    def filter_fields(self) -> "QueryBuilder":
        for key, value in self.query.items():
            if key in RESERVED_KEYS or value is None or value == "":
                continue
            if "$" in key:
                raise BadRequest(f"Invalid filter field: {key}")
            self.user_filter[key] = _coerce(value, key in self.numeric_fields)
        return self

    def sort(self) -> "QueryBuilder":
        raw = self.query.get("sort") or DEFAULT_SORT
        spec = []
        for part in str(raw).split(","):
            part = part.strip()
            if not part:
                continue
            if part.startswith("-"):
                spec.append((part[1:], DESCENDING))
            else:
                spec.append((part, ASCENDING))
        self.sort_spec = spec
        return self

    def fields(self) -> "QueryBuilder":
        raw = self.query.get("fields")
        if raw:
            names = [f.strip() for f in str(raw).split(",") if f.strip() and not f.strip().startswith("-")]
            if names:
                self.projection = {name: 1 for name in names}
        return self

    def paginate(self) -> "QueryBuilder":
        self.page = _positive_int(self.query.get("page"), 1)
        self.limit = min(_positive_int(self.query.get("limit"), DEFAULT_LIMIT), MAX_LIMIT)
        return self

    def execute(self, session=None) -> List[Dict[str, Any]]:
        cursor = self.collection.find(self.filter, self.projection, session=session)
        if self.sort_spec:
            cursor = cursor.sort(self.sort_spec)
        cursor = cursor.skip((self.page - 1) * self.limit).limit(self.limit)
        return list(cursor)

    def count(self, session=None) -> int:
        return self.collection.count_documents(self.filter, session=session)

    def pagination(self, total: int) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total_pages": math.ceil(total / self.limit) if total else 0,
        }
