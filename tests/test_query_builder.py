from datetime import datetime, timedelta, timezone

import pytest

from errors import BadRequest
from mongo_double import FakeDatabase
from query_builder import QueryBuilder


def seed_orders():
    db = FakeDatabase()
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(25):
        db["order"].insert_one(
            {
                "order_id": f"ORD{i:03d}",
                "customer_name": "Alice" if i % 2 else "Bob",
                "order_status": "PLACED" if i < 20 else "SHIPPED",
                "grand_total": 100 + i,
                "created_at": start + timedelta(days=i),
            }
        )
    return db


def test_defaults_sort_newest_first_and_paginate():
    db = seed_orders()
    builder = QueryBuilder(db["order"], {}).search([]).filter_fields().sort().fields().paginate()
    docs = builder.execute()
    assert len(docs) == 10
    assert docs[0]["order_id"] == "ORD024"
    assert builder.pagination(builder.count()) == {"page": 1, "limit": 10, "total_pages": 3}


def test_search_filter_and_page():
    db = seed_orders()
    query = {"search": "ali", "order_status": "PLACED", "page": "2", "limit": "5", "sort": "grand_total"}
    builder = QueryBuilder(db["order"], query).search(["customer_name"]).filter_fields().sort().fields().paginate()
    assert builder.count() == 10
    docs = builder.execute()
    assert [d["grand_total"] for d in docs] == [111, 113, 115, 117, 119]


def test_fields_projection():
    db = seed_orders()
    builder = QueryBuilder(db["order"], {"fields": "order_id,grand_total"}).fields().paginate()
    doc = builder.execute()[0]
    assert set(doc) == {"_id", "order_id", "grand_total"}


def test_search_term_is_literal():
    db = seed_orders()
    builder = QueryBuilder(db["order"], {"search": "ORD.*"}).search(["order_id"])
    assert builder.count() == 0


def test_invalid_paging_falls_back_to_defaults():
    db = seed_orders()
    builder = QueryBuilder(db["order"], {"page": "-3", "limit": "abc"}).paginate()
    assert (builder.page, builder.limit) == (1, 10)


def test_query_keys_cannot_override_base_filter():
    db = seed_orders()
    db["order"].insert_one({"order_id": "HIDDEN", "archived": True, "created_at": datetime(2026, 3, 1, tzinfo=timezone.utc)})
    builder = QueryBuilder(db["order"], {"archived": "true"}, base_filter={"archived": {"$ne": True}}).filter_fields()
    assert builder.count() == 0


def test_operator_keys_rejected():
    db = seed_orders()
    with pytest.raises(BadRequest):
        QueryBuilder(db["order"], {"$where": "1"}).filter_fields()
    with pytest.raises(BadRequest):
        QueryBuilder(db["order"], {"grand_total.$gt": "1"}).filter_fields()


def test_only_numeric_fields_are_coerced():
    db = seed_orders()
    query = {"order_id": "007", "grand_total": "107"}
    builder = QueryBuilder(db["order"], query, numeric_fields=["grand_total"]).filter_fields()
    assert builder.filter == {"order_id": "007", "grand_total": 107}
