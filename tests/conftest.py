from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

import uploads
from database import get_db
from main import app
from mongo_double import FakeDatabase
from security import create_access_token, hash_password

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def uploaded(monkeypatch):
    """Replace the Cloudinary upload; records (filename, public_id) per call."""
    calls = []

    def fake_upload(file, public_id):
        calls.append((file.filename, public_id))
        return f"https://res.cloudinary.com/demo/prescriptions/{public_id}.pdf"

    monkeypatch.setattr(uploads, "upload_prescription", fake_upload)
    return calls


@pytest.fixture
def make_user(db):
    def _make_user(email="customer@example.com", role="CUSTOMER", **overrides):
        doc = {
            "name": "Test User",
            "email": email,
            "password": PASSWORD_HASH,
            "role": role,
            "status": "ACTIVE",
            "is_blocked": False,
            "is_deleted": False,
            "created_at": datetime.now(timezone.utc),
        }
        doc.update(overrides)
        db["user"].insert_one(doc)
        return doc

    return _make_user


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role="ADMIN", name="Admin")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def make_product(db):
    def _make_product(**overrides):
        doc = {
            "name": "Paracetamol 500mg",
            "slug": "med-abc123",
            "description": "Pain and fever relief",
            "category": "Pain Relief",
            "price": 100.0,
            "discount": 0,
            "discount_type": "PERCENTAGE",
            "stock": 20,
            "in_stock": True,
            "requires_prescription": False,
            "manufacturer": "Acme Pharma",
            "expiry_date": (datetime.now(timezone.utc).date() + timedelta(days=365)).isoformat(),
            "dosage": "500mg",
            "is_deleted": False,
            "created_at": datetime.now(timezone.utc),
        }
        doc.update(overrides)
        doc["in_stock"] = doc["stock"] > 0
        db["product"].insert_one(doc)
        return doc

    return _make_product
