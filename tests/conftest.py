"""Pytest fixtures for storefront tests."""

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import create_document, get_db
from main import app


@pytest.fixture
def db():
    """In-memory Mongo database."""
    return mongomock.MongoClient().storefront


@pytest.fixture
def client(db):
    """Test client whose routes talk to the in-memory database."""
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def category_id(db):
    return create_document(db, "category", {"name": "Eletrônicos", "icon": "plug", "color": "#123456"})


@pytest.fixture
def make_product(db, category_id):
    """Factory inserting a product directly and returning its id."""

    def _make(name="Product", price=10.0, stock=10, featured=False):
        return create_document(db, "product", {
            "name": name,
            "description": f"{name} description",
            "long_description": "",
            "image": "",
            "images": [],
            "brand": "",
            "price": price,
            "category": ObjectId(category_id),
            "stock": stock,
            "rating": 0,
            "number_reviews": 0,
            "featured": featured,
        })

    return _make


@pytest.fixture
def user_id(db):
    return create_document(db, "user", {"name": "Maria Silva", "email": "maria@example.com"})


@pytest.fixture
def order_payload(user_id):
    """Factory building an order request body."""

    def _payload(lines, **extra):
        body = {
            "order_items": [{"product": p, "quantity": q} for p, q in lines],
            "street": "Rua das Flores",
            "number": "42",
            "division": "Centro",
            "city": "São Paulo",
            "zip": "01000-000",
            "country": "BR",
            "phone": "+55 11 99999-0000",
            "observations": "Leave at the door",
            "user": user_id,
        }
        body.update(extra)
        return body

    return _payload
