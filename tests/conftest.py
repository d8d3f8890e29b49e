import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import mongomock
import pytest
import stripe
from fastapi.testclient import TestClient

import cache
import database
import settings
from database import create_document, oid
from main import app
from schemas import Category, Product

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    monkeypatch.setattr(database, "db", mongomock.MongoClient().db)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    cache.clear()
    database.ensure_indexes()
    yield database.db
    cache.clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    return {
        "x-auth-user-id": "user_abc",
        "x-auth-email": "shopper@example.com",
        "x-auth-first-name": "Sam",
        "x-auth-last-name": "Shopper",
    }


@pytest.fixture
def user(mongo):
    create_document("user", {
        "auth_id": "user_abc",
        "email": "shopper@example.com",
        "first_name": "Sam",
        "last_name": "Shopper",
        "has_premium": False,
        "ai_enabled": False,
        "trial_used": False,
    })
    return mongo["user"].find_one({"auth_id": "user_abc"})


@pytest.fixture
def other_user(mongo):
    create_document("user", {"auth_id": "user_other", "email": "other@example.com"})
    return mongo["user"].find_one({"auth_id": "user_other"})


@pytest.fixture
def category():
    return create_document("category", Category(name="Men's Fashion", slug="mens-fashion"))


@pytest.fixture
def make_product(category):
    counter = {"n": 0}

    def factory(**fields):
        counter["n"] += 1
        data = {
            "title": f"Tee {counter['n']}",
            "slug": f"tee-{counter['n']}",
            "price_cents": 2500,
            "stock": 10,
            "images": ["https://img.example.com/tee.jpg"],
            "category_id": category,
        }
        data.update(fields)
        return create_document("product", Product(**data))

    return factory


@pytest.fixture
def admin_client(client):
    client.cookies.set(settings.ADMIN_SESSION_COOKIE, "authenticated")
    return client


@pytest.fixture
def stripe_sessions(monkeypatch):
    """Replaces Stripe Checkout; every created session is recorded."""
    created = []

    def create(**kwargs):
        session = SimpleNamespace(id=f"cs_test_{len(created) + 1}", url="https://checkout.stripe.com/pay/cs_test")
        created.append(kwargs)
        return session

    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    return created


def product_doc(product_id):
    return database.db["product"].find_one({"_id": oid(product_id)})


def signed_event(event: dict, secret: str = WEBHOOK_SECRET):
    payload = json.dumps(event)
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return payload, {"stripe-signature": f"t={timestamp},v1={signature}", "content-type": "application/json"}
