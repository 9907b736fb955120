import hashlib
import hmac
import json
import os
import time
import uuid
from typing import Any, Dict, Generator

# konfiguracja PRZED importem storefront (settings czytane przy imporcie)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["CREATE_TABLES"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from storefront.data import models
from storefront.data.database import Base, engine, get_db, SessionLocal
from storefront.main import app as fastapi_app
from storefront.services import stripe_client

WEBHOOK_SECRET = "whsec_test_secret"

TestingSession = sessionmaker(bind=engine, autoflush=False)


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def _tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    def _get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def catalog(db) -> Dict[str, str]:
    """
    Product A 1000 (bez wariantow), Product B 2000 z wariantami:
    red 2500 (stan 10), blue bez ceny (stan 0), green bez ceny (stan 5).
    """
    db.add_all(
        [
            models.ProductModel(id="prod-a", slug="product-a", name="Product A", price_cents=1000),
            models.ProductModel(id="prod-b", slug="product-b", name="Product B", price_cents=2000),
            models.ProductModel(id="prod-off", slug="retired", name="Retired", price_cents=500, is_active=False),
        ]
    )
    db.flush()
    db.add_all(
        [
            models.VariantModel(id="var-red", product_id="prod-b", sku="B-RED", name="Red", price_cents=2500, stock_qty=10),
            models.VariantModel(id="var-blue", product_id="prod-b", sku="B-BLUE", name="Blue", stock_qty=0),
            models.VariantModel(id="var-green", product_id="prod-b", sku="B-GREEN", name="Green", stock_qty=5),
        ]
    )
    db.commit()
    return {
        "a": "prod-a",
        "b": "prod-b",
        "retired": "prod-off",
        "red": "var-red",
        "blue": "var-blue",
        "green": "var-green",
    }


class FakeStripe:
    """Zastepuje wywolania Stripe API (tworzenie sesji, line items)."""

    def __init__(self):
        self.created = []
        self.idempotency_keys = []
        self.line_items: Dict[str, list] = {}
        self.fail_with: Exception | None = None

    def create_checkout_session(self, params: Dict[str, Any], idempotency_key: str | None = None) -> Dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        self.created.append(params)
        self.idempotency_keys.append(idempotency_key)
        session_id = f"cs_test_{len(self.created)}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/pay/{session_id}"}

    def list_line_items(self, session_id: str):
        return self.line_items.get(session_id, [])


@pytest.fixture()
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr(stripe_client, "create_checkout_session", fake.create_checkout_session, raising=True)
    monkeypatch.setattr(stripe_client, "list_line_items", fake.list_line_items, raising=True)
    return fake


@pytest.fixture()
def make_event():
    def _make(event_type: str, obj: Dict[str, Any], event_id: str | None = None) -> Dict[str, Any]:
        return {
            "id": event_id or f"evt_{uuid.uuid4().hex[:20]}",
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }

    return _make


@pytest.fixture()
def session_object():
    """Obiekt checkout.session taki, jak w evencie checkout.session.completed."""

    def _make(
        session_id: str,
        cart_id: str | None,
        user_id: str = "anonymous",
        amount_subtotal: int = 4500,
        amount_total: int = 4500,
        payment_status: str = "paid",
        payment_intent: str = "pi_test_1",
        customer: str | None = "cus_test_1",
    ) -> Dict[str, Any]:
        metadata = {"user_id": user_id}
        if cart_id:
            metadata["cart_id"] = cart_id
        return {
            "id": session_id,
            "object": "checkout.session",
            "mode": "payment",
            "payment_status": payment_status,
            "payment_intent": payment_intent,
            "customer": customer,
            "currency": "usd",
            "amount_subtotal": amount_subtotal,
            "amount_total": amount_total,
            "total_details": {"amount_tax": 0, "amount_shipping": 0, "amount_discount": 0},
            "customer_details": {
                "email": "shopper@example.com",
                "name": "Sam Shopper",
                "address": {"line1": "1 Main St", "city": "Springfield", "postal_code": "12345", "country": "US"},
            },
            "shipping_details": {
                "name": "Sam Shopper",
                "address": {"line1": "1 Main St", "city": "Springfield", "postal_code": "12345", "country": "US"},
            },
            "metadata": metadata,
        }

    return _make


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture()
def signer():
    return sign_payload


@pytest.fixture()
def post_event(client):
    """Wysyla podpisany event na /webhooks/stripe."""

    def _post(event: Dict[str, Any]):
        payload = json.dumps(event)
        return client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": sign_payload(payload), "content-type": "application/json"},
        )

    return _post
