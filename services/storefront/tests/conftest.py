"""
Pytest fixtures for Storefront service tests.

Provides an in-memory database recreated per test, the API test client and
recording fakes for the outbound clients, so no test touches the network.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app import cache, config, models
from app.clients import resend_client, stripe_client
from app.database import Base, SessionLocal, engine
from app.main import app


@pytest.fixture(autouse=True)
def offline_config(monkeypatch):
    """Start every test without provider credentials."""
    monkeypatch.setattr(config, "PAYMENT_PROVIDER", "stripe")
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "")
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "")
    monkeypatch.setattr(config, "ASAAS_API_KEY", "")
    monkeypatch.setattr(config, "ASAAS_WEBHOOK_TOKEN", "")
    monkeypatch.setattr(config, "MELHOR_ENVIO_TOKEN", "")
    monkeypatch.setattr(config, "RESEND_API_KEY", "")
    monkeypatch.setattr(config, "FALLBACK_ADMIN_EMAIL", "admin@storefront.test")


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Record every email instead of calling Resend."""
    sent = []

    async def fake_send_email(to, subject, html):
        sent.append({"to": list(to), "subject": subject, "html": html})
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(resend_client, "send_email", fake_send_email)
    return sent


@pytest.fixture(autouse=True)
def cache_store(monkeypatch):
    """Dictionary standing in for Redis."""
    store = {}

    def fake_set_cache(key, value, ttl=300):
        store[key] = value
        return True

    monkeypatch.setattr(cache, "get_cache", lambda key: store.get(key))
    monkeypatch.setattr(cache, "set_cache", fake_set_cache)
    return store


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def stripe_calls(monkeypatch):
    """Fake Stripe customer lookup and checkout session creation."""
    calls = {"customers": [], "sessions": []}

    def fake_get_or_create_customer(name, email, phone=None):
        calls["customers"].append({"name": name, "email": email, "phone": phone})
        return "cus_test_1"

    def fake_create_checkout_session(order_id, items, customer_id, origin, tenant_id=None):
        calls["sessions"].append({
            "order_id": order_id,
            "items": items,
            "customer_id": customer_id,
            "origin": origin,
            "tenant_id": tenant_id,
        })
        return {"id": "cs_test_1", "url": "https://checkout.stripe.com/c/pay/cs_test_1"}

    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(stripe_client, "get_or_create_customer", fake_get_or_create_customer)
    monkeypatch.setattr(stripe_client, "create_checkout_session", fake_create_checkout_session)
    return calls


@pytest.fixture
def make_order(db_session):
    """Factory creating an order with one digital and one physical item."""
    def _make_order(**overrides):
        now = datetime.utcnow()
        fields = {
            "customer_name": "Ana Silva",
            "customer_email": "ana@example.com",
            "status": "pending",
            "total_amount": Decimal("129.80"),
            "payment_provider": "asaas",
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        order = models.Order(**fields)
        order.items = [
            models.OrderItem(
                product_id="p1",
                product_name="Convite Digital",
                quantity=1,
                unit_price=Decimal("49.90"),
                total_price=Decimal("49.90"),
                is_digital=True,
                customization_status="pending_info",
                customization_deadline=now + timedelta(days=3),
            ),
            models.OrderItem(
                product_id="p2",
                product_name="Kit Festa Balões",
                quantity=2,
                unit_price=Decimal("39.95"),
                total_price=Decimal("79.90"),
                is_digital=False,
            ),
        ]
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order
    return _make_order


def make_token(role="admin", email="admin@storefront.test", tenant_id=None, user_id="1"):
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": datetime.utcnow() + timedelta(minutes=30),
    }
    if tenant_id:
        payload["tenant_id"] = tenant_id
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {make_token(role='customer', email='ana@example.com')}"}


@pytest.fixture
def auth_headers():
    """Factory for bearer headers with custom claims."""
    def _auth_headers(**claims):
        return {"Authorization": f"Bearer {make_token(**claims)}"}
    return _auth_headers
