"""
Checkout Tests

Covers order creation for a cart, the hosted payment page request for each
provider and the failures that leave an order pending.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app import config, models
from app.clients import asaas_client, stripe_client
from app.exceptions import PaymentProviderError

DIGITAL_INVITATION = {
    "id": "p1",
    "name": "Convite Digital",
    "price": 49.90,
    "quantity": 1,
    "is_digital": True,
}

CUSTOMER = {"name": "Ana Silva", "email": "ana@example.com"}


def all_orders(db_session):
    db_session.expire_all()
    return db_session.query(models.Order).all()


class TestStripeCheckout:

    def test_digital_invitation_checkout(self, client, db_session, stripe_calls):
        """One digital item: pending order, customization window of three days."""
        before = datetime.utcnow()
        response = client.post("/create-product-checkout", json={
            "items": [DIGITAL_INVITATION],
            "customer": CUSTOMER,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["url"] == "https://checkout.stripe.com/c/pay/cs_test_1"

        orders = all_orders(db_session)
        assert len(orders) == 1
        order = orders[0]
        assert data["order_id"] == order.id
        assert order.status == "pending"
        assert order.total_amount == Decimal("49.90")
        assert order.payment_provider == "stripe"
        assert order.payment_charge_id == "cs_test_1"

        assert len(order.items) == 1
        item = order.items[0]
        assert item.customization_status == "pending_info"
        expected_deadline = before + timedelta(days=3)
        assert abs((item.customization_deadline - expected_deadline).total_seconds()) < 60

    def test_session_references_order_and_customer(self, client, db_session, stripe_calls):
        response = client.post("/create-product-checkout", json={
            "items": [DIGITAL_INVITATION, {"id": "p2", "name": "Kit Festa", "price": 39.95, "quantity": 2}],
            "customer": dict(CUSTOMER, phone="11999990000"),
            "tenant_id": "tenant-1",
        }, headers={"Origin": "https://festas.example.com"})

        assert response.status_code == 200
        assert stripe_calls["customers"] == [{"name": "Ana Silva", "email": "ana@example.com", "phone": "11999990000"}]
        session = stripe_calls["sessions"][0]
        assert session["order_id"] == response.json()["order_id"]
        assert session["customer_id"] == "cus_test_1"
        assert session["origin"] == "https://festas.example.com"
        assert session["tenant_id"] == "tenant-1"
        assert [item["quantity"] for item in session["items"]] == [1, 2]

        order = all_orders(db_session)[0]
        assert order.total_amount == Decimal("129.80")
        physical = [item for item in order.items if not item.is_digital][0]
        assert physical.customization_status is None
        assert physical.customization_deadline is None

    def test_coupon_code_is_recorded_without_changing_total(self, client, db_session, stripe_calls):
        response = client.post("/create-product-checkout", json={
            "items": [DIGITAL_INVITATION],
            "customer": CUSTOMER,
            "coupon": {"code": "festa10", "discount_type": "percentage", "discount_value": 10},
        })

        assert response.status_code == 200
        order = all_orders(db_session)[0]
        assert order.coupon_code == "FESTA10"
        assert order.total_amount == Decimal("49.90")

    def test_provider_error_leaves_order_pending(self, client, db_session, stripe_calls, monkeypatch):
        def declined(*args, **kwargs):
            raise PaymentProviderError("Your card was declined.")

        monkeypatch.setattr(stripe_client, "create_checkout_session", declined)

        response = client.post("/create-product-checkout", json={"items": [DIGITAL_INVITATION], "customer": CUSTOMER})

        assert response.status_code == 400
        assert response.json() == {"error": "Your card was declined."}
        orders = all_orders(db_session)
        assert len(orders) == 1
        assert orders[0].status == "pending"
        assert orders[0].payment_charge_id is None

    def test_missing_stripe_key(self, client, db_session):
        response = client.post("/create-product-checkout", json={"items": [DIGITAL_INVITATION], "customer": CUSTOMER})

        assert response.status_code == 400
        assert response.json() == {"error": "Stripe key not configured"}


class TestCheckoutValidation:

    @pytest.mark.parametrize("payload,message", [
        ({"items": [], "customer": CUSTOMER}, "No items in cart"),
        ({"items": [DIGITAL_INVITATION], "customer": {"email": "ana@example.com"}}, "Customer name and email required"),
        ({"items": [DIGITAL_INVITATION], "customer": {"name": "Ana Silva"}}, "Customer name and email required"),
        ({"items": [DIGITAL_INVITATION], "customer": {"name": "Ana", "email": "ana"}}, "Invalid customer email"),
    ])
    def test_rejected_carts(self, client, db_session, stripe_calls, payload, message):
        response = client.post("/create-product-checkout", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": message}
        assert all_orders(db_session) == []
        assert stripe_calls["sessions"] == []

    def test_non_positive_quantity(self, client, db_session, stripe_calls):
        item = dict(DIGITAL_INVITATION, quantity=0)
        response = client.post("/create-product-checkout", json={"items": [item], "customer": CUSTOMER})

        assert response.status_code == 400
        assert "error" in response.json()
        assert all_orders(db_session) == []

    def test_invalid_json(self, client, db_session):
        response = client.post(
            "/create-product-checkout",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON body"}


class TestAsaasCheckout:

    def test_invoice_created_for_order(self, client, db_session, monkeypatch):
        payments = []

        async def fake_get_or_create_customer(name, email, phone=None, cpf_cnpj=None):
            return {"id": "cus_asaas_1", "name": name, "email": email}

        async def fake_create_payment(customer_id, order_id, value, description):
            payments.append({"customer_id": customer_id, "order_id": order_id, "value": value,
                             "description": description})
            return {"id": "pay_123", "url": "https://www.asaas.com/i/pay_123"}

        monkeypatch.setattr(config, "PAYMENT_PROVIDER", "asaas")
        monkeypatch.setattr(asaas_client, "get_or_create_customer", fake_get_or_create_customer)
        monkeypatch.setattr(asaas_client, "create_payment", fake_create_payment)

        response = client.post("/create-product-checkout", json={
            "items": [DIGITAL_INVITATION],
            "customer": dict(CUSTOMER, cpfCnpj="12345678909"),
        })

        assert response.status_code == 200
        assert response.json()["url"] == "https://www.asaas.com/i/pay_123"
        order = all_orders(db_session)[0]
        assert order.payment_provider == "asaas"
        assert order.payment_charge_id == "pay_123"
        assert payments[0]["order_id"] == order.id
        assert payments[0]["customer_id"] == "cus_asaas_1"
        assert payments[0]["value"] == Decimal("49.90")
        assert "1x Convite Digital" in payments[0]["description"]

    def test_missing_asaas_key(self, client, db_session, monkeypatch):
        monkeypatch.setattr(config, "PAYMENT_PROVIDER", "asaas")

        response = client.post("/create-product-checkout", json={"items": [DIGITAL_INVITATION], "customer": CUSTOMER})

        assert response.status_code == 400
        assert response.json() == {"error": "Asaas key not configured"}
        assert all_orders(db_session)[0].status == "pending"

    def test_unknown_provider(self, client, db_session, monkeypatch):
        monkeypatch.setattr(config, "PAYMENT_PROVIDER", "paypal")

        response = client.post("/create-product-checkout", json={"items": [DIGITAL_INVITATION], "customer": CUSTOMER})

        assert response.status_code == 400
        assert response.json() == {"error": "Unknown payment provider: paypal"}
        assert all_orders(db_session) == []
