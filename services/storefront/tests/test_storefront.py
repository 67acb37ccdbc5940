"""
Storefront Endpoint Tests

Covers the public tenant profile, coupon validation, the shipping
notification endpoint, CORS handling and the health check.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import httpx
import pytest

from app import cache, models
from app.clients import resend_client

send_email = resend_client.send_email


@pytest.fixture
def tenant(db_session):
    tenant = models.Tenant(
        name="Festas da Maria",
        slug="festas-da-maria",
        logo_url="https://files.example.com/logo.png",
        primary_color="#ec4899",
        whatsapp_number="5511999990000",
        subscription_status="active",
    )
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture
def make_coupon(db_session):
    def _make_coupon(code="FESTA10", discount_type="percentage", discount_value="10", **overrides):
        coupon = models.Coupon(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            **overrides
        )
        db_session.add(coupon)
        db_session.commit()
        return coupon
    return _make_coupon


class TestTenantPublic:

    def test_active_tenant(self, client, db_session, tenant, cache_store):
        response = client.post("/get-tenant-public", json={"slug": "festas-da-maria"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == tenant.id
        assert data["name"] == "Festas da Maria"
        assert data["primary_color"] == "#ec4899"
        assert "whatsapp_number" not in data
        assert "owner_id" not in data
        assert cache_store[cache.tenant_key("festas-da-maria")] == data

    def test_served_from_cache(self, client, db_session, cache_store):
        cache_store[cache.tenant_key("cached-slug")] = {"id": "t1", "slug": "cached-slug"}

        response = client.post("/get-tenant-public", json={"slug": "cached-slug"})

        assert response.json() == {"data": {"id": "t1", "slug": "cached-slug"}}

    def test_inactive_tenant(self, client, db_session, tenant):
        tenant.is_active = False
        db_session.commit()

        response = client.post("/get-tenant-public", json={"slug": "festas-da-maria"})

        assert response.status_code == 404
        assert response.json() == {"error": "Tenant não encontrado"}

    def test_missing_slug(self, client, db_session):
        response = client.post("/get-tenant-public", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Slug inválido"}


class TestCouponValidation:

    def test_percentage_coupon(self, client, db_session, make_coupon):
        make_coupon()

        response = client.post("/validate-coupon", json={"code": "festa10", "order_total": 200})

        data = response.json()
        assert data["valid"] is True
        assert data["coupon"]["code"] == "FESTA10"
        assert data["discount"] == 20.0

    def test_fixed_coupon_is_capped_at_total(self, client, db_session, make_coupon):
        make_coupon(code="DESCONTO50", discount_type="fixed", discount_value="50")

        response = client.post("/validate-coupon", json={"code": "DESCONTO50", "order_total": 30})

        assert response.json()["discount"] == 30.0

    def test_unknown_coupon(self, client, db_session):
        response = client.post("/validate-coupon", json={"code": "NADA", "order_total": 100})

        assert response.json() == {"valid": False, "error": "Cupom não encontrado"}

    def test_inactive_coupon(self, client, db_session, make_coupon):
        make_coupon(is_active=False)

        response = client.post("/validate-coupon", json={"code": "FESTA10", "order_total": 100})

        assert response.json()["error"] == "Cupom não encontrado"

    @pytest.mark.parametrize("overrides,message", [
        ({"expires_at": datetime.utcnow() - timedelta(days=1)}, "Cupom expirado"),
        ({"starts_at": datetime.utcnow() + timedelta(days=1)}, "Cupom ainda não está ativo"),
        ({"max_uses": 5, "current_uses": 5}, "Cupom esgotado"),
        ({"min_order_value": Decimal("150")}, "Valor mínimo do pedido: R$ 150,00"),
    ])
    def test_rejected_coupons(self, client, db_session, make_coupon, overrides, message):
        make_coupon(**overrides)

        response = client.post("/validate-coupon", json={"code": "FESTA10", "order_total": 100})

        assert response.json() == {"valid": False, "error": message}

    def test_coupon_of_other_tenant(self, client, db_session, make_coupon, tenant):
        make_coupon(tenant_id=tenant.id)

        response = client.post("/validate-coupon", json={"code": "FESTA10", "tenant_id": "other-tenant",
                                                          "order_total": 100})

        assert response.json()["valid"] is False

    def test_invalid_request(self, client, db_session):
        response = client.post("/validate-coupon", json={"code": "FESTA10"})

        assert response.status_code == 400
        assert response.json()["valid"] is False


class TestShippingNotification:

    def test_sends_tracking_email(self, client, sent_emails):
        response = client.post("/send-shipping-notification", json={
            "customer_name": "Ana Silva",
            "customer_email": "ana@example.com",
            "order_id": "3f2b8c1e-0000-0000-0000-000000000000",
            "tracking_code": "AA123456789BR",
            "tracking_url": "https://rastreamento.correios.com.br/?objeto=AA123456789BR",
        })

        assert response.status_code == 200
        assert response.json() == {"success": True, "skipped": False, "data": {"id": "email_1"}}
        assert sent_emails[0]["subject"].endswith("Pedido #3f2b8c1e")
        assert "https://rastreamento.correios.com.br/?objeto=AA123456789BR" in sent_emails[0]["html"]

    def test_reports_skipped_email_without_api_key(self, client, monkeypatch):
        monkeypatch.setattr(resend_client, "send_email", send_email)

        response = client.post("/send-shipping-notification", json={
            "customer_email": "ana@example.com",
            "tracking_code": "AA123456789BR",
        })

        assert response.status_code == 200
        assert response.json() == {"success": True, "skipped": True, "data": None}

    def test_missing_fields(self, client, sent_emails):
        response = client.post("/send-shipping-notification", json={"customer_name": "Ana"})

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert sent_emails == []

    def test_send_failure(self, client, monkeypatch):
        async def failing_send_email(to, subject, html):
            raise httpx.ConnectError("Resend unreachable")

        monkeypatch.setattr(resend_client, "send_email", failing_send_email)

        response = client.post("/send-shipping-notification", json={
            "customer_email": "ana@example.com",
            "tracking_code": "AA123456789BR",
        })

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Resend unreachable"}


class TestHttpSurface:

    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"status": "healthy"}

    def test_plain_options_request(self, client):
        response = client.options("/create-product-checkout")

        assert response.status_code == 204
        assert response.content == b""

    def test_cors_preflight(self, client):
        response = client.options("/stripe-webhook", headers={
            "Origin": "https://festas.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type, stripe-signature",
        })

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        allowed = response.headers["access-control-allow-headers"].lower()
        assert "stripe-signature" in allowed
        assert "asaas-access-token" in allowed
