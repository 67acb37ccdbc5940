"""
Tenant Subscription Tests

Covers the Stripe subscription lookup and the /check-subscription endpoint
that stores the result on the caller's tenants.
"""
from datetime import datetime
from types import SimpleNamespace

import pytest
import stripe

from app import config, models
from app.clients import stripe_client
from app.exceptions import PaymentProviderError


def stripe_list(*objects):
    return SimpleNamespace(data=list(objects))


def active_subscription(price_id, period_end=1718409600):
    return {
        "id": "sub_1",
        "items": {"data": [{"price": {"id": price_id}, "current_period_end": period_end}]},
    }


@pytest.fixture
def stripe_api(monkeypatch):
    """Fake Stripe customer and subscription listing."""
    state = {"customers": [], "active": [], "all": [], "requests": []}

    def fake_customer_list(**params):
        state["requests"].append(("customers", params))
        return stripe_list(*state["customers"])

    def fake_subscription_list(**params):
        state["requests"].append(("subscriptions", params))
        return stripe_list(*state[params["status"]])

    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(config, "STRIPE_MONTHLY_PRICE_ID", "price_monthly")
    monkeypatch.setattr(config, "STRIPE_YEARLY_PRICE_ID", "price_yearly")
    monkeypatch.setattr(stripe.Customer, "list", fake_customer_list)
    monkeypatch.setattr(stripe.Subscription, "list", fake_subscription_list)
    return state


class TestGetSubscription:

    def test_no_customer_is_trial(self, stripe_api):
        assert stripe_client.get_subscription("maria@festas.example.com") == {
            "status": "trial",
            "subscription_end": None,
            "plan": None,
        }
        assert stripe_api["requests"] == [
            ("customers", {"api_key": "sk_test_123", "email": "maria@festas.example.com", "limit": 1})
        ]

    def test_active_yearly_subscription(self, stripe_api):
        stripe_api["customers"] = [{"id": "cus_1"}]
        stripe_api["active"] = [active_subscription("price_yearly")]

        subscription = stripe_client.get_subscription("maria@festas.example.com")

        assert subscription == {
            "status": "active",
            "subscription_end": datetime(2024, 6, 15, 0, 0),
            "plan": "yearly",
        }

    def test_period_end_on_the_subscription(self, stripe_api):
        stripe_api["customers"] = [{"id": "cus_1"}]
        stripe_api["active"] = [{
            "id": "sub_1",
            "current_period_end": 1718409600,
            "items": {"data": [{"price": {"id": "price_other"}}]},
        }]

        subscription = stripe_client.get_subscription("maria@festas.example.com")

        assert subscription["subscription_end"] == datetime(2024, 6, 15, 0, 0)
        assert subscription["plan"] is None

    def test_only_past_subscriptions_is_expired(self, stripe_api):
        stripe_api["customers"] = [{"id": "cus_1"}]
        stripe_api["all"] = [{"id": "sub_old", "status": "canceled"}]

        assert stripe_client.get_subscription("maria@festas.example.com")["status"] == "expired"

    def test_customer_without_subscriptions_is_trial(self, stripe_api):
        stripe_api["customers"] = [{"id": "cus_1"}]

        assert stripe_client.get_subscription("maria@festas.example.com")["status"] == "trial"

    def test_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "")

        with pytest.raises(PaymentProviderError) as exc_info:
            stripe_client.get_subscription("maria@festas.example.com")
        assert exc_info.value.message == "STRIPE_SECRET_KEY is not set"


class TestCheckSubscriptionEndpoint:

    @pytest.fixture
    def owned_tenant(self, db_session):
        owner = models.User(id="1", name="Maria", email="maria@festas.example.com")
        db_session.add(owner)
        db_session.commit()
        tenant = models.Tenant(name="Festas da Maria", slug="festas-da-maria", owner_id=owner.id,
                               subscription_status="trial")
        db_session.add(tenant)
        db_session.commit()
        return tenant

    def test_active_subscription_is_stored(self, client, db_session, owned_tenant, stripe_api, auth_headers):
        stripe_api["customers"] = [{"id": "cus_1"}]
        stripe_api["active"] = [active_subscription("price_monthly")]

        response = client.post(
            "/check-subscription",
            headers=auth_headers(role="owner", email="maria@festas.example.com", user_id="1"),
        )

        assert response.status_code == 200
        assert response.json() == {
            "subscribed": True,
            "status": "active",
            "subscription_end": "2024-06-15T00:00:00",
            "plan": "monthly",
        }
        db_session.expire_all()
        tenant = db_session.get(models.Tenant, owned_tenant.id)
        assert tenant.subscription_status == "active"
        assert tenant.subscription_ends_at == datetime(2024, 6, 15, 0, 0)

    def test_expired_subscription_is_stored(self, client, db_session, owned_tenant, stripe_api, auth_headers):
        owned_tenant.subscription_status = "active"
        owned_tenant.subscription_ends_at = datetime(2024, 1, 1)
        db_session.commit()
        stripe_api["customers"] = [{"id": "cus_1"}]
        stripe_api["all"] = [{"id": "sub_old"}]

        response = client.post("/check-subscription", headers=auth_headers(user_id="1"))

        assert response.json() == {
            "subscribed": False,
            "status": "expired",
            "subscription_end": None,
            "plan": None,
        }
        db_session.expire_all()
        tenant = db_session.get(models.Tenant, owned_tenant.id)
        assert tenant.subscription_status == "expired"
        assert tenant.subscription_ends_at is None

    def test_missing_secret_key(self, client, db_session, owned_tenant, auth_headers):
        response = client.post("/check-subscription", headers=auth_headers(user_id="1"))

        assert response.status_code == 500
        assert response.json() == {"error": "STRIPE_SECRET_KEY is not set"}
        db_session.expire_all()
        assert db_session.get(models.Tenant, owned_tenant.id).subscription_status == "trial"

    def test_requires_token(self, client, db_session):
        assert client.post("/check-subscription").status_code in (401, 403)
