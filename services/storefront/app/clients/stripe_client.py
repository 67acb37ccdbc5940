"""
Stripe client for hosted Checkout Sessions, tenant subscriptions and webhook
signature checks.

Uses the official stripe SDK; every SDK error is re-raised as
PaymentProviderError so routes never see stripe exceptions.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

import stripe

from .. import config
from ..exceptions import PaymentProviderError, SignatureError

logger = logging.getLogger(__name__)

CURRENCY = "brl"
LOCALE = "pt-BR"
SIGNATURE_TOLERANCE = 300  # seconds


def to_cents(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_or_create_customer(name: str, email: str, phone: Optional[str] = None) -> str:
    """
    Find the Stripe customer with this email, creating one when absent.

    Returns:
        Stripe customer id
    """
    if not config.STRIPE_SECRET_KEY:
        raise PaymentProviderError("Stripe key not configured", status_code=500)

    try:
        customers = stripe.Customer.list(api_key=config.STRIPE_SECRET_KEY, email=email, limit=1)
        if customers.data:
            return customers.data[0].id
        customer = stripe.Customer.create(api_key=config.STRIPE_SECRET_KEY, name=name, email=email, phone=phone)
    except stripe.StripeError as e:
        logger.error(f"Stripe customer lookup failed for {email}: {e}")
        raise PaymentProviderError(e.user_message or str(e))

    logger.info(f"Stripe customer {customer.id} created for {email}")
    return customer.id


def create_checkout_session(
    order_id: str,
    items: List[dict],
    customer_id: str,
    origin: str,
    tenant_id: Optional[str] = None,
) -> dict:
    """
    Create a Stripe Checkout Session for an order.

    Args:
        order_id: Order identifier, stored in the session and payment intent metadata
        items: Line items as {"name", "price", "quantity"}
        customer_id: Stripe customer the session is charged to
        origin: Storefront origin used for the success/cancel redirects
        tenant_id: Owning tenant (optional)

    Returns:
        {"id": session id, "url": hosted checkout URL}

    Raises:
        PaymentProviderError: If Stripe is not configured or rejects the request
    """
    if not config.STRIPE_SECRET_KEY:
        raise PaymentProviderError("Stripe key not configured", status_code=500)

    line_items = [
        {
            "price_data": {
                "currency": CURRENCY,
                "product_data": {"name": item["name"]},
                "unit_amount": to_cents(item["price"]),
            },
            "quantity": item["quantity"],
        }
        for item in items
    ]

    try:
        session = stripe.checkout.Session.create(
            api_key=config.STRIPE_SECRET_KEY,
            line_items=line_items,
            mode="payment",
            success_url=f"{origin}/pedido/sucesso?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/checkout?canceled=true",
            customer=customer_id,
            locale=LOCALE,
            metadata={"order_id": order_id, "tenant_id": tenant_id or ""},
            payment_intent_data={"metadata": {"order_id": order_id}},
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout session failed for order {order_id}: {e}")
        raise PaymentProviderError(e.user_message or str(e))

    logger.info(f"Stripe checkout session {session.id} created for order {order_id}")
    return {"id": session.id, "url": session.url}


def verify_signature(payload: bytes, signature: str) -> None:
    """
    Verify a Stripe-Signature header against the configured webhook secret.

    Raises:
        SignatureError: If the signature does not match
    """
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            signature,
            config.STRIPE_WEBHOOK_SECRET,
            tolerance=SIGNATURE_TOLERANCE,
        )
    except stripe.SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise SignatureError("Invalid signature")


def _period_end(subscription) -> datetime:
    # Newer API versions report the billing period on the subscription item
    item = subscription["items"]["data"][0]
    try:
        timestamp = item["current_period_end"]
    except KeyError:
        timestamp = subscription["current_period_end"]
    return datetime.utcfromtimestamp(timestamp)


def plan_for_price(price_id: Optional[str]) -> Optional[str]:
    if price_id and price_id == config.STRIPE_MONTHLY_PRICE_ID:
        return "monthly"
    if price_id and price_id == config.STRIPE_YEARLY_PRICE_ID:
        return "yearly"
    return None


def get_subscription(email: str) -> dict:
    """
    Subscription state of the Stripe customer with this email.

    Returns:
        {"status", "subscription_end", "plan"}. status is "active" with an
        active subscription, "expired" when the customer only has past ones
        and "trial" when there is no customer or no subscription at all.

    Raises:
        PaymentProviderError: If Stripe is not configured or unreachable
    """
    if not config.STRIPE_SECRET_KEY:
        raise PaymentProviderError("STRIPE_SECRET_KEY is not set", status_code=500)

    try:
        customers = stripe.Customer.list(api_key=config.STRIPE_SECRET_KEY, email=email, limit=1)
        if not customers.data:
            logger.info(f"No Stripe customer for {email}")
            return {"status": "trial", "subscription_end": None, "plan": None}

        customer_id = customers.data[0]["id"]
        active = stripe.Subscription.list(
            api_key=config.STRIPE_SECRET_KEY, customer=customer_id, status="active", limit=1
        )
        if active.data:
            subscription = active.data[0]
            price_id = subscription["items"]["data"][0]["price"]["id"]
            logger.info(f"Active subscription {subscription['id']} for customer {customer_id}")
            return {
                "status": "active",
                "subscription_end": _period_end(subscription),
                "plan": plan_for_price(price_id),
            }

        # "all" includes canceled subscriptions
        past = stripe.Subscription.list(api_key=config.STRIPE_SECRET_KEY, customer=customer_id, status="all", limit=1)
    except stripe.StripeError as e:
        logger.error(f"Stripe subscription lookup failed for {email}: {e}")
        raise PaymentProviderError(e.user_message or str(e))

    return {"status": "expired" if past.data else "trial", "subscription_end": None, "plan": None}
