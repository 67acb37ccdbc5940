"""
Checkout: turns a cart into a pending order and a hosted payment page.

The order is committed before the provider is called. If the provider call
fails, the order stays "pending" and is never fulfilled; there is no
compensating cleanup.
"""
import logging

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from . import config, crud, schemas, validators
from .clients import asaas_client, stripe_client
from .exceptions import PaymentProviderError, ValidationError

logger = logging.getLogger(__name__)

PAYMENT_PROVIDERS = ("stripe", "asaas")


async def _charge_with_stripe(order, checkout: schemas.CheckoutRequest, origin: str) -> dict:
    customer = checkout.customer
    customer_id = await run_in_threadpool(
        stripe_client.get_or_create_customer, customer.name, customer.email, customer.phone
    )
    items = [{"name": item.name, "price": item.price, "quantity": item.quantity} for item in checkout.items]
    return await run_in_threadpool(
        stripe_client.create_checkout_session,
        order.id,
        items,
        customer_id,
        origin,
        checkout.tenant_id,
    )


async def _charge_with_asaas(order, checkout: schemas.CheckoutRequest) -> dict:
    customer = checkout.customer
    asaas_customer = await asaas_client.get_or_create_customer(
        customer.name, customer.email, customer.phone, customer.cpfCnpj
    )
    description = f"Pedido #{order.id[:8]}: " + ", ".join(
        f"{item.quantity}x {item.name}" for item in checkout.items
    )
    return await asaas_client.create_payment(asaas_customer["id"], order.id, order.total_amount, description[:500])


async def create_product_checkout(db: Session, checkout: schemas.CheckoutRequest, origin: str) -> dict:
    """
    Create the order for a cart and request a hosted payment page for it.

    Args:
        db: Database session
        checkout: Cart, customer, shipping and tenant data
        origin: Storefront origin used for payment redirects

    Returns:
        {"url": hosted payment page, "order_id": created order id}

    Raises:
        ValidationError: Empty cart or missing customer name/email
        PersistenceError: The order could not be stored
        PaymentProviderError: The provider rejected the charge
    """
    is_valid, error_message = validators.validate_checkout(checkout.items, checkout.customer)
    if not is_valid:
        raise ValidationError(error_message)

    provider = (config.PAYMENT_PROVIDER or "stripe").lower()
    if provider not in PAYMENT_PROVIDERS:
        raise PaymentProviderError(f"Unknown payment provider: {provider}", status_code=500)

    order = crud.create_order(db, checkout, payment_provider=provider)

    if provider == "asaas":
        charge = await _charge_with_asaas(order, checkout)
    else:
        charge = await _charge_with_stripe(order, checkout, origin)

    crud.update_order(db, order, payment_charge_id=charge["id"])
    logger.info(f"Order {order.id} awaiting payment via {provider} ({charge['id']})")
    return {"url": charge["url"], "order_id": order.id}
