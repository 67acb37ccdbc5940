"""
Inbound webhook processing for payment providers and the shipping carrier.

Providers deliver at least once. Re-applying a status is harmless, but side
effects are not deduplicated: a redelivered payment confirmation appends
another tracking event and sends the emails again.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import crud, models, notifications, schemas, validators
from .exceptions import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

STRIPE_EVENT_STATUS = {
    "checkout.session.completed": "paid",
    "checkout.session.expired": "canceled",
    "payment_intent.payment_failed": "canceled",
    "charge.refunded": "canceled",
}

ASAAS_EVENT_STATUS = {
    "PAYMENT_CONFIRMED": "paid",
    "PAYMENT_RECEIVED": "paid",
    "PAYMENT_OVERDUE": "canceled",
    "PAYMENT_DELETED": "canceled",
    "PAYMENT_REFUNDED": "canceled",
}

CARRIER_EVENT_STATUS = {
    "posted": "shipped",
    "in_transit": "shipped",
    "out_for_delivery": "shipped",
    "delivered": "delivered",
    "returned": "canceled",
    "canceled": "canceled",
}

CARRIER_EVENT_DESCRIPTIONS = {
    "posted": "Objeto postado",
    "in_transit": "Em trânsito",
    "out_for_delivery": "Saiu para entrega",
    "delivered": "Entregue ao destinatário",
    "returned": "Devolvido ao remetente",
    "canceled": "Envio cancelado",
}


def apply_status(db: Session, order: models.Order, new_status: str, **fields) -> models.Order:
    """
    Move an order to new_status, together with any extra column updates.

    Transitions outside the lifecycle table are still applied, since the
    provider or carrier reports what actually happened, but they are logged.
    """
    old_status = order.status
    if new_status != old_status:
        is_valid, error_message = validators.validate_order_status_transition(old_status, new_status)
        if not is_valid:
            logger.warning(f"Order {order.id}: {error_message} (applied anyway)")
        fields["status"] = new_status
    if not fields:
        return order
    order = crud.update_order(db, order, **fields)
    if new_status != old_status:
        logger.info(f"Order {order.id} status changed from '{old_status}' to '{new_status}'")
    return order


async def _notify_payment_confirmed(db: Session, order: models.Order, items) -> None:
    try:
        await notifications.send_order_confirmation_email(order, items)
    except Exception as e:
        logger.error(f"Error sending confirmation email for order {order.id}: {e}")

    admin_email = crud.resolve_admin_email(db, order.tenant_id)
    try:
        await notifications.send_admin_notification_email(order, items, admin_email)
    except Exception as e:
        logger.error(f"Error sending admin email for order {order.id}: {e}")


def _verify_reviews(db: Session, order: models.Order, items) -> None:
    for item in items:
        if not item.product_id:
            continue
        try:
            crud.mark_reviews_verified(db, item.product_id, order.customer_email)
        except PersistenceError:
            logger.error(f"Could not mark reviews verified for product {item.product_id}")
    logger.info(f"Marked reviews as verified purchases for: {order.customer_email}")


async def confirm_payment(db: Session, order: models.Order, payment_intent_id: Optional[str],
                          description: str) -> models.Order:
    """
    Record a confirmed payment and run its follow-ups.

    Marks the order paid, appends a "payment_confirmed" tracking event, emails
    the customer and the tenant admin, and flags the customer's reviews of the
    purchased products as verified. Emails and review updates are best-effort.
    """
    fields = {"payment_intent_id": payment_intent_id} if payment_intent_id else {}
    order = apply_status(db, order, "paid", **fields)

    crud.add_tracking_event(db, order.id, "payment_confirmed", description)

    items = crud.get_order_items(db, order.id)
    await _notify_payment_confirmed(db, order, items)
    _verify_reviews(db, order, items)
    return order


def _stripe_order(db: Session, event_type: str, obj: dict) -> Optional[models.Order]:
    if event_type.startswith("checkout.session."):
        order_id = (obj.get("metadata") or {}).get("order_id")
        return crud.get_order(db, order_id) if order_id else None

    if event_type.startswith("payment_intent."):
        payment_intent_id = obj.get("id")
    else:
        payment_intent_id = obj.get("payment_intent")
    if not payment_intent_id:
        return None
    return crud.get_order_by_payment_intent(db, payment_intent_id)


async def handle_stripe_event(db: Session, event: dict) -> None:
    """
    Apply a Stripe webhook event to its order.

    Args:
        db: Database session
        event: Parsed Stripe event ({"type", "data": {"object"}})
    """
    event_type = event.get("type") or ""
    logger.info(f"Received Stripe webhook event: {event_type}")

    new_status = STRIPE_EVENT_STATUS.get(event_type)
    if new_status is None:
        logger.info(f"Unhandled Stripe event: {event_type}")
        return

    obj = (event.get("data") or {}).get("object") or {}
    order = _stripe_order(db, event_type, obj)
    if order is None:
        logger.info(f"No order found for Stripe event {event_type}, ignoring")
        return

    if new_status == "paid":
        await confirm_payment(db, order, obj.get("payment_intent"), "Pagamento confirmado via Stripe")
    else:
        logger.info(f"Stripe {event_type} for order {order.id}")
        apply_status(db, order, new_status)


async def handle_asaas_event(db: Session, body: dict) -> None:
    """
    Apply an Asaas webhook event to the order named by payment.externalReference.
    """
    event = body.get("event") or ""
    payment = body.get("payment") or {}
    logger.info(f"Received Asaas webhook event: {event}")

    order_id = payment.get("externalReference")
    if not order_id:
        logger.info("No payment or externalReference in webhook, ignoring")
        return

    new_status = ASAAS_EVENT_STATUS.get(event)
    if new_status is None:
        logger.info(f"Unhandled Asaas event: {event}")
        return

    order = crud.get_order(db, order_id)
    if order is None:
        logger.info(f"Order {order_id} not found for Asaas event {event}, ignoring")
        return

    if new_status == "paid":
        billing_type = payment.get("billingType") or "UNDEFINED"
        await confirm_payment(db, order, payment.get("id"), f"Pagamento confirmado via Asaas ({billing_type})")
    else:
        logger.info(f"Payment {event} for order {order.id}")
        apply_status(db, order, new_status)


def carrier_event_description(event: str) -> str:
    return CARRIER_EVENT_DESCRIPTIONS.get(event, event)


async def handle_melhor_envio_event(db: Session, payload: schemas.MelhorEnvioWebhook) -> str:
    """
    Apply a carrier tracking callback to the order with that tracking code.

    Unknown tracking codes are acknowledged without any write.

    Returns:
        Message for the webhook response

    Raises:
        ValidationError: If the tracking code is missing
    """
    if not payload.tracking_code:
        raise ValidationError("Tracking code is required")

    order = crud.get_order_by_tracking_code(db, payload.tracking_code)
    if order is None:
        logger.info(f"Order not found for tracking code: {payload.tracking_code}")
        return "Order not found, ignoring webhook"

    event = payload.event or ""
    new_status = CARRIER_EVENT_STATUS.get(event, order.status)
    location = f"{payload.city} - {payload.state}" if payload.city and payload.state else None
    event_date = validators.parse_event_date(payload.date)

    crud.add_tracking_event(
        db,
        order.id,
        payload.status or event or "update",
        payload.description or carrier_event_description(event),
        location,
        event_date,
    )

    fields = {}
    if event == "delivered":
        fields["delivered_at"] = event_date
    order = apply_status(db, order, new_status, **fields)

    if event == "delivered" and order.customer_email:
        try:
            await notifications.send_delivery_notification(order, payload.tracking_code)
        except Exception as e:
            logger.error(f"Failed to send delivery notification for order {order.id}: {e}")

    return "Webhook processed successfully"
