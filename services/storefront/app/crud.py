"""
CRUD (Create, Read, Update, Delete) operations for the Storefront service.

This module contains all database operations for orders, tracking events,
reviews, tenants, coupons, contracts, invitations and appointment reminders.
Write failures are rolled back and surfaced as PersistenceError; the
underlying error is only logged.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config, models, schemas
from .exceptions import PersistenceError

# Set up logging
logger = logging.getLogger(__name__)

CUSTOMIZATION_WINDOW = timedelta(days=3)
REMINDABLE_APPOINTMENT_STATUSES = ("confirmado", "pendente")


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to {action}: {e}")
        raise PersistenceError()


def get_order(db: Session, order_id: str) -> Optional[models.Order]:
    """
    Retrieve a single order by ID.

    Args:
        db: Database session
        order_id: ID of the order to retrieve

    Returns:
        Order object or None if not found
    """
    return db.query(models.Order).filter(models.Order.id == order_id).first()


def get_order_by_tracking_code(db: Session, tracking_code: str) -> Optional[models.Order]:
    return db.query(models.Order).filter(models.Order.tracking_code == tracking_code).first()


def get_order_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[models.Order]:
    return db.query(models.Order).filter(models.Order.payment_intent_id == payment_intent_id).first()


def get_orders(db: Session, skip: int = 0, limit: int = 100, status: Optional[str] = None,
               tenant_id: Optional[str] = None) -> List[models.Order]:
    """
    Retrieve orders, newest first, with optional status/tenant filters.
    """
    query = db.query(models.Order)
    if status:
        query = query.filter(models.Order.status == status)
    if tenant_id:
        query = query.filter(models.Order.tenant_id == tenant_id)
    return query.order_by(models.Order.created_at.desc()).offset(skip).limit(limit).all()


def get_order_items(db: Session, order_id: str) -> List[models.OrderItem]:
    return (
        db.query(models.OrderItem)
        .filter(models.OrderItem.order_id == order_id)
        .order_by(models.OrderItem.id)
        .all()
    )


def calculate_order_total(items: List[schemas.CartItem]) -> Decimal:
    return sum((Decimal(str(item.price)) * item.quantity for item in items), Decimal("0"))


def create_order(db: Session, checkout: schemas.CheckoutRequest, payment_provider: str) -> models.Order:
    """
    Create a pending order and its line items in a single commit.

    NOTE: This function assumes validation has already been performed.
    Use validators.validate_checkout() before calling this function.

    Digital items get customization_status "pending_info" and a customization
    deadline three days after creation.

    Args:
        db: Database session
        checkout: Validated checkout request
        payment_provider: Provider the order will be charged through

    Returns:
        Created Order object
    """
    now = datetime.utcnow()
    shipping = checkout.shipping or schemas.ShippingAddress()

    db_order = models.Order(
        tenant_id=checkout.tenant_id or None,
        customer_name=checkout.customer.name,
        customer_email=checkout.customer.email,
        customer_phone=checkout.customer.phone,
        status="pending",
        total_amount=calculate_order_total(checkout.items),
        shipping_address=shipping.address,
        shipping_city=shipping.city,
        shipping_state=shipping.state,
        shipping_zip=shipping.zip,
        notes=checkout.notes,
        coupon_code=checkout.coupon.code.upper() if checkout.coupon else None,
        payment_provider=payment_provider,
        created_at=now,
        updated_at=now,
    )
    db.add(db_order)

    for item in checkout.items:
        unit_price = Decimal(str(item.price))
        db_order.items.append(models.OrderItem(
            product_id=item.id,
            product_name=item.name,
            quantity=item.quantity,
            unit_price=unit_price,
            total_price=unit_price * item.quantity,
            is_digital=item.is_digital,
            customization_data=item.customization_data if item.is_digital and item.customization_data else None,
            customization_status="pending_info" if item.is_digital else None,
            customization_deadline=now + CUSTOMIZATION_WINDOW if item.is_digital else None,
            created_at=now,
        ))

    _commit(db, "create order")
    db.refresh(db_order)
    logger.info(f"Order {db_order.id} created with {len(checkout.items)} item(s), total {db_order.total_amount}")
    return db_order


def update_order(db: Session, order: models.Order, **fields) -> models.Order:
    """
    Update columns of an existing order.

    Args:
        db: Database session
        order: Order to update
        **fields: Column values to set

    Returns:
        Updated Order object
    """
    for key, value in fields.items():
        setattr(order, key, value)
    _commit(db, f"update order {order.id}")
    db.refresh(order)
    return order


def add_tracking_event(db: Session, order_id: str, status: str, description: Optional[str] = None,
                       location: Optional[str] = None, event_date: Optional[datetime] = None) -> models.OrderTrackingEvent:
    """
    Append an event to an order's tracking history.

    Events are never updated or deleted once written.
    """
    event = models.OrderTrackingEvent(
        order_id=order_id,
        status=status,
        description=description,
        location=location,
        event_date=event_date or datetime.utcnow(),
    )
    db.add(event)
    _commit(db, f"add tracking event to order {order_id}")
    return event


def upsert_tracking_event(db: Session, order_id: str, status: str, description: Optional[str],
                          location: Optional[str], event_date: datetime) -> bool:
    """
    Insert a tracking event unless one already exists for (order, event_date).

    The check is best-effort; concurrent lookups may still both insert.

    Returns:
        True if the event was inserted, False if it was a duplicate
    """
    exists = (
        db.query(models.OrderTrackingEvent.id)
        .filter(
            models.OrderTrackingEvent.order_id == order_id,
            models.OrderTrackingEvent.event_date == event_date,
        )
        .first()
    )
    if exists:
        return False
    add_tracking_event(db, order_id, status, description, location, event_date)
    return True


def get_tracking_events(db: Session, order_id: str) -> List[models.OrderTrackingEvent]:
    return (
        db.query(models.OrderTrackingEvent)
        .filter(models.OrderTrackingEvent.order_id == order_id)
        .order_by(models.OrderTrackingEvent.event_date.asc(), models.OrderTrackingEvent.id.asc())
        .all()
    )


def mark_reviews_verified(db: Session, product_id: str, customer_email: str) -> int:
    """
    Flag existing reviews of a product by this customer as verified purchases.

    Returns:
        Number of reviews updated
    """
    result = db.execute(
        update(models.ProductReview)
        .where(
            models.ProductReview.product_id == product_id,
            models.ProductReview.customer_email == customer_email,
        )
        .values(is_verified_purchase=True)
    )
    _commit(db, f"mark reviews verified for product {product_id}")
    return result.rowcount or 0


def resolve_admin_email(db: Session, tenant_id: Optional[str]) -> str:
    """
    Email of the tenant owner, falling back to the configured admin address.
    """
    if not tenant_id:
        return config.FALLBACK_ADMIN_EMAIL
    try:
        owner_email = (
            db.query(models.User.email)
            .join(models.Tenant, models.Tenant.owner_id == models.User.id)
            .filter(models.Tenant.id == tenant_id)
            .scalar()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to resolve owner of tenant {tenant_id}: {e}")
        owner_email = None
    return owner_email or config.FALLBACK_ADMIN_EMAIL


def get_active_tenant_by_slug(db: Session, slug: str) -> Optional[models.Tenant]:
    return (
        db.query(models.Tenant)
        .filter(models.Tenant.slug == slug, models.Tenant.is_active.is_(True))
        .first()
    )


def get_active_coupon(db: Session, code: str, tenant_id: Optional[str]) -> Optional[models.Coupon]:
    query = db.query(models.Coupon).filter(
        models.Coupon.code == code.strip().upper(),
        models.Coupon.is_active.is_(True),
    )
    if tenant_id:
        query = query.filter(models.Coupon.tenant_id == tenant_id)
    return query.first()


def validate_coupon(db: Session, code: str, tenant_id: Optional[str],
                    order_total: Decimal) -> Tuple[Optional[models.Coupon], Optional[str]]:
    """
    Check a coupon code against its validity window, usage cap and minimum order.

    Returns:
        Tuple of (coupon, error_message); coupon is None when invalid
    """
    coupon = get_active_coupon(db, code, tenant_id)
    if coupon is None:
        return None, "Cupom não encontrado"

    now = datetime.utcnow()
    if coupon.starts_at and coupon.starts_at > now:
        return None, "Cupom ainda não está ativo"
    if coupon.expires_at and coupon.expires_at < now:
        return None, "Cupom expirado"
    if coupon.max_uses and coupon.current_uses >= coupon.max_uses:
        return None, "Cupom esgotado"
    if coupon.min_order_value and order_total < coupon.min_order_value:
        minimum = f"{coupon.min_order_value:.2f}".replace(".", ",")
        return None, f"Valor mínimo do pedido: R$ {minimum}"
    return coupon, None


def calculate_discount(coupon: models.Coupon, order_total: Decimal) -> Decimal:
    if coupon.discount_type == "percentage":
        discount = order_total * Decimal(coupon.discount_value) / Decimal("100")
    else:
        discount = min(Decimal(coupon.discount_value), order_total)
    return discount.quantize(Decimal("0.01"))


def get_contract_by_token(db: Session, signature_token: str) -> Optional[models.Contract]:
    return db.query(models.Contract).filter(models.Contract.signature_token == signature_token).first()


def sign_contract(db: Session, contract_id: str, signature_token: str, signature_data: str,
                  signer_ip: str, signer_user_agent: str) -> Optional[models.Contract]:
    """
    Sign a contract that is awaiting signature.

    Only a contract in "sent" status whose id and token both match is signed.

    Returns:
        The signed contract, or None when nothing matched
    """
    contract = (
        db.query(models.Contract)
        .filter(
            models.Contract.id == contract_id,
            models.Contract.signature_token == signature_token,
            models.Contract.status == "sent",
        )
        .first()
    )
    if contract is None:
        return None

    contract.status = "signed"
    contract.signed_at = datetime.utcnow()
    contract.signature_data = signature_data
    contract.signer_ip = signer_ip
    contract.signer_user_agent = signer_user_agent
    _commit(db, f"sign contract {contract_id}")
    db.refresh(contract)
    return contract


def get_contract_status(db: Session, contract_id: str, signature_token: str) -> Optional[str]:
    return (
        db.query(models.Contract.status)
        .filter(models.Contract.id == contract_id, models.Contract.signature_token == signature_token)
        .scalar()
    )


def update_owner_subscription(db: Session, owner_id: str, subscription_status: str,
                              subscription_ends_at: Optional[datetime]) -> int:
    """
    Store the subscription state on every tenant owned by a user.

    Returns:
        Number of tenants updated
    """
    result = db.execute(
        update(models.Tenant)
        .where(models.Tenant.owner_id == owner_id)
        .values(subscription_status=subscription_status, subscription_ends_at=subscription_ends_at)
    )
    _commit(db, f"update subscription of tenants owned by {owner_id}")
    return result.rowcount or 0


def get_invitation_by_token(db: Session, share_token: str) -> Optional[models.Invitation]:
    return db.query(models.Invitation).filter(models.Invitation.share_token == share_token).first()


def get_upcoming_appointments(db: Session, start: date, end: date,
                              tenant_id: Optional[str] = None) -> List[models.Appointment]:
    """
    Appointments between two dates (inclusive) still waiting for the party.

    Args:
        db: Database session
        start: First event date
        end: Last event date
        tenant_id: Only appointments of this tenant (optional)

    Returns:
        Appointments ordered by event date, each with its tenant loaded
    """
    query = (
        db.query(models.Appointment)
        .join(models.Tenant, models.Tenant.id == models.Appointment.tenant_id)
        .filter(
            models.Appointment.event_date >= start,
            models.Appointment.event_date <= end,
            models.Appointment.status.in_(REMINDABLE_APPOINTMENT_STATUSES),
        )
    )
    if tenant_id:
        query = query.filter(models.Appointment.tenant_id == tenant_id)
    return query.order_by(models.Appointment.event_date.asc()).all()


def has_sent_reminder(db: Session, appointment_id: str) -> bool:
    return (
        db.query(models.ReminderLog.id)
        .filter(models.ReminderLog.appointment_id == appointment_id, models.ReminderLog.status == "sent")
        .first()
        is not None
    )


def create_reminder_log(db: Session, appointment: models.Appointment, message: str) -> models.ReminderLog:
    reminder = models.ReminderLog(
        appointment_id=appointment.id,
        tenant_id=appointment.tenant_id,
        client_name=appointment.client_name,
        client_phone=appointment.client_phone,
        event_date=appointment.event_date,
        event_time=appointment.event_time,
        message=message,
        status="sent",
        sent_at=datetime.utcnow(),
    )
    db.add(reminder)
    _commit(db, f"log reminder for appointment {appointment.id}")
    db.refresh(reminder)
    return reminder
