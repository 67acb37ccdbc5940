"""
SQLAlchemy ORM models for the Storefront service.

Defines the database schema for orders, their line items and tracking history,
plus the tenant, review, coupon and contract tables the order lifecycle touches
and the invitation, appointment and reminder tables of the party agenda.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Text, Boolean, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from .database import Base

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """
    Order model representing one purchase transaction.

    Attributes:
        id (str): Primary key, UUID
        tenant_id (str): Business owning the storefront (optional)
        customer_name / customer_email / customer_phone (str): Buyer contact
        status (str): pending, paid, shipped, delivered or canceled
        total_amount (Decimal): Sum of line item totals at creation time
        shipping_* (str): Shipping address, empty for digital-only orders
        payment_provider (str): "stripe" or "asaas"
        payment_charge_id (str): Checkout session / payment id at the provider
        payment_intent_id (str): Provider payment id reported by webhooks
        tracking_code (str): Carrier tracking code, assigned once shipped
        delivered_at (datetime): When the carrier reported delivery
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False, index=True)
    customer_phone = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_address = Column(String, nullable=True)
    shipping_city = Column(String, nullable=True)
    shipping_state = Column(String, nullable=True)
    shipping_zip = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    coupon_code = Column(String, nullable=True)
    payment_provider = Column(String, nullable=True)
    payment_charge_id = Column(String, nullable=True, index=True)
    payment_intent_id = Column(String, nullable=True, index=True)
    tracking_code = Column(String, nullable=True, index=True)
    carrier = Column(String, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")


class OrderItem(Base):
    """
    One product/quantity within an order. Prices are snapshots taken at checkout.
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String, nullable=True)
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    is_digital = Column(Boolean, nullable=False, default=False)
    customization_data = Column(JSONType, nullable=True)
    customization_status = Column(String, nullable=True)
    customization_deadline = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="items")


class OrderTrackingEvent(Base):
    """
    Append-only entry in an order's payment/shipping history.

    Attributes:
        id (int): Primary key, auto-incrementing event ID
        order_id (str): Foreign key to the order
        status (str): Status label (e.g. "payment_confirmed", "posted")
        description (str): Human-readable description of the event
        location (str): "City - UF" when the carrier reports one
        event_date (datetime): When the event happened
    """
    __tablename__ = "order_tracking_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    event_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class User(Base):
    """Account of a tenant owner; only the email is needed here."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Tenant(Base):
    """Party-decoration business running its own storefront."""
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    logo_url = Column(String, nullable=True)
    primary_color = Column(String, nullable=True)
    secondary_color = Column(String, nullable=True)
    whatsapp_number = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    subscription_status = Column(String, nullable=True)
    subscription_ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ProductReview(Base):
    __tablename__ = "product_reviews"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(String, nullable=False, index=True)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    is_verified_purchase = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Coupon(Base):
    """
    Discount code. discount_type is "percentage" or "fixed".
    """
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    code = Column(String, nullable=False, index=True)
    description = Column(String, nullable=True)
    discount_type = Column(String, nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_value = Column(Numeric(10, 2), nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    starts_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Contract(Base):
    """
    Service contract sent to a client for electronic signature.

    status moves draft -> sent -> signed; only "sent" contracts can be signed.
    """
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    quote_id = Column(String(36), nullable=True)
    client_name = Column(String, nullable=False)
    client_email = Column(String, nullable=True)
    client_phone = Column(String, nullable=True)
    contract_type = Column(String, nullable=True)
    file_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String, default="draft", nullable=False)
    signature_token = Column(String(32), unique=True, index=True, nullable=True)
    signature_data = Column(Text, nullable=True)
    signer_ip = Column(String, nullable=True)
    signer_user_agent = Column(String, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Invitation(Base):
    """Digital party invitation, opened by guests through its share token."""
    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    child_name = Column(String, nullable=False)
    child_age = Column(Integer, nullable=True)
    theme = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    event_date = Column(Date, nullable=True)
    event_time = Column(String, nullable=True)
    event_location = Column(String, nullable=True)
    additional_info = Column(Text, nullable=True)
    background_color = Column(String, nullable=True)
    gift_list_url = Column(String, nullable=True)
    share_token = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Appointment(Base):
    """
    Party booked in a tenant's agenda.

    status is "pendente", "confirmado", "realizado" or "cancelado"; only the
    first two get reminders.
    """
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    client_name = Column(String, nullable=False)
    client_phone = Column(String, nullable=True)
    event_date = Column(Date, nullable=False, index=True)
    event_time = Column(String, nullable=True)
    location = Column(String, nullable=True)
    event_type = Column(String, nullable=True)
    status = Column(String, default="pendente", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant")


class ReminderLog(Base):
    """WhatsApp reminder prepared for an appointment."""
    __tablename__ = "reminder_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=False, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    client_name = Column(String, nullable=False)
    client_phone = Column(String, nullable=False)
    event_date = Column(Date, nullable=False)
    event_time = Column(String, nullable=True)
    message = Column(Text, nullable=False)
    status = Column(String, default="sent", nullable=False)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
