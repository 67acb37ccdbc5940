"""
Pydantic schemas for request/response validation in the Storefront service.

Request schemas are deliberately lenient about required business fields
(customer name, tracking code, ...) so the routes can answer with their own
400 envelopes instead of FastAPI's 422.
"""
from datetime import date, datetime
from typing import Optional, List, Dict, Any
from decimal import Decimal
from pydantic import BaseModel, Field


class CartItem(BaseModel):
    """Schema for a cart line sent by the storefront."""
    id: str = Field(..., description="Product ID")
    name: str
    price: Decimal = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., gt=0)
    is_digital: bool = False
    customization_data: Optional[Dict[str, Any]] = None


class Customer(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    cpfCnpj: Optional[str] = None


class ShippingAddress(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


class AppliedCoupon(BaseModel):
    id: Optional[str] = None
    code: str
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None


class CheckoutRequest(BaseModel):
    """Schema for POST /create-product-checkout."""
    items: List[CartItem] = Field(default_factory=list)
    customer: Customer = Field(default_factory=Customer)
    shipping: Optional[ShippingAddress] = None
    notes: Optional[str] = None
    tenant_id: Optional[str] = None
    coupon: Optional[AppliedCoupon] = None


class CheckoutResponse(BaseModel):
    url: str
    order_id: str


class ShippingQuoteRequest(BaseModel):
    """Package dimensions: weight in grams, sides in centimeters."""
    origin_zip: str
    destination_zip: str
    weight: Optional[float] = Field(default=None, allow_inf_nan=False)
    length: Optional[float] = Field(default=None, allow_inf_nan=False)
    width: Optional[float] = Field(default=None, allow_inf_nan=False)
    height: Optional[float] = Field(default=None, allow_inf_nan=False)
    insurance_value: Optional[float] = Field(default=None, allow_inf_nan=False)


class TrackingRequest(BaseModel):
    tracking_code: Optional[str] = None
    carrier: Optional[str] = None


class MelhorEnvioWebhook(BaseModel):
    event: Optional[str] = None
    tracking_code: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class ShippingNotificationRequest(BaseModel):
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    order_id: Optional[str] = None
    tracking_code: Optional[str] = None
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class ShipOrderRequest(BaseModel):
    """Schema for marking an order as shipped (admin)."""
    tracking_code: str = Field(..., min_length=1)
    carrier: Optional[str] = None


class SignContractRequest(BaseModel):
    contract_id: Optional[str] = None
    signature_token: Optional[str] = None
    signature_data: Optional[str] = None
    user_agent: Optional[str] = None


class GetContractRequest(BaseModel):
    signature_token: Optional[str] = None


class TenantPublicRequest(BaseModel):
    slug: Optional[str] = None


class InvitationRequest(BaseModel):
    share_token: Optional[str] = None


class CouponValidationRequest(BaseModel):
    code: str
    tenant_id: Optional[str] = None
    order_total: Decimal = Field(..., ge=0)


class OrderItem(BaseModel):
    id: int
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    is_digital: bool
    customization_data: Optional[Dict[str, Any]] = None
    customization_status: Optional[str] = None
    customization_deadline: Optional[datetime] = None

    class Config:
        from_attributes = True


class Order(BaseModel):
    """
    Schema for order responses, includes the line items.
    """
    id: str
    tenant_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    status: str
    total_amount: Decimal
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_zip: Optional[str] = None
    notes: Optional[str] = None
    coupon_code: Optional[str] = None
    payment_provider: Optional[str] = None
    payment_charge_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    tracking_code: Optional[str] = None
    carrier: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItem] = Field(default_factory=list)

    class Config:
        from_attributes = True


class TrackingEvent(BaseModel):
    """
    Schema for order timeline events.
    """
    id: int
    order_id: str
    status: str
    description: Optional[str] = None
    location: Optional[str] = None
    event_date: datetime

    class Config:
        from_attributes = True


class Invitation(BaseModel):
    """
    Schema for the guest view of a digital invitation.
    """
    id: str
    child_name: str
    child_age: Optional[int] = None
    theme: Optional[str] = None
    image_url: Optional[str] = None
    event_date: Optional[date] = None
    event_time: Optional[str] = None
    event_location: Optional[str] = None
    additional_info: Optional[str] = None
    background_color: Optional[str] = None
    gift_list_url: Optional[str] = None
    share_token: str

    class Config:
        from_attributes = True


class Reminder(BaseModel):
    """WhatsApp reminder ready to be opened by the tenant."""
    appointment_id: str
    client_name: str
    event_date: date
    whatsapp_link: str
    reminder_id: str


class SubscriptionStatus(BaseModel):
    subscribed: bool
    status: str
    subscription_end: Optional[datetime] = None
    plan: Optional[str] = None
