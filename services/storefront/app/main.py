"""
Storefront Service API

This module implements the FastAPI service behind the party-decoration
storefronts: checkout, payment and carrier webhooks, shipping quotes, order
tracking, contract signing and the public tenant profile.

Public endpoints take and return JSON and answer errors with the envelope the
storefront expects ({"error": ...} or {"success": false, "error": ...}).

Endpoints:
    POST /create-product-checkout: Create an order and a hosted payment page
    POST /calculate-shipping: Shipping options between two CEPs
    POST /track-order: Tracking history of a shipment
    POST /stripe-webhook, /asaas-webhook: Payment provider callbacks
    POST /melhor-envio-webhook: Carrier tracking callbacks
    POST /send-shipping-notification: Email the customer a tracking code
    POST /get-contract, /sign-contract: Electronic contract signature
    POST /get-tenant-public: Public profile of a storefront
    POST /validate-coupon: Check a discount code
    POST /get-invitation: Guest view of a digital invitation
    POST /send-whatsapp-reminders: WhatsApp links for parties in the next 24 hours (JWT, role "admin")
    POST /check-subscription: Sync the caller's tenant subscription with Stripe (JWT)
    GET /orders, GET /orders/{order_id}, GET /orders/{order_id}/timeline,
    POST /orders/{order_id}/ship: Admin order operations (JWT, role "admin")
    GET /healthz: Health check endpoint for orchestration systems

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "storefront-service"
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Type

import httpx
from fastapi import FastAPI, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import (
    auth, cache, checkout, config, crud, models, notifications, reminders, schemas, shipping, tracking, validators,
    webhooks,
)
from .clients import melhor_envio_client, stripe_client
from .database import engine, get_db
from .exceptions import (
    CarrierApiError,
    NotFoundError,
    PersistenceError,
    SignatureError,
    StorefrontError,
    ValidationError,
)

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

MIN_SHARE_TOKEN_LENGTH = 10

CORS_ALLOW_HEADERS = [
    "authorization",
    "x-client-info",
    "apikey",
    "content-type",
    "stripe-signature",
    "asaas-access-token",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    models.Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="storefront-service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=CORS_ALLOW_HEADERS,
)


async def parse_body(request: Request, schema: Type[BaseModel]):
    """
    Parse the JSON request body into a schema.

    Raises:
        ValidationError: If the body is not JSON or does not match the schema
    """
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    try:
        return schema.model_validate(data)
    except SchemaError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "body"
        raise ValidationError(f"Invalid field '{field}': {first['msg']}")


def error_response(message: str, status_code: int = 400, envelope: bool = False) -> JSONResponse:
    """Error reply as {"error"} or, with envelope, {"success": false, "error"}."""
    content = {"success": False, "error": message} if envelope else {"error": message}
    return JSONResponse(status_code=status_code, content=content)


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or "unknown"


@app.options("/{path:path}", include_in_schema=False)
def options_handler(path: str):
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/healthz", response_model=dict)
def health():
    """
    Health check endpoint for the storefront service.

    Returns:
        dict: {"status": "healthy"} when the service is operational.
    """
    return {"status": "healthy"}


@app.post("/create-product-checkout", response_model=schemas.CheckoutResponse)
async def create_product_checkout(request: Request, db: Session = Depends(get_db)):
    """
    Create a pending order for the cart and return the hosted payment page.

    Returns:
        {"url", "order_id"}; errors as {"error"} with status 400
    """
    try:
        payload = await parse_body(request, schemas.CheckoutRequest)
        origin = request.headers.get("origin") or config.SITE_URL
        result = await checkout.create_product_checkout(db, payload, origin)
    except StorefrontError as e:
        logger.error(f"Checkout failed: {e.message}")
        return error_response(e.message)
    return result


async def quote_shipping(payload: schemas.ShippingQuoteRequest, origin_zip: str, destination_zip: str):
    """
    Live carrier quotes when a token is configured, simulated rates otherwise.

    Returns:
        Tuple of (options, source)
    """
    if config.MELHOR_ENVIO_TOKEN:
        try:
            quotes = await melhor_envio_client.calculate_quotes(
                origin_zip,
                destination_zip,
                payload.weight or shipping.DEFAULT_WEIGHT_GRAMS,
                payload.length or shipping.DEFAULT_LENGTH_CM,
                payload.width or shipping.DEFAULT_WIDTH_CM,
                payload.height or shipping.DEFAULT_HEIGHT_CM,
                payload.insurance_value,
            )
            options = shipping.format_carrier_quotes(quotes or [])
            if options:
                return options, "melhor_envio"
            logger.warning("Melhor Envio returned no usable quotes, using simulated rates")
        except CarrierApiError as e:
            logger.warning(f"Melhor Envio quote failed, using simulated rates: {e.message}")

    options = shipping.calculate_simulated_rates(
        origin_zip, destination_zip, payload.weight, payload.length, payload.width, payload.height
    )
    return options, "simulated"


@app.post("/calculate-shipping")
async def calculate_shipping(request: Request):
    try:
        payload = await parse_body(request, schemas.ShippingQuoteRequest)
        origin_zip = validators.normalize_postal_code(payload.origin_zip)
        destination_zip = validators.normalize_postal_code(payload.destination_zip)
        if origin_zip is None or destination_zip is None:
            raise ValidationError(shipping.INVALID_CEP_MESSAGE)
        options, source = await quote_shipping(payload, origin_zip, destination_zip)
    except StorefrontError as e:
        logger.error(f"Shipping calculation failed: {e.message}")
        return error_response(e.message, envelope=True)

    return {
        "success": True,
        "options": options,
        "origin_zip": origin_zip,
        "destination_zip": destination_zip,
        "source": source,
    }


@app.post("/track-order")
async def track_order(request: Request, db: Session = Depends(get_db)):
    try:
        payload = await parse_body(request, schemas.TrackingRequest)
        result = await tracking.track_order(db, payload.tracking_code, payload.carrier)
    except StorefrontError as e:
        logger.error(f"Tracking lookup failed: {e.message}")
        return error_response(e.message, envelope=True)
    return {"success": True, **result}


@app.post("/stripe-webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe event callback. When a webhook secret is configured every request
    must carry a valid Stripe-Signature header.
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        if config.STRIPE_WEBHOOK_SECRET:
            if not signature:
                raise SignatureError("Missing signature")
            stripe_client.verify_signature(body, signature)
        else:
            logger.warning("Stripe webhook signature not verified")
        try:
            event = json.loads(body)
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(event, dict):
            raise ValidationError("Invalid event payload")
        await webhooks.handle_stripe_event(db, event)
    except StorefrontError as e:
        logger.error(f"Stripe webhook error: {e.message}")
        return error_response(e.message)
    except Exception as e:
        logger.exception(f"Unexpected Stripe webhook error: {e}")
        return error_response(str(e))
    return {"received": True}


@app.post("/asaas-webhook")
async def asaas_webhook(request: Request, db: Session = Depends(get_db)):
    try:
        if config.ASAAS_WEBHOOK_TOKEN and request.headers.get("asaas-access-token") != config.ASAAS_WEBHOOK_TOKEN:
            raise SignatureError("Invalid access token")
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(body, dict):
            raise ValidationError("Invalid event payload")
        await webhooks.handle_asaas_event(db, body)
    except StorefrontError as e:
        logger.error(f"Asaas webhook error: {e.message}")
        return error_response(e.message)
    except Exception as e:
        logger.exception(f"Unexpected Asaas webhook error: {e}")
        return error_response(str(e))
    return {"received": True}


@app.post("/melhor-envio-webhook")
async def melhor_envio_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Carrier tracking callback. Unknown tracking codes are acknowledged; other
    failures answer 500 so the carrier retries.
    """
    try:
        payload = await parse_body(request, schemas.MelhorEnvioWebhook)
        logger.info(f"Received Melhor Envio webhook: {payload.event} for {payload.tracking_code}")
        message = await webhooks.handle_melhor_envio_event(db, payload)
    except ValidationError as e:
        return error_response(e.message, envelope=True)
    except StorefrontError as e:
        logger.error(f"Melhor Envio webhook error: {e.message}")
        return error_response(e.message, status_code=500, envelope=True)
    except Exception as e:
        logger.exception(f"Unexpected Melhor Envio webhook error: {e}")
        return error_response(str(e), status_code=500, envelope=True)
    return {"success": True, "message": message}


@app.post("/send-shipping-notification")
async def send_shipping_notification(request: Request):
    try:
        payload = await parse_body(request, schemas.ShippingNotificationRequest)
        if not payload.customer_email or not payload.tracking_code:
            raise ValidationError("customer_email and tracking_code are required")
        data = await notifications.send_shipping_notification(
            payload.customer_name or "",
            payload.customer_email,
            payload.order_id or "",
            payload.tracking_code,
            payload.carrier,
            payload.tracking_url,
        )
    except StorefrontError as e:
        logger.error(f"Shipping notification not sent: {e.message}")
        return error_response(e.message, status_code=500, envelope=True)
    except httpx.HTTPError as e:
        logger.error(f"Error sending shipping notification: {e}")
        return error_response(str(e), status_code=500, envelope=True)
    return {"success": True, "skipped": data is None, "data": data}


def public_contract(contract: models.Contract) -> dict:
    """Contract fields the signing page may see; contact and signer data are left out."""
    return {
        "id": contract.id,
        "client_name": contract.client_name,
        "contract_type": contract.contract_type,
        "file_url": contract.file_url,
        "status": contract.status,
        "notes": contract.notes,
        "created_at": contract.created_at.isoformat() if contract.created_at else None,
        "tenant_id": contract.tenant_id,
        "quote_id": contract.quote_id,
        "signed_at": contract.signed_at.isoformat() if contract.signed_at else None,
        "signature_data": contract.signature_data,
    }


@app.post("/get-contract")
async def get_contract(request: Request, db: Session = Depends(get_db)):
    try:
        payload = await parse_body(request, schemas.GetContractRequest)
        if not payload.signature_token:
            raise ValidationError("signature_token is required")
        if not validators.is_valid_signature_token(payload.signature_token):
            raise ValidationError("Invalid token format")
        contract = crud.get_contract_by_token(db, payload.signature_token)
        if contract is None:
            raise NotFoundError("Contract not found or invalid token")
    except StorefrontError as e:
        return error_response(e.message, status_code=e.status_code)
    return public_contract(contract)


@app.post("/sign-contract")
async def sign_contract(request: Request, db: Session = Depends(get_db)):
    """
    Sign a contract awaiting signature.

    Returns:
        {"success": true, "contract": {id, client_name, status, signed_at}}
    """
    try:
        payload = await parse_body(request, schemas.SignContractRequest)
        if not payload.contract_id or not payload.signature_token or not payload.signature_data:
            raise ValidationError("contract_id, signature_token, and signature_data are required")
        if not validators.is_valid_signature_token(payload.signature_token):
            raise ValidationError("Invalid token format")
        if not validators.is_valid_uuid(payload.contract_id):
            raise ValidationError("Invalid contract_id format")

        contract = crud.sign_contract(
            db,
            payload.contract_id,
            payload.signature_token,
            payload.signature_data,
            client_ip(request),
            payload.user_agent or request.headers.get("user-agent") or "unknown",
        )
        if contract is None:
            if crud.get_contract_status(db, payload.contract_id, payload.signature_token) == "signed":
                raise ValidationError("Contract already signed")
            raise NotFoundError("Contract not found or invalid token")
    except StorefrontError as e:
        if e.status_code >= 500:
            logger.error(f"Contract signing failed: {e.message}")
        return error_response(e.message, status_code=e.status_code)

    logger.info(f"Contract {contract.id} signed by {contract.client_name}")
    return {
        "success": True,
        "contract": {
            "id": contract.id,
            "client_name": contract.client_name,
            "status": contract.status,
            "signed_at": contract.signed_at.isoformat(),
        },
    }


def public_tenant(tenant: models.Tenant) -> dict:
    return {
        "id": tenant.id,
        "name": tenant.name,
        "slug": tenant.slug,
        "logo_url": tenant.logo_url,
        "primary_color": tenant.primary_color,
        "secondary_color": tenant.secondary_color,
        "is_active": tenant.is_active,
        "subscription_status": tenant.subscription_status,
        "created_at": tenant.created_at.isoformat() if tenant.created_at else None,
    }


@app.post("/get-tenant-public")
async def get_tenant_public(request: Request, db: Session = Depends(get_db)):
    """
    Public profile of an active tenant, served from the cache when possible.
    """
    try:
        payload = await parse_body(request, schemas.TenantPublicRequest)
        if not payload.slug:
            raise ValidationError("Slug inválido")

        cache_key = cache.tenant_key(payload.slug)
        cached = cache.get_cache(cache_key)
        if cached is not None:
            return {"data": cached}

        tenant = crud.get_active_tenant_by_slug(db, payload.slug)
        if tenant is None:
            raise NotFoundError("Tenant não encontrado")
    except StorefrontError as e:
        return error_response(e.message, status_code=e.status_code)

    data = public_tenant(tenant)
    cache.set_cache(cache_key, data, ttl=config.TENANT_CACHE_TTL)
    return {"data": data}


@app.post("/validate-coupon")
async def validate_coupon(request: Request, db: Session = Depends(get_db)):
    """
    Check a discount code against an order total.

    Returns:
        {"valid": true, "coupon", "discount"} or {"valid": false, "error"}
    """
    try:
        payload = await parse_body(request, schemas.CouponValidationRequest)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"valid": False, "error": e.message})

    coupon, error_message = crud.validate_coupon(db, payload.code, payload.tenant_id, payload.order_total)
    if coupon is None:
        return {"valid": False, "error": error_message}

    return {
        "valid": True,
        "coupon": {
            "id": coupon.id,
            "code": coupon.code,
            "description": coupon.description,
            "discount_type": coupon.discount_type,
            "discount_value": float(coupon.discount_value),
        },
        "discount": float(crud.calculate_discount(coupon, payload.order_total)),
    }


@app.post("/get-invitation")
async def get_invitation(request: Request, db: Session = Depends(get_db)):
    try:
        payload = await parse_body(request, schemas.InvitationRequest)
        if not payload.share_token or len(payload.share_token) < MIN_SHARE_TOKEN_LENGTH:
            raise ValidationError("Token inválido")
        invitation = crud.get_invitation_by_token(db, payload.share_token)
        if invitation is None:
            raise NotFoundError("Convite não encontrado")
    except StorefrontError as e:
        return error_response(e.message, status_code=e.status_code)
    except SQLAlchemyError as e:
        logger.error(f"Invitation lookup failed: {e}")
        return error_response("Erro ao buscar convite", status_code=500)
    return {"data": schemas.Invitation.model_validate(invitation).model_dump(mode="json")}


@app.post("/send-whatsapp-reminders")
def send_whatsapp_reminders(
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Log a reminder for each party in the next 24 hours and return the
    WhatsApp links to deliver them. Admins bound to a tenant only remind
    their own clients.

    Returns:
        {"success": true, "reminders_sent", "results"}; errors as {"error"} with status 500
    """
    try:
        results = reminders.send_reminders(db, tenant_id=current_user.tenant_id)
    except SQLAlchemyError as e:
        logger.error(f"Reminder run failed: {e}")
        return error_response("Erro ao buscar agendamentos", status_code=500)
    logger.info(f"Processed {len(results)} reminders")
    return {
        "success": True,
        "reminders_sent": len(results),
        "results": [schemas.Reminder(**result).model_dump(mode="json") for result in results],
    }


@app.post("/check-subscription", response_model=schemas.SubscriptionStatus)
async def check_subscription(
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Look up the caller's Stripe subscription and store it on the tenants they own.

    Returns:
        {"subscribed", "status", "subscription_end", "plan"}; errors as {"error"} with status 500
    """
    try:
        subscription = await run_in_threadpool(stripe_client.get_subscription, current_user.email)
        crud.update_owner_subscription(
            db, current_user.id, subscription["status"], subscription["subscription_end"]
        )
    except StorefrontError as e:
        logger.error(f"Subscription check failed for {current_user.email}: {e.message}")
        return error_response(e.message, status_code=500)

    return schemas.SubscriptionStatus(subscribed=subscription["status"] == "active", **subscription)


@app.get("/orders", response_model=List[schemas.Order])
def list_orders(
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None,
    tenant_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    List orders, newest first (admin only).

    Args:
        skip: Number of records to skip (default: 0)
        limit: Maximum number of records to return (default: 100)
        status: Only orders in this status (optional)
        tenant_id: Only orders of this tenant (optional; admins bound to a tenant
            always see their own)
        db: Database session (injected)
        current_user: Current admin user (injected)

    Returns:
        List of order objects with their items
    """
    if current_user.tenant_id:
        tenant_id = current_user.tenant_id
    return crud.get_orders(db, skip=skip, limit=min(limit, 500), status=status, tenant_id=tenant_id)


def get_order_or_404(db: Session, order_id: str, current_user: auth.CurrentUser) -> models.Order:
    """Order by id; orders of another tenant are reported as missing."""
    db_order = crud.get_order(db, order_id=order_id)
    if db_order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if current_user.tenant_id and db_order.tenant_id != current_user.tenant_id:
        raise HTTPException(status_code=404, detail="Order not found")
    return db_order


@app.get("/orders/{order_id}", response_model=schemas.Order)
def get_order(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    return get_order_or_404(db, order_id, current_user)


@app.get("/orders/{order_id}/timeline", response_model=List[schemas.TrackingEvent])
def get_order_timeline(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Get the payment/shipping history of an order in chronological order.

    Raises:
        HTTPException: 404 if order not found
    """
    get_order_or_404(db, order_id, current_user)
    return crud.get_tracking_events(db, order_id)


@app.post("/orders/{order_id}/ship", response_model=schemas.Order)
async def ship_order(
    order_id: str,
    shipment: schemas.ShipOrderRequest,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Hand an order to the carrier: store the tracking code, move it to
    "shipped", log a "posted" event and email the customer.

    Raises:
        HTTPException: 404 if order not found, 500 if the update fails
    """
    db_order = get_order_or_404(db, order_id, current_user)
    carrier = shipment.carrier or "Correios"
    try:
        db_order = webhooks.apply_status(
            db, db_order, "shipped", tracking_code=shipment.tracking_code, carrier=carrier
        )
        crud.add_tracking_event(db, db_order.id, "posted", webhooks.carrier_event_description("posted"))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    logger.info(f"Order {db_order.id} shipped by {current_user.email} with {carrier} {shipment.tracking_code}")

    try:
        await notifications.send_shipping_notification(
            db_order.customer_name, db_order.customer_email, db_order.id, shipment.tracking_code, carrier
        )
    except httpx.HTTPError as e:
        logger.error(f"Failed to send shipping notification for order {db_order.id}: {e}")

    return db_order
