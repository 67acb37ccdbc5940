"""
HTTP client for the Asaas payments API.

Provides customer lookup/creation and payment creation for hosted invoices.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import httpx

from .. import config
from ..exceptions import PaymentProviderError

logger = logging.getLogger(__name__)

PAYMENT_DUE_DAYS = 3


def _headers() -> dict:
    if not config.ASAAS_API_KEY:
        raise PaymentProviderError("Asaas key not configured", status_code=500)
    return {
        "access_token": config.ASAAS_API_KEY,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def _error_message(response: httpx.Response) -> str:
    """Extract the first error description from an Asaas error body."""
    try:
        errors = response.json().get("errors") or []
        if errors and errors[0].get("description"):
            return errors[0]["description"]
    except ValueError:
        pass
    return f"Asaas API error (HTTP {response.status_code})"


async def _request(method: str, path: str, **kwargs) -> dict:
    try:
        async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as client:
            response = await client.request(method, f"{config.ASAAS_API_URL}{path}", headers=_headers(), **kwargs)
    except httpx.HTTPError as e:
        logger.error(f"Asaas request {method} {path} failed: {e}")
        raise PaymentProviderError(f"Asaas service error: {str(e)}")

    if response.status_code >= 400:
        message = _error_message(response)
        logger.error(f"Asaas {method} {path} returned HTTP {response.status_code}: {message}")
        raise PaymentProviderError(message)
    return response.json()


async def find_customer_by_email(email: str) -> Optional[dict]:
    """
    Find an Asaas customer by email.

    Returns:
        Customer data if found, None otherwise
    """
    data = await _request("GET", "/customers", params={"email": email})
    customers = data.get("data") or []
    return customers[0] if customers else None


async def create_customer(name: str, email: str, phone: Optional[str] = None,
                          cpf_cnpj: Optional[str] = None) -> dict:
    payload = {"name": name, "email": email}
    if phone:
        payload["mobilePhone"] = phone
    if cpf_cnpj:
        payload["cpfCnpj"] = cpf_cnpj
    customer = await _request("POST", "/customers", json=payload)
    logger.info(f"Asaas customer {customer.get('id')} created for {email}")
    return customer


async def get_or_create_customer(name: str, email: str, phone: Optional[str] = None,
                                 cpf_cnpj: Optional[str] = None) -> dict:
    customer = await find_customer_by_email(email)
    if customer:
        return customer
    return await create_customer(name, email, phone, cpf_cnpj)


async def create_payment(customer_id: str, order_id: str, value: Decimal, description: str) -> dict:
    """
    Create a payment the customer settles on the hosted invoice page.

    Args:
        customer_id: Asaas customer id
        order_id: Order identifier, sent as externalReference
        value: Amount to charge
        description: Text shown on the invoice

    Returns:
        {"id": payment id, "url": hosted invoice URL}
    """
    payload = {
        "customer": customer_id,
        "billingType": "UNDEFINED",
        "value": float(value),
        "dueDate": (date.today() + timedelta(days=PAYMENT_DUE_DAYS)).isoformat(),
        "description": description,
        "externalReference": order_id,
    }
    payment = await _request("POST", "/payments", json=payload)
    logger.info(f"Asaas payment {payment.get('id')} created for order {order_id}")
    return {"id": payment["id"], "url": payment.get("invoiceUrl")}
