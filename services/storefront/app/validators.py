"""
Validation utilities for the Storefront service.

Provides business-rule validation beyond schema validation.
"""
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from . import schemas

POSTAL_CODE_LENGTH = 8

# Correios physical-mail object code, e.g. "AA123456789BR"
CORREIOS_TRACKING_RE = re.compile(r"^[A-Z]{2}\d{9}[A-Z]{2}$")
SIGNATURE_TOKEN_RE = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)
UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def validate_checkout(items: List[schemas.CartItem], customer: schemas.Customer) -> Tuple[bool, str]:
    """
    Validate a cart before an order is created.

    Args:
        items: Cart items
        customer: Buyer identity

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not items:
        return False, "No items in cart"

    if len(items) > 100:
        return False, "Cart cannot contain more than 100 items"

    if not customer.name or not customer.email:
        return False, "Customer name and email required"

    if "@" not in customer.email:
        return False, "Invalid customer email"

    return True, ""


def normalize_postal_code(value: Optional[str]) -> Optional[str]:
    """
    Strip everything but digits from a CEP.

    Returns:
        The 8-digit code, or None when it does not reduce to exactly 8 digits
    """
    digits = re.sub(r"\D", "", value or "")
    if len(digits) != POSTAL_CODE_LENGTH:
        return None
    return digits


def is_correios_tracking_code(tracking_code: str) -> bool:
    return bool(CORREIOS_TRACKING_RE.match(tracking_code))


def is_valid_signature_token(token: Optional[str]) -> bool:
    return isinstance(token, str) and bool(SIGNATURE_TOKEN_RE.match(token))


def is_valid_uuid(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def validate_order_status_transition(old_status: str, new_status: str) -> Tuple[bool, str]:
    """
    Validate that a status transition is allowed.

    Args:
        old_status: Current order status
        new_status: New order status

    Returns:
        Tuple of (is_valid, error_message)
    """
    valid_transitions = {
        "pending": ["paid", "canceled"],
        "paid": ["shipped", "canceled"],
        "shipped": ["delivered"],
        "delivered": [],  # Terminal state
        "canceled": [],  # Terminal state
    }

    if old_status not in valid_transitions:
        return False, f"Unknown status: {old_status}"

    if new_status not in valid_transitions:
        return False, f"Unknown status: {new_status}"

    if old_status == new_status:
        return True, ""  # No change is valid

    if new_status not in valid_transitions[old_status]:
        return False, f"Invalid status transition: {old_status} -> {new_status}"

    return True, ""


def parse_event_date(value: Optional[str]) -> datetime:
    """
    Parse a carrier/provider timestamp into a naive UTC datetime.

    Accepts ISO 8601 (with or without offset, "Z" included) and
    "YYYY-MM-DD HH:MM:SS". Missing or unparseable values fall back to now.
    """
    if not value:
        return datetime.utcnow()
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return datetime.utcnow()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
