"""
Order tracking lookups.

Events come from the carrier API when a token is configured. Correios codes
without live data get a single placeholder "posted" event. When an order has
the tracking code, the events are saved to its history and a delivery event
marks the order delivered.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from . import config, crud, validators
from .clients import melhor_envio_client
from .exceptions import CarrierApiError, ValidationError
from .webhooks import apply_status

logger = logging.getLogger(__name__)

DELIVERED_MARKERS = ("entregue", "delivered")
UNKNOWN_CARRIER = "Desconhecido"


def normalize_carrier_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """Map one Melhor Envio tracking entry onto the tracking event shape."""
    city = event.get("city")
    return {
        "status": event.get("status") or "Em trânsito",
        "description": event.get("message") or event.get("description"),
        "location": f"{city} - {event.get('state')}" if city else None,
        "event_date": event.get("date_time") or event.get("date") or datetime.utcnow().isoformat(),
    }


def is_delivered(events: List[Dict[str, Any]]) -> bool:
    for event in events:
        text = f"{event.get('status') or ''} {event.get('description') or ''}".lower()
        if any(marker in text for marker in DELIVERED_MARKERS):
            return True
    return False


async def fetch_carrier_events(tracking_code: str) -> List[Dict[str, Any]]:
    if not config.MELHOR_ENVIO_TOKEN:
        return []
    try:
        raw_events = await melhor_envio_client.get_tracking(tracking_code)
    except CarrierApiError as e:
        logger.error(f"Melhor Envio tracking error for {tracking_code}: {e.message}")
        return []
    return [normalize_carrier_event(event) for event in raw_events]


def placeholder_events() -> List[Dict[str, Any]]:
    return [{
        "status": "Objeto postado",
        "description": "Objeto postado",
        "location": None,
        "event_date": datetime.utcnow().isoformat(),
    }]


def save_events(db: Session, tracking_code: str, events: List[Dict[str, Any]]) -> None:
    """Store events on the matching order and detect delivery."""
    order = crud.get_order_by_tracking_code(db, tracking_code)
    if order is None or not events:
        return

    inserted = 0
    for event in events:
        if crud.upsert_tracking_event(
            db,
            order.id,
            event["status"],
            event.get("description"),
            event.get("location"),
            validators.parse_event_date(event.get("event_date")),
        ):
            inserted += 1
    logger.info(f"Saved {inserted} new tracking event(s) for order {order.id}")

    if is_delivered(events) and order.status != "delivered":
        apply_status(db, order, "delivered", delivered_at=datetime.utcnow())


async def track_order(db: Session, tracking_code: Optional[str], carrier: Optional[str] = None) -> Dict[str, Any]:
    """
    Look up the event history of a tracking code.

    Returns:
        {"tracking_code", "events", "carrier"}; events is empty when nothing is known

    Raises:
        ValidationError: If no tracking code was given
    """
    tracking_code = (tracking_code or "").strip()
    if not tracking_code:
        raise ValidationError("Código de rastreio é obrigatório")

    events = await fetch_carrier_events(tracking_code)
    if not events and validators.is_correios_tracking_code(tracking_code):
        events = placeholder_events()

    save_events(db, tracking_code, events)

    return {
        "tracking_code": tracking_code,
        "events": events,
        "carrier": carrier or UNKNOWN_CARRIER,
    }
