"""
HTTP client for the Melhor Envio carrier API.

Provides live shipment quotes and tracking lookups.
"""
import logging
from typing import List, Optional

import httpx

from .. import config
from ..exceptions import CarrierApiError

logger = logging.getLogger(__name__)


def _headers() -> dict:
    return {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "Authorization": f"Bearer {config.MELHOR_ENVIO_TOKEN}",
        "User-Agent": config.MELHOR_ENVIO_USER_AGENT,
    }


async def _post(path: str, payload: dict):
    try:
        async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as client:
            response = await client.post(f"{config.MELHOR_ENVIO_API_URL}{path}", json=payload, headers=_headers())
    except httpx.HTTPError as e:
        raise CarrierApiError(f"Melhor Envio service error: {str(e)}")

    if response.status_code >= 400:
        logger.error(f"Melhor Envio API error: HTTP {response.status_code} {response.text}")
        raise CarrierApiError("Erro ao consultar API de frete")
    return response.json()


async def calculate_quotes(origin_zip: str, destination_zip: str, weight_grams: float,
                           length: float, width: float, height: float,
                           insurance_value: Optional[float] = None) -> List[dict]:
    """
    Request shipment quotes for one package.

    Returns:
        Raw quote list as returned by the carrier
    """
    payload = {
        "from": {"postal_code": origin_zip},
        "to": {"postal_code": destination_zip},
        "products": [
            {
                "id": "1",
                "width": width,
                "height": height,
                "length": length,
                "weight": weight_grams / 1000,
                "insurance_value": insurance_value or 0,
                "quantity": 1,
            }
        ],
    }
    return await _post("/me/shipment/calculate", payload)


async def get_tracking(tracking_code: str) -> List[dict]:
    """
    Fetch the raw tracking history for one shipment.

    Returns:
        The carrier's event list, empty when the code is unknown
    """
    data = await _post("/me/shipment/tracking", {"orders": [tracking_code]})
    tracking_data = (data or {}).get(tracking_code) or {}
    return tracking_data.get("tracking") or []
