"""
Shipping rate estimation.

The simulated calculator is a local heuristic, not a carrier lookup: it derives
a distance "zone" from the first two digits of each CEP and prices a package by
its chargeable (actual vs. volumetric) weight. It has no side effects.
"""
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .validators import normalize_postal_code

DEFAULT_WEIGHT_GRAMS = 500
DEFAULT_LENGTH_CM = 30
DEFAULT_WIDTH_CM = 20
DEFAULT_HEIGHT_CM = 10

VOLUMETRIC_DIVISOR = Decimal("6000")
PRICE_PER_KG = Decimal("2")
MINIMUM_BASE_PRICE = Decimal("5.00")
MOTOBOY_MAX_ZONE = 2

INVALID_CEP_MESSAGE = "CEP inválido. Use o formato 00000-000 ou 00000000"
INVALID_DIMENSIONS_MESSAGE = "Peso e dimensões do pacote devem ser números finitos"


def _decimal(value: Optional[float], default: float) -> Decimal:
    if value is not None and not math.isfinite(value):
        raise ValidationError(INVALID_DIMENSIONS_MESSAGE)
    if value is None or value <= 0:
        value = default
    return Decimal(str(value))


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def shipping_zone(origin_zip: str, destination_zip: str) -> int:
    """
    Coarse distance band (1-4) from the difference of the CEP region prefixes.
    """
    diff = abs(int(origin_zip[:2]) - int(destination_zip[:2]))
    if diff <= 5:
        return 1
    if diff <= 15:
        return 2
    if diff <= 30:
        return 3
    return 4


def chargeable_weight(weight_grams: Optional[float] = None, length: Optional[float] = None,
                      width: Optional[float] = None, height: Optional[float] = None) -> Decimal:
    """Greater of the actual weight and the volumetric weight, in kg."""
    actual_kg = _decimal(weight_grams, DEFAULT_WEIGHT_GRAMS) / Decimal("1000")
    volumetric_kg = (
        _decimal(length, DEFAULT_LENGTH_CM)
        * _decimal(width, DEFAULT_WIDTH_CM)
        * _decimal(height, DEFAULT_HEIGHT_CM)
        / VOLUMETRIC_DIVISOR
    )
    return max(actual_kg, volumetric_kg)


def calculate_simulated_rates(origin_zip: str, destination_zip: str, weight: Optional[float] = None,
                              length: Optional[float] = None, width: Optional[float] = None,
                              height: Optional[float] = None) -> List[Dict[str, Any]]:
    """
    Estimate shipping options between two CEPs.

    Args:
        origin_zip: Origin CEP, any formatting
        destination_zip: Destination CEP, any formatting
        weight: Package weight in grams (defaults to 500)
        length, width, height: Package sides in cm (default 30x20x10)

    Returns:
        List of options with service_code, service_name, price, delivery_days,
        delivery_range and carrier. The FREE option is always present; whether
        the order qualifies for it is decided by the caller.

    Raises:
        ValidationError: if either CEP does not reduce to exactly 8 digits
    """
    origin = normalize_postal_code(origin_zip)
    destination = normalize_postal_code(destination_zip)
    if origin is None or destination is None:
        raise ValidationError(INVALID_CEP_MESSAGE)

    zone = shipping_zone(origin, destination)
    base_price = max(chargeable_weight(weight, length, width, height) * PRICE_PER_KG, MINIMUM_BASE_PRICE)
    zone_d = Decimal(zone)

    options = [
        {
            "service_code": "SEDEX",
            "service_name": "SEDEX - Entrega Expressa",
            "price": _money(base_price * (1 + zone_d * Decimal("0.3")) * Decimal("1.5")),
            "delivery_days": zone,
            "delivery_range": {"min": zone, "max": zone + 1},
            "carrier": "Correios",
        },
        {
            "service_code": "PAC",
            "service_name": "PAC - Entrega Econômica",
            "price": _money(base_price * (1 + zone_d * Decimal("0.2"))),
            "delivery_days": zone * 3 + 2,
            "delivery_range": {"min": zone * 2 + 2, "max": zone * 3 + 3},
            "carrier": "Correios",
        },
    ]

    if zone <= MOTOBOY_MAX_ZONE:
        options.append({
            "service_code": "MOTOBOY",
            "service_name": "Motoboy - Entrega no Mesmo Dia",
            "price": _money(base_price * Decimal("2.5")),
            "delivery_days": 0,
            "delivery_range": {"min": 0, "max": 1},
            "carrier": "Motoboy",
        })

    options.append({
        "service_code": "FREE",
        "service_name": "Frete Grátis",
        "price": 0.0,
        "delivery_days": zone * 3 + 4,
        "delivery_range": {"min": zone * 3 + 4, "max": zone * 4 + 6},
        "carrier": "Correios",
    })
    return options


def format_carrier_quotes(quotes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Normalize Melhor Envio quotes into shipping options, cheapest first.

    Quotes carrying an error or without a positive price are dropped.
    """
    options = []
    for quote in quotes:
        if quote.get("error"):
            continue
        try:
            price = float(quote.get("custom_price") or quote.get("price") or 0)
        except (TypeError, ValueError):
            continue
        if price <= 0:
            continue

        company = quote.get("company") or {}
        delivery_days = quote.get("custom_delivery_time") or quote.get("delivery_time") or 0
        delivery_range = (
            quote.get("custom_delivery_range")
            or quote.get("delivery_range")
            or {"min": delivery_days, "max": delivery_days}
        )
        options.append({
            "service_code": f"ME_{company.get('id')}_{quote.get('id')}",
            "service_name": f"{company.get('name')} - {quote.get('name')}",
            "price": price,
            "delivery_days": delivery_days,
            "delivery_range": {"min": delivery_range.get("min", delivery_days),
                               "max": delivery_range.get("max", delivery_days)},
            "carrier": company.get("name"),
            "carrier_logo": company.get("picture"),
        })

    options.sort(key=lambda option: option["price"])
    return options
