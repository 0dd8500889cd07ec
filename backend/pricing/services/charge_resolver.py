from __future__ import annotations

import re
from decimal import Decimal
from typing import Iterable, Optional

from ..dataclasses import CargoProfile, CostBasis, Equipment, RateCharge, TransportMode
from .chargeable_weight import chargeable_weight
from .utils import ZERO, d

BRACKET_20DV = "20DV"
BRACKET_40DV = "40DV"
BRACKET_40HC = "40HC"
BRACKET_40RF = "40RF"
FALLBACK_BRACKET = BRACKET_40HC


def _normalize_equipment(raw: Optional[str]) -> str:
    """Collapse descriptors like "40' HC", "40-hc" or "40 High Cube" to tokens."""
    s = (raw or "").strip().upper()
    s = s.replace("'", "").replace("FT", "")
    s = re.sub(r"[\s\-_]+", "", s)
    return s


def equipment_bracket(equipment_type: Optional[str]) -> str:
    """Map an equipment descriptor to a price bracket, falling back to 40' HC."""
    s = _normalize_equipment(equipment_type)
    if s.startswith("20"):
        if any(tag in s for tag in ("RF", "REEFER", "HC", "HQ")):
            return FALLBACK_BRACKET
        return BRACKET_20DV
    if s.startswith("40") or s.startswith("45"):
        tail = s[2:]
        if tail in ("HC", "HQ", "HIGHCUBE"):
            return BRACKET_40HC
        if tail in ("RF", "RH", "REEFER", "RFR"):
            return BRACKET_40RF
        if tail in ("", "DV", "DC", "GP", "DRY", "ST") and s.startswith("40"):
            return BRACKET_40DV
    return FALLBACK_BRACKET


def container_price(charge: RateCharge, bracket: str) -> Decimal:
    prices = {
        BRACKET_20DV: charge.price_20dv,
        BRACKET_40DV: charge.price_40dv,
        BRACKET_40HC: charge.price_40hc,
        BRACKET_40RF: charge.price_40rf,
    }
    price = prices.get(bracket)
    if price is None:
        price = charge.price_40hc
    return d(price) if price is not None else ZERO


def resolve_cost(
    charge: RateCharge,
    cargo: CargoProfile,
    equipment: Iterable[Equipment],
    mode: TransportMode,
) -> Decimal:
    """Cost of one tariff charge for the cargo, in the charge currency."""
    basis = charge.basis
    if basis == CostBasis.CONTAINER:
        rows = list(equipment)
        if not rows:
            return container_price(charge, FALLBACK_BRACKET)
        return sum(
            (container_price(charge, equipment_bracket(e.equipment_type)) * e.count for e in rows),
            ZERO,
        )

    if basis in (CostBasis.WEIGHT, CostBasis.TAXABLE_WEIGHT):
        total = d(charge.unit_price) * chargeable_weight(cargo, mode)
        if charge.min_price and total < charge.min_price:
            return d(charge.min_price)
        return total

    if basis == CostBasis.VOLUME:
        return d(charge.unit_price) * cargo.total_volume_m3

    return d(charge.unit_price)
