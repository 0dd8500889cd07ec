from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..dataclasses import QuoteLineItem, TariffRate, TariffStatus

CRITICAL_DAYS = 7
WARNING_DAYS = 14


class ValidityRisk(str, Enum):
    EXPIRED = "EXPIRED"
    EARLY_EXPIRY = "EARLY_EXPIRY"


class ExpiryLevel(str, Enum):
    EXPIRED = "EXPIRED"
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    OK = "OK"


@dataclass(frozen=True)
class LaneExpiry:
    lane: str
    valid_to: date
    days_left: int
    level: ExpiryLevel
    best_rate: TariffRate
    rates: Tuple[TariffRate, ...]


def line_validity_risk(item: QuoteLineItem, quote_validity: Optional[date], today: date) -> Optional[ValidityRisk]:
    """EXPIRED if the line's rate is already past; EARLY_EXPIRY if it lapses before the quote does."""
    if item.validity_date is None:
        return None
    if item.validity_date < today:
        return ValidityRisk.EXPIRED
    if quote_validity is not None and item.validity_date < quote_validity:
        return ValidityRisk.EARLY_EXPIRY
    return None


def expiry_level(days_left: int) -> ExpiryLevel:
    if days_left < 0:
        return ExpiryLevel.EXPIRED
    if days_left <= CRITICAL_DAYS:
        return ExpiryLevel.CRITICAL
    if days_left <= WARNING_DAYS:
        return ExpiryLevel.WARNING
    return ExpiryLevel.OK


def expiring_lanes(catalogue: Optional[Iterable[TariffRate]], today: date, limit: int = 5) -> List[LaneExpiry]:
    """
    Lanes ordered by how soon their best active rate runs out.

    A lane's horizon is the latest ``valid_to`` among its active rates.
    """
    lanes: "OrderedDict[str, List[TariffRate]]" = OrderedDict()
    for rate in catalogue or ():
        if rate.status != TariffStatus.ACTIVE:
            continue
        lanes.setdefault(rate.lane, []).append(rate)

    rows = []
    for lane, rates in lanes.items():
        best = max(rates, key=lambda r: r.valid_to)
        days_left = (best.valid_to - today).days
        rows.append(LaneExpiry(
            lane=lane,
            valid_to=best.valid_to,
            days_left=days_left,
            level=expiry_level(days_left),
            best_rate=best,
            rates=tuple(rates),
        ))
    rows.sort(key=lambda r: r.valid_to)
    return rows[:limit]
