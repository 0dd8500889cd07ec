from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from ..dataclasses import OptionTotals, PricingOption, Quotation
from .fx_service import FxConverter
from .markup import compute_totals
from .tariff_matcher import UNKNOWN_TRANSIT

BADGE_CHEAPEST = "CHEAPEST"
BADGE_FASTEST = "FASTEST"
BADGE_BEST_MARGIN = "BEST_MARGIN"

SORT_KEYS = ("total", "margin", "transit")


@dataclass(frozen=True)
class OptionComparison:
    option_id: str
    name: str
    total_payable: Decimal
    net: Decimal
    margin_pct: Decimal
    transit_days: Optional[int]
    carrier: str
    equipment_summary: str
    route_summary: str
    is_active: bool
    badges: Tuple[str, ...] = ()


def equipment_summary(option: PricingOption) -> str:
    if option.equipment:
        return ", ".join(f"{e.count}x{e.equipment_type}" for e in option.equipment)
    cargo = option.cargo
    if cargo.packages:
        return f"{cargo.total_packages} pkgs / {cargo.total_weight_kg.normalize():f} kg / {cargo.total_volume_m3.normalize():f} m3"
    return "-"


def route_summary(option: PricingOption) -> str:
    pol = option.pol or "?"
    pod = option.pod or "?"
    return f"{pol} -> {pod} ({option.mode.value}, {option.incoterm.value})"


def _totals(quotation: Quotation, option: PricingOption) -> OptionTotals:
    if option.totals is not None and option.totals.currency == quotation.currency.upper():
        return option.totals
    return compute_totals(option, FxConverter(quotation.exchange_rates), quotation.currency)


def _transit(row: OptionComparison) -> int:
    return row.transit_days if row.transit_days is not None else UNKNOWN_TRANSIT


def compare_options(quotation: Quotation, sort_by: str = "total") -> List[OptionComparison]:
    """
    Side-by-side view of a quotation's options.

    Read-only: picking an option is done with ``set_active_option``.
    """
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key {sort_by!r}; expected one of {', '.join(SORT_KEYS)}")

    rows = []
    for option in quotation.options:
        totals = _totals(quotation, option)
        rows.append(dict(
            option_id=option.id,
            name=option.name,
            total_payable=totals.gross,
            net=totals.net,
            margin_pct=totals.margin_pct,
            transit_days=option.transit_days,
            carrier=option.carrier,
            equipment_summary=equipment_summary(option),
            route_summary=route_summary(option),
            is_active=option.id == quotation.active_option_id,
        ))

    priced = [r for r in rows if r["total_payable"] > 0]
    badges = {r["option_id"]: [] for r in rows}
    if len(rows) > 1:
        if priced:
            cheapest = min(r["total_payable"] for r in priced)
            best_margin = max(r["margin_pct"] for r in priced)
            for r in priced:
                if r["total_payable"] == cheapest:
                    badges[r["option_id"]].append(BADGE_CHEAPEST)
                if r["margin_pct"] == best_margin:
                    badges[r["option_id"]].append(BADGE_BEST_MARGIN)
        timed = [r for r in rows if r["transit_days"] is not None]
        if timed:
            fastest = min(r["transit_days"] for r in timed)
            for r in timed:
                if r["transit_days"] == fastest:
                    badges[r["option_id"]].append(BADGE_FASTEST)

    result = [OptionComparison(badges=tuple(badges[r["option_id"]]), **r) for r in rows]
    if sort_by == "total":
        # Unpriced options go last.
        return sorted(result, key=lambda r: (r.total_payable <= 0, r.total_payable))
    if sort_by == "margin":
        return sorted(result, key=lambda r: r.margin_pct, reverse=True)
    return sorted(result, key=_transit)
