"""
Tariff matching.

Filters a catalogue snapshot of carrier rate sheets against a route query in
stages (route, incoterm, status, validity) so that a failed lookup always
names the stage that emptied the candidate list.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..dataclasses import Incoterm, TariffRate, TariffStatus, TransportMode
from .utils import ZERO

logger = logging.getLogger(__name__)

# Sort sentinels for missing prices / transit times.
UNKNOWN_PRICE = Decimal("Infinity")
UNKNOWN_TRANSIT = 9999


class MatchReason(str, Enum):
    MATCHED = "MATCHED"
    INCOMPLETE_QUERY = "INCOMPLETE_QUERY"
    NO_ROUTE = "NO_ROUTE"
    INCOTERM_MISMATCH = "INCOTERM_MISMATCH"
    NOT_ACTIVE = "NOT_ACTIVE"
    EXPIRED = "EXPIRED"


class Strategy(str, Enum):
    CHEAPEST = "CHEAPEST"
    FASTEST = "FASTEST"
    MOST_RELIABLE = "MOST_RELIABLE"


@dataclass(frozen=True)
class MatchQuery:
    pol: str
    pod: str
    mode: Optional[TransportMode]
    incoterm: Optional[Incoterm]
    date: date


@dataclass(frozen=True)
class MatchResult:
    reason: MatchReason
    rate: Optional[TariffRate] = None
    candidates: Tuple[TariffRate, ...] = ()
    available_incoterms: Tuple[Incoterm, ...] = ()
    message: str = ""

    @property
    def matched(self) -> bool:
        return self.rate is not None


def _same(a: str, b: str) -> bool:
    return (a or "").strip().upper() == (b or "").strip().upper()


def _freight_price(rate: TariffRate) -> Decimal:
    if not rate.freight_charges:
        return UNKNOWN_PRICE
    return rate.freight_charges[0].headline_price


def _transit(rate: TariffRate) -> int:
    return rate.transit_days if rate.transit_days is not None else UNKNOWN_TRANSIT


def _reliability(rate: TariffRate) -> Decimal:
    return rate.reliability if rate.reliability is not None else ZERO


def rank_candidates(candidates: Iterable[TariffRate], strategy: Optional[Strategy]) -> List[TariffRate]:
    """Order surviving rates for a strategy; stable so ties keep catalogue order."""
    rows = list(candidates)
    if strategy is None:
        return rows
    if strategy == Strategy.CHEAPEST:
        return sorted(rows, key=_freight_price)
    if strategy == Strategy.FASTEST:
        return sorted(rows, key=_transit)
    if strategy == Strategy.MOST_RELIABLE:
        return sorted(rows, key=_reliability, reverse=True)
    raise ValueError(f"Unknown strategy: {strategy}")


def find_best_match(
    catalogue: Optional[Iterable[TariffRate]],
    query: MatchQuery,
    strategy: Optional[Strategy] = None,
) -> MatchResult:
    if not query.pol or not query.pod or query.mode is None:
        return MatchResult(
            reason=MatchReason.INCOMPLETE_QUERY,
            message="Origin, destination and mode are required to look up a tariff",
        )

    lane = f"{query.pol.upper()}->{query.pod.upper()} ({query.mode.value})"
    rates = list(catalogue or ())

    on_route = [r for r in rates if _same(r.pol, query.pol) and _same(r.pod, query.pod) and r.mode == query.mode]
    if not on_route:
        logger.debug("Tariff match %s: no route among %d rates", lane, len(rates))
        return MatchResult(reason=MatchReason.NO_ROUTE, message=f"No tariff on file for {lane}")

    on_incoterm = [r for r in on_route if r.incoterm == query.incoterm]
    if not on_incoterm:
        available = tuple(dict.fromkeys(r.incoterm for r in on_route))
        terms = ", ".join(t.value for t in available)
        wanted = query.incoterm.value if query.incoterm else "?"
        return MatchResult(
            reason=MatchReason.INCOTERM_MISMATCH,
            available_incoterms=available,
            message=f"No {wanted} tariff for {lane}; available: {terms}",
        )

    active = [r for r in on_incoterm if r.status == TariffStatus.ACTIVE]
    if not active:
        return MatchResult(reason=MatchReason.NOT_ACTIVE, message=f"Tariffs for {lane} exist but none is active")

    valid = [r for r in active if r.valid_from <= query.date <= r.valid_to]
    if not valid:
        pending = [r.valid_from for r in active if r.valid_from > query.date and r.valid_to >= query.date]
        if pending:
            message = f"Active tariffs for {lane} are not valid before {min(pending).isoformat()}"
        else:
            latest = max(r.valid_to for r in active)
            message = f"Active tariffs for {lane} expired (latest valid to {latest.isoformat()})"
        return MatchResult(reason=MatchReason.EXPIRED, message=message)

    ranked = rank_candidates(valid, strategy)
    best = ranked[0]
    logger.debug("Tariff match %s: %d candidates, picked %s (%s)", lane, len(ranked), best.id,
                 strategy.value if strategy else "catalogue order")
    return MatchResult(
        reason=MatchReason.MATCHED,
        rate=best,
        candidates=tuple(ranked),
        message=f"{best.carrier} tariff {best.id} valid to {best.valid_to.isoformat()}",
    )
