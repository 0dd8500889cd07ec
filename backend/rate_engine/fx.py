from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
import os
from typing import Dict, List, Mapping, Optional

from django.utils.timezone import now

from pricing.models import ExchangeRate
from pricing.services.fx_service import EnvProvider, load_baseline_rates
from pricing.services.pricing_rules import base_currency, get_pricing_rules
from pricing.services.utils import d

logger = logging.getLogger(__name__)


@dataclass
class RateRow:
    as_of_ts: datetime
    currency: str
    rate: Decimal
    source: str
    previous: Optional[Decimal] = None
    anomaly_pct: Optional[Decimal] = None


def anomaly_threshold() -> Decimal:
    return d(os.environ.get("FX_ANOMALY_PCT", "0.05"))


def stale_hours() -> float:
    return float(os.environ.get("FX_STALE_HOURS", 24))


def change_pct(previous: Optional[Decimal], new: Decimal) -> Optional[Decimal]:
    if previous is None or d(previous) <= 0:
        return None
    return abs(d(new) - d(previous)) / d(previous)


def upsert_rate(as_of: datetime, currency: str, rate: Decimal, source: str) -> None:
    ExchangeRate.objects.update_or_create(
        as_of_ts=as_of,
        currency=currency.upper(),
        defaults={"rate": d(rate), "source": source},
    )


def warn_if_stale(currency: str, at: datetime) -> Optional[float]:
    latest = ExchangeRate.objects.filter(currency=currency).order_by("-as_of_ts").first()
    if latest is None:
        return None
    age_hours = (at - latest.as_of_ts).total_seconds() / 3600.0
    if age_hours > stale_hours():
        logger.warning("FX staleness: %s latest %.1fh old", currency, age_hours)
    return age_hours


def refresh_fx(
    table: Mapping[str, Decimal],
    *,
    currencies: Optional[List[str]] = None,
    source_label: str = "BASELINE",
    as_of: Optional[datetime] = None,
) -> List[RateRow]:
    """
    Persist one ExchangeRate row per currency of `table`.
    The base currency is skipped; rates moving more than FX_ANOMALY_PCT
    against the previous stored value are logged.
    """
    as_of = as_of or now()
    base = base_currency(get_pricing_rules()).upper()
    wanted = {c.upper() for c in currencies} if currencies else None
    threshold = anomaly_threshold()

    rows: List[RateRow] = []
    for ccy, value in sorted(table.items()):
        ccy = ccy.upper()
        if ccy == base or (wanted is not None and ccy not in wanted):
            continue
        rate = d(value)
        if rate <= 0:
            logger.warning("Skipping non-positive FX rate %s=%s", ccy, rate)
            continue
        warn_if_stale(ccy, as_of)
        prev_row = ExchangeRate.objects.filter(currency=ccy).order_by("-as_of_ts").first()
        previous = prev_row.rate if prev_row else None
        pct = change_pct(previous, rate)
        if pct is not None and pct > threshold:
            logger.warning("FX anomaly: %s changed by %.2f%% (old=%s new=%s)", ccy, pct * 100, previous, rate)
        upsert_rate(as_of, ccy, rate, source_label)
        rows.append(RateRow(as_of, ccy, rate, source_label, previous, pct))
    return rows


def provider_table(name: str) -> Dict[str, Decimal]:
    """'env' reads FX_BASELINE_RATES only; 'baseline' overlays it on the configured table."""
    key = (name or "baseline").strip().lower()
    if key == "env":
        return EnvProvider().rates()
    if key == "baseline":
        return load_baseline_rates()
    raise ValueError(f"Unknown FX provider '{name}' (use baseline|env)")
