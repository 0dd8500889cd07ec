from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Optional, Tuple

from .dataclasses import TariffRate as TariffRateSnapshot
from .models import ExchangeRate, TariffRate
from .services.fx_service import load_baseline_rates
from .services.pricing_rules import base_currency, get_pricing_rules

logger = logging.getLogger(__name__)


def load_catalogue(pol: Optional[str] = None, pod: Optional[str] = None) -> Tuple[TariffRateSnapshot, ...]:
    """Snapshot of the tariff catalogue, optionally narrowed to one lane."""
    qs = TariffRate.objects.prefetch_related('charges').order_by('id')
    if pol:
        qs = qs.filter(pol=pol.strip().upper())
    if pod:
        qs = qs.filter(pod=pod.strip().upper())
    rates = tuple(t.to_snapshot() for t in qs)
    logger.debug("Loaded %d tariff rates (pol=%s pod=%s)", len(rates), pol, pod)
    return rates


def current_exchange_rates(rules: Optional[dict] = None) -> Dict[str, Decimal]:
    """Latest stored rates over the configured baseline; the base is always 1."""
    rules = rules or get_pricing_rules()
    table = load_baseline_rates(rules)
    table.update(ExchangeRate.latest_table())
    table[base_currency(rules).upper()] = Decimal(1)
    return table
