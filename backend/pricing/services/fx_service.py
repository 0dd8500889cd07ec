from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Mapping, Optional

from ..dataclasses import Money
from .pricing_rules import get_pricing_rules
from .utils import ONE, d

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conversion:
    amount: Decimal
    rate: Decimal
    warning: Optional[str] = None


def lookup_rate(currency: str, rates: Mapping[str, Decimal]) -> Conversion:
    """Return the base-unit price of one unit of `currency`.

    A missing, zero or negative rate resolves to 1 with a warning so a
    partially configured table never divides by zero.
    """
    code = (currency or "").upper()
    raw = rates.get(code)
    try:
        rate = d(raw) if raw is not None else None
    except ValueError:
        rate = None
    if rate is None or rate <= 0:
        msg = f"No exchange rate for {code or '?'}; using 1"
        logger.warning(msg)
        return Conversion(amount=ONE, rate=ONE, warning=msg)
    return Conversion(amount=rate, rate=rate)


def to_base(amount: Decimal, currency: str, rates: Mapping[str, Decimal]) -> Conversion:
    found = lookup_rate(currency, rates)
    return Conversion(amount=d(amount) * found.rate, rate=found.rate, warning=found.warning)


class FxConverter:
    """Converts amounts through a per-quotation exchange-rate snapshot.

    `rates` maps a currency code to its price in the base unit; the base
    currency maps to 1. Warnings raised by fallbacks accumulate in
    `self.warnings` for the caller to surface.
    """

    def __init__(self, rates: Mapping[str, Decimal], base_currency: Optional[str] = None):
        self.rates = {k.upper(): d(v) for k, v in rates.items()}
        self.base_currency = (base_currency or get_pricing_rules()["base_currency"]).upper()
        self.warnings: List[str] = []

    def rate(self, currency: str) -> Decimal:
        if (currency or "").upper() == self.base_currency:
            return ONE
        found = lookup_rate(currency, self.rates)
        if found.warning and found.warning not in self.warnings:
            self.warnings.append(found.warning)
        return found.rate

    def to_base(self, money: Money) -> Decimal:
        return d(money.amount) * self.rate(money.currency)

    def from_base(self, amount: Decimal, currency: str) -> Decimal:
        if currency.upper() == self.base_currency:
            return d(amount)
        return d(amount) / self.rate(currency)

    def convert(self, money: Money, to_ccy: str) -> Money:
        if money.currency.upper() == to_ccy.upper():
            return money
        return Money(self.from_base(self.to_base(money), to_ccy), to_ccy.upper())


class EnvProvider:
    """
    Reads baseline rates from the FX_BASELINE_RATES env var as JSON.
    Example:
      FX_BASELINE_RATES='{"USD": 10.02, "EUR": 10.85}'
    """

    def __init__(self, blob: Optional[str] = None):
        blob = blob if blob is not None else os.environ.get("FX_BASELINE_RATES", "{}")
        try:
            table = json.loads(blob or "{}")
        except json.JSONDecodeError:
            logger.exception("Invalid FX_BASELINE_RATES JSON; falling back to empty table")
            table = {}
        self.table: Dict[str, Decimal] = {}
        for ccy, value in table.items():
            try:
                self.table[ccy.upper()] = d(value)
            except (ValueError, InvalidOperation):
                logger.warning("Skipping non-numeric FX_BASELINE_RATES entry %s=%r", ccy, value)

    def rates(self) -> Dict[str, Decimal]:
        return dict(self.table)


def load_baseline_rates(rules: Optional[dict] = None, provider: Optional[EnvProvider] = None) -> Dict[str, Decimal]:
    """Configured baseline table overlaid with the environment override."""
    rules = rules or get_pricing_rules()
    table = {k.upper(): d(v) for k, v in rules["baseline_rates"].items()}
    table.update((provider or EnvProvider()).rates())
    table[rules["base_currency"].upper()] = ONE
    return table
