"""
Markup engine.

Prices individual quote lines (cost in base units, sell in base and quote
currency, VAT, TTC, margin) and aggregates them into option totals. The
two edit helpers keep the sell price and the buy price consistent with the
field the user touched last:

* editing cost on a priced line solves for the markup,
* editing sell (TTC) solves for the buy price with markup held.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..dataclasses import (
    ApprovalTrigger,
    MarkupType,
    OptionTotals,
    PricingOption,
    QuoteLineItem,
    Section,
    SectionTotals,
    Settlement,
)
from .fx_service import FxConverter
from .pricing_rules import decimal_setting, get_pricing_rules
from .utils import HUNDRED, ONE, ZERO, d, q2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinePricing:
    cost_base: Decimal
    sell_base: Decimal
    sell_target: Decimal
    vat: Decimal
    sell_ttc: Decimal
    margin_pct: Decimal
    cost_target: Decimal = ZERO
    warnings: Tuple[str, ...] = ()


def margin_pct(sell_base: Decimal, cost_base: Decimal) -> Decimal:
    if sell_base <= 0:
        return ZERO
    return (sell_base - cost_base) / sell_base * HUNDRED


def sell_base_for(item: QuoteLineItem, buy_rate: Decimal) -> Decimal:
    cost_base = d(item.buy_price) * buy_rate
    if item.markup_type == MarkupType.PERCENT:
        return cost_base * (ONE + d(item.markup_value) / HUNDRED)
    # Fixed markups are expressed in the buy currency.
    return cost_base + d(item.markup_value) * buy_rate


def price_line(item: QuoteLineItem, fx: FxConverter, target_currency: str) -> LinePricing:
    seen = len(fx.warnings)
    buy_rate = fx.rate(item.buy_currency)
    cost_base = d(item.buy_price) * buy_rate
    sell_base = sell_base_for(item, buy_rate)
    sell_target = fx.from_base(sell_base, target_currency)
    vat = sell_target * item.vat_rule.rate
    return LinePricing(
        cost_base=cost_base,
        sell_base=sell_base,
        sell_target=sell_target,
        vat=vat,
        sell_ttc=sell_target + vat,
        margin_pct=margin_pct(sell_base, cost_base),
        cost_target=fx.from_base(cost_base, target_currency),
        warnings=tuple(fx.warnings[seen:]),
    )


def price_lines(option: PricingOption, fx: FxConverter, target_currency: str) -> List[Tuple[QuoteLineItem, LinePricing]]:
    """Priced lines in display order: by section, then entry order."""
    order = {s: i for i, s in enumerate(Section)}
    items = sorted(option.items, key=lambda it: order[it.section])
    return [(it, price_line(it, fx, target_currency)) for it in items]


def edit_cost(
    item: QuoteLineItem,
    new_cost: Decimal,
    fx: FxConverter,
    target_currency: str,
) -> Tuple[QuoteLineItem, List[str]]:
    """
    Set the buy price of a line.

    A line that already sells for something keeps its sell price and the
    markup absorbs the difference (which can go negative). A fresh line with
    zero sell only takes the new cost.
    """
    new_cost = d(new_cost)
    warnings: List[str] = []
    current = price_line(item, fx, target_currency)
    if current.sell_base <= 0:
        return replace(item, buy_price=new_cost), warnings

    buy_rate = fx.rate(item.buy_currency)
    new_cost_base = new_cost * buy_rate

    if item.markup_type == MarkupType.FIXED_AMOUNT:
        markup = (current.sell_base - new_cost_base) / buy_rate
        return replace(item, buy_price=new_cost, markup_value=markup), warnings

    if new_cost_base == 0:
        # A percentage of nothing cannot carry the sell price.
        markup = current.sell_base / buy_rate
        warnings.append(
            f"Line '{item.description}' cost set to 0; markup switched to a fixed {q2(markup)} {item.buy_currency}"
        )
        return replace(item, buy_price=new_cost, markup_type=MarkupType.FIXED_AMOUNT, markup_value=markup), warnings

    markup = (current.sell_base / new_cost_base - ONE) * HUNDRED
    if markup < 0:
        logger.info("Cost edit on line %s leaves a negative markup (%s%%)", item.id, q2(markup))
    return replace(item, buy_price=new_cost, markup_value=markup), warnings


def edit_sell(
    item: QuoteLineItem,
    new_sell_ttc: Decimal,
    fx: FxConverter,
    target_currency: str,
) -> Tuple[QuoteLineItem, List[str]]:
    """
    Set the TTC sell price of a line by solving for the buy price.

    The markup is never changed here.
    """
    warnings: List[str] = []
    sell_target = d(new_sell_ttc) / (ONE + item.vat_rule.rate)
    sell_base = sell_target * fx.rate(target_currency)
    buy_rate = fx.rate(item.buy_currency)

    if item.markup_type == MarkupType.FIXED_AMOUNT:
        cost = sell_base / buy_rate - d(item.markup_value)
    else:
        factor = ONE + d(item.markup_value) / HUNDRED
        if factor == 0:
            warnings.append(f"Line '{item.description}' has a -100% markup; sell price cannot be edited")
            return item, warnings
        cost = sell_base / factor / buy_rate

    if cost < 0:
        warnings.append(f"Line '{item.description}' sell implies a negative buy price")
    return replace(item, buy_price=cost), warnings


def _accumulate(acc: Dict[str, Decimal], pricing: LinePricing) -> None:
    cost = pricing.cost_target
    acc["net"] += pricing.sell_target
    acc["vat"] += pricing.vat
    acc["gross"] += pricing.sell_ttc
    acc["cost"] += cost
    acc["margin"] += pricing.sell_target - cost
    acc["lines"] += 1


def _empty() -> Dict[str, Decimal]:
    return {"net": ZERO, "vat": ZERO, "gross": ZERO, "cost": ZERO, "margin": ZERO, "lines": 0}


def _section_totals(acc: Dict[str, Decimal]) -> SectionTotals:
    return SectionTotals(
        net=q2(acc["net"]),
        vat=q2(acc["vat"]),
        gross=q2(acc["gross"]),
        cost=q2(acc["cost"]),
        margin=q2(acc["margin"]),
        lines=acc["lines"],
    )


def compute_totals(option: PricingOption, fx: FxConverter, target_currency: str) -> OptionTotals:
    """Aggregate an option's lines; rounding happens here and nowhere earlier."""
    overall = _empty()
    sections = {s: _empty() for s in Section}
    settlements = {s: _empty() for s in Settlement}
    sell_base = cost_base = ZERO

    for item in option.items:
        pricing = price_line(item, fx, target_currency)
        _accumulate(overall, pricing)
        _accumulate(sections[item.section], pricing)
        _accumulate(settlements[item.settlement], pricing)
        sell_base += pricing.sell_base
        cost_base += pricing.cost_base

    return OptionTotals(
        currency=target_currency.upper(),
        net=q2(overall["net"]),
        vat=q2(overall["vat"]),
        gross=q2(overall["gross"]),
        cost=q2(overall["cost"]),
        margin=q2(overall["margin"]),
        margin_pct=q2(margin_pct(sell_base, cost_base)),
        sell_base=q2(sell_base),
        cost_base=q2(cost_base),
        by_section={s: _section_totals(a) for s, a in sections.items()},
        by_settlement={s: _section_totals(a) for s, a in settlements.items()},
    )


MARGIN_LOW = "MARGIN_LOW"
CREDIT_EXTENDED = "CREDIT_EXTENDED"
HIGH_VALUE = "HIGH_VALUE"


def evaluate_risk(
    payment_terms: str,
    sell_base: Decimal,
    margin: Optional[Decimal],
    rules: Optional[dict] = None,
) -> Tuple[ApprovalTrigger, ...]:
    """
    Reasons a quotation must go through a manager.

    `sell_base` is the net sell in base currency. A `margin` of None skips
    the margin check (an option without lines has no margin to judge).
    """
    rules = rules or get_pricing_rules()
    floor = decimal_setting("min_margin_pct", rules)
    ceiling = decimal_setting("high_value_threshold", rules)
    base = rules["base_currency"]
    triggers = []

    if margin is not None and d(margin) < floor:
        triggers.append(ApprovalTrigger(
            MARGIN_LOW, f"Margin {q2(margin)}% is below the {floor.normalize():f}% threshold"))

    terms = payment_terms or ""
    if any(marker in terms for marker in rules.get("extended_credit_markers", ())):
        triggers.append(ApprovalTrigger(CREDIT_EXTENDED, f"Extended payment terms: {terms}", severity="MEDIUM"))

    if d(sell_base) > ceiling:
        triggers.append(ApprovalTrigger(
            HIGH_VALUE, f"High value exposure (over {ceiling.normalize():f} {base})"))
    return tuple(triggers)


def risk_triggers(
    totals: Optional[OptionTotals],
    payment_terms: str = "",
    rules: Optional[dict] = None,
) -> Tuple[ApprovalTrigger, ...]:
    """Risk triggers for an option's totals under the quotation's payment terms."""
    if totals is None:
        return evaluate_risk(payment_terms, ZERO, None, rules)
    priced = sum(s.lines for s in totals.by_section.values()) > 0
    return evaluate_risk(payment_terms, totals.sell_base, totals.margin_pct if priced else None, rules)


def requires_manager_approval(
    totals: Optional[OptionTotals],
    rules: Optional[dict] = None,
    payment_terms: str = "",
) -> bool:
    return bool(risk_triggers(totals, payment_terms, rules))
