"""
Markup engine: line pricing, the cost/sell edit round trips and totals.

Quote currency is MAD (the base); USD is worth 10 MAD.
"""
from decimal import Decimal

import pytest

from ..dataclasses import MarkupType, Section, Settlement, VatRule
from ..services.fx_service import FxConverter
from ..services.markup import (
    compute_totals,
    edit_cost,
    edit_sell,
    evaluate_risk,
    margin_pct,
    price_line,
    requires_manager_approval,
)
from ..services.utils import q2
from .builders import RATES, line, option


@pytest.fixture
def fx():
    return FxConverter(RATES, "MAD")


class TestPriceLine:

    def test_percent_markup(self, fx):
        p = price_line(line(buy="100", markup="20"), fx, "MAD")
        assert p.cost_base == Decimal("1000")
        assert p.sell_base == Decimal("1200")
        assert p.sell_target == Decimal("1200")
        assert p.vat == 0
        assert p.sell_ttc == Decimal("1200")
        assert q2(p.margin_pct) == Decimal("16.67")

    def test_vat_applies_on_target_sell(self, fx):
        p = price_line(line(buy="100", markup="20", vat_rule=VatRule.STD_20), fx, "MAD")
        assert p.vat == Decimal("240")
        assert p.sell_ttc == Decimal("1440")

    def test_road_vat(self, fx):
        p = price_line(line(buy="100", markup="0", vat_rule=VatRule.ROAD_14), fx, "MAD")
        assert p.sell_ttc == Decimal("1140")

    def test_target_currency_other_than_base(self, fx):
        p = price_line(line(buy="100", markup="20"), fx, "USD")
        assert p.sell_target == Decimal("120")
        assert p.cost_target == Decimal("100")

    def test_fixed_amount_markup_is_in_buy_currency(self, fx):
        # 5 USD on top of 100 USD is 50 MAD, not 5 MAD.
        p = price_line(line(buy="100", markup="5", markup_type=MarkupType.FIXED_AMOUNT), fx, "MAD")
        assert p.sell_base == Decimal("1050")

    def test_missing_rate_falls_back_to_one_with_warning(self, fx):
        p = price_line(line(buy="100", currency="GBP", markup="0"), fx, "MAD")
        assert p.cost_base == Decimal("100")
        assert p.warnings == ("No exchange rate for GBP; using 1",)

    def test_margin_is_zero_without_sell(self):
        assert margin_pct(Decimal("0"), Decimal("50")) == 0
        assert margin_pct(Decimal("-10"), Decimal("50")) == 0


class TestEditCost:

    def test_cost_edit_keeps_sell_and_recomputes_markup(self, fx):
        item = line(buy="100", markup="20")
        edited, warnings = edit_cost(item, Decimal("150"), fx, "MAD")

        assert edited.buy_price == Decimal("150")
        assert edited.markup_value == Decimal("-20")
        assert price_line(edited, fx, "MAD").sell_target == Decimal("1200")
        assert warnings == []

    @pytest.mark.parametrize("new_cost", ["0.01", "37.5", "99", "120", "1000", "123456.789"])
    def test_sell_survives_any_positive_cost(self, fx, new_cost):
        item = line(buy="100", markup="20", vat_rule=VatRule.STD_20)
        before = price_line(item, fx, "MAD").sell_ttc
        edited, _ = edit_cost(item, Decimal(new_cost), fx, "MAD")
        assert q2(price_line(edited, fx, "MAD").sell_ttc) == q2(before)

    def test_fresh_line_only_takes_the_cost(self, fx):
        item = line(buy="0", markup="20")
        edited, _ = edit_cost(item, Decimal("80"), fx, "MAD")
        assert edited.buy_price == Decimal("80")
        assert edited.markup_value == Decimal("20")
        assert price_line(edited, fx, "MAD").sell_target == Decimal("960")

    def test_fixed_markup_absorbs_cost_change(self, fx):
        item = line(buy="100", markup="20", markup_type=MarkupType.FIXED_AMOUNT)
        edited, _ = edit_cost(item, Decimal("110"), fx, "MAD")
        assert edited.markup_value == Decimal("10")
        assert price_line(edited, fx, "MAD").sell_base == Decimal("1200")

    def test_zero_cost_on_percent_line_switches_to_fixed(self, fx):
        item = line(buy="100", markup="20")
        edited, warnings = edit_cost(item, Decimal("0"), fx, "MAD")
        assert edited.markup_type == MarkupType.FIXED_AMOUNT
        assert edited.markup_value == Decimal("120")
        assert price_line(edited, fx, "MAD").sell_base == Decimal("1200")
        assert len(warnings) == 1


class TestEditSell:

    def test_sell_edit_solves_buy_price_and_keeps_markup(self, fx):
        item = line(buy="100", markup="20", vat_rule=VatRule.STD_20)
        edited, warnings = edit_sell(item, Decimal("1800"), fx, "MAD")
        assert edited.markup_value == Decimal("20")
        assert edited.buy_price == Decimal("125")
        assert price_line(edited, fx, "MAD").sell_ttc == Decimal("1800")
        assert warnings == []

    @pytest.mark.parametrize("ttc", ["1", "999.99", "1000", "2500.50"])
    def test_round_trip(self, fx, ttc):
        item = line(buy="100", markup="35", vat_rule=VatRule.ROAD_14)
        edited, _ = edit_sell(item, Decimal(ttc), fx, "MAD")
        assert q2(price_line(edited, fx, "MAD").sell_ttc) == Decimal(ttc)

    def test_round_trip_in_foreign_quote_currency(self, fx):
        item = line(buy="100", currency="EUR", markup="15", vat_rule=VatRule.STD_20)
        edited, _ = edit_sell(item, Decimal("250"), fx, "USD")
        assert q2(price_line(edited, fx, "USD").sell_ttc) == Decimal("250.00")

    def test_fixed_markup(self, fx):
        item = line(buy="100", markup="20", markup_type=MarkupType.FIXED_AMOUNT)
        edited, _ = edit_sell(item, Decimal("1500"), fx, "MAD")
        assert edited.buy_price == Decimal("130")
        assert edited.markup_value == Decimal("20")

    def test_fixed_markup_larger_than_sell_warns(self, fx):
        item = line(buy="100", markup="500", markup_type=MarkupType.FIXED_AMOUNT)
        edited, warnings = edit_sell(item, Decimal("1000"), fx, "MAD")
        assert edited.buy_price < 0
        assert any("negative buy price" in w for w in warnings)

    def test_minus_hundred_percent_cannot_be_inverted(self, fx):
        item = line(buy="100", markup="-100")
        edited, warnings = edit_sell(item, Decimal("500"), fx, "MAD")
        assert edited == item
        assert len(warnings) == 1


class TestTotals:

    def test_partitions_by_section_and_settlement(self, fx):
        opt = option(items=[
            line("l1", buy="100", markup="20", section=Section.FREIGHT),
            line("l2", buy="500", currency="MAD", markup="10", section=Section.DESTINATION,
                 vat_rule=VatRule.STD_20, settlement=Settlement.ESTIMATED),
        ])
        totals = compute_totals(opt, fx, "MAD")

        assert totals.net == Decimal("1750.00")
        assert totals.vat == Decimal("110.00")
        assert totals.gross == Decimal("1860.00")
        assert totals.cost == Decimal("1500.00")
        assert totals.margin == Decimal("250.00")
        assert totals.margin_pct == Decimal("14.29")
        assert totals.by_section[Section.FREIGHT].net == Decimal("1200.00")
        assert totals.by_section[Section.DESTINATION].gross == Decimal("660.00")
        assert totals.by_section[Section.ORIGIN].lines == 0
        assert totals.by_settlement[Settlement.CONFIRMED].net == Decimal("1200.00")
        assert totals.by_settlement[Settlement.ESTIMATED].lines == 1

    def test_empty_option(self, fx):
        totals = compute_totals(option(), fx, "MAD")
        assert totals.gross == 0
        assert totals.margin_pct == 0
        assert requires_manager_approval(totals) is False

    def test_low_margin_requires_approval(self, fx):
        totals = compute_totals(option(items=[line(markup="5")]), fx, "MAD")
        assert totals.margin_pct == Decimal("4.76")
        assert requires_manager_approval(totals) is True

    def test_healthy_margin_does_not(self, fx):
        totals = compute_totals(option(items=[line(markup="20")]), fx, "MAD")
        assert requires_manager_approval(totals) is False
        assert requires_manager_approval(None) is False


class TestRiskTriggers:

    def codes(self, triggers):
        return [t.code for t in triggers]

    def test_clean_quote_has_no_triggers(self):
        assert evaluate_risk("30 days", Decimal("50000"), Decimal("20")) == ()

    def test_margin_below_floor(self):
        (trigger,) = evaluate_risk("", Decimal("1000"), Decimal("14.99"))
        assert trigger.code == "MARGIN_LOW"
        assert trigger.severity == "HIGH"
        assert "14.99%" in trigger.message and "15%" in trigger.message

    def test_margin_at_floor_is_accepted(self):
        assert evaluate_risk("", Decimal("1000"), Decimal("15")) == ()

    def test_missing_margin_is_not_judged(self):
        assert evaluate_risk("", Decimal("0"), None) == ()

    @pytest.mark.parametrize("terms", ["60 days", "Net 90", "90 jours fin de mois"])
    def test_extended_credit(self, terms):
        (trigger,) = evaluate_risk(terms, Decimal("1000"), Decimal("20"))
        assert trigger.code == "CREDIT_EXTENDED"
        assert trigger.severity == "MEDIUM"
        assert terms in trigger.message

    def test_high_value_is_strictly_above_threshold(self):
        assert evaluate_risk("", Decimal("100000"), Decimal("20")) == ()
        (trigger,) = evaluate_risk("", Decimal("100000.01"), Decimal("20"))
        assert trigger.code == "HIGH_VALUE"
        assert "100000 MAD" in trigger.message

    def test_triggers_accumulate_in_order(self):
        triggers = evaluate_risk("60 days", Decimal("250000"), Decimal("5"))
        assert self.codes(triggers) == ["MARGIN_LOW", "CREDIT_EXTENDED", "HIGH_VALUE"]

    def test_thresholds_come_from_rules(self):
        rules = {"base_currency": "MAD", "min_margin_pct": "25", "high_value_threshold": "500",
                 "extended_credit_markers": ["45"]}
        triggers = evaluate_risk("45 days", Decimal("600"), Decimal("20"), rules)
        assert self.codes(triggers) == ["MARGIN_LOW", "CREDIT_EXTENDED", "HIGH_VALUE"]
        assert evaluate_risk("60 days", Decimal("100"), Decimal("30"), rules) == ()

    def test_empty_option_only_judges_terms(self, fx):
        totals = compute_totals(option(), fx, "MAD")
        assert requires_manager_approval(totals) is False
        assert requires_manager_approval(totals, payment_terms="90 days") is True
