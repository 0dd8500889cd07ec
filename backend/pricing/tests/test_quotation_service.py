"""
Quotation commands: each returns a new snapshot plus persist/log intents,
keeps option totals current and refuses edits outside drafts.
"""
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest

from ..dataclasses import (
    CargoProfile,
    CostBasis,
    Equipment,
    Incoterm,
    IntentKind,
    LineSource,
    MarkupType,
    QuoteStatus,
    RateCharge,
    Section,
    Settlement,
    TransportMode,
    VatRule,
)
from ..services import quotation_service as commands
from ..services.approval import Action, InvalidCommand, QuotationLocked, TransitionBlocked
from .builders import RATES, TODAY, tariff


def draft(**kwargs):
    values = dict(exchange_rates=RATES, pol="MACAS", pod="CNSHA", today=TODAY)
    values.update(kwargs)
    return commands.new_quotation("Q-2001", **values).quotation


def with_line(q, **kwargs):
    values = dict(section=Section.FREIGHT, description="Ocean Freight", buy_price="100", buy_currency="USD",
                  markup_value="20", vat_rule=VatRule.EXPORT_0_ART92, line_id="freight")
    values.update(kwargs)
    return commands.add_line(q, q.active_option_id, **values).quotation


def full_tariff(rate_id="T1", **kwargs):
    return tariff(
        rate_id,
        origin_charges=(RateCharge(name="Pickup", basis=CostBasis.FLAT, currency="MAD", unit_price=Decimal("400"),
                                   id=f"{rate_id}-pk"),),
        destination_charges=(
            RateCharge(name="THC", basis=CostBasis.CONTAINER, currency="MAD", price_40hc=Decimal("2100"),
                       id=f"{rate_id}-thc"),
            RateCharge(name="Customs Clearance", basis=CostBasis.FLAT, currency="MAD", unit_price=Decimal("900"),
                       id=f"{rate_id}-cc"),
        ),
        transit_days=28,
        **kwargs,
    )


class TestNewQuotation:

    def test_defaults(self):
        result = commands.new_quotation("Q-2001", exchange_rates=RATES, today=TODAY)
        q = result.quotation

        assert q.currency == "MAD"
        assert q.status == QuoteStatus.DRAFT
        assert q.version == 1
        assert len(q.options) == 1
        assert q.active_option.name == "Option A"
        assert q.validity_date == TODAY + timedelta(days=15)
        assert [i.kind for i in result.intents] == [IntentKind.PERSIST, IntentKind.LOG_ACTIVITY]
        assert result.intents[1].payload["event"] == "CREATED"
        assert any("origin and destination" in w for w in result.warnings)

    def test_base_rate_is_forced_to_one(self):
        q = draft(exchange_rates={"MAD": Decimal("3"), "USD": Decimal("10")})
        assert q.exchange_rates["MAD"] == Decimal("1")

    def test_uses_baseline_rates_when_none_given(self):
        q = commands.new_quotation("Q-2002", today=TODAY).quotation
        assert q.exchange_rates["USD"] == Decimal("10.0")


class TestLines:

    def test_add_line_prices_the_option(self):
        q = with_line(draft())
        totals = q.active_option.totals
        assert totals.net == Decimal("1200.00")
        assert totals.margin_pct == Decimal("16.67")
        assert q.approval.requires_approval is False

    def test_default_markup_comes_from_rules(self):
        q = with_line(draft(), markup_value=None)
        assert q.active_option.line("freight").markup_value == Decimal("20")

    def test_low_margin_raises_approval_flag(self):
        q = with_line(draft(), markup_value="5")
        assert q.approval.requires_approval is True

        q = commands.update_line(q, q.active_option_id, "freight", markup_value="25").quotation
        assert q.approval.requires_approval is False

    def test_cost_edit_scenario(self):
        q = with_line(draft())
        result = commands.edit_line_cost(q, q.active_option_id, "freight", "150")
        item = result.quotation.active_option.line("freight")

        assert item.markup_value == Decimal("-20")
        assert result.quotation.active_option.totals.net == Decimal("1200.00")
        assert result.intents[1].payload["event"] == "LINE_COST_EDITED"

    def test_sell_edit_keeps_markup(self):
        q = with_line(draft(), vat_rule=VatRule.STD_20)
        q = commands.edit_line_sell(q, q.active_option_id, "freight", "1800").quotation
        item = q.active_option.line("freight")
        assert item.markup_value == Decimal("20")
        assert item.buy_price == Decimal("125")
        assert q.active_option.totals.gross == Decimal("1800.00")

    def test_update_line_rejects_price_fields(self):
        q = with_line(draft())
        with pytest.raises(InvalidCommand):
            commands.update_line(q, q.active_option_id, "freight", buy_price="10")

    def test_update_line_coerces_values(self):
        q = with_line(draft())
        q = commands.update_line(q, q.active_option_id, "freight", markup_type="FIXED_AMOUNT",
                                 markup_value="50", buy_currency="eur").quotation
        item = q.active_option.line("freight")
        assert item.markup_type == MarkupType.FIXED_AMOUNT
        assert item.buy_currency == "EUR"

    def test_remove_line(self):
        q = with_line(draft())
        q = commands.remove_line(q, q.active_option_id, "freight").quotation
        assert q.active_option.items == ()
        assert q.active_option.totals.net == 0

    def test_unknown_line(self):
        q = with_line(draft())
        with pytest.raises(InvalidCommand):
            commands.remove_line(q, q.active_option_id, "nope")
        with pytest.raises(InvalidCommand):
            commands.remove_line(q, "missing-option", "freight")

    def test_rate_change_reprices(self):
        q = with_line(draft())
        q = commands.set_exchange_rate(q, "usd", "11").quotation
        assert q.active_option.totals.net == Decimal("1320.00")

    def test_rate_change_validation(self):
        q = draft()
        with pytest.raises(InvalidCommand):
            commands.set_exchange_rate(q, "MAD", "2")
        with pytest.raises(InvalidCommand):
            commands.set_exchange_rate(q, "USD", "0")

    def test_unknown_currency_warns_and_uses_one(self):
        q = draft()
        result = commands.add_line(q, q.active_option_id, Section.ORIGIN, buy_price="100", buy_currency="GBP")
        assert "No exchange rate for GBP; using 1" in result.warnings
        assert result.quotation.active_option.totals.cost == Decimal("100.00")


class TestQuoteCurrency:

    def test_switch_reprices_totals_but_not_base_amounts(self):
        q = with_line(draft())
        assert q.active_option.totals.net == Decimal("1200.00")

        result = commands.set_quote_currency(q, " usd ")
        totals = result.quotation.active_option.totals
        assert result.quotation.currency == "USD"
        assert totals.currency == "USD"
        assert totals.net == Decimal("120.00")
        assert totals.sell_base == Decimal("1200.00")
        assert result.intents[1].payload["event"] == "CURRENCY_CHANGED"
        assert result.intents[1].payload["from"] == "MAD"

    def test_every_option_is_repriced(self):
        q = with_line(draft())
        q = commands.add_option(q).quotation
        q = commands.set_quote_currency(q, "EUR").quotation
        assert all(o.totals.currency == "EUR" for o in q.options)

    def test_currency_without_rate_warns(self):
        result = commands.set_quote_currency(with_line(draft()), "GBP")
        assert result.warnings == ("No exchange rate for GBP; using 1",)
        assert result.quotation.active_option.totals.net == Decimal("1200.00")

    def test_base_currency_needs_no_rate(self):
        q = commands.set_quote_currency(draft(), "USD").quotation
        assert commands.set_quote_currency(q, "MAD").warnings == ()

    def test_blank_code_is_rejected(self):
        with pytest.raises(InvalidCommand):
            commands.set_quote_currency(draft(), "  ")

    def test_only_drafts(self):
        q = commands.transition(with_line(draft()), Action.ATTEMPT_SUBMISSION, actor="alice", today=TODAY).quotation
        with pytest.raises(QuotationLocked):
            commands.set_quote_currency(q, "USD")


class TestRiskFlags:

    def risky(self):
        q = draft(payment_terms="60 days")
        return with_line(q, buy_price="1000", buy_currency="MAD", markup_value="12")

    def test_low_margin_on_extended_terms(self):
        q = self.risky()
        assert q.active_option.totals.margin_pct == Decimal("10.71")
        assert q.approval.requires_approval is True
        assert [t.code for t in q.approval.triggers] == ["MARGIN_LOW", "CREDIT_EXTENDED"]
        assert q.approval.reason == "Margin 10.71% is below the 15% threshold | Extended payment terms: 60 days"

    def test_terms_alone_flag_a_new_quotation(self):
        q = draft(payment_terms="Net 90")
        assert [t.code for t in q.approval.triggers] == ["CREDIT_EXTENDED"]

    def test_high_value(self):
        q = with_line(draft(), buy_price="10000", markup_value="20")
        assert q.active_option.totals.sell_base == Decimal("120000.00")
        assert [t.code for t in q.approval.triggers] == ["HIGH_VALUE"]

    def test_fixing_the_margin_clears_the_trigger(self):
        q = self.risky()
        q = commands.update_line(q, q.active_option_id, "freight", markup_value="30").quotation
        assert [t.code for t in q.approval.triggers] == ["CREDIT_EXTENDED"]
        assert q.approval.reason == "Extended payment terms: 60 days"

    def test_clean_quote_has_no_reason(self):
        q = with_line(draft())
        assert q.approval.triggers == ()
        assert q.approval.reason is None

    def test_submission_logs_triggers(self):
        result = commands.transition(self.risky(), Action.SUBMIT_FOR_APPROVAL, actor="alice", today=TODAY)
        payload = result.intents[1].payload
        assert result.quotation.status == QuoteStatus.VALIDATION
        assert payload["triggers"] == ["MARGIN_LOW", "CREDIT_EXTENDED"]
        assert payload["approval_reason"].startswith("Margin 10.71%")


class TestOptions:

    def test_add_option_copies_route_and_cargo(self):
        q = draft()
        q = commands.update_equipment(q, q.active_option_id, [Equipment("40HC", 2)]).quotation
        q = commands.add_option(q, mode=TransportMode.SEA_LCL).quotation
        second = q.options[1]
        assert second.name == "Option B"
        assert (second.pol, second.pod) == ("MACAS", "CNSHA")
        assert second.mode == TransportMode.SEA_LCL
        assert second.equipment == (Equipment("40HC", 2),)
        assert q.active_option_id == q.options[0].id

    def test_duplicate_gets_new_line_ids(self):
        q = with_line(draft())
        q = commands.duplicate_option(q, q.active_option_id).quotation
        original, copy = q.options
        assert copy.id != original.id
        assert [i.id for i in copy.items] != [i.id for i in original.items]
        assert copy.totals.net == original.totals.net

    def test_remove_active_option_activates_first_remaining(self):
        q = commands.add_option(draft()).quotation
        first, second = q.options
        q = commands.remove_option(q, first.id).quotation
        assert q.active_option_id == second.id

    def test_last_option_cannot_be_removed(self):
        q = draft()
        with pytest.raises(InvalidCommand):
            commands.remove_option(q, q.active_option_id)

    def test_activating_an_option_reevaluates_approval(self):
        q = with_line(draft(), markup_value="30")
        q = commands.add_option(q).quotation
        cheap = q.options[1]
        q = commands.add_line(q, cheap.id, Section.FREIGHT, buy_price="100", buy_currency="USD",
                              markup_value="2").quotation
        assert q.approval.requires_approval is False

        q = commands.set_active_option(q, cheap.id).quotation
        assert q.approval.requires_approval is True

    def test_route_and_cargo(self):
        q = draft()
        result = commands.update_route(q, q.active_option_id, pol=" frpar ", mode=TransportMode.AIR)
        assert result.quotation.active_option.pol == "FRPAR"
        assert result.intents[1].payload["mode"] == "AIR"

        result = commands.update_cargo(result.quotation, q.active_option_id, CargoProfile())
        assert "No packages entered for AIR shipment" in result.warnings


class TestTariffs:

    def test_apply_tariff_follows_incoterm_sections(self):
        q = draft()
        q = commands.update_equipment(q, q.active_option_id, [Equipment("40HC", 2)]).quotation
        q = commands.apply_tariff(q, q.active_option_id, full_tariff(), today=TODAY).quotation
        opt = q.active_option

        # FOB: freight and destination are ours, origin is the shipper's.
        assert sorted(i.description for i in opt.items) == ["Customs Clearance", "Ocean Freight", "THC"]
        freight = next(i for i in opt.items if i.description == "Ocean Freight")
        assert freight.buy_price == Decimal("3000.00")
        assert freight.source == LineSource.TARIFF
        assert freight.validity_date == date(2025, 6, 30)
        assert freight.tariff_charge_ref == "T1:T1-of"
        assert (opt.carrier, opt.transit_days, opt.tariff_id) == ("Maersk", 28, "T1")

    def test_fill_gaps_does_not_duplicate(self):
        q = draft()
        q = commands.apply_tariff(q, q.active_option_id, full_tariff(), today=TODAY).quotation
        result = commands.apply_tariff(q, q.active_option_id, full_tariff(), today=TODAY, policy="FILL_GAPS")
        assert len(result.quotation.active_option.items) == 3
        assert result.intents[1].payload["lines_added"] == 0

    def test_overwrite_keeps_manual_lines(self):
        q = with_line(draft(), section=Section.DESTINATION, description="Warehouse", line_id="manual")
        q = commands.apply_tariff(q, q.active_option_id, full_tariff(), today=TODAY).quotation
        freight = next(i for i in q.active_option.items if i.source == LineSource.TARIFF)
        q = commands.edit_line_cost(q, q.active_option_id, freight.id, "1").quotation

        q = commands.apply_tariff(q, q.active_option_id, full_tariff(), today=TODAY, policy="OVERWRITE").quotation
        items = q.active_option.items
        assert [i.id for i in items if i.source == LineSource.MANUAL] == ["manual"]
        assert len([i for i in items if i.source == LineSource.TARIFF]) == 3
        assert all(i.buy_price != Decimal("1") for i in items)

    def test_unknown_policy(self):
        q = draft()
        with pytest.raises(InvalidCommand):
            commands.apply_tariff(q, q.active_option_id, full_tariff(), today=TODAY, policy="MERGE")

    def test_expired_tariff_warns_and_blocks_sending(self):
        q = draft()
        old = full_tariff(valid_to=date(2025, 2, 1))
        result = commands.apply_tariff(q, q.active_option_id, old, today=TODAY)
        assert any("expired" in w for w in result.warnings)
        with pytest.raises(TransitionBlocked):
            commands.transition(result.quotation, Action.ATTEMPT_SUBMISSION, today=TODAY)
        cancelled = commands.transition(result.quotation, Action.CANCEL, reason="rates gone", today=TODAY)
        assert cancelled.quotation.status == QuoteStatus.CANCELLED

    def test_auto_rate_with_match(self):
        q = draft()
        result = commands.initialize_smart_lines(q, q.active_option_id, [full_tariff()], today=TODAY)
        assert result.intents[1].payload["tariff_id"] == "T1"
        assert {i.source for i in result.quotation.active_option.items} == {LineSource.TARIFF}

    def test_auto_rate_without_catalogue_seeds_estimates(self):
        q = draft()
        result = commands.initialize_smart_lines(q, q.active_option_id, None, today=TODAY)
        items = result.quotation.active_option.items

        assert [i.description for i in items] == ["Main Carriage", "Destination Handling (THC)", "Customs Clearance"]
        assert {i.source for i in items} == {LineSource.SMART_DEFAULT}
        assert {i.settlement for i in items} == {Settlement.ESTIMATED}
        assert result.warnings[0].startswith("No tariff on file")

    def test_auto_rate_skips_sections_already_filled(self):
        q = with_line(draft())
        result = commands.initialize_smart_lines(q, q.active_option_id, [], today=TODAY)
        added = [i for i in result.quotation.active_option.items if i.source == LineSource.SMART_DEFAULT]
        assert {i.section for i in added} == {Section.DESTINATION}

    def test_overwrite_replaces_estimates_only_where_tariff_fills(self):
        q = draft(incoterm=Incoterm.EXW)
        q = commands.initialize_smart_lines(q, q.active_option_id, [], today=TODAY).quotation
        freight_only = tariff(incoterm=Incoterm.EXW)
        q = commands.apply_tariff(q, q.active_option_id, freight_only, today=TODAY, policy="OVERWRITE").quotation
        sections = {(i.section, i.source) for i in q.active_option.items}
        assert (Section.FREIGHT, LineSource.SMART_DEFAULT) not in sections
        assert (Section.ORIGIN, LineSource.SMART_DEFAULT) in sections
        assert (Section.DESTINATION, LineSource.SMART_DEFAULT) in sections


class TestLifecycle:

    def sent(self):
        q = with_line(draft())
        return commands.transition(q, Action.ATTEMPT_SUBMISSION, actor="alice", today=TODAY).quotation

    def test_transition_result(self):
        q = with_line(draft())
        result = commands.transition(q, Action.ATTEMPT_SUBMISSION, actor="alice", today=TODAY)
        assert result.quotation.status == QuoteStatus.SENT
        assert result.intents[1].payload["event"] == "TRANSITION"
        assert result.intents[1].payload["action"] == "ATTEMPT_SUBMISSION"

    def test_sent_quotation_rejects_edits(self):
        q = self.sent()
        with pytest.raises(QuotationLocked):
            commands.add_line(q, q.active_option_id, Section.ORIGIN)

    @pytest.mark.parametrize("final", [Action.MARK_ACCEPTED, Action.CLIENT_REJECTED])
    def test_terminal_states_reject_every_edit(self, final):
        q = commands.transition(self.sent(), final, reason="client said no", today=TODAY).quotation
        opt = q.active_option_id
        edits = [
            lambda: commands.add_line(q, opt, Section.ORIGIN),
            lambda: commands.update_line(q, opt, "freight", description="x"),
            lambda: commands.edit_line_cost(q, opt, "freight", "1"),
            lambda: commands.edit_line_sell(q, opt, "freight", "1"),
            lambda: commands.remove_line(q, opt, "freight"),
            lambda: commands.update_cargo(q, opt, CargoProfile()),
            lambda: commands.update_route(q, opt, pol="FRPAR"),
            lambda: commands.update_equipment(q, opt, []),
            lambda: commands.add_option(q),
            lambda: commands.set_exchange_rate(q, "USD", "11"),
            lambda: commands.apply_tariff(q, opt, full_tariff(), today=TODAY),
        ]
        for edit in edits:
            with pytest.raises(QuotationLocked):
                edit()

    def test_revision_copies_into_new_draft(self):
        accepted = commands.transition(self.sent(), Action.MARK_ACCEPTED, today=TODAY).quotation
        result = commands.create_revision(accepted, actor="alice")
        revision = result.quotation

        assert revision.version == 2
        assert revision.parent_version == 1
        assert revision.status == QuoteStatus.DRAFT
        assert revision.active_option.line("freight").buy_price == Decimal("100")
        assert accepted.status == QuoteStatus.ACCEPTED
        assert accepted.version == 1
        assert result.intents[1].payload["from_status"] == "ACCEPTED"

        commands.add_line(revision, revision.active_option_id, Section.ORIGIN)

    def test_revision_must_be_newer(self):
        q = draft()
        with pytest.raises(InvalidCommand):
            commands.create_revision(replace(q, version=3), next_version=2)
