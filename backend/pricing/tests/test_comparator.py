"""Option comparison: ranking, badges and summaries."""
from decimal import Decimal

import pytest

from ..dataclasses import CargoProfile, Equipment, Package, TransportMode
from ..services.comparator import compare_options, equipment_summary, route_summary
from .builders import line, option, quotation


def three_options():
    return quotation([
        option("a", name="Option A", items=[line(buy="100")], transit_days=30, carrier="Maersk"),
        option("b", name="Option B", items=[line(buy="80")], carrier="CMA CGM"),
        option("c", name="Option C", transit_days=20),
    ], active_option_id="a")


class TestCompareOptions:

    def test_sorted_by_total_with_unpriced_last(self):
        rows = compare_options(three_options())
        assert [r.option_id for r in rows] == ["b", "a", "c"]
        assert rows[0].total_payable == Decimal("960.00")
        assert rows[1].total_payable == Decimal("1200.00")

    def test_badges(self):
        badges = {r.option_id: r.badges for r in compare_options(three_options())}
        assert badges["b"] == ("CHEAPEST", "BEST_MARGIN")
        assert badges["a"] == ("BEST_MARGIN",)
        assert badges["c"] == ("FASTEST",)

    def test_sort_by_transit_puts_unknown_last(self):
        rows = compare_options(three_options(), sort_by="transit")
        assert [r.option_id for r in rows] == ["c", "a", "b"]

    def test_sort_by_margin(self):
        q = quotation([option("lo", items=[line(markup="5")]), option("hi", items=[line(markup="30")])])
        assert [r.option_id for r in compare_options(q, sort_by="margin")] == ["hi", "lo"]

    def test_single_option_has_no_badges(self):
        rows = compare_options(quotation([option(items=[line()], transit_days=10)]))
        assert rows[0].badges == ()
        assert rows[0].is_active

    def test_does_not_change_the_active_option(self):
        q = three_options()
        rows = compare_options(q)
        assert q.active_option_id == "a"
        assert [r.option_id for r in rows if r.is_active] == ["a"]

    def test_unknown_sort_key(self):
        with pytest.raises(ValueError):
            compare_options(three_options(), sort_by="price")


class TestSummaries:

    def test_equipment(self):
        opt = option(equipment=(Equipment("40HC", 2), Equipment("20DV", 1)))
        assert equipment_summary(opt) == "2x40HC, 1x20DV"

    def test_loose_cargo(self):
        cargo = CargoProfile(packages=(Package(quantity=2, length_cm=Decimal(100), width_cm=Decimal(100),
                                               height_cm=Decimal(50), weight_kg=Decimal("150.5")),))
        assert equipment_summary(option(cargo=cargo, mode=TransportMode.AIR)) == "2 pkgs / 301 kg / 1 m3"

    def test_nothing_entered(self):
        assert equipment_summary(option()) == "-"

    def test_route(self):
        assert route_summary(option()) == "MACAS -> CNSHA (SEA_FCL, FOB)"
        assert route_summary(option(pol="", pod="")) == "? -> ? (SEA_FCL, FOB)"
