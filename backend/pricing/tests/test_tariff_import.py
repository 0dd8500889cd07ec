"""Pasted rate grids: column detection and row parsing."""
from decimal import Decimal

import pytest

from ..dataclasses import CostBasis, VatRule
from ..services.tariff_import import (
    CHARGE_NAME,
    CURRENCY,
    IGNORE,
    PRICE_20DV,
    PRICE_40DV,
    PRICE_40HC,
    detect_columns,
    parse_price,
    parse_rate_grid,
)

GRID = (
    "Charge\t20'\t40'\t40'HC\tCurrency\tRemarks\n"
    "Ocean Freight\t$1,200.00\t1 900\t2,050\tUSD\tall in\n"
    "BAF\t150\t\t300\t\t\n"
    "\t\t\t\t\t\n"
    "Subject to space\t\t\t\t\t\n"
    "THC\t1500\t2400\t2400\tMAD\t\n"
)


class TestDetection:

    def test_header_roles(self):
        header = GRID.splitlines()[0].split("\t")
        assert detect_columns(header) == [CHARGE_NAME, PRICE_20DV, PRICE_40DV, PRICE_40HC, CURRENCY, IGNORE]

    def test_first_column_names_the_charge_by_default(self):
        assert detect_columns(["Poste", "20DV", "40HC"]) == [CHARGE_NAME, PRICE_20DV, PRICE_40HC]

    def test_french_headers(self):
        assert detect_columns(["Description", "Devise", "TEU"]) == [CHARGE_NAME, CURRENCY, PRICE_20DV]

    @pytest.mark.parametrize("cell, value", [
        ("$1,200.00", Decimal("1200.00")),
        ("1 900", Decimal("1900")),
        ("EUR 35.5", Decimal("35.5")),
        ("", Decimal("0")),
        ("n/a", Decimal("0")),
        ("1.2.3", Decimal("0")),
    ])
    def test_price_cells(self, cell, value):
        assert parse_price(cell) == value


class TestParse:

    def test_parses_priced_rows(self):
        result = parse_rate_grid(GRID, currency="usd")

        assert [c.name for c in result.charges] == ["Ocean Freight", "BAF", "THC"]
        assert result.skipped == 1
        freight, baf, thc = result.charges
        assert freight.basis == CostBasis.CONTAINER
        assert freight.vat_rule == VatRule.EXPORT_0_ART92
        assert (freight.price_20dv, freight.price_40dv, freight.price_40hc) == (
            Decimal("1200.00"), Decimal("1900"), Decimal("2050"))
        assert baf.currency == "USD"
        assert baf.price_40dv is None
        assert thc.currency == "MAD"
        assert result.warnings == ()

    def test_explicit_mappings_without_header(self):
        text = "Ocean Freight\t1000\t1800\nBL fee\t0\t0\n"
        result = parse_rate_grid(text, mappings=[CHARGE_NAME, PRICE_20DV, PRICE_40HC], header=False)
        assert [c.name for c in result.charges] == ["Ocean Freight"]
        assert result.skipped == 1

    def test_headerless_grid_needs_mappings(self):
        with pytest.raises(ValueError):
            parse_rate_grid("Ocean Freight\t1000\t1800", header=False)

    def test_unknown_mapping(self):
        with pytest.raises(ValueError):
            parse_rate_grid(GRID, mappings=[CHARGE_NAME, "45HC"])

    def test_nothing_priced(self):
        result = parse_rate_grid("Charge\t20'\t40'HC\nNotes\t\t\n")
        assert result.charges == ()
        assert result.warnings == ("No priced rows found; check the column mapping",)

    def test_empty_text(self):
        assert parse_rate_grid("  \n").warnings == ("Nothing to import",)
