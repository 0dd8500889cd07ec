"""
Rate-sheet paste import.

Turns tab-separated text copied out of a carrier spreadsheet into container
rate charges. Column roles are guessed from the first row and can be
overridden by the caller before parsing.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence, Tuple

from ..dataclasses import CostBasis, RateCharge, VatRule
from .utils import ZERO

logger = logging.getLogger(__name__)

CHARGE_NAME = "CHARGE_NAME"
CURRENCY = "CURRENCY"
PRICE_20DV = "20DV"
PRICE_40DV = "40DV"
PRICE_40HC = "40HC"
IGNORE = "IGNORE"

COLUMN_TYPES = (CHARGE_NAME, CURRENCY, PRICE_20DV, PRICE_40DV, PRICE_40HC, IGNORE)

_NON_NUMERIC = re.compile(r"[^0-9.]")


@dataclass(frozen=True)
class ImportResult:
    charges: Tuple[RateCharge, ...] = ()
    skipped: int = 0
    mappings: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = field(default_factory=tuple)


def split_grid(text: str) -> List[List[str]]:
    rows = [line.split("\t") for line in re.split(r"\r?\n", text or "")]
    return [row for row in rows if any(cell.strip() for cell in row)]


def detect_column(cell: str) -> str:
    val = (cell or "").strip().lower()
    if "20" in val or "teu" in val:
        return PRICE_20DV
    if "40" in val and "hc" in val:
        return PRICE_40HC
    if "40" in val:
        return PRICE_40DV
    if "curr" in val or "dev" in val:
        return CURRENCY
    if "desc" in val or "item" in val or "charge" in val:
        return CHARGE_NAME
    return IGNORE


def detect_columns(header: Sequence[str]) -> List[str]:
    """Guess column roles from a header row; the first column names the charge if nothing else does."""
    mappings = [detect_column(cell) for cell in header]
    if mappings and CHARGE_NAME not in mappings:
        mappings[0] = CHARGE_NAME
    return mappings


def parse_price(cell: str) -> Decimal:
    """Strip currency symbols and thousands separators; unreadable cells are zero."""
    cleaned = _NON_NUMERIC.sub("", cell or "")
    if not cleaned:
        return ZERO
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return ZERO


def parse_rate_grid(
    text: str,
    currency: str = "USD",
    mappings: Optional[Sequence[str]] = None,
    vat_rule: VatRule = VatRule.EXPORT_0_ART92,
    header: bool = True,
) -> ImportResult:
    """
    Parse a pasted grid into CONTAINER charges.

    The first row is a header unless `header` is False; column roles come
    from `mappings` or are detected from the header. Rows without a name or
    without a 20' and 40' HC price are skipped.
    """
    rows = split_grid(text)
    if not rows:
        return ImportResult(warnings=("Nothing to import",))

    if mappings is None:
        if not header:
            raise ValueError("Column mappings are required when the grid has no header row")
        mappings = detect_columns(rows[0])
    mappings = list(mappings)
    if header:
        rows = rows[1:]
    unknown = [m for m in mappings if m not in COLUMN_TYPES]
    if unknown:
        raise ValueError(f"Unknown column types: {', '.join(unknown)}")

    charges: List[RateCharge] = []
    skipped = 0
    for row in rows:
        values = {"name": "", "currency": currency.upper(), PRICE_20DV: ZERO, PRICE_40DV: ZERO, PRICE_40HC: ZERO}
        for cell, role in zip(row, mappings):
            if role == CHARGE_NAME:
                values["name"] = cell.strip()
            elif role == CURRENCY:
                values["currency"] = cell.strip().upper() or currency.upper()
            elif role in (PRICE_20DV, PRICE_40DV, PRICE_40HC):
                values[role] = parse_price(cell)

        if not values["name"] or (values[PRICE_20DV] == 0 and values[PRICE_40HC] == 0):
            skipped += 1
            continue

        charges.append(RateCharge(
            name=values["name"],
            basis=CostBasis.CONTAINER,
            currency=values["currency"],
            vat_rule=vat_rule,
            price_20dv=values[PRICE_20DV],
            price_40dv=values[PRICE_40DV] or None,
            price_40hc=values[PRICE_40HC],
        ))

    logger.info("Parsed %d rate charges from pasted grid (%d rows skipped)", len(charges), skipped)
    warnings = () if charges else ("No priced rows found; check the column mapping",)
    return ImportResult(charges=tuple(charges), skipped=skipped, mappings=tuple(mappings), warnings=warnings)
