from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
FOURPLACES = Decimal("0.0001")
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def d(val) -> Decimal:
    """Coerce incoming values to Decimal safely."""
    if isinstance(val, Decimal):
        return val
    if val is None or val == "":
        return ZERO
    try:
        return Decimal(str(val))
    except InvalidOperation:
        raise ValueError(f"Not a decimal amount: {val!r}")


def q2(amount: Decimal) -> Decimal:
    """Round half-up to cents (display / aggregation boundary only)."""
    return d(amount).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
