"""
Monetary helpers shared by the payroll calculator, run totals and ledger postings.

All amounts are Decimal and rounded half-up to the cent.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an input amount to Decimal.

    Floats go through ``str`` so 0.1 stays 0.1. Raises ``ValueError`` for
    anything that is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return money(sum(values, ZERO))
