"""
Money helpers -- half-up rounding to centavos.

Every monetary step in the calculation engine is rounded immediately with
``round_money`` (half-up, 2 places) rather than at the end, so component
values never drift from what a payslip shows.

All amounts are ``Decimal``; ``float`` inputs are rejected because their
binary representation makes half-up rounding unreliable.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | int | str | None) -> Decimal:
    """Coerce an int/str/Decimal to Decimal. ``None`` becomes zero.

    Raises:
        TypeError: For ``float`` inputs.
        ValueError: For strings that are not numbers, and for NaN or infinity.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        raise TypeError("Booleans are not monetary amounts")
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats; use Decimal or str")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def round_money(value: Decimal | int | str) -> Decimal:
    """Round half-up to 2 decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum already-rounded amounts, returning a 2-place Decimal."""
    total = ZERO
    for v in values:
        total += v
    return round_money(total)
