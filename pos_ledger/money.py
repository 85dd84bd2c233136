"""
Safe decimal extraction and rounding.

The balance calculator and the reconciliation auditor both go
through these helpers, so the defaulting and rounding policy is
defined in exactly one place:

- missing values (None) count as zero and never raise
- unparseable values raise CheckError
- rounding is half-up to two places, applied once at the end of
  a fold and never per line
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from pos_ledger.exceptions import CheckError

ZERO = Decimal("0")
CENT = Decimal("0.01")
DEFAULT_TOLERANCE = CENT


def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """Convert a stored amount to Decimal, defaulting missing values."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise CheckError(f"Expected a numeric amount, got {value!r}")
    try:
        # str() first so floats keep their printed value, not binary noise
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise CheckError(f"Malformed amount {value!r}") from exc


def first_nonzero(*values) -> Decimal:
    """Return the first value that is present and nonzero, else zero."""
    for value in values:
        amount = to_decimal(value)
        if amount != ZERO:
            return amount
    return ZERO


def round_money(value) -> Decimal:
    """Round to two decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_amounts(values: Iterable) -> Decimal:
    """Sum amounts exactly; callers round the result."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def exceeds_tolerance(
    expected, actual, tolerance: Decimal = DEFAULT_TOLERANCE
) -> bool:
    """True when expected and actual differ by more than the tolerance."""
    return abs(to_decimal(expected) - to_decimal(actual)) > tolerance
