"""Monetary helpers shared by the reconciliation components.

All amounts are Decimals. Rounding is half-away-from-zero at two places
(ROUND_HALF_UP on Decimal rounds ties away from zero for negatives too).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional


ZERO = Decimal("0")
CENT = Decimal("0.01")

# Raw outstanding values inside (-NOISE_TOLERANCE, 0) are floating noise
NOISE_TOLERANCE = Decimal("0.01")


def to_decimal(value) -> Optional[Decimal]:
    """Convert value to Decimal."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value or 0).quantize(CENT, rounding=ROUND_HALF_UP)


def round_whole(value) -> Decimal:
    """Round to a whole unit, half away from zero."""
    return to_decimal(value or 0).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def settle_outstanding(raw: Decimal, tolerance: Decimal = NOISE_TOLERANCE) -> Decimal:
    """Outstanding from a raw difference: clamp tiny negatives, else round2.

    >>> settle_outstanding(Decimal("-0.004"))
    Decimal('0')
    >>> settle_outstanding(Decimal("-50"))
    Decimal('-50.00')
    """
    if -tolerance < raw < ZERO:
        return ZERO
    return round2(raw)


def dsum(values: Iterable) -> Decimal:
    """Sum Decimals starting from an exact zero."""
    return sum((to_decimal(v) or ZERO for v in values), ZERO)


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator, or 0 when the denominator is not positive."""
    if not denominator or denominator <= ZERO:
        return ZERO
    return numerator / denominator
