"""Fixed-point integer helpers shared by the curve, fee and reserve modules."""

from decimal import ROUND_HALF_EVEN, Decimal

PERC_DECIMALS = 8
ONE = 10 ** PERC_DECIMALS  # 100%

YIELD_DECIMALS = 18
YIELD_ONE = 10 ** YIELD_DECIMALS

TRANCHE_RATIO_GRANULARITY = 1000


def sign(value: int) -> int:
    """Return -1, 0 or 1."""
    return (value > 0) - (value < 0)


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute a * b / denominator, truncating towards zero.

    Python's floor division rounds towards negative infinity; the sign is
    applied after dividing magnitudes so that a negative result keeps the
    same magnitude as its positive mirror.
    """
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    s = sign(a) * sign(b) * sign(denominator)
    return s * (abs(a) * abs(b) // abs(denominator))


def mul_div_up(a: int, b: int, denominator: int) -> int:
    """Compute a * b / denominator for non-negative inputs, rounding up."""
    if denominator <= 0:
        raise ZeroDivisionError("mul_div_up denominator must be positive")
    return -(-(a * b) // denominator)


def apply_perc(perc: int, amount: int) -> int:
    """
    Scale amount by a signed percentage.

    Result is sign(perc) * (|perc| * amount / ONE); a small negative
    percentage never collapses to zero due to rounding direction.
    """
    return sign(perc) * (abs(perc) * amount // ONE)


def to_fixed(value: float, decimals: int) -> int:
    """Convert a decimal number (e.g. 0.015) to a fixed-point integer."""
    scaled = Decimal(str(value)).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_HALF_EVEN))
