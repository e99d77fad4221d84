"""
fixed_point.py - Half-up fixed-point arithmetic

Every arithmetic step that can lose precision goes through one of these
primitives. Operands are first rescaled to the target precision, then the
raw integers are combined and rounded by adding half the divisor before the
final integer division.

Unsigned primitives (mul_half_up, div_half_up) reject negative operands.
The signed counterparts round away from zero, so -0.5 becomes -1 and never 0.

Key Formulas (a, b rescaled to precision p, s = 10**p):
    mul_half_up(a, b, p) = (a * b + s // 2) // s
    div_half_up(a, b, p) = (a * s + b // 2) // b
"""

from __future__ import annotations
from typing import Iterable

from .core import (
    FixedDecimal, Number,
    BPS_PRECISION, WAD_PRECISION, RAY_PRECISION,
    DivisionByZero, PreconditionViolation,
)


def _require_unsigned(*values: FixedDecimal) -> None:
    for value in values:
        if value.raw < 0:
            raise PreconditionViolation(
                f"Unsigned operation received negative value {value!r}"
            )


def _round_div_away(numerator: int, divisor: int) -> int:
    """Integer division of a signed numerator by a positive divisor, halves away from zero."""
    magnitude = (abs(numerator) + divisor // 2) // divisor
    return -magnitude if numerator < 0 else magnitude


def rescale_half_up(value: FixedDecimal, new_precision: int) -> FixedDecimal:
    """
    Move a value to a new scale.

    Increasing precision pads with zeros and is exact. Reducing precision
    rounds the dropped digits half-up (half away from zero for negatives).

    Example:
        rescale_half_up(FixedDecimal(12345, 4), 3)  # -> FixedDecimal(1235, 3)
    """
    if new_precision < 0:
        raise ValueError(f"Precision must be non-negative, got {new_precision}")
    if new_precision == value.scale:
        return value
    if new_precision > value.scale:
        return FixedDecimal(value.raw * 10 ** (new_precision - value.scale), new_precision)
    factor = 10 ** (value.scale - new_precision)
    return FixedDecimal(_round_div_away(value.raw, factor), new_precision)


def mul_half_up(a: FixedDecimal, b: FixedDecimal, precision: int) -> FixedDecimal:
    """
    Multiply two non-negative decimals at the given precision, rounding half-up.

    Args:
        a: First factor
        b: Second factor
        precision: Scale of the operands' rescaled form and of the result

    Returns:
        a * b at scale `precision`

    Raises:
        PreconditionViolation: If either operand is negative
    """
    _require_unsigned(a, b)
    a_raw = rescale_half_up(a, precision).raw
    b_raw = rescale_half_up(b, precision).raw
    scale = 10 ** precision
    return FixedDecimal((a_raw * b_raw + scale // 2) // scale, precision)


def div_half_up(a: FixedDecimal, b: FixedDecimal, precision: int) -> FixedDecimal:
    """
    Divide two non-negative decimals at the given precision, rounding half-up.

    Args:
        a: Dividend
        b: Divisor (must be non-zero at the target precision)
        precision: Scale of the operands' rescaled form and of the result

    Returns:
        a / b at scale `precision`

    Raises:
        DivisionByZero: If b is zero after rescaling
        PreconditionViolation: If either operand is negative
    """
    _require_unsigned(a, b)
    a_raw = rescale_half_up(a, precision).raw
    b_raw = rescale_half_up(b, precision).raw
    if b_raw == 0:
        raise DivisionByZero(f"Division by zero-valued decimal {b!r}")
    scale = 10 ** precision
    return FixedDecimal((a_raw * scale + b_raw // 2) // b_raw, precision)


def mul_half_up_signed(a: FixedDecimal, b: FixedDecimal, precision: int) -> FixedDecimal:
    """Signed multiplication; exact halves round away from zero."""
    a_raw = rescale_half_up(a, precision).raw
    b_raw = rescale_half_up(b, precision).raw
    return FixedDecimal(_round_div_away(a_raw * b_raw, 10 ** precision), precision)


def div_half_up_signed(a: FixedDecimal, b: FixedDecimal, precision: int) -> FixedDecimal:
    """
    Signed division; exact halves round away from zero.

    Raises:
        DivisionByZero: If b is zero after rescaling
    """
    a_raw = rescale_half_up(a, precision).raw
    b_raw = rescale_half_up(b, precision).raw
    if b_raw == 0:
        raise DivisionByZero(f"Division by zero-valued decimal {b!r}")
    numerator = a_raw * 10 ** precision
    if b_raw < 0:
        numerator, b_raw = -numerator, -b_raw
    return FixedDecimal(_round_div_away(numerator, b_raw), precision)


# ============================================================================
# HELPERS
# ============================================================================

def fixed_min(a: FixedDecimal, b: FixedDecimal) -> FixedDecimal:
    return a if a <= b else b


def fixed_max(a: FixedDecimal, b: FixedDecimal) -> FixedDecimal:
    return a if a >= b else b


def fixed_sum(values: Iterable[FixedDecimal], scale: int) -> FixedDecimal:
    total = FixedDecimal(0, scale)
    for value in values:
        total = total + value
    return total


def to_decimal(raw: int, scale: int) -> FixedDecimal:
    """Wrap raw integer units at a scale (no conversion)."""
    return FixedDecimal(raw, scale)


def bps(raw: int) -> FixedDecimal:
    return FixedDecimal(raw, BPS_PRECISION)


def wad(raw: int) -> FixedDecimal:
    return FixedDecimal(raw, WAD_PRECISION)


def ray(raw: int) -> FixedDecimal:
    return FixedDecimal(raw, RAY_PRECISION)


def to_bps(value: Number) -> FixedDecimal:
    """Human number to BPS, e.g. to_bps("0.05") -> 500 raw."""
    return FixedDecimal.from_decimal(value, BPS_PRECISION)


def to_wad(value: Number) -> FixedDecimal:
    return FixedDecimal.from_decimal(value, WAD_PRECISION)


def to_ray(value: Number) -> FixedDecimal:
    return FixedDecimal.from_decimal(value, RAY_PRECISION)


def to_units(value: Number, decimals: int) -> FixedDecimal:
    """Human token amount to asset decimals, e.g. to_units("1.5", 6) -> 1_500_000 raw."""
    return FixedDecimal.from_decimal(value, decimals)
