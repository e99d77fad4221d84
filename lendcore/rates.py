"""
rates.py - Interest rate curve and compounding

This module turns market utilization into a per-period borrow rate and
compounds that rate over elapsed time.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASS (explicit input):
   - RateCurveParams: the market's curve, validated at construction

2. PURE CALCULATION FUNCTIONS:
   - utilization, calc_borrow_rate, calc_deposit_rate
   - calculate_compounded_interest (5-term Taylor expansion)
   - update_borrow_index, update_supply_index
   - scaled_to_original, scaled_to_original_ray, original_to_scaled

Key Formulas:
    region 1 (u < mid):          base + u * slope1 / mid
    region 2 (mid <= u < opt):   base + slope1 + (u - mid) * slope2 / (opt - mid)
    region 3 (u >= opt):         base + slope1 + slope2 + (u - opt) * slope3 / (1 - opt)
    per_period_rate = min(annual_rate, max_rate) / periods_per_year
    growth_factor = 1 + x + x^2/2! + x^3/3! + x^4/4! + x^5/5!,  x = rate * elapsed
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

from .core import (
    FixedDecimal,
    RAY_PRECISION, MILLISECONDS_PER_YEAR,
    ONE_RAY, ZERO_RAY,
    InvalidRateParams,
)
from .fixed_point import (
    mul_half_up, div_half_up, rescale_half_up, to_ray,
)


# ============================================================================
# FROZEN DATACLASS
# ============================================================================

@dataclass(frozen=True, slots=True)
class RateCurveParams:
    """
    Immutable interest-rate curve of one market.

    All ratios are RAY-scaled annual figures (to_ray("0.05") is 5%).
    asset_decimals is the precision of the market's token amounts.

    Invariants (checked in __post_init__):
        0 <= mid_utilization <= optimal_utilization <= 1.0
        slopes >= 0, base_rate >= 0
        base_rate <= max_rate
        0 <= reserve_factor <= 1.0
    """
    base_rate: FixedDecimal
    slope1: FixedDecimal
    slope2: FixedDecimal
    slope3: FixedDecimal
    mid_utilization: FixedDecimal
    optimal_utilization: FixedDecimal
    max_rate: FixedDecimal
    reserve_factor: FixedDecimal
    asset_decimals: int

    def __post_init__(self):
        for name in ("base_rate", "slope1", "slope2", "slope3", "mid_utilization",
                     "optimal_utilization", "max_rate", "reserve_factor"):
            value = getattr(self, name)
            if not isinstance(value, FixedDecimal):
                raise ValueError(f"{name} must be FixedDecimal, got {type(value)}")
            if value.scale != RAY_PRECISION:
                raise ValueError(f"{name} must be RAY-scaled, got scale {value.scale}")
            if value.is_negative():
                raise InvalidRateParams(f"{name} must be non-negative, got {value}")
        if isinstance(self.asset_decimals, bool) or not isinstance(self.asset_decimals, int) \
                or self.asset_decimals < 0:
            raise ValueError(f"asset_decimals must be a non-negative int, got {self.asset_decimals}")
        if self.max_rate < self.base_rate:
            raise InvalidRateParams(
                "Borrow rate parameters invalid: max_borrow_rate must not be below base_borrow_rate."
            )
        if self.optimal_utilization < self.mid_utilization:
            raise InvalidRateParams(
                "Utilization range invalid: optimal_utilization must not be below mid_utilization."
            )
        if self.optimal_utilization > ONE_RAY:
            raise InvalidRateParams("Optimal utilization invalid: must not exceed 1.0.")
        if self.reserve_factor > ONE_RAY:
            raise InvalidRateParams("Reserve factor invalid: must not exceed 1.0.")

    @classmethod
    def from_percentages(
        cls,
        base_rate,
        slope1,
        slope2,
        slope3,
        mid_utilization,
        optimal_utilization,
        max_rate,
        reserve_factor,
        asset_decimals: int,
    ) -> RateCurveParams:
        """
        Build a curve from plain numbers (Decimal, str, int or float ratios).

        Example:
            RateCurveParams.from_percentages(
                "0.01", "0.05", "0.10", "1.50", "0.50", "0.80", "2.0", "0.10", 6
            )
        """
        return cls(
            base_rate=to_ray(base_rate),
            slope1=to_ray(slope1),
            slope2=to_ray(slope2),
            slope3=to_ray(slope3),
            mid_utilization=to_ray(mid_utilization),
            optimal_utilization=to_ray(optimal_utilization),
            max_rate=to_ray(max_rate),
            reserve_factor=to_ray(reserve_factor),
            asset_decimals=asset_decimals,
        )


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def utilization(borrowed: FixedDecimal, supplied: FixedDecimal) -> FixedDecimal:
    """
    Fraction of supplied liquidity that is currently borrowed (RAY).

    Zero supply is a defined edge case and yields zero utilization.
    """
    if supplied.is_zero():
        return ZERO_RAY
    return div_half_up(borrowed, supplied, RAY_PRECISION)


def calc_annual_borrow_rate(utilization_ray: FixedDecimal, params: RateCurveParams) -> FixedDecimal:
    """Annual borrow rate at a utilization, capped at max_rate (RAY)."""
    if utilization_ray < params.mid_utilization:
        contribution = div_half_up(
            mul_half_up(utilization_ray, params.slope1, RAY_PRECISION),
            params.mid_utilization,
            RAY_PRECISION,
        )
        annual_rate = params.base_rate + contribution
    elif utilization_ray < params.optimal_utilization:
        excess = utilization_ray - params.mid_utilization
        contribution = div_half_up(
            mul_half_up(excess, params.slope2, RAY_PRECISION),
            params.optimal_utilization - params.mid_utilization,
            RAY_PRECISION,
        )
        annual_rate = params.base_rate + params.slope1 + contribution
    else:
        excess = utilization_ray - params.optimal_utilization
        headroom = ONE_RAY - params.optimal_utilization
        if headroom.is_zero():
            contribution = ZERO_RAY
        else:
            contribution = div_half_up(
                mul_half_up(excess, params.slope3, RAY_PRECISION),
                headroom,
                RAY_PRECISION,
            )
        annual_rate = params.base_rate + params.slope1 + params.slope2 + contribution

    if annual_rate > params.max_rate:
        return params.max_rate
    return annual_rate


def calc_borrow_rate(
    utilization_ray: FixedDecimal,
    params: RateCurveParams,
    periods_per_year: int = MILLISECONDS_PER_YEAR,
) -> FixedDecimal:
    """
    Per-period borrow rate for a utilization (RAY).

    Args:
        utilization_ray: Market utilization, RAY-scaled
        params: The market's rate curve
        periods_per_year: Length of a year in the caller's time unit
            (milliseconds by default, SECONDS_PER_YEAR for second clocks)

    Returns:
        min(annual_rate, max_rate) / periods_per_year, half-up at RAY
    """
    if periods_per_year <= 0:
        raise ValueError(f"periods_per_year must be positive, got {periods_per_year}")
    annual_rate = calc_annual_borrow_rate(utilization_ray, params)
    return div_half_up(annual_rate, FixedDecimal(periods_per_year, 0), RAY_PRECISION)


def calc_deposit_rate(
    utilization_ray: FixedDecimal,
    borrow_rate: FixedDecimal,
    reserve_factor: FixedDecimal,
) -> FixedDecimal:
    """Rate earned by suppliers: utilization * borrow_rate * (1 - reserve_factor)."""
    if utilization_ray.is_zero():
        return ZERO_RAY
    return mul_half_up(
        mul_half_up(utilization_ray, borrow_rate, RAY_PRECISION),
        ONE_RAY - rescale_half_up(reserve_factor, RAY_PRECISION),
        RAY_PRECISION,
    )


_FACTORIALS = (
    FixedDecimal(2, 0),
    FixedDecimal(6, 0),
    FixedDecimal(24, 0),
    FixedDecimal(120, 0),
)


def calculate_compounded_interest(rate: FixedDecimal, elapsed_periods: int) -> FixedDecimal:
    """
    Growth factor for a per-period rate held over elapsed_periods.

    Uses the Taylor expansion of e^x truncated after the fifth power, every
    term computed half-up at RAY. Exactly 1.0 when no time has elapsed.

    Args:
        rate: Per-period rate (RAY)
        elapsed_periods: Number of periods since the last accrual

    Returns:
        1 + x + x^2/2 + x^3/6 + x^4/24 + x^5/120 with x = rate * elapsed_periods
    """
    if elapsed_periods < 0:
        raise ValueError(f"elapsed_periods must be non-negative, got {elapsed_periods}")
    if elapsed_periods == 0:
        return ONE_RAY

    x = mul_half_up(rate, FixedDecimal(elapsed_periods, 0), RAY_PRECISION)

    factor = ONE_RAY + x
    power = x
    for factorial in _FACTORIALS:
        power = mul_half_up(power, x, RAY_PRECISION)
        factor = factor + div_half_up(power, factorial, RAY_PRECISION)
    return factor


def update_borrow_index(
    old_borrow_index: FixedDecimal,
    interest_factor: FixedDecimal,
) -> Tuple[FixedDecimal, FixedDecimal]:
    """Apply a growth factor to the borrow index. Returns (new_index, old_index)."""
    new_index = mul_half_up(old_borrow_index, interest_factor, RAY_PRECISION)
    return new_index, old_borrow_index


def update_supply_index(
    supplied: FixedDecimal,
    old_supply_index: FixedDecimal,
    rewards_increase: FixedDecimal,
) -> FixedDecimal:
    """
    Grow the supply index so scaled suppliers receive rewards_increase.

    reward_ratio = rewards / (supplied * old_index)
    new_index = old_index * (1 + reward_ratio)

    Unchanged when there is no supply or no reward.
    """
    if supplied.is_zero() or rewards_increase.is_zero():
        return old_supply_index
    total_supplied = mul_half_up(supplied, old_supply_index, RAY_PRECISION)
    if total_supplied.is_zero():
        return old_supply_index
    reward_ratio = div_half_up(rewards_increase, total_supplied, RAY_PRECISION)
    return mul_half_up(old_supply_index, ONE_RAY + reward_ratio, RAY_PRECISION)


def scaled_to_original_ray(scaled_amount: FixedDecimal, index: FixedDecimal) -> FixedDecimal:
    return mul_half_up(scaled_amount, index, RAY_PRECISION)


def scaled_to_original(
    scaled_amount: FixedDecimal,
    index: FixedDecimal,
    asset_decimals: int,
) -> FixedDecimal:
    """Actual token amount behind a scaled balance, at asset decimals."""
    return rescale_half_up(scaled_to_original_ray(scaled_amount, index), asset_decimals)


def original_to_scaled(amount: FixedDecimal, index: FixedDecimal) -> FixedDecimal:
    """Scaled (index-free) balance for an actual token amount, at RAY."""
    return div_half_up(amount, index, RAY_PRECISION)
