"""
test_rates.py - Unit tests for the interest rate curve and compounding

Tests:
- RateCurveParams validation
- Utilization edge cases
- Three-region borrow rate curve and max_rate cap
- Per-period conversion
- Deposit rate
- Taylor compounding against Decimal.exp
- Supply index growth and scaled/original conversions
"""

import pytest
from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from lendcore import (
    FixedDecimal,
    InvalidRateParams,
    RateCurveParams,
    ONE_RAY,
    ZERO_RAY,
    SECONDS_PER_YEAR,
    RAY,
    utilization,
    calc_annual_borrow_rate,
    calc_borrow_rate,
    calc_deposit_rate,
    calculate_compounded_interest,
    update_borrow_index,
    update_supply_index,
    scaled_to_original,
    original_to_scaled,
    div_half_up,
    to_ray,
    ray,
)
from tests.builders import standard_curve, usdc


class TestRateCurveParams:
    """Construction-time validation of the curve."""

    def test_standard_curve_is_valid(self):
        params = standard_curve()
        assert params.base_rate == to_ray("0.01")
        assert params.asset_decimals == 6

    def test_max_rate_below_base_rejected(self):
        with pytest.raises(InvalidRateParams):
            standard_curve(max_rate="0.005")

    def test_optimal_below_mid_rejected(self):
        with pytest.raises(InvalidRateParams):
            standard_curve(optimal_utilization="0.40")

    def test_optimal_above_one_rejected(self):
        with pytest.raises(InvalidRateParams):
            standard_curve(optimal_utilization="1.10")

    def test_reserve_factor_above_one_rejected(self):
        with pytest.raises(InvalidRateParams):
            standard_curve(reserve_factor="1.5")

    def test_negative_slope_rejected(self):
        with pytest.raises(InvalidRateParams):
            standard_curve(slope1="-0.01")

    def test_non_ray_field_rejected(self):
        params = standard_curve()
        with pytest.raises(ValueError):
            RateCurveParams(
                base_rate=FixedDecimal(1, 4),
                slope1=params.slope1,
                slope2=params.slope2,
                slope3=params.slope3,
                mid_utilization=params.mid_utilization,
                optimal_utilization=params.optimal_utilization,
                max_rate=params.max_rate,
                reserve_factor=params.reserve_factor,
                asset_decimals=6,
            )

    def test_boundary_values_accepted(self):
        """mid == optimal, optimal == 1 and reserve_factor == 1 are allowed."""
        params = standard_curve(
            mid_utilization="0.80", optimal_utilization="1.00", reserve_factor="1.00"
        )
        assert params.optimal_utilization == ONE_RAY


class TestUtilization:

    def test_zero_supply_is_zero_utilization(self):
        assert utilization(to_ray(100), ZERO_RAY) == ZERO_RAY

    def test_half_borrowed(self):
        assert utilization(to_ray(500), to_ray(1000)) == to_ray("0.5")


class TestBorrowRate:
    """Three-region curve: 1% base, 4% to 50%, 10% to 80%, 300% beyond."""

    @pytest.mark.parametrize("u,expected", [
        ("0", "0.01"),
        ("0.25", "0.03"),
        ("0.50", "0.05"),
        ("0.65", "0.10"),
        ("0.80", "0.15"),
        ("0.90", "1.65"),
    ])
    def test_annual_rate_regions(self, u, expected):
        assert calc_annual_borrow_rate(to_ray(u), standard_curve()) == to_ray(expected)

    def test_full_utilization_capped_at_max_rate(self):
        """0.15 + 0.2 * 3 / 0.2 = 3.15, capped at 3.00."""
        assert calc_annual_borrow_rate(ONE_RAY, standard_curve()) == to_ray("3.00")

    def test_optimal_at_one_has_no_third_region(self):
        params = standard_curve(optimal_utilization="1.00")
        assert calc_annual_borrow_rate(ONE_RAY, params) == to_ray("0.15")

    def test_per_period_rate(self):
        params = standard_curve()
        assert calc_borrow_rate(to_ray("0.25"), params, periods_per_year=1) == to_ray("0.03")
        per_second = calc_borrow_rate(to_ray("0.25"), params, periods_per_year=SECONDS_PER_YEAR)
        assert per_second == div_half_up(
            to_ray("0.03"), FixedDecimal(SECONDS_PER_YEAR, 0), 27
        )

    def test_default_period_is_milliseconds(self):
        params = standard_curve()
        per_ms = calc_borrow_rate(to_ray("0.25"), params)
        per_second = calc_borrow_rate(to_ray("0.25"), params, periods_per_year=SECONDS_PER_YEAR)
        assert per_ms < per_second

    def test_non_positive_period_rejected(self):
        with pytest.raises(ValueError):
            calc_borrow_rate(to_ray("0.25"), standard_curve(), periods_per_year=0)

    @given(st.integers(min_value=0, max_value=RAY))
    @settings(max_examples=50)
    def test_rate_is_monotone_in_utilization(self, raw):
        """Higher utilization never lowers the annual rate."""
        params = standard_curve()
        lower = calc_annual_borrow_rate(ray(raw), params)
        higher = calc_annual_borrow_rate(ray(min(raw + RAY // 100, RAY)), params)
        assert higher >= lower
        assert lower <= params.max_rate


class TestDepositRate:

    def test_zero_utilization_earns_nothing(self):
        assert calc_deposit_rate(ZERO_RAY, to_ray("0.1"), to_ray("0.1")) == ZERO_RAY

    def test_deposit_rate(self):
        """0.5 * 0.10 * (1 - 0.10) = 0.045"""
        rate = calc_deposit_rate(to_ray("0.5"), to_ray("0.10"), to_ray("0.10"))
        assert rate == to_ray("0.045")


class TestCompounding:

    def test_no_elapsed_time_is_exactly_one(self):
        assert calculate_compounded_interest(to_ray("0.5"), 0) == ONE_RAY

    def test_negative_elapsed_rejected(self):
        with pytest.raises(ValueError):
            calculate_compounded_interest(to_ray("0.1"), -1)

    def test_close_to_exponential(self):
        factor = calculate_compounded_interest(to_ray("0.1"), 1)
        assert abs(factor.to_decimal() - Decimal("0.1").exp()) < Decimal("1e-8")

    def test_small_rate_over_many_periods(self):
        """5% annual per millisecond over one year grows like e^0.05."""
        rate = calc_borrow_rate(to_ray("0.50"), standard_curve())
        factor = calculate_compounded_interest(rate, 31_556_926_000)
        assert abs(factor.to_decimal() - Decimal("0.05").exp()) < Decimal("1e-9")

    @given(
        st.integers(min_value=0, max_value=10 ** 18),
        st.integers(min_value=1, max_value=1_000_000),
    )
    @settings(max_examples=50)
    def test_factor_at_least_linear(self, rate_raw, elapsed):
        """Every Taylor term is non-negative, so factor >= 1 + rate * elapsed."""
        factor = calculate_compounded_interest(ray(rate_raw), elapsed)
        assert factor.raw >= RAY + rate_raw * elapsed


class TestIndexes:

    def test_update_borrow_index_returns_old(self):
        new, old = update_borrow_index(ONE_RAY, to_ray("1.05"))
        assert new == to_ray("1.05")
        assert old == ONE_RAY

    def test_update_supply_index(self):
        """10 units of reward on 100 scaled at index 1.0 gives index 1.1."""
        index = update_supply_index(to_ray(100), ONE_RAY, usdc(10))
        assert index == to_ray("1.1")

    def test_supply_index_unchanged_without_supply(self):
        assert update_supply_index(ZERO_RAY, ONE_RAY, usdc(10)) == ONE_RAY

    def test_supply_index_unchanged_without_reward(self):
        assert update_supply_index(to_ray(100), to_ray("1.2"), usdc(0)) == to_ray("1.2")

    def test_scaled_conversions(self):
        scaled = original_to_scaled(usdc(110), to_ray("1.1"))
        assert scaled == to_ray(100)
        assert scaled_to_original(scaled, to_ray("1.1"), 6) == usdc(110)
