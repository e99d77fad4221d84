"""
Rounding Conformance Tests

INVARIANT: Every precision-reducing step rounds half-up, and signed values
round half away from zero.

    ∀ a, b ≥ 0 at precision p:
        mul_half_up(a, b, p) = ⌊a·b·10^p + ½⌋ / 10^p
        div_half_up(a, b, p) = ⌊a/b·10^p + ½⌋ / 10^p

    ∀ a, b:
        mul_half_up_signed(-a, b, p) = -mul_half_up_signed(a, b, p)
        div_half_up_signed(-a, b, p) = -div_half_up_signed(a, b, p)
"""

from fractions import Fraction
from math import floor

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from lendcore import (
    FixedDecimal,
    mul_half_up,
    div_half_up,
    mul_half_up_signed,
    div_half_up_signed,
    rescale_half_up,
)


raws = st.integers(min_value=0, max_value=10 ** 24)
signed_raws = st.integers(min_value=-10 ** 24, max_value=10 ** 24)
precisions = st.integers(min_value=0, max_value=27)


def half_up(value: Fraction) -> int:
    return floor(value + Fraction(1, 2))


class TestUnsignedRounding:
    """Unsigned primitives match exact rational arithmetic rounded half-up."""

    @given(raws, raws, precisions)
    @settings(max_examples=50)
    def test_mul_matches_exact_rational(self, a_raw, b_raw, p):
        a = FixedDecimal(a_raw, p)
        b = FixedDecimal(b_raw, p)
        exact = Fraction(a_raw * b_raw, 10 ** p)
        assert mul_half_up(a, b, p).raw == half_up(exact)

    @given(raws, st.integers(min_value=1, max_value=10 ** 24), precisions)
    @settings(max_examples=50)
    def test_div_matches_exact_rational(self, a_raw, b_raw, p):
        a = FixedDecimal(a_raw, p)
        b = FixedDecimal(b_raw, p)
        exact = Fraction(a_raw * 10 ** p, b_raw)
        assert div_half_up(a, b, p).raw == half_up(exact)

    @given(raws, st.integers(min_value=0, max_value=27), st.integers(min_value=0, max_value=27))
    @settings(max_examples=50)
    def test_rescale_down_matches_exact_rational(self, raw, scale, new_scale):
        assume(new_scale <= scale)
        result = rescale_half_up(FixedDecimal(raw, scale), new_scale)
        assert result.raw == half_up(Fraction(raw, 10 ** (scale - new_scale)))

    @given(raws, st.integers(min_value=0, max_value=18), st.integers(min_value=0, max_value=18))
    @settings(max_examples=50)
    def test_rescale_up_is_lossless(self, raw, scale, extra):
        value = FixedDecimal(raw, scale)
        assert rescale_half_up(rescale_half_up(value, scale + extra), scale) == value


class TestSignedRounding:
    """Signed primitives are symmetric around zero."""

    @given(signed_raws, signed_raws, precisions)
    @settings(max_examples=50)
    def test_mul_symmetric(self, a_raw, b_raw, p):
        a = FixedDecimal(a_raw, p)
        b = FixedDecimal(b_raw, p)
        assert mul_half_up_signed(-a, b, p) == -mul_half_up_signed(a, b, p)

    @given(signed_raws, signed_raws, precisions)
    @settings(max_examples=50)
    def test_div_symmetric(self, a_raw, b_raw, p):
        assume(b_raw != 0)
        a = FixedDecimal(a_raw, p)
        b = FixedDecimal(b_raw, p)
        assert div_half_up_signed(-a, b, p) == -div_half_up_signed(a, b, p)
        assert div_half_up_signed(a, -b, p) == -div_half_up_signed(a, b, p)

    @given(raws, st.integers(min_value=1, max_value=10 ** 24), precisions)
    @settings(max_examples=50)
    def test_signed_agrees_with_unsigned_on_non_negatives(self, a_raw, b_raw, p):
        a = FixedDecimal(a_raw, p)
        b = FixedDecimal(b_raw, p)
        assert mul_half_up_signed(a, b, p) == mul_half_up(a, b, p)
        assert div_half_up_signed(a, b, p) == div_half_up(a, b, p)

    @given(st.integers(min_value=0, max_value=10 ** 12), st.integers(min_value=1, max_value=12))
    @settings(max_examples=50)
    def test_exact_negative_half_moves_away_from_zero(self, units, digits):
        """-(n + 0.5) rounds to -(n + 1)."""
        raw = -(units * 10 ** digits + 5 * 10 ** (digits - 1))
        assert rescale_half_up(FixedDecimal(raw, digits), 0) == FixedDecimal(-(units + 1), 0)
