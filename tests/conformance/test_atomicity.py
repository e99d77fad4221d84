"""
Atomicity Conformance Tests

INVARIANT: Pool operations are all-or-nothing.

    ∀ operation O on pool P:
        O succeeds ⟹ every market and position change in O is applied
        O raises   ⟹ markets, accounts and the account counter equal P before O

Accrual performed inside a failing operation is rolled back with everything
else, so a rejected call is indistinguishable from no call.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lendcore import (
    FixedDecimal,
    InvalidAmount,
    InsufficientCollateral,
    HealthFactorTooHigh,
    HealthFactorTooLowAfterWithdraw,
    PositionNotFound,
    CannotCleanBadDebt,
    TokenAmount,
    ONE_WAD,
)
from tests.builders import usdc, eth, build_borrowed_pool, pool_snapshot


DAY = 86_400_000


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(st.integers(min_value=1, max_value=3_000))
    @settings(max_examples=50, deadline=None)
    def test_withdraw_commits_healthy_or_rolls_back(self, millis):
        """
        PROPERTY: A collateral withdrawal either leaves the account healthy or
        leaves the whole pool untouched.
        """
        pool, _, borrower = build_borrowed_pool()
        before = pool_snapshot(pool)
        try:
            pool.withdraw(borrower, "ETH", FixedDecimal(millis * 10 ** 15, 18))
        except HealthFactorTooLowAfterWithdraw:
            assert pool_snapshot(pool) == before
        else:
            assert pool.health_factor(borrower) >= ONE_WAD

    @given(st.integers(min_value=1, max_value=5_000), st.integers(min_value=0, max_value=90))
    @settings(max_examples=50, deadline=None)
    def test_rejected_borrow_rolls_back_accrual(self, extra, days):
        """
        PROPERTY: A borrow beyond LTV capacity changes nothing, including
        the interest accrual it triggered.
        """
        pool, _, borrower = build_borrowed_pool()
        pool.advance_time(days * DAY)
        before = pool_snapshot(pool)
        with pytest.raises(InsufficientCollateral):
            pool.borrow(borrower, "USDC", usdc(1_000 + extra))
        assert pool_snapshot(pool) == before


class TestAtomicityExamples:

    def test_rejected_supply_does_not_open_account(self):
        pool, _, _ = build_borrowed_pool()
        before = pool_snapshot(pool)
        with pytest.raises(InvalidAmount):
            pool.supply(None, "USDC", usdc(0))
        assert pool_snapshot(pool) == before
        assert pool.open_account() == 3

    def test_healthy_liquidation_changes_nothing(self):
        pool, _, borrower = build_borrowed_pool()
        pool.advance_time(30 * DAY)
        before = pool_snapshot(pool)
        with pytest.raises(HealthFactorTooHigh):
            pool.liquidate(borrower, [TokenAmount("USDC", usdc(1_000))])
        assert pool_snapshot(pool) == before

    def test_unowed_payment_rolls_back_liquidation(self):
        pool, _, borrower = build_borrowed_pool()
        pool.pricing.update_price("ETH", "1500")
        before = pool_snapshot(pool)
        with pytest.raises(PositionNotFound):
            pool.liquidate(borrower, [
                TokenAmount("USDC", usdc(1_000)),
                TokenAmount("ETH", eth(1)),
            ])
        assert pool_snapshot(pool) == before

    def test_rejected_clean_bad_debt_changes_nothing(self):
        pool, _, borrower = build_borrowed_pool()
        pool.pricing.update_price("ETH", "1500")
        before = pool_snapshot(pool)
        with pytest.raises(CannotCleanBadDebt):
            pool.clean_bad_debt(borrower)
        assert pool_snapshot(pool) == before
