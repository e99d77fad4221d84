"""
Idempotency Conformance Tests

INVARIANT: Synchronizing twice to the same instant is the same as once.

    ∀ state S, ∀ t ≥ S.last_timestamp:
        global_sync(global_sync(S, t), t) = global_sync(S, t)

    ∀ position P, ∀ index I:
        sync_position(sync_position(P, I), I) = sync_position(P, I)

Views never commit, so repeated reads return identical results.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from lendcore import (
    FixedDecimal,
    PositionSide,
    MILLISECONDS_PER_YEAR,
    global_sync,
    sync_position,
    ray,
)
from tests.builders import make_position, build_borrowed_pool


class TestSyncIdempotency:
    """Property-based idempotency of accrual."""

    @given(st.integers(min_value=0, max_value=2 * MILLISECONDS_PER_YEAR))
    @settings(max_examples=50, deadline=None)
    def test_global_sync_twice_is_once(self, now):
        pool, _, _ = build_borrowed_pool()
        market = pool.get_market("USDC")
        once = global_sync(market.state, market.params, now)
        twice = global_sync(once, market.params, now)
        assert twice == once

    @given(
        st.integers(min_value=1, max_value=10 ** 15),
        st.integers(min_value=10 ** 27, max_value=3 * 10 ** 27),
    )
    @settings(max_examples=50)
    def test_sync_position_twice_is_once(self, principal_raw, index_raw):
        position = make_position("USDC", PositionSide.BORROW, FixedDecimal(principal_raw, 6))
        once = sync_position(position, ray(index_raw))
        assert sync_position(once, ray(index_raw)) == once

    @given(st.integers(min_value=0, max_value=MILLISECONDS_PER_YEAR))
    @settings(max_examples=50, deadline=None)
    def test_update_indexes_twice_is_once(self, now):
        pool, _, _ = build_borrowed_pool()
        pool.advance_time(now)
        first = pool.update_indexes()
        states = {asset_id: m.state for asset_id, m in pool.markets.items()}
        second = pool.update_indexes()
        assert second == first
        assert {asset_id: m.state for asset_id, m in pool.markets.items()} == states


class TestViewIdempotency:

    def test_repeated_reads_identical(self):
        pool, lender, borrower = build_borrowed_pool()
        pool.advance_time(30 * 86_400_000)
        assert pool.health_factor(borrower) == pool.health_factor(borrower)
        assert pool.positions(lender) == pool.positions(lender)
        assert (pool.get_position(borrower, "USDC", PositionSide.BORROW)
                == pool.get_position(borrower, "USDC", PositionSide.BORROW))
