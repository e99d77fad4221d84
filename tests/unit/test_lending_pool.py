"""
test_lending_pool.py - Unit tests for LendingPool orchestration

Tests:
- Clock, market registry and accounts
- supply / borrow / repay / withdraw with their policy checks
- Supply and borrow caps, collateral and borrowability flags
- Risk snapshots survive configuration updates
- Health factor views
- Revenue and reward pass-throughs
"""

import pytest

from lendcore import (
    AccountNotFound,
    AssetConfig,
    AssetNotBorrowable,
    AssetNotCollateral,
    BorrowCapReached,
    CannotCleanBadDebt,
    HealthFactorTooHigh,
    HealthFactorTooLowAfterWithdraw,
    InsufficientCollateral,
    InsufficientLiquidity,
    InvalidAsset,
    LendingPool,
    PositionNotFound,
    PositionSide,
    SupplyCapReached,
    TokenAmount,
    MAX_HEALTH_FACTOR,
    to_bps,
    to_ray,
    to_wad,
)
from tests.builders import standard_curve, standard_config, usdc, eth, pool_snapshot


class TestRegistryAndClock:

    def test_markets_listed_sorted(self, pool):
        assert pool.list_markets() == ["ETH", "USDC"]

    def test_duplicate_market_rejected(self, pool):
        with pytest.raises(ValueError):
            pool.register_market("USDC", standard_curve(6), standard_config())

    def test_unknown_market(self, pool):
        with pytest.raises(InvalidAsset):
            pool.get_market("BTC")

    def test_time_cannot_go_backwards(self, pool):
        pool.advance_time(1_000)
        with pytest.raises(ValueError):
            pool.advance_time(999)
        assert pool.current_time == 1_000

    def test_market_starts_at_pool_time(self, pool):
        pool.advance_time(5_000)
        market = pool.register_market("DAI", standard_curve(18), standard_config())
        assert market.state.last_timestamp == 5_000

    def test_accounts_numbered_from_one(self, pool):
        first, _ = pool.supply(None, "USDC", usdc(10))
        second, _ = pool.supply(None, "USDC", usdc(10))
        assert (first, second) == (1, 2)

    def test_unknown_account(self, pool):
        with pytest.raises(AccountNotFound):
            pool.supply(42, "USDC", usdc(10))

    def test_registration_is_printed(self, pricing, capsys):
        pool = LendingPool("loud", pricing, verbose=True)
        pool.register_market("USDC", standard_curve(6), standard_config())
        account, _ = pool.supply(None, "USDC", usdc(1))
        out = capsys.readouterr().out
        assert "📝 Registered market: USDC (6 decimals)" in out
        assert f"✓ SUPPLY account={account}" in out


class TestSupply:

    def test_supply_creates_position(self, pool):
        account, position = pool.supply(None, "USDC", usdc(1000))
        assert position.principal == usdc(1000)
        assert position.liquidation_threshold == to_bps("0.80")
        assert pool.get_position(account, "USDC", PositionSide.DEPOSIT) == position

    def test_supply_adds_to_existing_position(self, pool):
        account, _ = pool.supply(None, "USDC", usdc(1000))
        _, position = pool.supply(account, "USDC", usdc(500))
        assert position.total == usdc(1500)
        assert len(pool.positions(account, PositionSide.DEPOSIT)) == 1

    def test_non_collateral_asset_rejected(self, pool):
        pool.update_asset_config("ETH", standard_config(can_be_collateral=False))
        with pytest.raises(AssetNotCollateral):
            pool.supply(None, "ETH", eth(1))
        assert pool.accounts == {}

    def test_supply_cap(self, pool):
        pool.update_asset_config("USDC", standard_config(supply_cap=usdc(1_000)))
        account, _ = pool.supply(None, "USDC", usdc(600))
        pool.supply(account, "USDC", usdc(400))
        with pytest.raises(SupplyCapReached):
            pool.supply(account, "USDC", usdc("0.000001"))


class TestBorrow:

    def test_borrow_within_ltv(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        position = pool.borrow(borrower, "USDC", usdc(1_000))
        assert position.total == usdc(15_000)

    def test_borrow_above_ltv_rejected(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        before = pool_snapshot(pool)
        with pytest.raises(InsufficientCollateral):
            pool.borrow(borrower, "USDC", usdc("1000.000001"))
        assert pool_snapshot(pool) == before

    def test_borrow_without_collateral_rejected(self, borrowed_pool):
        pool, _, _ = borrowed_pool
        account = pool.open_account()
        with pytest.raises(InsufficientCollateral):
            pool.borrow(account, "USDC", usdc(1))

    def test_not_borrowable(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        pool.update_asset_config("USDC", standard_config(can_be_borrowed=False))
        with pytest.raises(AssetNotBorrowable):
            pool.borrow(borrower, "USDC", usdc(1))

    def test_borrow_cap(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        pool.update_asset_config("USDC", standard_config(borrow_cap=usdc(14_500)))
        pool.borrow(borrower, "USDC", usdc(500))
        with pytest.raises(BorrowCapReached):
            pool.borrow(borrower, "USDC", usdc(1))

    def test_borrow_requires_price(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        pool.register_market("DAI", standard_curve(18), standard_config())
        with pytest.raises(InvalidAsset):
            pool.borrow(borrower, "DAI", eth(1))


class TestRepayAndWithdraw:

    def test_repay_refunds_overpayment(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        refund = pool.repay(borrower, "USDC", usdc(15_000))
        assert refund == usdc(1_000)
        assert pool.positions(borrower, PositionSide.BORROW) == []
        assert pool.health_factor(borrower) == MAX_HEALTH_FACTOR

    def test_repay_without_debt(self, pool):
        account, _ = pool.supply(None, "USDC", usdc(10))
        with pytest.raises(PositionNotFound):
            pool.repay(account, "USDC", usdc(1))

    def test_withdraw_without_debt(self, pool):
        account, _ = pool.supply(None, "USDC", usdc(1_000))
        paid = pool.withdraw(account, "USDC", usdc(5_000))
        assert paid == usdc(1_000)
        assert pool.positions(account) == []

    def test_withdraw_limited_by_liquidity(self, borrowed_pool):
        pool, lender, _ = borrowed_pool
        with pytest.raises(InsufficientLiquidity):
            pool.withdraw(lender, "USDC", usdc(90_000))

    def test_withdraw_keeping_health(self, borrowed_pool):
        """9 ETH * 2000 * 0.8 = 14,400 still covers 14,000 of debt."""
        pool, _, borrower = borrowed_pool
        assert pool.withdraw(borrower, "ETH", eth(1)) == eth(1)
        assert pool.get_position(borrower, "ETH", PositionSide.DEPOSIT).total == eth(9)

    def test_withdraw_breaking_health_rejected(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        before = pool_snapshot(pool)
        with pytest.raises(HealthFactorTooLowAfterWithdraw):
            pool.withdraw(borrower, "ETH", eth(2))
        assert pool_snapshot(pool) == before

    def test_withdraw_missing_position(self, borrowed_pool):
        pool, lender, _ = borrowed_pool
        with pytest.raises(PositionNotFound):
            pool.withdraw(lender, "ETH", eth(1))


class TestRiskViews:

    def test_health_factor(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        assert pool.health_factor(borrower) == to_wad("1.142857142857142857")
        assert not pool.is_liquidatable(borrower)

    def test_values(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        values = pool.collateral_values(borrower)
        assert values.total == to_wad(20_000)
        assert values.weighted == to_wad(16_000)
        assert values.ltv_weighted == to_wad(15_000)
        assert pool.total_borrow_value(borrower) == to_wad(14_000)

    def test_price_drop_makes_account_liquidatable(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        pool.pricing.update_price("ETH", "1500")
        assert pool.is_liquidatable(borrower)

    def test_views_do_not_commit(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        pool.advance_time(86_400_000)
        before = pool_snapshot(pool)
        debt = pool.get_position(borrower, "USDC", PositionSide.BORROW)
        assert debt.accumulated_interest > usdc(0)
        assert pool_snapshot(pool) == before

    def test_config_update_keeps_existing_snapshots(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        pool.update_asset_config("ETH", AssetConfig.from_percentages("0.40", "0.50", "0.05", "0.10"))
        assert pool.health_factor(borrower) == to_wad("1.142857142857142857")

        _, position = pool.supply(None, "ETH", eth(1))
        assert position.liquidation_threshold == to_bps("0.50")

    def test_healthy_account_not_liquidated(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        before = pool_snapshot(pool)
        with pytest.raises(HealthFactorTooHigh):
            pool.liquidate(borrower, [TokenAmount("USDC", usdc(1_000))])
        assert pool_snapshot(pool) == before

    def test_healthy_account_not_cleaned(self, borrowed_pool):
        pool, _, borrower = borrowed_pool
        with pytest.raises(CannotCleanBadDebt):
            pool.clean_bad_debt(borrower)


class TestRevenueAndRewards:

    def test_claim_revenue_after_accrual(self, borrowed_pool):
        pool, _, _ = borrowed_pool
        pool.advance_time(365 * 86_400_000)
        pool.update_indexes()
        revenue = pool.get_market("USDC").protocol_revenue()
        assert revenue > usdc(0)
        assert pool.claim_revenue("USDC") == revenue
        assert pool.get_market("USDC").protocol_revenue() == usdc(0)

    def test_add_rewards_reach_suppliers(self, borrowed_pool):
        pool, lender, _ = borrowed_pool
        index = pool.add_rewards("USDC", usdc(1_000))
        assert index.supply_index == to_ray("1.01")
        assert pool.get_position(lender, "USDC", PositionSide.DEPOSIT).total == usdc(101_000)

    def test_update_indexes_selected_markets(self, borrowed_pool):
        pool, _, _ = borrowed_pool
        pool.advance_time(1_000)
        indexes = pool.update_indexes(["ETH"])
        assert list(indexes) == ["ETH"]
        assert pool.get_market("ETH").state.last_timestamp == 1_000
        assert pool.get_market("USDC").state.last_timestamp == 0
