"""
pool.py - LendingPool: multi-market orchestration

The LendingPool is the central state manager of the engine. It owns the
market registry, the accounts with their positions, and the pool clock, and
it exposes every user-facing operation.

Every operation is atomic across all markets it touches: the pool snapshots
market states and account positions on entry and restores them if any step
raises.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .core import (
    FixedDecimal, PositionSide,
    MILLISECONDS_PER_YEAR, ONE_WAD,
    AccountNotFound, AssetNotBorrowable, AssetNotCollateral, BorrowCapReached,
    CannotCleanBadDebt, HealthFactorTooLowAfterWithdraw, InsufficientCollateral,
    InvalidAsset, PositionNotFound, SupplyCapReached,
    ERROR_ACCOUNT_NOT_FOUND, ERROR_ASSET_NOT_BORROWABLE, ERROR_ASSET_NOT_COLLATERAL,
    ERROR_BORROW_CAP, ERROR_CANNOT_CLEAN_BAD_DEBT, ERROR_HEALTH_FACTOR_WITHDRAW,
    ERROR_INSUFFICIENT_COLLATERAL, ERROR_INVALID_ASSET, ERROR_POSITION_NOT_FOUND,
    ERROR_SUPPLY_CAP,
)
from .liquidation import (
    DEFAULT_BAD_DEBT_FLOOR,
    CollateralValues, PriceFeed, SeizedCollateral, TokenAmount,
    calculate_collateral_values, calculate_total_borrow_value,
    can_clean_bad_debt_positions, compute_health_factor, plan_liquidation, token_value,
)
from .market import Market, MarketIndex, MarketState
from .positions import AssetConfig, Position, sync_position
from .pricing_source import PricingSource
from .rates import RateCurveParams


PositionBook = Dict[PositionSide, Dict[str, Position]]


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Outcome of one liquidation.

    Attributes:
        account_id: Liquidated account
        repaid: Debt actually repaid, per asset
        refunds: Payment returned to the liquidator, per asset
        seized: Collateral removed from the account, with protocol fees
        bonus: Liquidation bonus applied (BPS)
        debt_repaid_value: Value of the debt repaid (WAD)
        health_factor_before: Health factor before the liquidation (WAD)
        health_factor_after: Health factor after the liquidation (WAD)
        bad_debt_cleanable: Whether the account now qualifies for clean_bad_debt
    """
    account_id: int
    repaid: Tuple[TokenAmount, ...]
    refunds: Tuple[TokenAmount, ...]
    seized: Tuple[SeizedCollateral, ...]
    bonus: FixedDecimal
    debt_repaid_value: FixedDecimal
    health_factor_before: FixedDecimal
    health_factor_after: FixedDecimal
    bad_debt_cleanable: bool

    @property
    def protocol_fees(self) -> Dict[str, FixedDecimal]:
        return {s.asset_id: s.protocol_fee for s in self.seized}

    @property
    def collateral_received(self) -> Dict[str, FixedDecimal]:
        """What the liquidator walks away with, per asset."""
        return {s.asset_id: s.net_amount for s in self.seized}


class PoolTransaction:
    """
    Scoped snapshot of the whole pool.

    Market states, account positions and the account counter are captured on
    entry. If the block raises, every captured piece is put back before the
    exception continues.
    """

    def __init__(self, pool: LendingPool, action: str):
        self._pool = pool
        self.action = action
        self._markets: Dict[str, MarketState] = {}
        self._accounts: Dict[int, PositionBook] = {}
        self._next_account = 0

    def __enter__(self) -> PoolTransaction:
        pool = self._pool
        self._markets = {asset_id: m.state for asset_id, m in pool.markets.items()}
        self._accounts = {
            account_id: {side: dict(book) for side, book in sides.items()}
            for account_id, sides in pool.accounts.items()
        }
        self._next_account = pool._next_account
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        pool = self._pool
        if exc_type is not None:
            for asset_id, state in self._markets.items():
                pool.markets[asset_id].restore(state)
            pool.accounts = self._accounts
            pool._next_account = self._next_account
            if pool.verbose:
                print(f"✗ REJECTED {self.action}: {exc}")
        return False


class LendingPool:
    """
    Multi-market lending pool with accounts, positions and liquidations.

    Design Principles:
        - Sync first: every market an operation touches accrues to the pool
          clock before any balance moves.
        - All or nothing: a failing operation leaves markets and accounts
          exactly as they were.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own LendingPool.

    Example:
        pricing = StaticPricingSource({"USDC": "1", "ETH": "2000"})
        pool = LendingPool("main", pricing, verbose=False)
        pool.register_market("USDC", usdc_curve, usdc_config)
        pool.register_market("ETH", eth_curve, eth_config)

        alice, _ = pool.supply(None, "ETH", to_units(10, 18))
        pool.borrow(alice, "USDC", to_units(5000, 6))
        pool.advance_time(30 * 24 * 3600 * 1000)
        print(pool.health_factor(alice))
    """

    def __init__(
        self,
        name: str,
        pricing: PricingSource,
        initial_time: int = 0,
        verbose: bool = True,
        bad_debt_floor: FixedDecimal = DEFAULT_BAD_DEBT_FLOOR,
        periods_per_year: int = MILLISECONDS_PER_YEAR,
    ):
        """
        Create a pool.

        Args:
            name: Pool identifier
            pricing: Source of WAD prices per whole token
            initial_time: Starting value of the pool clock
            verbose: Print one line per applied or rejected operation
            bad_debt_floor: Value (WAD) under which leftover collateral is dust
            periods_per_year: Year length in the clock's unit (default: ms)
        """
        self.name = name
        self.pricing = pricing
        self.verbose = verbose
        self.bad_debt_floor = bad_debt_floor
        self.periods_per_year = periods_per_year
        self.markets: Dict[str, Market] = {}
        self.accounts: Dict[int, PositionBook] = {}
        self._current_time = initial_time
        self._next_account = 1

    # ========================================================================
    # CLOCK AND REGISTRY
    # ========================================================================

    @property
    def current_time(self) -> int:
        return self._current_time

    def advance_time(self, new_time: int) -> None:
        """
        Advance the pool clock. Markets accrue lazily on their next operation.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def register_market(
        self,
        asset_id: str,
        params: RateCurveParams,
        config: AssetConfig,
    ) -> Market:
        """
        Create a market for an asset, starting at the current pool time.

        Raises:
            ValueError: If the asset already has a market
        """
        if asset_id in self.markets:
            raise ValueError(f"Market {asset_id} already registered")
        market = Market(
            asset_id, params, config,
            initial_time=self._current_time,
            periods_per_year=self.periods_per_year,
            verbose=False,
        )
        self.markets[asset_id] = market
        if self.verbose:
            print(f"📝 Registered market: {asset_id} ({params.asset_decimals} decimals)")
        return market

    def get_market(self, asset_id: str) -> Market:
        market = self.markets.get(asset_id)
        if market is None:
            raise InvalidAsset(ERROR_INVALID_ASSET)
        return market

    def list_markets(self) -> List[str]:
        return sorted(self.markets)

    def update_asset_config(self, asset_id: str, config: AssetConfig) -> None:
        """New risk parameters apply to positions opened afterwards only."""
        self.get_market(asset_id).update_config(config)

    def open_account(self) -> int:
        account_id = self._next_account
        self._next_account += 1
        self.accounts[account_id] = {PositionSide.DEPOSIT: {}, PositionSide.BORROW: {}}
        return account_id

    # ========================================================================
    # INTERNAL HELPERS
    # ========================================================================

    def _transaction(self, action: str) -> PoolTransaction:
        return PoolTransaction(self, action)

    def _book(self, account_id: int) -> PositionBook:
        book = self.accounts.get(account_id)
        if book is None:
            raise AccountNotFound(ERROR_ACCOUNT_NOT_FOUND)
        return book

    def _position(self, account_id: int, asset_id: str, side: PositionSide) -> Position:
        position = self._book(account_id)[side].get(asset_id)
        if position is None:
            raise PositionNotFound(ERROR_POSITION_NOT_FOUND)
        return position

    def _store(self, account_id: int, position: Position) -> None:
        """Save a position, dropping it once its total is zero."""
        book = self._book(account_id)[position.side]
        if position.is_empty():
            book.pop(position.asset_id, None)
        else:
            book[position.asset_id] = position

    def _feeds(self, asset_ids: Iterable[str]) -> Dict[str, PriceFeed]:
        feeds = {}
        for asset_id in asset_ids:
            market = self.get_market(asset_id)
            price = self.pricing.get_price(asset_id, self._current_time)
            if price is None:
                raise InvalidAsset(f"No price available for {asset_id}")
            feeds[asset_id] = PriceFeed(asset_id, price, market.decimals)
        return feeds

    def _account_assets(self, account_id: int, extra: Iterable[str] = ()) -> List[str]:
        book = self._book(account_id)
        assets = set(book[PositionSide.DEPOSIT]) | set(book[PositionSide.BORROW]) | set(extra)
        return sorted(assets)

    def _sync_account(self, account_id: int) -> None:
        """Accrue every market the account uses and book interest on its positions."""
        book = self._book(account_id)
        for side in (PositionSide.DEPOSIT, PositionSide.BORROW):
            for asset_id, position in list(book[side].items()):
                index = self.get_market(asset_id).update_indexes(self._current_time)
                current = index.supply_index if side == PositionSide.DEPOSIT else index.borrow_index
                self._store(account_id, sync_position(position, current))

    def _synced_view(self, account_id: int) -> PositionBook:
        """Positions with interest simulated to the pool clock, without committing."""
        view: PositionBook = {}
        for side, positions in self._book(account_id).items():
            view[side] = {}
            for asset_id, position in positions.items():
                index = self.get_market(asset_id).simulate_indexes(self._current_time)
                current = index.supply_index if side == PositionSide.DEPOSIT else index.borrow_index
                view[side][asset_id] = sync_position(position, current)
        return view

    def _values(self, book: PositionBook) -> Tuple[CollateralValues, FixedDecimal]:
        deposits = book[PositionSide.DEPOSIT]
        borrows = book[PositionSide.BORROW]
        feeds = self._feeds(set(deposits) | set(borrows))
        return (calculate_collateral_values(deposits, feeds),
                calculate_total_borrow_value(borrows, feeds))

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"✓ {message}")

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def supply(
        self,
        account_id: Optional[int],
        asset_id: str,
        amount: FixedDecimal,
    ) -> Tuple[int, Position]:
        """
        Deposit collateral, opening an account when account_id is None.

        Returns:
            (account_id, deposit_position)

        Raises:
            AssetNotCollateral: If the asset cannot back loans
            SupplyCapReached: If the deposit would exceed the supply cap
        """
        with self._transaction("SUPPLY"):
            market = self.get_market(asset_id)
            if not market.config.can_be_collateral:
                raise AssetNotCollateral(ERROR_ASSET_NOT_COLLATERAL)
            if account_id is None:
                account_id = self.open_account()
            book = self._book(account_id)

            market.update_indexes(self._current_time)
            cap = market.config.supply_cap
            if cap is not None and market.supplied_amount() + amount > cap:
                raise SupplyCapReached(ERROR_SUPPLY_CAP)

            position = book[PositionSide.DEPOSIT].get(asset_id)
            if position is None:
                position = market.new_position(PositionSide.DEPOSIT)
            position = market.supply(position, amount, self._current_time)
            self._store(account_id, position)
        self._log(f"SUPPLY account={account_id} {amount} {asset_id}")
        return account_id, position

    def borrow(self, account_id: int, asset_id: str, amount: FixedDecimal) -> Position:
        """
        Borrow against the account's LTV-weighted collateral.

        Raises:
            AssetNotBorrowable: If the asset cannot be borrowed
            BorrowCapReached: If the borrow would exceed the borrow cap
            InsufficientCollateral: If debt would exceed LTV-weighted collateral
            InsufficientLiquidity: If the market cannot pay out the amount
        """
        with self._transaction("BORROW"):
            market = self.get_market(asset_id)
            if not market.config.can_be_borrowed:
                raise AssetNotBorrowable(ERROR_ASSET_NOT_BORROWABLE)
            book = self._book(account_id)
            self._sync_account(account_id)

            market.update_indexes(self._current_time)
            cap = market.config.borrow_cap
            if cap is not None and market.borrowed_amount() + amount > cap:
                raise BorrowCapReached(ERROR_BORROW_CAP)

            collateral, debt = self._values(book)
            new_debt = debt + token_value(amount, self._feeds([asset_id])[asset_id])
            if new_debt > collateral.ltv_weighted:
                raise InsufficientCollateral(ERROR_INSUFFICIENT_COLLATERAL)

            position = book[PositionSide.BORROW].get(asset_id)
            if position is None:
                position = market.new_position(PositionSide.BORROW)
            position = market.borrow(position, amount, self._current_time)
            self._store(account_id, position)
        self._log(f"BORROW account={account_id} {amount} {asset_id}")
        return position

    def repay(self, account_id: int, asset_id: str, amount: FixedDecimal) -> FixedDecimal:
        """
        Repay debt, interest first.

        Returns:
            Overpayment to refund to the payer
        """
        with self._transaction("REPAY"):
            market = self.get_market(asset_id)
            position = self._position(account_id, asset_id, PositionSide.BORROW)
            position, refund = market.repay(position, amount, self._current_time)
            self._store(account_id, position)
        self._log(f"REPAY account={account_id} {amount} {asset_id} (refund {refund})")
        return refund

    def withdraw(self, account_id: int, asset_id: str, amount: FixedDecimal) -> FixedDecimal:
        """
        Withdraw collateral, capped at the deposit total.

        Returns:
            Amount paid out

        Raises:
            HealthFactorTooLowAfterWithdraw: If remaining debt would be undercollateralized
            InsufficientLiquidity: If the market cannot pay out the amount
        """
        with self._transaction("WITHDRAW"):
            market = self.get_market(asset_id)
            book = self._book(account_id)
            self._sync_account(account_id)
            position = self._position(account_id, asset_id, PositionSide.DEPOSIT)
            position, paid = market.withdraw(position, amount, self._current_time)
            self._store(account_id, position)

            if book[PositionSide.BORROW]:
                collateral, debt = self._values(book)
                if compute_health_factor(collateral.weighted, debt) < ONE_WAD:
                    raise HealthFactorTooLowAfterWithdraw(ERROR_HEALTH_FACTOR_WITHDRAW)
        self._log(f"WITHDRAW account={account_id} {paid} {asset_id}")
        return paid

    def liquidate(self, account_id: int, payments: Sequence[TokenAmount]) -> LiquidationResult:
        """
        Repay part of an unhealthy account's debt in exchange for its collateral.

        Excess payment is refunded; collateral is seized across every deposit
        in proportion to its value, with the Dutch-auction bonus applied.

        Raises:
            HealthFactorTooHigh: If the account's health factor is at least 1.0
            PositionNotFound: If a payment targets an asset the account does not owe
        """
        with self._transaction("LIQUIDATE"):
            book = self._book(account_id)
            self._sync_account(account_id)
            deposits = dict(book[PositionSide.DEPOSIT])
            borrows = dict(book[PositionSide.BORROW])
            payment_assets = [p.asset_id for p in payments]
            feeds = self._feeds(self._account_assets(account_id, payment_assets))

            plan = plan_liquidation(deposits, borrows, payments, feeds, self.bad_debt_floor)

            now = self._current_time
            repaid: List[TokenAmount] = []
            refunds = list(plan.refunds)
            for leg in plan.repaid:
                market = self.get_market(leg.asset_id)
                position, over = market.repay(borrows[leg.asset_id], leg.amount, now)
                self._store(account_id, position)
                repaid.append(TokenAmount(leg.asset_id, leg.amount - over))
                if not over.is_zero():
                    refunds.append(TokenAmount(leg.asset_id, over))

            for leg in plan.seized:
                market = self.get_market(leg.asset_id)
                position, _ = market.withdraw(
                    deposits[leg.asset_id], leg.amount, now, protocol_fee=leg.protocol_fee
                )
                self._store(account_id, position)

            collateral, debt = self._values(book)
            result = LiquidationResult(
                account_id=account_id,
                repaid=tuple(repaid),
                refunds=tuple(refunds),
                seized=plan.seized,
                bonus=plan.bonus,
                debt_repaid_value=plan.debt_repaid_value,
                health_factor_before=plan.health_factor_before,
                health_factor_after=compute_health_factor(collateral.weighted, debt),
                bad_debt_cleanable=plan.bad_debt_cleanable,
            )
        self._log(
            f"LIQUIDATE account={account_id} repaid={result.debt_repaid_value} "
            f"bonus={result.bonus} hf {result.health_factor_before} -> {result.health_factor_after}"
        )
        return result

    def clean_bad_debt(self, account_id: int) -> Dict[str, FixedDecimal]:
        """
        Write off an account whose remaining collateral is dust.

        Every borrow is socialized through its market's supply index and every
        deposit is moved into protocol revenue. The account ends up empty.

        Returns:
            Debt written off, per asset

        Raises:
            CannotCleanBadDebt: If the account does not qualify
        """
        with self._transaction("CLEAN_BAD_DEBT"):
            book = self._book(account_id)
            self._sync_account(account_id)
            collateral, debt = self._values(book)
            if not can_clean_bad_debt_positions(debt, collateral.total, self.bad_debt_floor):
                raise CannotCleanBadDebt(ERROR_CANNOT_CLEAN_BAD_DEBT)

            now = self._current_time
            written_off: Dict[str, FixedDecimal] = {}
            for side in (PositionSide.BORROW, PositionSide.DEPOSIT):
                for asset_id, position in list(book[side].items()):
                    emptied, amount = self.get_market(asset_id).seize_position(position, now)
                    self._store(account_id, emptied)
                    if side == PositionSide.BORROW:
                        written_off[asset_id] = amount
        self._log(f"CLEAN_BAD_DEBT account={account_id} debt={debt} collateral={collateral.total}")
        return written_off

    def claim_revenue(self, asset_id: str) -> FixedDecimal:
        with self._transaction("CLAIM_REVENUE"):
            amount = self.get_market(asset_id).claim_revenue(self._current_time)
        self._log(f"CLAIM_REVENUE {amount} {asset_id}")
        return amount

    def add_rewards(self, asset_id: str, amount: FixedDecimal) -> MarketIndex:
        with self._transaction("ADD_REWARDS"):
            index = self.get_market(asset_id).add_rewards(amount, self._current_time)
        self._log(f"ADD_REWARDS {amount} {asset_id}")
        return index

    def update_indexes(self, asset_ids: Optional[Iterable[str]] = None) -> Dict[str, MarketIndex]:
        """Accrue the given markets (all markets by default) to the pool clock."""
        with self._transaction("UPDATE_INDEXES"):
            targets = self.list_markets() if asset_ids is None else list(asset_ids)
            indexes = {
                asset_id: self.get_market(asset_id).update_indexes(self._current_time)
                for asset_id in targets
            }
        return indexes

    # ========================================================================
    # VIEWS (read-only)
    # ========================================================================

    def get_position(self, account_id: int, asset_id: str, side: PositionSide) -> Position:
        """Position with interest simulated up to the pool clock."""
        position = self._synced_view(account_id)[side].get(asset_id)
        if position is None:
            raise PositionNotFound(ERROR_POSITION_NOT_FOUND)
        return position

    def positions(
        self,
        account_id: int,
        side: Optional[PositionSide] = None,
    ) -> List[Position]:
        view = self._synced_view(account_id)
        sides = [side] if side is not None else [PositionSide.DEPOSIT, PositionSide.BORROW]
        return [position for s in sides for _, position in sorted(view[s].items())]

    def collateral_values(self, account_id: int) -> CollateralValues:
        collateral, _ = self._values(self._synced_view(account_id))
        return collateral

    def total_borrow_value(self, account_id: int) -> FixedDecimal:
        _, debt = self._values(self._synced_view(account_id))
        return debt

    def health_factor(self, account_id: int) -> FixedDecimal:
        collateral, debt = self._values(self._synced_view(account_id))
        return compute_health_factor(collateral.weighted, debt)

    def is_liquidatable(self, account_id: int) -> bool:
        return self.health_factor(account_id) < ONE_WAD

    def __repr__(self) -> str:
        return (f"LendingPool({self.name}: {len(self.markets)} markets, "
                f"{len(self.accounts)} accounts, t={self._current_time})")
