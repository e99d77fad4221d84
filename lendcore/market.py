"""
market.py - Per-market state and index accrual

The Market owns one asset's MarketState. It is the only object that mutates
that state, and it does so exclusively through MarketTransaction: a working
copy is loaded and synchronized on entry, mutated by the operation, and
committed on exit only when no exception escaped the block.

Key responsibilities:
    - global_sync: advance borrow/supply indexes to `now` and split interest
      between protocol revenue and suppliers, absorbing bad debt first
    - Balance operations: supply, borrow, withdraw, repay, seize_position
    - Revenue and reward flows: claim_revenue, add_rewards
    - Bad-debt write-down of the supply index

Amount conventions:
    supplied, borrowed: scaled totals at RAY (actual = scaled * index)
    reserves, revenue, bad_debt: asset decimals
    borrow_index, supply_index: RAY, both start at 1.0
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .core import (
    FixedDecimal, PositionSide,
    RAY_PRECISION, MILLISECONDS_PER_YEAR,
    ONE_RAY, ZERO_RAY,
    InvalidAmount, InvalidAsset, InsufficientLiquidity, ScaleMismatch,
    ERROR_AMOUNT_MUST_BE_GREATER_THAN_ZERO, ERROR_INVALID_ASSET, ERROR_INSUFFICIENT_LIQUIDITY,
)
from .fixed_point import (
    mul_half_up, div_half_up, rescale_half_up, fixed_min,
)
from .positions import (
    AssetConfig, Position,
    open_position, rebase_position, split_repay, cap_withdrawal_amount,
    apply_increase, apply_decrease,
)
from .rates import (
    RateCurveParams,
    utilization, calc_borrow_rate, calc_deposit_rate, calculate_compounded_interest,
    update_borrow_index, update_supply_index,
    scaled_to_original, scaled_to_original_ray, original_to_scaled,
)


# Smallest representable supply index (one raw RAY unit).
MIN_SUPPLY_INDEX = FixedDecimal(1, RAY_PRECISION)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class MarketState:
    """
    Immutable snapshot of one market's accounting.

    Attributes:
        asset_id: Market asset identifier
        supplied: Scaled supply total (RAY)
        borrowed: Scaled borrow total (RAY)
        reserves: Tokens held by the market (asset decimals)
        revenue: Protocol revenue claimable from reserves (asset decimals)
        bad_debt: Uncovered debt waiting to be absorbed by interest (asset decimals)
        borrow_index: Debt growth index (RAY, never below 1.0)
        supply_index: Supplier growth index (RAY, never below one raw unit)
        last_timestamp: Time of the last accrual
    """
    asset_id: str
    supplied: FixedDecimal
    borrowed: FixedDecimal
    reserves: FixedDecimal
    revenue: FixedDecimal
    bad_debt: FixedDecimal
    borrow_index: FixedDecimal = ONE_RAY
    supply_index: FixedDecimal = ONE_RAY
    last_timestamp: int = 0

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ValueError("MarketState asset_id cannot be empty")
        for name in ("supplied", "borrowed", "borrow_index", "supply_index"):
            if getattr(self, name).scale != RAY_PRECISION:
                raise ValueError(f"MarketState {name} must be RAY-scaled")
        if not (self.reserves.scale == self.revenue.scale == self.bad_debt.scale):
            raise ValueError("MarketState reserves, revenue and bad_debt must share the asset scale")
        for name in ("supplied", "borrowed", "reserves", "revenue", "bad_debt"):
            if getattr(self, name).is_negative():
                raise ValueError(f"MarketState {name} cannot be negative: {getattr(self, name)}")
        if self.borrow_index < ONE_RAY:
            raise ValueError(f"borrow_index cannot fall below 1.0, got {self.borrow_index}")
        if self.supply_index < MIN_SUPPLY_INDEX:
            raise ValueError(f"supply_index cannot fall below one raw unit, got {self.supply_index}")

    @classmethod
    def create(cls, asset_id: str, asset_decimals: int, timestamp: int = 0) -> MarketState:
        """Fresh market: empty totals, both indexes at 1.0."""
        zero = FixedDecimal(0, asset_decimals)
        return cls(
            asset_id=asset_id,
            supplied=ZERO_RAY,
            borrowed=ZERO_RAY,
            reserves=zero,
            revenue=zero,
            bad_debt=zero,
            last_timestamp=timestamp,
        )

    @property
    def asset_decimals(self) -> int:
        return self.reserves.scale


@dataclass(frozen=True, slots=True)
class MarketIndex:
    """Pair of market indexes at one instant (RAY)."""
    borrow_index: FixedDecimal
    supply_index: FixedDecimal


# ============================================================================
# PURE ACCRUAL FUNCTIONS
# ============================================================================

def global_sync(
    state: MarketState,
    params: RateCurveParams,
    now: int,
    periods_per_year: int = MILLISECONDS_PER_YEAR,
) -> MarketState:
    """
    Advance a market to `now`.

    Algorithm:
    1. delta = now - last_timestamp; nothing happens when delta is zero
    2. Borrow rate from current utilization (base rate when nothing is supplied)
    3. Compound the rate over delta
    4. new_borrow_index = old_borrow_index * factor
    5. accrued = borrowed * new_index - borrowed * old_index, at asset decimals
    6. Interest first pays down bad_debt; what is left is split into
       protocol revenue (reserve_factor) and supplier reward
    7. Supplier reward grows the supply index when there is supply
    8. last_timestamp = now

    Args:
        state: Market snapshot to advance
        params: The market's rate curve
        now: Current time in the same unit as periods_per_year
        periods_per_year: Year length in that unit

    Returns:
        New MarketState (the input is never modified)

    Raises:
        ValueError: If now is before state.last_timestamp
    """
    if now < state.last_timestamp:
        raise ValueError(
            f"Cannot accrue backwards in time: {now} < {state.last_timestamp}"
        )
    delta = now - state.last_timestamp
    if delta == 0:
        return state

    decimals = state.asset_decimals

    borrowed_actual = scaled_to_original_ray(state.borrowed, state.borrow_index)
    supplied_actual = scaled_to_original_ray(state.supplied, state.supply_index)
    rate = calc_borrow_rate(utilization(borrowed_actual, supplied_actual), params, periods_per_year)
    factor = calculate_compounded_interest(rate, delta)

    new_borrow_index, old_borrow_index = update_borrow_index(state.borrow_index, factor)

    accrued_ray = (scaled_to_original_ray(state.borrowed, new_borrow_index)
                   - scaled_to_original_ray(state.borrowed, old_borrow_index))
    accrued = rescale_half_up(accrued_ray, decimals)

    revenue = state.revenue
    supply_index = state.supply_index
    if accrued <= state.bad_debt:
        bad_debt = state.bad_debt - accrued
    else:
        left = accrued - state.bad_debt
        bad_debt = FixedDecimal(0, decimals)
        protocol_fee = rescale_half_up(
            mul_half_up(left, params.reserve_factor, RAY_PRECISION), decimals
        )
        supplier_reward = left - protocol_fee
        revenue = revenue + protocol_fee
        supply_index = update_supply_index(state.supplied, state.supply_index, supplier_reward)

    return replace(
        state,
        borrow_index=new_borrow_index,
        supply_index=supply_index,
        revenue=revenue,
        bad_debt=bad_debt,
        last_timestamp=now,
    )


def simulate_update_indexes(
    state: MarketState,
    params: RateCurveParams,
    now: int,
    periods_per_year: int = MILLISECONDS_PER_YEAR,
) -> MarketIndex:
    """Indexes the market would have at `now`, without committing anything."""
    synced = global_sync(state, params, now, periods_per_year)
    return MarketIndex(borrow_index=synced.borrow_index, supply_index=synced.supply_index)


def apply_bad_debt_to_supply_index(
    state: MarketState,
    bad_debt: FixedDecimal,
) -> Tuple[MarketState, FixedDecimal]:
    """
    Socialize an unrecoverable debt across suppliers.

    The write-down is capped at the actual supplied total:
        reduction_factor = (supplied - capped_bad_debt) / supplied
        supply_index = max(supply_index * reduction_factor, one raw unit)

    Any remainder above the cap is added to state.bad_debt, to be absorbed by
    future interest. borrow_index is never touched.

    Returns:
        (new_state, uncovered_remainder)
    """
    decimals = state.asset_decimals
    zero = FixedDecimal(0, decimals)
    if bad_debt.is_zero():
        return state, zero

    supplied = scaled_to_original(state.supplied, state.supply_index, decimals)
    if supplied.is_zero():
        return replace(state, bad_debt=state.bad_debt + bad_debt), bad_debt

    capped = fixed_min(bad_debt, supplied)
    reduction_factor = div_half_up(supplied - capped, supplied, RAY_PRECISION)
    new_index = mul_half_up(state.supply_index, reduction_factor, RAY_PRECISION)
    if new_index < MIN_SUPPLY_INDEX:
        new_index = MIN_SUPPLY_INDEX

    uncovered = bad_debt - capped
    return replace(state, supply_index=new_index, bad_debt=state.bad_debt + uncovered), uncovered


# ============================================================================
# TRANSACTION
# ============================================================================

class MarketTransaction:
    """
    Scoped working copy of a market's state.

    On entry the committed state is loaded and synchronized to `now`. The
    body replaces `tx.state` as it goes. On a clean exit the working copy is
    committed; if an exception escapes, nothing is written back.

    Example:
        with market.transaction(now) as tx:
            tx.state = replace(tx.state, reserves=tx.state.reserves + amount)
    """

    def __init__(self, market: Market, now: int, action: str = "SYNC"):
        self._market = market
        self.now = now
        self.action = action
        self.state: Optional[MarketState] = None

    def __enter__(self) -> MarketTransaction:
        self.state = global_sync(
            self._market.state, self._market.params, self.now, self._market.periods_per_year
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._market._commit(self.state)
            if self._market.verbose:
                print(f"✓ {self.action} {self._market.asset_id} @ {self.now}")
        elif self._market.verbose:
            print(f"✗ REJECTED {self.action} {self._market.asset_id}: {exc}")
        return False

    @property
    def decimals(self) -> int:
        return self.state.asset_decimals


# ============================================================================
# MARKET
# ============================================================================

class Market:
    """
    Stateful owner of one asset market.

    Every mutating method runs inside a MarketTransaction, so indexes are
    always synchronized before balances move and a failed call leaves the
    committed state untouched.

    Thread Safety:
        Not thread-safe. Calls must be serialized by the caller.

    Example:
        market = Market("USDC", params, config, verbose=False)
        position = market.new_position(PositionSide.DEPOSIT)
        position = market.supply(position, to_units(1000, 6), now=0)
    """

    def __init__(
        self,
        asset_id: str,
        params: RateCurveParams,
        config: AssetConfig,
        initial_time: int = 0,
        periods_per_year: int = MILLISECONDS_PER_YEAR,
        verbose: bool = True,
    ):
        """
        Create a market.

        Args:
            asset_id: Asset identifier
            params: Interest rate curve (also fixes the asset decimals)
            config: Risk configuration snapshotted into new positions
            initial_time: Timestamp of market creation
            periods_per_year: Year length in the clock's unit (default: ms)
            verbose: Print one line per committed or rejected operation
        """
        if not asset_id or not asset_id.strip():
            raise ValueError("Market asset_id cannot be empty")
        self.asset_id = asset_id
        self.params = params
        self.config = config
        self.periods_per_year = periods_per_year
        self.verbose = verbose
        self._state = MarketState.create(asset_id, params.asset_decimals, initial_time)

    # ========================================================================
    # STATE ACCESS
    # ========================================================================

    @property
    def state(self) -> MarketState:
        return self._state

    @property
    def decimals(self) -> int:
        return self.params.asset_decimals

    def transaction(self, now: int, action: str = "SYNC") -> MarketTransaction:
        return MarketTransaction(self, now, action)

    def _commit(self, state: MarketState) -> None:
        self._state = state

    def restore(self, state: MarketState) -> None:
        """Reinstate a previously read snapshot (used by multi-market rollback)."""
        if state.asset_id != self.asset_id:
            raise InvalidAsset(ERROR_INVALID_ASSET)
        self._state = state

    def update_config(self, config: AssetConfig) -> None:
        """Replace the risk configuration used for positions opened from now on."""
        self.config = config

    def new_position(self, side: PositionSide) -> Position:
        index = self._state.supply_index if side == PositionSide.DEPOSIT else self._state.borrow_index
        return open_position(self.asset_id, side, self.config, index, self.decimals)

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def _require_amount(self, amount: FixedDecimal) -> None:
        if amount.scale != self.decimals:
            raise ScaleMismatch(
                f"{self.asset_id} amounts use {self.decimals} decimals, got scale {amount.scale}"
            )
        if amount.raw <= 0:
            raise InvalidAmount(ERROR_AMOUNT_MUST_BE_GREATER_THAN_ZERO)

    def _require_position(self, position: Position, side: PositionSide) -> None:
        if position.asset_id != self.asset_id or position.side != side:
            raise InvalidAsset(ERROR_INVALID_ASSET)

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def update_indexes(self, now: int) -> MarketIndex:
        """Synchronize the market to `now` and return the new indexes."""
        with self.transaction(now, "UPDATE_INDEXES") as tx:
            pass
        return MarketIndex(borrow_index=tx.state.borrow_index, supply_index=tx.state.supply_index)

    def supply(self, position: Position, amount: FixedDecimal, now: int) -> Position:
        """
        Deposit `amount` into the market on behalf of a deposit position.

        Returns:
            The synchronized position with the deposit added to principal
        """
        self._require_amount(amount)
        self._require_position(position, PositionSide.DEPOSIT)
        with self.transaction(now, "SUPPLY") as tx:
            state = tx.state
            position = apply_increase(rebase_position(position, state.supply_index), amount)
            tx.state = replace(
                state,
                supplied=state.supplied + original_to_scaled(amount, state.supply_index),
                reserves=state.reserves + amount,
            )
        return position

    def borrow(self, position: Position, amount: FixedDecimal, now: int) -> Position:
        """
        Lend `amount` out of reserves to a borrow position.

        Raises:
            InsufficientLiquidity: If reserves cannot cover the amount
        """
        self._require_amount(amount)
        self._require_position(position, PositionSide.BORROW)
        with self.transaction(now, "BORROW") as tx:
            state = tx.state
            if state.reserves < amount:
                raise InsufficientLiquidity(ERROR_INSUFFICIENT_LIQUIDITY)
            position = apply_increase(rebase_position(position, state.borrow_index), amount)
            tx.state = replace(
                state,
                borrowed=state.borrowed + original_to_scaled(amount, state.borrow_index),
                reserves=state.reserves - amount,
            )
        return position

    def withdraw(
        self,
        position: Position,
        amount: FixedDecimal,
        now: int,
        protocol_fee: Optional[FixedDecimal] = None,
    ) -> Tuple[Position, FixedDecimal]:
        """
        Take `amount` out of a deposit position, capped at its total.

        A liquidation passes protocol_fee: that part of the withdrawn amount
        stays in reserves and is booked as revenue.

        Returns:
            (updated_position, net_amount_paid_out)

        Raises:
            InsufficientLiquidity: If reserves cannot cover the net payout
        """
        self._require_amount(amount)
        self._require_position(position, PositionSide.DEPOSIT)
        with self.transaction(now, "WITHDRAW") as tx:
            state = tx.state
            position = rebase_position(position, state.supply_index)
            amount = cap_withdrawal_amount(amount, position)
            fee = FixedDecimal(0, self.decimals)
            if protocol_fee is not None:
                fee = fixed_min(protocol_fee, amount)
            net = amount - fee
            if state.reserves < net:
                raise InsufficientLiquidity(ERROR_INSUFFICIENT_LIQUIDITY)

            scaled = fixed_min(original_to_scaled(amount, state.supply_index), state.supplied)
            position, _ = apply_decrease(position, amount)
            tx.state = replace(
                state,
                supplied=state.supplied - scaled,
                reserves=state.reserves - net,
                revenue=state.revenue + fee,
            )
        return position, net

    def repay(
        self,
        position: Position,
        payment: FixedDecimal,
        now: int,
    ) -> Tuple[Position, FixedDecimal]:
        """
        Apply a payment to a borrow position, interest first.

        Returns:
            (updated_position, overpayment_to_refund)
        """
        self._require_amount(payment)
        self._require_position(position, PositionSide.BORROW)
        with self.transaction(now, "REPAY") as tx:
            state = tx.state
            position = rebase_position(position, state.borrow_index)
            _, _, over = split_repay(payment, position)
            repaid = payment - over
            position, _ = apply_decrease(position, repaid)
            scaled = fixed_min(original_to_scaled(repaid, state.borrow_index), state.borrowed)
            tx.state = replace(
                state,
                borrowed=state.borrowed - scaled,
                reserves=state.reserves + repaid,
            )
        return position, over

    def seize_position(self, position: Position, now: int) -> Tuple[Position, FixedDecimal]:
        """
        Close a position during bad-debt cleanup.

        Deposit positions are moved into protocol revenue. Borrow positions
        are removed from the borrowed total and written off against the
        supply index.

        Returns:
            (emptied_position, seized_or_written_off_amount)
        """
        if position.asset_id != self.asset_id:
            raise InvalidAsset(ERROR_INVALID_ASSET)
        with self.transaction(now, "SEIZE") as tx:
            state = tx.state
            if position.side == PositionSide.DEPOSIT:
                position = rebase_position(position, state.supply_index)
                amount = position.total
                scaled = fixed_min(original_to_scaled(amount, state.supply_index), state.supplied)
                tx.state = replace(
                    state,
                    supplied=state.supplied - scaled,
                    revenue=state.revenue + amount,
                )
            else:
                position = rebase_position(position, state.borrow_index)
                amount = position.total
                scaled = fixed_min(original_to_scaled(amount, state.borrow_index), state.borrowed)
                written_down, _ = apply_bad_debt_to_supply_index(
                    replace(state, borrowed=state.borrowed - scaled), amount
                )
                tx.state = written_down
            zero = FixedDecimal(0, self.decimals)
            position = replace(position, principal=zero, accumulated_interest=zero)
        return position, amount

    def add_rewards(self, amount: FixedDecimal, now: int) -> MarketIndex:
        """
        Distribute an external reward to current suppliers through the supply index.

        With nothing supplied the reward is booked as protocol revenue.
        """
        self._require_amount(amount)
        with self.transaction(now, "ADD_REWARDS") as tx:
            state = tx.state
            if state.supplied.is_zero():
                tx.state = replace(
                    state,
                    reserves=state.reserves + amount,
                    revenue=state.revenue + amount,
                )
            else:
                tx.state = replace(
                    state,
                    reserves=state.reserves + amount,
                    supply_index=update_supply_index(state.supplied, state.supply_index, amount),
                )
        return MarketIndex(borrow_index=tx.state.borrow_index, supply_index=tx.state.supply_index)

    def claim_revenue(self, now: int) -> FixedDecimal:
        """Pay out protocol revenue, limited by available reserves. Returns the amount paid."""
        with self.transaction(now, "CLAIM_REVENUE") as tx:
            state = tx.state
            amount = fixed_min(state.revenue, state.reserves)
            tx.state = replace(
                state,
                revenue=state.revenue - amount,
                reserves=state.reserves - amount,
            )
        return amount

    # ========================================================================
    # VIEWS (read-only, no accrual)
    # ========================================================================

    def supplied_amount(self) -> FixedDecimal:
        return scaled_to_original(self._state.supplied, self._state.supply_index, self.decimals)

    def borrowed_amount(self) -> FixedDecimal:
        return scaled_to_original(self._state.borrowed, self._state.borrow_index, self.decimals)

    def reserves(self) -> FixedDecimal:
        return self._state.reserves

    def protocol_revenue(self) -> FixedDecimal:
        return self._state.revenue

    def utilization(self) -> FixedDecimal:
        return utilization(
            scaled_to_original_ray(self._state.borrowed, self._state.borrow_index),
            scaled_to_original_ray(self._state.supplied, self._state.supply_index),
        )

    def borrow_rate(self) -> FixedDecimal:
        """Current per-period borrow rate (RAY)."""
        return calc_borrow_rate(self.utilization(), self.params, self.periods_per_year)

    def deposit_rate(self) -> FixedDecimal:
        """Current per-period deposit rate (RAY)."""
        return calc_deposit_rate(self.utilization(), self.borrow_rate(), self.params.reserve_factor)

    def delta_time(self, now: int) -> int:
        return now - self._state.last_timestamp

    def simulate_indexes(self, now: int) -> MarketIndex:
        return simulate_update_indexes(self._state, self.params, now, self.periods_per_year)

    def __repr__(self) -> str:
        return (f"Market({self.asset_id}: supplied={self.supplied_amount()}, "
                f"borrowed={self.borrowed_amount()}, reserves={self._state.reserves})")
