"""
positions.py - Account positions and their risk snapshots

A position is one account's balance on one side (deposit or borrow) of one
market. It is tracked as principal plus accumulated interest, together with
the market index observed at its last synchronization and a frozen copy of
the risk parameters that applied when it was opened.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - AssetConfig: per-asset risk configuration supplied by the market owner
   - Position: one balance plus its risk snapshot

2. PURE FUNCTIONS:
   - open_position: empty position bound to the current index
   - calc_interest / sync_position: bring a position up to an index
   - split_repay: divide a repayment into principal, interest and overpayment
   - apply_*: return the updated position after a balance change

Key Formulas:
    total = principal + accumulated_interest
    interest = total * index / snapshot_index - total
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .core import (
    FixedDecimal, PositionSide,
    BPS_PRECISION, RAY_PRECISION,
    ONE_BPS, ZERO_BPS,
)
from .fixed_point import (
    mul_half_up, div_half_up, rescale_half_up, fixed_min, to_bps,
)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetConfig:
    """
    Immutable risk configuration of one asset.

    Ratios are BPS-scaled (to_bps("0.75") is 75%). Caps are expressed in the
    asset's own decimals; None means uncapped. Isolation and siloed flags are
    carried for upstream eligibility checks and are not enforced here.
    """
    ltv: FixedDecimal
    liquidation_threshold: FixedDecimal
    liquidation_bonus: FixedDecimal
    liquidation_fee: FixedDecimal
    flashloan_fee: FixedDecimal = ZERO_BPS
    borrow_cap: Optional[FixedDecimal] = None
    supply_cap: Optional[FixedDecimal] = None
    can_be_collateral: bool = True
    can_be_borrowed: bool = True
    is_isolated: bool = False
    is_siloed: bool = False

    def __post_init__(self):
        for name in ("ltv", "liquidation_threshold", "liquidation_bonus",
                     "liquidation_fee", "flashloan_fee"):
            value = getattr(self, name)
            if not isinstance(value, FixedDecimal) or value.scale != BPS_PRECISION:
                raise ValueError(f"{name} must be a BPS-scaled FixedDecimal, got {value!r}")
            if value.is_negative() or value > ONE_BPS:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.ltv > self.liquidation_threshold:
            raise ValueError(
                f"ltv ({self.ltv}) cannot exceed liquidation_threshold ({self.liquidation_threshold})"
            )
        for name in ("borrow_cap", "supply_cap"):
            cap = getattr(self, name)
            if cap is not None and (not isinstance(cap, FixedDecimal) or cap.is_negative()):
                raise ValueError(f"{name} must be a non-negative FixedDecimal or None, got {cap!r}")

    @classmethod
    def from_percentages(
        cls,
        ltv,
        liquidation_threshold,
        liquidation_bonus,
        liquidation_fee,
        **kwargs,
    ) -> AssetConfig:
        """Build a config from plain ratios, e.g. ("0.75", "0.80", "0.05", "0.10")."""
        if "flashloan_fee" in kwargs and not isinstance(kwargs["flashloan_fee"], FixedDecimal):
            kwargs["flashloan_fee"] = to_bps(kwargs["flashloan_fee"])
        return cls(
            ltv=to_bps(ltv),
            liquidation_threshold=to_bps(liquidation_threshold),
            liquidation_bonus=to_bps(liquidation_bonus),
            liquidation_fee=to_bps(liquidation_fee),
            **kwargs,
        )


@dataclass(frozen=True, slots=True)
class Position:
    """
    One account's balance on one side of one market.

    Attributes:
        asset_id: Market asset identifier
        side: PositionSide.DEPOSIT or PositionSide.BORROW
        principal: Amount put in (asset decimals)
        accumulated_interest: Interest booked so far (asset decimals)
        index: Market index at the last synchronization (RAY)
        ltv, liquidation_threshold, liquidation_bonus, liquidation_fee:
            Risk snapshot frozen when the position was opened (BPS)
    """
    asset_id: str
    side: PositionSide
    principal: FixedDecimal
    accumulated_interest: FixedDecimal
    index: FixedDecimal
    ltv: FixedDecimal = ZERO_BPS
    liquidation_threshold: FixedDecimal = ZERO_BPS
    liquidation_bonus: FixedDecimal = ZERO_BPS
    liquidation_fee: FixedDecimal = ZERO_BPS

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ValueError("Position asset_id cannot be empty")
        if not isinstance(self.side, PositionSide):
            raise ValueError(f"Position side must be PositionSide, got {self.side!r}")
        if self.principal.scale != self.accumulated_interest.scale:
            raise ValueError("Position principal and interest must share the asset scale")
        if self.principal.is_negative() or self.accumulated_interest.is_negative():
            raise ValueError(f"Position balances cannot be negative: {self!r}")
        if self.index.scale != RAY_PRECISION or self.index.raw <= 0:
            raise ValueError(f"Position index must be a positive RAY value, got {self.index!r}")

    @property
    def total(self) -> FixedDecimal:
        return self.principal + self.accumulated_interest

    @property
    def decimals(self) -> int:
        return self.principal.scale

    def is_empty(self) -> bool:
        return self.total.is_zero()

    def __repr__(self) -> str:
        return (f"Position({self.side.value} {self.asset_id}: "
                f"{self.principal} + {self.accumulated_interest} @ {self.index})")


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def open_position(
    asset_id: str,
    side: PositionSide,
    config: AssetConfig,
    index: FixedDecimal,
    asset_decimals: int,
) -> Position:
    """Empty position on the given side, snapshotting the asset's risk parameters."""
    zero = FixedDecimal(0, asset_decimals)
    return Position(
        asset_id=asset_id,
        side=side,
        principal=zero,
        accumulated_interest=zero,
        index=index,
        ltv=config.ltv,
        liquidation_threshold=config.liquidation_threshold,
        liquidation_bonus=config.liquidation_bonus,
        liquidation_fee=config.liquidation_fee,
    )


def calc_interest(
    amount: FixedDecimal,
    current_index: FixedDecimal,
    snapshot_index: FixedDecimal,
) -> FixedDecimal:
    """
    Change in `amount` when its index moves from snapshot_index to current_index.

    Negative when the index fell (bad-debt write-down of a supply index).
    """
    grown = div_half_up(
        mul_half_up(amount, current_index, RAY_PRECISION),
        snapshot_index,
        RAY_PRECISION,
    )
    return rescale_half_up(grown, amount.scale) - amount


def sync_position(position: Position, index: FixedDecimal) -> Position:
    """
    Book the interest accrued since the position's snapshot.

    Growth is added to accumulated_interest. A loss (falling supply index)
    is taken from accumulated_interest first, then from principal. When the
    change rounds to zero the snapshot is kept so sub-unit growth is not lost.
    """
    if position.is_empty():
        return replace(position, index=index)

    delta = calc_interest(position.total, index, position.index)
    if delta.is_zero():
        return position
    if not delta.is_negative():
        return replace(
            position,
            accumulated_interest=position.accumulated_interest + delta,
            index=index,
        )

    loss = fixed_min(-delta, position.total)
    from_interest = fixed_min(loss, position.accumulated_interest)
    from_principal = loss - from_interest
    return replace(
        position,
        principal=position.principal - from_principal,
        accumulated_interest=position.accumulated_interest - from_interest,
        index=index,
    )


def rebase_position(position: Position, index: FixedDecimal) -> Position:
    """
    Sync and pin the snapshot to `index`.

    Used before any balance change, so new principal never inherits growth
    from an older snapshot.
    """
    synced = sync_position(position, index)
    if synced.index == index:
        return synced
    return replace(synced, index=index)


def split_repay(
    repayment: FixedDecimal,
    position: Position,
) -> Tuple[FixedDecimal, FixedDecimal, FixedDecimal]:
    """
    Divide a repayment into (principal_repaid, interest_repaid, over_repaid).

    A repayment covering the whole position clears both fields and returns the
    rest as overpayment. A partial repayment pays interest first.
    """
    zero = FixedDecimal(0, position.decimals)
    if repayment >= position.total:
        return position.principal, position.accumulated_interest, repayment - position.total

    interest_repaid = fixed_min(repayment, position.accumulated_interest)
    principal_repaid = fixed_min(repayment - interest_repaid, position.principal)
    return principal_repaid, interest_repaid, zero


def cap_withdrawal_amount(amount: FixedDecimal, position: Position) -> FixedDecimal:
    return fixed_min(amount, position.total)


def apply_increase(position: Position, amount: FixedDecimal) -> Position:
    """Add a deposit or a new borrow to the principal."""
    return replace(position, principal=position.principal + amount)


def apply_decrease(position: Position, amount: FixedDecimal) -> Tuple[Position, FixedDecimal]:
    """
    Remove `amount` from the position, interest first.

    Returns:
        (updated_position, over_amount) where over_amount is the part of
        `amount` that exceeded the position total
    """
    principal_paid, interest_paid, over = split_repay(amount, position)
    updated = replace(
        position,
        principal=position.principal - principal_paid,
        accumulated_interest=position.accumulated_interest - interest_paid,
    )
    return updated, over
