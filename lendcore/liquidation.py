"""
liquidation.py - Health factors, Dutch-auction bonus and collateral seizure

Pure functions that decide whether an account can be liquidated, how much of
its debt a liquidator may repay, with which bonus, and how much of each
collateral asset is seized in exchange.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs and outputs):
   - PriceFeed: price of one whole token (WAD) plus the asset's decimals
   - TokenAmount: an amount of one asset (payments, refunds)
   - RepaidToken, SeizedCollateral: per-asset liquidation legs
   - LiquidationEstimate, LiquidationPlan: solver and planner results

2. PURE FUNCTIONS:
   - Valuation: token_value, value_to_tokens, calculate_collateral_values,
     calculate_total_borrow_value, compute_health_factor
   - Bonus search: calculate_max_feasible_bonus,
     calculate_dynamic_liquidation_bonus, compute_liquidation_details,
     simulate_liquidation, estimate_liquidation_amount
   - Execution legs: calculate_repayment_amounts, process_excess_payment,
     calculate_seizure_proportions, calculate_seized_collateral
   - Bad debt: can_clean_bad_debt_positions, check_bad_debt_after_liquidation
   - plan_liquidation: the whole flow, ready to be applied to markets

Conventions:
    prices and values: WAD
    ratios (threshold, bonus, fee): BPS
    health factors: WAD
    intermediate products: half-up at RAY unless stated

Key Formulas:
    health_factor = threshold_weighted_collateral / debt
    d_ideal = (T*D - W) / (T - p*(1+b))
    d_max = C / (1+b)
    bonus = min(min_bonus + ((T - hf)/T) * min_bonus * 2, max_bonus)
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Sequence, Tuple

from .core import (
    FixedDecimal,
    BPS_PRECISION, WAD_PRECISION, RAY_PRECISION,
    BONUS_SCALING_FACTOR, DEFAULT_BAD_DEBT_FLOOR_RAW,
    LIQUIDATION_TARGET_BEST_RAW, LIQUIDATION_TARGET_LIMIT_RAW, MAX_LIQUIDATION_BONUS_RAW,
    ONE_BPS, ONE_WAD, ZERO_BPS, ZERO_WAD, MAX_HEALTH_FACTOR,
    HealthFactorTooHigh, InvalidAmount, NegativeDebtRepayment, PositionNotFound,
    ERROR_AMOUNT_MUST_BE_GREATER_THAN_ZERO, ERROR_HEALTH_FACTOR,
    ERROR_NEGATIVE_DEBT_REPAYMENT, ERROR_POSITION_NOT_FOUND,
)
from .fixed_point import (
    mul_half_up, div_half_up, mul_half_up_signed, div_half_up_signed,
    rescale_half_up, fixed_min, fixed_max, fixed_sum, bps, wad,
)
from .positions import Position


LIQUIDATION_TARGET_BEST = wad(LIQUIDATION_TARGET_BEST_RAW)
LIQUIDATION_TARGET_LIMIT = wad(LIQUIDATION_TARGET_LIMIT_RAW)
MAX_LIQUIDATION_BONUS = bps(MAX_LIQUIDATION_BONUS_RAW)
DEFAULT_BAD_DEBT_FLOOR = wad(DEFAULT_BAD_DEBT_FLOOR_RAW)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceFeed:
    """
    Price snapshot for one asset.

    Attributes:
        asset_id: Asset identifier
        price: Value of one whole token (WAD)
        decimals: Precision of the asset's token amounts
    """
    asset_id: str
    price: FixedDecimal
    decimals: int

    def __post_init__(self):
        if self.price.scale != WAD_PRECISION:
            raise ValueError(f"PriceFeed price must be WAD-scaled, got scale {self.price.scale}")
        if self.price.is_negative():
            raise ValueError(f"PriceFeed price cannot be negative: {self.price}")
        if self.decimals < 0:
            raise ValueError(f"PriceFeed decimals must be non-negative, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class TokenAmount:
    """An amount of one asset, at the asset's decimals."""
    asset_id: str
    amount: FixedDecimal

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ValueError("TokenAmount asset_id cannot be empty")
        if self.amount.is_negative():
            raise ValueError(f"TokenAmount amount cannot be negative: {self.amount}")


@dataclass(frozen=True, slots=True)
class RepaidToken:
    """One debt asset used by the liquidator: token amount and its value (WAD)."""
    asset_id: str
    amount: FixedDecimal
    value: FixedDecimal
    feed: PriceFeed


@dataclass(frozen=True, slots=True)
class SeizedCollateral:
    """
    Collateral taken from one deposit position.

    amount is the total removed from the position; protocol_fee is the part
    of it retained by the protocol, so the liquidator receives
    amount - protocol_fee.
    """
    asset_id: str
    amount: FixedDecimal
    protocol_fee: FixedDecimal

    @property
    def net_amount(self) -> FixedDecimal:
        return self.amount - self.protocol_fee


@dataclass(frozen=True, slots=True)
class CollateralValues:
    """Collateral value of an account (WAD), raw and risk-weighted."""
    total: FixedDecimal
    weighted: FixedDecimal
    ltv_weighted: FixedDecimal


@dataclass(frozen=True, slots=True)
class LiquidationEstimate:
    """Solver output: debt value to repay, bonus applied, simulated health factor."""
    debt_to_repay: FixedDecimal
    bonus: FixedDecimal
    new_health_factor: FixedDecimal


@dataclass(frozen=True, slots=True)
class LiquidationPlan:
    """
    Everything needed to apply a liquidation to the markets.

    Attributes:
        repaid: Debt legs after excess refunds
        refunds: Parts of the payments returned to the liquidator
        seized: Collateral legs, per deposit asset
        bonus: Liquidation bonus applied (BPS)
        debt_repaid_value: Value of debt repaid (WAD)
        max_collateral_seized_value: debt_repaid_value * (1 + bonus) (WAD)
        health_factor_before: Health factor at planning time (WAD)
        bad_debt_cleanable: Whether the remaining account qualifies for cleanup
    """
    repaid: Tuple[RepaidToken, ...]
    refunds: Tuple[TokenAmount, ...]
    seized: Tuple[SeizedCollateral, ...]
    bonus: FixedDecimal
    debt_repaid_value: FixedDecimal
    max_collateral_seized_value: FixedDecimal
    health_factor_before: FixedDecimal
    bad_debt_cleanable: bool


# ============================================================================
# VALUATION
# ============================================================================

def token_value(amount: FixedDecimal, feed: PriceFeed) -> FixedDecimal:
    """Value of a token amount (WAD)."""
    return rescale_half_up(mul_half_up(amount, feed.price, RAY_PRECISION), WAD_PRECISION)


def value_to_tokens(value: FixedDecimal, feed: PriceFeed) -> FixedDecimal:
    """Token amount worth `value`, at the asset's decimals."""
    return rescale_half_up(div_half_up(value, feed.price, RAY_PRECISION), feed.decimals)


def _feed_for(asset_id: str, feeds: Mapping[str, PriceFeed]) -> PriceFeed:
    feed = feeds.get(asset_id)
    if feed is None:
        raise KeyError(f"No price feed for {asset_id}")
    return feed


def _weighted(value: FixedDecimal, ratio: FixedDecimal) -> FixedDecimal:
    return rescale_half_up(mul_half_up(value, ratio, RAY_PRECISION), WAD_PRECISION)


def calculate_collateral_values(
    deposits: Mapping[str, Position],
    feeds: Mapping[str, PriceFeed],
) -> CollateralValues:
    """
    Sum deposit values, raw and weighted by each position's frozen ratios.

    Returns:
        CollateralValues(total, weighted by liquidation threshold, weighted by ltv)
    """
    total = ZERO_WAD
    weighted = ZERO_WAD
    ltv_weighted = ZERO_WAD
    for asset_id, position in deposits.items():
        value = token_value(position.total, _feed_for(asset_id, feeds))
        total = total + value
        weighted = weighted + _weighted(value, position.liquidation_threshold)
        ltv_weighted = ltv_weighted + _weighted(value, position.ltv)
    return CollateralValues(total=total, weighted=weighted, ltv_weighted=ltv_weighted)


def calculate_total_borrow_value(
    borrows: Mapping[str, Position],
    feeds: Mapping[str, PriceFeed],
) -> FixedDecimal:
    return fixed_sum(
        (token_value(position.total, _feed_for(asset_id, feeds))
         for asset_id, position in borrows.items()),
        WAD_PRECISION,
    )


def compute_health_factor(
    weighted_collateral: FixedDecimal,
    borrowed: FixedDecimal,
) -> FixedDecimal:
    """
    Health factor (WAD): weighted collateral over debt.

    An account without debt reports MAX_HEALTH_FACTOR instead of dividing
    by zero.
    """
    if borrowed.is_zero():
        return MAX_HEALTH_FACTOR
    return rescale_half_up(
        div_half_up(weighted_collateral, borrowed, RAY_PRECISION), WAD_PRECISION
    )


def is_liquidatable(health_factor: FixedDecimal) -> bool:
    return health_factor < ONE_WAD


# ============================================================================
# BONUS SEARCH
# ============================================================================

def calculate_seizure_proportions(
    total_collateral: FixedDecimal,
    deposits: Mapping[str, Position],
    feeds: Mapping[str, PriceFeed],
) -> Tuple[FixedDecimal, FixedDecimal]:
    """
    Value-weighted liquidation threshold and liquidation bonus of an account.

    Returns:
        (proportion_seized, base_bonus), both BPS
    """
    proportion_seized = ZERO_BPS
    weighted_bonus = ZERO_BPS
    if total_collateral.is_zero():
        return proportion_seized, weighted_bonus

    for asset_id, position in deposits.items():
        value = token_value(position.total, _feed_for(asset_id, feeds))
        fraction = rescale_half_up(
            div_half_up(value, total_collateral, RAY_PRECISION), BPS_PRECISION
        )
        proportion_seized = proportion_seized + rescale_half_up(
            mul_half_up(fraction, position.liquidation_threshold, RAY_PRECISION), BPS_PRECISION
        )
        weighted_bonus = weighted_bonus + rescale_half_up(
            mul_half_up(fraction, position.liquidation_bonus, RAY_PRECISION), BPS_PRECISION
        )
    return proportion_seized, weighted_bonus


def calculate_max_feasible_bonus(
    total_collateral: FixedDecimal,
    total_debt: FixedDecimal,
    proportion_seized: FixedDecimal,
    target_hf: FixedDecimal,
    min_bonus: FixedDecimal,
) -> FixedDecimal:
    """
    Largest bonus for which a repayment can still move the account to target_hf.

    With C collateral, D debt, p proportion_seized and T target_hf:
        n = T*D - p*C
        bound1 = T/p - 1                       keeps T - p*(1+b) positive
        bound2 = (C*T - C*p - n) / (n + C*p)   keeps seizure within collateral

    Returns:
        max(min_bonus, min(bound1, bound2, MAX_LIQUIDATION_BONUS)) in BPS
    """
    t = target_hf
    c = total_collateral
    d = total_debt
    p = rescale_half_up(proportion_seized, WAD_PRECISION)

    c_times_p = mul_half_up(c, p, WAD_PRECISION)
    n = mul_half_up(t, d, WAD_PRECISION) - c_times_p

    bound = rescale_half_up(MAX_LIQUIDATION_BONUS, WAD_PRECISION)

    if not p.is_zero():
        bound1 = div_half_up(t, p, WAD_PRECISION) - ONE_WAD
        bound = fixed_min(bound, bound1)

    denominator = n + c_times_p
    if not denominator.is_zero():
        numerator = mul_half_up(c, t, WAD_PRECISION) - c_times_p - n
        bound2 = div_half_up_signed(numerator, denominator, WAD_PRECISION)
        bound = fixed_min(bound, bound2)

    return fixed_max(min_bonus, rescale_half_up(bound, BPS_PRECISION))


def calculate_dynamic_liquidation_bonus(
    current_hf: FixedDecimal,
    target_hf: FixedDecimal,
    min_bonus: FixedDecimal,
    max_bonus: FixedDecimal,
) -> FixedDecimal:
    """
    Scale the bonus with how far the account sits below target_hf.

    bonus = min(min_bonus + ((T - hf)/T) * min_bonus * 2, max_bonus)
    """
    if current_hf >= target_hf:
        return fixed_min(min_bonus, max_bonus)
    gap = div_half_up(target_hf - current_hf, target_hf, RAY_PRECISION)
    increment = mul_half_up(
        mul_half_up(gap, min_bonus, RAY_PRECISION),
        FixedDecimal(BONUS_SCALING_FACTOR, 0),
        RAY_PRECISION,
    )
    bonus = min_bonus + rescale_half_up(increment, BPS_PRECISION)
    return fixed_min(bonus, max_bonus)


def compute_liquidation_details(
    total_collateral: FixedDecimal,
    weighted_collateral: FixedDecimal,
    proportion_seized: FixedDecimal,
    bonus: FixedDecimal,
    total_debt: FixedDecimal,
    target_hf: FixedDecimal,
) -> LiquidationEstimate:
    """
    Solve for the debt repayment that brings the account to target_hf.

    d_ideal = (T*D - W) / (T - p*(1+b)), signed with away-from-zero rounding.
    The repayment is min(d_ideal, C/(1+b)); when the denominator is zero the
    collateral bound alone applies.

    Raises:
        NegativeDebtRepayment: If d_ideal is negative
    """
    p = rescale_half_up(proportion_seized, WAD_PRECISION)
    one_plus_b = ONE_WAD + rescale_half_up(bonus, WAD_PRECISION)

    d_max = div_half_up(total_collateral, one_plus_b, WAD_PRECISION)

    numerator = mul_half_up_signed(target_hf, total_debt, WAD_PRECISION) - weighted_collateral
    denominator = target_hf - mul_half_up(p, one_plus_b, WAD_PRECISION)
    if denominator.is_zero():
        debt_to_repay = d_max
    else:
        d_ideal = div_half_up_signed(numerator, denominator, WAD_PRECISION)
        if d_ideal.is_negative():
            raise NegativeDebtRepayment(ERROR_NEGATIVE_DEBT_REPAYMENT)
        debt_to_repay = fixed_min(d_ideal, d_max)

    seized = mul_half_up(p, debt_to_repay, WAD_PRECISION)
    seized_weighted = fixed_min(
        mul_half_up(seized, one_plus_b, WAD_PRECISION), weighted_collateral
    )
    new_weighted = weighted_collateral - seized_weighted
    if debt_to_repay >= total_debt:
        new_debt = ZERO_WAD
    else:
        new_debt = total_debt - debt_to_repay

    return LiquidationEstimate(
        debt_to_repay=debt_to_repay,
        bonus=bonus,
        new_health_factor=compute_health_factor(new_weighted, new_debt),
    )


def simulate_liquidation(
    weighted_collateral: FixedDecimal,
    proportion_seized: FixedDecimal,
    total_collateral: FixedDecimal,
    total_debt: FixedDecimal,
    min_bonus: FixedDecimal,
    current_hf: FixedDecimal,
    target_hf: FixedDecimal,
) -> LiquidationEstimate:
    """One rung of the ladder: feasible bonus, dynamic bonus, then the solver."""
    max_bonus = calculate_max_feasible_bonus(
        total_collateral, total_debt, proportion_seized, target_hf, min_bonus
    )
    bonus = calculate_dynamic_liquidation_bonus(current_hf, target_hf, min_bonus, max_bonus)
    return compute_liquidation_details(
        total_collateral, weighted_collateral, proportion_seized, bonus, total_debt, target_hf
    )


def estimate_liquidation_amount(
    weighted_collateral: FixedDecimal,
    proportion_seized: FixedDecimal,
    total_collateral: FixedDecimal,
    total_debt: FixedDecimal,
    min_bonus: FixedDecimal,
    current_hf: FixedDecimal,
) -> Tuple[FixedDecimal, FixedDecimal]:
    """
    Maximum debt value a liquidator may repay, and the bonus to apply.

    Targets 1.02 first, then 1.00; a rung is accepted only when its simulated
    health factor reaches 1.0. When neither does, the account is treated as
    bad debt and the whole collateral is offered at min_bonus.

    Returns:
        (max_debt_to_repay WAD, bonus BPS)
    """
    for target in (LIQUIDATION_TARGET_BEST, LIQUIDATION_TARGET_LIMIT):
        try:
            estimate = simulate_liquidation(
                weighted_collateral, proportion_seized, total_collateral,
                total_debt, min_bonus, current_hf, target,
            )
        except NegativeDebtRepayment:
            continue
        if estimate.new_health_factor >= ONE_WAD:
            return estimate.debt_to_repay, estimate.bonus

    one_plus_min = ONE_WAD + rescale_half_up(min_bonus, WAD_PRECISION)
    return div_half_up(total_collateral, one_plus_min, WAD_PRECISION), min_bonus


# ============================================================================
# EXECUTION LEGS
# ============================================================================

def _merge_payments(payments: Sequence[TokenAmount]) -> List[TokenAmount]:
    """Combine repeated assets into one payment, keeping first-seen order."""
    merged: Dict[str, FixedDecimal] = {}
    for payment in payments:
        if payment.amount.raw <= 0:
            raise InvalidAmount(ERROR_AMOUNT_MUST_BE_GREATER_THAN_ZERO)
        if payment.asset_id in merged:
            merged[payment.asset_id] = merged[payment.asset_id] + payment.amount
        else:
            merged[payment.asset_id] = payment.amount
    return [TokenAmount(asset_id, amount) for asset_id, amount in merged.items()]


def calculate_repayment_amounts(
    payments: Sequence[TokenAmount],
    borrows: Mapping[str, Position],
    feeds: Mapping[str, PriceFeed],
) -> Tuple[FixedDecimal, List[RepaidToken], List[TokenAmount]]:
    """
    Value each payment, capping it at the value of the debt it repays.

    Returns:
        (total_repaid_value, repaid_tokens, refunds)

    Raises:
        PositionNotFound: If a payment targets an asset the account does not owe
        InvalidAmount: If a payment is not positive
    """
    total = ZERO_WAD
    repaid: List[RepaidToken] = []
    refunds: List[TokenAmount] = []

    for payment in _merge_payments(payments):
        position = borrows.get(payment.asset_id)
        if position is None:
            raise PositionNotFound(ERROR_POSITION_NOT_FOUND)
        feed = _feed_for(payment.asset_id, feeds)
        paid_value = token_value(payment.amount, feed)
        debt_value = token_value(position.total, feed)

        if paid_value > debt_value:
            excess = fixed_min(value_to_tokens(paid_value - debt_value, feed), payment.amount)
            refunds.append(TokenAmount(payment.asset_id, excess))
            amount = payment.amount - excess
            value = debt_value
        else:
            amount = payment.amount
            value = paid_value

        total = total + value
        repaid.append(RepaidToken(payment.asset_id, amount, value, feed))

    return total, repaid, refunds


def process_excess_payment(
    repaid_tokens: Sequence[RepaidToken],
    excess_value: FixedDecimal,
) -> Tuple[List[RepaidToken], List[TokenAmount]]:
    """
    Return `excess_value` to the liquidator, walking repaid tokens in order.

    A token worth at least the remaining excess is partially refunded and the
    walk stops. A smaller token is refunded in full and dropped.

    Returns:
        (remaining_repaid_tokens, refunds)
    """
    remaining = excess_value
    kept: List[RepaidToken] = []
    refunds: List[TokenAmount] = []

    for token in repaid_tokens:
        if remaining.is_zero():
            kept.append(token)
            continue
        if token.value >= remaining:
            refund = fixed_min(value_to_tokens(remaining, token.feed), token.amount)
            if not refund.is_zero():
                refunds.append(TokenAmount(token.asset_id, refund))
            left = token.amount - refund
            if not left.is_zero():
                kept.append(replace(token, amount=left, value=token.value - remaining))
            remaining = ZERO_WAD
        else:
            refunds.append(TokenAmount(token.asset_id, token.amount))
            remaining = remaining - token.value

    return kept, refunds


def calculate_seized_collateral(
    deposits: Mapping[str, Position],
    feeds: Mapping[str, PriceFeed],
    total_collateral: FixedDecimal,
    debt_to_repay: FixedDecimal,
    bonus: FixedDecimal,
) -> List[SeizedCollateral]:
    """
    Split the repaid debt value across collateral assets by value share.

    Per asset:
        seized = tokens(value_share * debt_to_repay) * (1 + bonus)
        protocol_fee = (seized - seized_before_bonus) * position.liquidation_fee
        amount = min(seized, position.total)
    """
    seized: List[SeizedCollateral] = []
    if total_collateral.is_zero():
        return seized

    one_plus_bonus = ONE_BPS + bonus
    for asset_id, position in deposits.items():
        feed = _feed_for(asset_id, feeds)
        available = position.total
        proportion = div_half_up(token_value(available, feed), total_collateral, RAY_PRECISION)
        seized_value = rescale_half_up(
            mul_half_up(proportion, debt_to_repay, RAY_PRECISION), WAD_PRECISION
        )
        units = value_to_tokens(seized_value, feed)
        units_after_bonus = rescale_half_up(
            mul_half_up(units, one_plus_bonus, RAY_PRECISION), feed.decimals
        )
        protocol_fee = rescale_half_up(
            mul_half_up(units_after_bonus - units, position.liquidation_fee, RAY_PRECISION),
            feed.decimals,
        )
        amount = fixed_min(units_after_bonus, available)
        if amount.is_zero():
            continue
        seized.append(SeizedCollateral(asset_id, amount, fixed_min(protocol_fee, amount)))
    return seized


# ============================================================================
# BAD DEBT
# ============================================================================

def can_clean_bad_debt_positions(
    total_debt: FixedDecimal,
    total_collateral: FixedDecimal,
    floor: FixedDecimal = DEFAULT_BAD_DEBT_FLOOR,
) -> bool:
    """
    Whether an account holds unrecoverable dust.

    Debt must exceed collateral, collateral must be at or below the floor,
    and debt must be at least the floor.
    """
    return (total_debt > total_collateral
            and total_collateral <= floor
            and total_debt >= floor)


def check_bad_debt_after_liquidation(
    borrowed_value: FixedDecimal,
    debt_repaid_value: FixedDecimal,
    total_collateral: FixedDecimal,
    seized_collateral_value: FixedDecimal,
    floor: FixedDecimal = DEFAULT_BAD_DEBT_FLOOR,
) -> bool:
    """Eligibility for cleanup based on the balances a liquidation leaves behind."""
    remaining_debt = borrowed_value - debt_repaid_value if borrowed_value > debt_repaid_value else ZERO_WAD
    remaining_collateral = (total_collateral - seized_collateral_value
                            if total_collateral > seized_collateral_value else ZERO_WAD)
    return can_clean_bad_debt_positions(remaining_debt, remaining_collateral, floor)


# ============================================================================
# PLANNER
# ============================================================================

def plan_liquidation(
    deposits: Mapping[str, Position],
    borrows: Mapping[str, Position],
    payments: Sequence[TokenAmount],
    feeds: Mapping[str, PriceFeed],
    bad_debt_floor: FixedDecimal = DEFAULT_BAD_DEBT_FLOOR,
) -> LiquidationPlan:
    """
    Plan a liquidation of synchronized positions against liquidator payments.

    Algorithm:
    1. Value payments, refunding any part above each token's debt
    2. Value collateral; require health factor < 1.0
    3. Search the bonus ladder for the maximum repayable debt
    4. Refund payments above that maximum, token by token
    5. Seize collateral proportionally with the bonus and protocol fee
    6. Flag whether the leftover account qualifies for bad-debt cleanup

    Raises:
        HealthFactorTooHigh: If the account is not liquidatable
        PositionNotFound: If a payment targets an asset that is not owed
    """
    payment_value, repaid, refunds = calculate_repayment_amounts(payments, borrows, feeds)

    collateral = calculate_collateral_values(deposits, feeds)
    proportion_seized, base_bonus = calculate_seizure_proportions(
        collateral.total, deposits, feeds
    )
    borrowed_value = calculate_total_borrow_value(borrows, feeds)

    health_factor = compute_health_factor(collateral.weighted, borrowed_value)
    if not is_liquidatable(health_factor):
        raise HealthFactorTooHigh(ERROR_HEALTH_FACTOR)

    max_debt, bonus = estimate_liquidation_amount(
        collateral.weighted, proportion_seized, collateral.total,
        borrowed_value, base_bonus, health_factor,
    )

    debt_to_repay = fixed_min(payment_value, max_debt)
    if payment_value > max_debt:
        repaid, excess_refunds = process_excess_payment(repaid, payment_value - max_debt)
        refunds.extend(excess_refunds)

    seized = calculate_seized_collateral(
        deposits, feeds, collateral.total, debt_to_repay, bonus
    )
    max_collateral_seized = mul_half_up(
        debt_to_repay, ONE_WAD + rescale_half_up(bonus, WAD_PRECISION), WAD_PRECISION
    )

    return LiquidationPlan(
        repaid=tuple(repaid),
        refunds=tuple(refunds),
        seized=tuple(seized),
        bonus=bonus,
        debt_repaid_value=debt_to_repay,
        max_collateral_seized_value=max_collateral_seized,
        health_factor_before=health_factor,
        bad_debt_cleanable=check_bad_debt_after_liquidation(
            borrowed_value, debt_to_repay, collateral.total, max_collateral_seized, bad_debt_floor
        ),
    )
