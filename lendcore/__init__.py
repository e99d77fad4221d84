"""
lendcore - Fixed-point lending accrual and liquidation engine

Deterministic interest accrual, bad-debt socialization and Dutch-auction
liquidations for a multi-asset collateralized lending pool.

Usage:
    from lendcore import (
        LendingPool, StaticPricingSource, RateCurveParams, AssetConfig,
        TokenAmount, to_units,
    )

    pricing = StaticPricingSource({"USDC": "1", "ETH": "2000"})
    pool = LendingPool("main", pricing, verbose=False)
    pool.register_market(
        "USDC",
        RateCurveParams.from_percentages("0.01", "0.04", "0.10", "3.00", "0.50", "0.80", "3.00", "0.10", 6),
        AssetConfig.from_percentages("0.75", "0.80", "0.05", "0.10"),
    )
    pool.register_market(
        "ETH",
        RateCurveParams.from_percentages("0.01", "0.04", "0.10", "3.00", "0.50", "0.80", "3.00", "0.10", 18),
        AssetConfig.from_percentages("0.75", "0.80", "0.05", "0.10"),
    )

    lender, _ = pool.supply(None, "USDC", to_units(100_000, 6))
    borrower, _ = pool.supply(None, "ETH", to_units(10, 18))
    pool.borrow(borrower, "USDC", to_units(14_000, 6))

    pricing.update_price("ETH", "1500")
    if pool.is_liquidatable(borrower):
        result = pool.liquidate(borrower, [TokenAmount("USDC", to_units(5_000, 6))])
"""

# Core types
from .core import (
    FixedDecimal,
    PositionSide,
    AssetAmounts,
    BPS_PRECISION,
    WAD_PRECISION,
    RAY_PRECISION,
    BPS,
    WAD,
    RAY,
    SECONDS_PER_YEAR,
    MILLISECONDS_PER_YEAR,
    ONE_BPS,
    ONE_WAD,
    ONE_RAY,
    TWO_RAY,
    ZERO_BPS,
    ZERO_WAD,
    ZERO_RAY,
    MAX_HEALTH_FACTOR,
    LendingError,
    PreconditionViolation,
    PolicyViolation,
    DivisionByZero,
    ScaleMismatch,
    InvalidAmount,
    InvalidAsset,
    PositionNotFound,
    AccountNotFound,
    InvalidRateParams,
    InsufficientCollateral,
    InsufficientLiquidity,
    HealthFactorTooHigh,
    HealthFactorTooLowAfterWithdraw,
    NegativeDebtRepayment,
    SupplyCapReached,
    BorrowCapReached,
    CannotCleanBadDebt,
    AssetNotCollateral,
    AssetNotBorrowable,
)

# Fixed-point arithmetic
from .fixed_point import (
    mul_half_up,
    div_half_up,
    mul_half_up_signed,
    div_half_up_signed,
    rescale_half_up,
    fixed_min,
    fixed_max,
    fixed_sum,
    bps,
    wad,
    ray,
    to_bps,
    to_wad,
    to_ray,
    to_units,
)

# Rate model
from .rates import (
    RateCurveParams,
    utilization,
    calc_annual_borrow_rate,
    calc_borrow_rate,
    calc_deposit_rate,
    calculate_compounded_interest,
    update_borrow_index,
    update_supply_index,
    scaled_to_original,
    scaled_to_original_ray,
    original_to_scaled,
)

# Positions
from .positions import (
    AssetConfig,
    Position,
    open_position,
    calc_interest,
    sync_position,
    rebase_position,
    split_repay,
    cap_withdrawal_amount,
)

# Market accrual
from .market import (
    MarketState,
    MarketIndex,
    Market,
    MarketTransaction,
    global_sync,
    simulate_update_indexes,
    apply_bad_debt_to_supply_index,
)

# Liquidation
from .liquidation import (
    PriceFeed,
    TokenAmount,
    RepaidToken,
    SeizedCollateral,
    CollateralValues,
    LiquidationEstimate,
    LiquidationPlan,
    LIQUIDATION_TARGET_BEST,
    LIQUIDATION_TARGET_LIMIT,
    MAX_LIQUIDATION_BONUS,
    DEFAULT_BAD_DEBT_FLOOR,
    token_value,
    value_to_tokens,
    calculate_collateral_values,
    calculate_total_borrow_value,
    compute_health_factor,
    is_liquidatable,
    calculate_seizure_proportions,
    calculate_max_feasible_bonus,
    calculate_dynamic_liquidation_bonus,
    compute_liquidation_details,
    simulate_liquidation,
    estimate_liquidation_amount,
    calculate_repayment_amounts,
    process_excess_payment,
    calculate_seized_collateral,
    can_clean_bad_debt_positions,
    check_bad_debt_after_liquidation,
    plan_liquidation,
)

# Pricing
from .pricing_source import (
    PricingSource,
    StaticPricingSource,
    TimeSeriesPricingSource,
)

# Orchestration
from .pool import (
    LendingPool,
    LiquidationResult,
    PoolTransaction,
)


__all__ = [
    # Core
    'FixedDecimal',
    'PositionSide',
    'AssetAmounts',
    'BPS_PRECISION',
    'WAD_PRECISION',
    'RAY_PRECISION',
    'BPS',
    'WAD',
    'RAY',
    'SECONDS_PER_YEAR',
    'MILLISECONDS_PER_YEAR',
    'ONE_BPS',
    'ONE_WAD',
    'ONE_RAY',
    'TWO_RAY',
    'ZERO_BPS',
    'ZERO_WAD',
    'ZERO_RAY',
    'MAX_HEALTH_FACTOR',
    # Exceptions
    'LendingError',
    'PreconditionViolation',
    'PolicyViolation',
    'DivisionByZero',
    'ScaleMismatch',
    'InvalidAmount',
    'InvalidAsset',
    'PositionNotFound',
    'AccountNotFound',
    'InvalidRateParams',
    'InsufficientCollateral',
    'InsufficientLiquidity',
    'HealthFactorTooHigh',
    'HealthFactorTooLowAfterWithdraw',
    'NegativeDebtRepayment',
    'SupplyCapReached',
    'BorrowCapReached',
    'CannotCleanBadDebt',
    'AssetNotCollateral',
    'AssetNotBorrowable',
    # Fixed-point
    'mul_half_up',
    'div_half_up',
    'mul_half_up_signed',
    'div_half_up_signed',
    'rescale_half_up',
    'fixed_min',
    'fixed_max',
    'fixed_sum',
    'bps',
    'wad',
    'ray',
    'to_bps',
    'to_wad',
    'to_ray',
    'to_units',
    # Rates
    'RateCurveParams',
    'utilization',
    'calc_annual_borrow_rate',
    'calc_borrow_rate',
    'calc_deposit_rate',
    'calculate_compounded_interest',
    'update_borrow_index',
    'update_supply_index',
    'scaled_to_original',
    'scaled_to_original_ray',
    'original_to_scaled',
    # Positions
    'AssetConfig',
    'Position',
    'open_position',
    'calc_interest',
    'sync_position',
    'rebase_position',
    'split_repay',
    'cap_withdrawal_amount',
    # Market
    'MarketState',
    'MarketIndex',
    'Market',
    'MarketTransaction',
    'global_sync',
    'simulate_update_indexes',
    'apply_bad_debt_to_supply_index',
    # Liquidation
    'PriceFeed',
    'TokenAmount',
    'RepaidToken',
    'SeizedCollateral',
    'CollateralValues',
    'LiquidationEstimate',
    'LiquidationPlan',
    'LIQUIDATION_TARGET_BEST',
    'LIQUIDATION_TARGET_LIMIT',
    'MAX_LIQUIDATION_BONUS',
    'DEFAULT_BAD_DEBT_FLOOR',
    'token_value',
    'value_to_tokens',
    'calculate_collateral_values',
    'calculate_total_borrow_value',
    'compute_health_factor',
    'is_liquidatable',
    'calculate_seizure_proportions',
    'calculate_max_feasible_bonus',
    'calculate_dynamic_liquidation_bonus',
    'compute_liquidation_details',
    'simulate_liquidation',
    'estimate_liquidation_amount',
    'calculate_repayment_amounts',
    'process_excess_payment',
    'calculate_seized_collateral',
    'can_clean_bad_debt_positions',
    'check_bad_debt_after_liquidation',
    'plan_liquidation',
    # Pricing
    'PricingSource',
    'StaticPricingSource',
    'TimeSeriesPricingSource',
    # Orchestration
    'LendingPool',
    'LiquidationResult',
    'PoolTransaction',
]

__version__ = '1.0.0'
