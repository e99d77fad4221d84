"""
Core types and constants for the lending accrual engine.

This module provides the foundational pieces every other module builds on:
1. Decimal context configuration for conversions to and from Decimal
2. Constants: precision scales, year lengths, liquidation targets
3. Enums: PositionSide
4. Exceptions: LendingError and the precondition/policy hierarchy
5. FixedDecimal: an exact integer-backed decimal tagged with its scale

FixedDecimal never rounds on its own. Every precision-reducing step goes
through the primitives in fixed_point.py.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Dict, Union


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# FixedDecimal stores integers, but Decimal is the exchange format for
# configuration values and display. RAY values carry 27 fractional digits on
# top of large integer parts, so the context needs generous precision.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_LENDCORE_DECIMAL_CONTEXT = getcontext()
_LENDCORE_DECIMAL_CONTEXT.prec = 80
_LENDCORE_DECIMAL_CONTEXT.rounding = ROUND_HALF_UP


# ============================================================================
# CONSTANTS
# ============================================================================

# Scale identifiers (number of implied fractional digits).
BPS_PRECISION = 4
WAD_PRECISION = 18
RAY_PRECISION = 27

# Raw integer value of 1.0 at each scale.
BPS = 10 ** BPS_PRECISION
WAD = 10 ** WAD_PRECISION
RAY = 10 ** RAY_PRECISION

# Year lengths used to turn an annual rate into a per-period rate.
SECONDS_PER_YEAR = 31_556_926
MILLISECONDS_PER_YEAR = SECONDS_PER_YEAR * 1_000

# Health factor reported for accounts without debt (2**128 - 1 raw WAD units).
MAX_HEALTH_FACTOR_RAW = 2 ** 128 - 1

# Liquidation targets, WAD raw units.
LIQUIDATION_TARGET_BEST_RAW = WAD + WAD // 50   # 1.02
LIQUIDATION_TARGET_LIMIT_RAW = WAD              # 1.00

# Upper cap on any liquidation bonus, BPS raw units (30%).
MAX_LIQUIDATION_BONUS_RAW = 3_000

# Multiplier applied to the health-factor gap when scaling the bonus.
BONUS_SCALING_FACTOR = 2

# Dust threshold for bad-debt cleanup, WAD raw units (5 value units).
DEFAULT_BAD_DEBT_FLOOR_RAW = 5 * WAD


# ============================================================================
# ENUMS
# ============================================================================

class PositionSide(Enum):
    """
    Which side of a market a position sits on.

    DEPOSIT: Supplied liquidity, grows with the supply index.
    BORROW: Outstanding debt, grows with the borrow index.
    """
    DEPOSIT = "deposit"
    BORROW = "borrow"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending engine errors."""
    pass


class PreconditionViolation(LendingError):
    """Raised when a caller breaks an input contract (bad amounts, wrong asset, zero divisor)."""
    pass


class PolicyViolation(LendingError):
    """Raised when a well-formed request is refused by a protocol rule."""
    pass


class DivisionByZero(PreconditionViolation):
    """Raised when a fixed-point division is attempted with a zero-valued divisor."""
    pass


class ScaleMismatch(PreconditionViolation):
    """Raised when two decimals of different scales are combined or compared directly."""
    pass


class InvalidAmount(PreconditionViolation):
    """Raised when an amount is zero or negative where a positive amount is required."""
    pass


class InvalidAsset(PreconditionViolation):
    """Raised when a payment or position does not belong to the market it is sent to."""
    pass


class PositionNotFound(PreconditionViolation):
    """Raised when an account holds no position for the requested asset and side."""
    pass


class InvalidRateParams(PreconditionViolation):
    """Raised when an interest-rate curve violates its ordering constraints."""
    pass


class AccountNotFound(PreconditionViolation):
    """Raised when an operation names an account the pool never opened."""
    pass


class InsufficientCollateral(PolicyViolation):
    """Raised when a borrow would exceed the LTV-weighted collateral of the account."""
    pass


class InsufficientLiquidity(PolicyViolation):
    """Raised when a market does not hold enough reserves to pay out an amount."""
    pass


class HealthFactorTooHigh(PolicyViolation):
    """Raised when liquidation is attempted on an account that is not liquidatable."""
    pass


class HealthFactorTooLowAfterWithdraw(PolicyViolation):
    """Raised when a withdrawal would leave an indebted account below health factor 1.0."""
    pass


class NegativeDebtRepayment(PolicyViolation):
    """Raised when the liquidation solver produces a negative debt to repay."""
    pass


class SupplyCapReached(PolicyViolation):
    """Raised when a deposit would push a market above its supply cap."""
    pass


class BorrowCapReached(PolicyViolation):
    """Raised when a borrow would push a market above its borrow cap."""
    pass


class CannotCleanBadDebt(PolicyViolation):
    """Raised when bad-debt cleanup is requested for an account that does not qualify."""
    pass


class AssetNotCollateral(PolicyViolation):
    """Raised when an asset that cannot back loans is offered as collateral."""
    pass


class AssetNotBorrowable(PolicyViolation):
    """Raised when a borrow is requested for an asset that cannot be borrowed."""
    pass


ERROR_AMOUNT_MUST_BE_GREATER_THAN_ZERO = "Amount must be greater than zero."
ERROR_INVALID_ASSET = "Invalid asset provided."
ERROR_POSITION_NOT_FOUND = "Position not found."
ERROR_ACCOUNT_NOT_FOUND = "Account not found."
ERROR_INSUFFICIENT_COLLATERAL = "Not enough collateral available for this loan."
ERROR_INSUFFICIENT_LIQUIDITY = "Insufficient liquidity."
ERROR_HEALTH_FACTOR = "Health not low enough for liquidation."
ERROR_HEALTH_FACTOR_WITHDRAW = "Health factor will be too low after withdrawal."
ERROR_NEGATIVE_DEBT_REPAYMENT = "Debt repaid can not be negative!"
ERROR_SUPPLY_CAP = "Supply cap reached."
ERROR_BORROW_CAP = "Borrow cap reached."
ERROR_CANNOT_CLEAN_BAD_DEBT = "Cannot clean bad debt."
ERROR_ASSET_NOT_COLLATERAL = "Asset not supported as collateral."
ERROR_ASSET_NOT_BORROWABLE = "Asset not borrowable."


# ============================================================================
# FIXED DECIMAL
# ============================================================================

Number = Union[Decimal, int, str, float]


@dataclass(frozen=True, slots=True)
class FixedDecimal:
    """
    Exact decimal value: an unbounded integer tagged with a scale.

    The represented number is raw * 10**-scale. A negative raw value makes
    the decimal signed; the unsigned primitives reject such values.

    Attributes:
        raw: Integer magnitude in units of 10**-scale
        scale: Number of implied fractional digits (>= 0)

    Addition, subtraction and ordering require equal scales and raise
    ScaleMismatch otherwise. Equality is structural, so 1.0@4 != 1.0@18.
    """
    raw: int
    scale: int

    def __post_init__(self):
        if isinstance(self.raw, bool) or not isinstance(self.raw, int):
            raise ValueError(f"FixedDecimal raw must be int, got {type(self.raw)}")
        if isinstance(self.scale, bool) or not isinstance(self.scale, int):
            raise ValueError(f"FixedDecimal scale must be int, got {type(self.scale)}")
        if self.scale < 0:
            raise ValueError(f"FixedDecimal scale must be non-negative, got {self.scale}")

    @classmethod
    def from_decimal(cls, value: Number, scale: int) -> FixedDecimal:
        """
        Build a FixedDecimal from a human-readable number.

        Digits beyond the scale are rounded half-up (away from zero for
        negatives). Floats go through str() so 0.1 means 0.1.

        Example:
            FixedDecimal.from_decimal("0.05", 27)  # 5% at RAY
        """
        if isinstance(value, float):
            value = str(value)
        d = Decimal(value)
        if d.is_nan() or d.is_infinite():
            raise ValueError(f"FixedDecimal value must be finite, got {value}")
        raw = d.scaleb(scale).to_integral_value(rounding=ROUND_HALF_UP)
        return cls(int(raw), scale)

    @classmethod
    def zero(cls, scale: int) -> FixedDecimal:
        return cls(0, scale)

    def to_decimal(self) -> Decimal:
        """Exact Decimal representation of this value."""
        return Decimal(self.raw).scaleb(-self.scale)

    def is_zero(self) -> bool:
        return self.raw == 0

    def is_negative(self) -> bool:
        return self.raw < 0

    def sign(self) -> int:
        if self.raw > 0:
            return 1
        if self.raw < 0:
            return -1
        return 0

    def _check_scale(self, other: FixedDecimal, op: str) -> None:
        if not isinstance(other, FixedDecimal):
            raise TypeError(f"Cannot {op} FixedDecimal and {type(other).__name__}")
        if other.scale != self.scale:
            raise ScaleMismatch(
                f"Cannot {op} values at scales {self.scale} and {other.scale}"
            )

    def __add__(self, other: FixedDecimal) -> FixedDecimal:
        self._check_scale(other, "add")
        return FixedDecimal(self.raw + other.raw, self.scale)

    def __sub__(self, other: FixedDecimal) -> FixedDecimal:
        self._check_scale(other, "subtract")
        return FixedDecimal(self.raw - other.raw, self.scale)

    def __neg__(self) -> FixedDecimal:
        return FixedDecimal(-self.raw, self.scale)

    def __abs__(self) -> FixedDecimal:
        return FixedDecimal(abs(self.raw), self.scale)

    def __lt__(self, other: FixedDecimal) -> bool:
        self._check_scale(other, "compare")
        return self.raw < other.raw

    def __le__(self, other: FixedDecimal) -> bool:
        self._check_scale(other, "compare")
        return self.raw <= other.raw

    def __gt__(self, other: FixedDecimal) -> bool:
        self._check_scale(other, "compare")
        return self.raw > other.raw

    def __ge__(self, other: FixedDecimal) -> bool:
        self._check_scale(other, "compare")
        return self.raw >= other.raw

    def __str__(self) -> str:
        return str(self.to_decimal())

    def __repr__(self) -> str:
        return f"FixedDecimal({self.to_decimal()}, scale={self.scale})"


# ============================================================================
# CANONICAL VALUES
# ============================================================================

ONE_BPS = FixedDecimal(BPS, BPS_PRECISION)
ONE_WAD = FixedDecimal(WAD, WAD_PRECISION)
ONE_RAY = FixedDecimal(RAY, RAY_PRECISION)
TWO_RAY = FixedDecimal(2 * RAY, RAY_PRECISION)

ZERO_BPS = FixedDecimal(0, BPS_PRECISION)
ZERO_WAD = FixedDecimal(0, WAD_PRECISION)
ZERO_RAY = FixedDecimal(0, RAY_PRECISION)

MAX_HEALTH_FACTOR = FixedDecimal(MAX_HEALTH_FACTOR_RAW, WAD_PRECISION)


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset identifier to an amount in that asset's decimals.
AssetAmounts = Dict[str, FixedDecimal]
