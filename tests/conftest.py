"""
conftest.py - Shared pytest fixtures for lendcore tests

Provides common fixtures used across unit, conformance and functional tests:
- Stand-alone USDC market, empty and funded
- Static pricing source
- Pools with USDC and ETH markets, empty and with an open loan

Parameter builders live in tests/builders.py.
"""

import pytest

from lendcore import (
    Market,
    PositionSide,
    StaticPricingSource,
)
from tests.builders import (
    standard_curve, standard_config, usdc, build_pool, build_borrowed_pool,
)


# =============================================================================
# MARKET FIXTURES
# =============================================================================

@pytest.fixture
def usdc_market():
    """Empty USDC market (6 decimals) at t=0."""
    return Market("USDC", standard_curve(6), standard_config(), verbose=False)


@pytest.fixture
def funded_market(usdc_market):
    """USDC market with 1,000 supplied and 500 borrowed at t=0 (50% utilization)."""
    deposit = usdc_market.supply(
        usdc_market.new_position(PositionSide.DEPOSIT), usdc(1000), now=0
    )
    debt = usdc_market.borrow(
        usdc_market.new_position(PositionSide.BORROW), usdc(500), now=0
    )
    return usdc_market, deposit, debt


# =============================================================================
# POOL FIXTURES
# =============================================================================

@pytest.fixture
def pricing():
    return StaticPricingSource({"USDC": "1", "ETH": "2000"})


@pytest.fixture
def pool():
    """Pool with USDC and ETH markets, no accounts."""
    return build_pool()


@pytest.fixture
def borrowed_pool():
    """
    Lender supplies 100,000 USDC; borrower posts 10 ETH and borrows 14,000 USDC.

    At ETH = 2000 the borrower's health factor is 16,000 / 14,000.
    """
    return build_borrowed_pool()
