"""
pricing_source.py - Price feeds for collateral and debt valuation

Prices are external inputs to the engine. A pricing source answers "what is
one whole token of this asset worth at time t", as a WAD-scaled value in the
pool's common value unit.

Classes:
- PricingSource: Protocol defining the pricing interface
- StaticPricingSource: Time-independent prices
- TimeSeriesPricingSource: Time-varying prices with historical data

Timestamps are the pool's integer clock (milliseconds by default).
"""

from __future__ import annotations
from bisect import bisect_right
from typing import Dict, List, Optional, Protocol, Set, Tuple, Union, runtime_checkable

from .core import FixedDecimal, Number, WAD_PRECISION
from .fixed_point import to_wad


PriceInput = Union[FixedDecimal, Number]


def _as_wad_price(price: PriceInput) -> FixedDecimal:
    """Normalize a price to WAD. Negative prices are rejected."""
    if isinstance(price, FixedDecimal):
        if price.scale != WAD_PRECISION:
            raise ValueError(f"Prices must be WAD-scaled, got scale {price.scale}")
        value = price
    else:
        value = to_wad(price)
    if value.is_negative():
        raise ValueError(f"Price cannot be negative: {value}")
    return value


@runtime_checkable
class PricingSource(Protocol):
    """
    Protocol for pricing sources.

    Implementations return the WAD value of one whole token, or None when
    no price is known for the asset at that time.
    """

    def get_price(self, asset_id: str, timestamp: int) -> Optional[FixedDecimal]:
        """Get the price of one whole token at a specific timestamp."""
        ...

    def get_prices(self, assets: Set[str], timestamp: int) -> Dict[str, FixedDecimal]:
        """Get prices for multiple assets at a specific timestamp."""
        ...


class StaticPricingSource:
    """
    Pricing source with static prices (time-independent).

    Prices remain constant regardless of timestamp until updated.
    """

    def __init__(self, prices: Optional[Dict[str, PriceInput]] = None):
        """
        Initialize with a static price map.

        Args:
            prices: Mapping of asset id to price (FixedDecimal at WAD, or a
                    plain number such as "1.00" or Decimal("2500"))
        """
        self.prices: Dict[str, FixedDecimal] = {}
        if prices:
            self.update_prices(prices)

    def get_price(self, asset_id: str, timestamp: int) -> Optional[FixedDecimal]:
        """Get static price (timestamp is ignored)."""
        return self.prices.get(asset_id)

    def get_prices(self, assets: Set[str], timestamp: int) -> Dict[str, FixedDecimal]:
        return {asset: self.prices[asset] for asset in assets if asset in self.prices}

    def update_price(self, asset_id: str, price: PriceInput) -> None:
        self.prices[asset_id] = _as_wad_price(price)

    def update_prices(self, prices: Dict[str, PriceInput]) -> None:
        for asset_id, price in prices.items():
            self.update_price(asset_id, price)

    def __repr__(self):
        return f"StaticPricingSource({len(self.prices)} prices)"


class TimeSeriesPricingSource:
    """
    Pricing source with time-varying prices.

    Uses the most recent price at or before the requested timestamp, which
    lets a simulation replay a price path while the pool clock advances.

    Example:
        pricer = TimeSeriesPricingSource({
            'ETH': [(0, "2500"), (3_600_000, "1800")],
        })
        pricer.get_price('ETH', 3_600_000)  # 1800 at WAD
    """

    def __init__(self, price_paths: Optional[Dict[str, List[Tuple[int, PriceInput]]]] = None):
        self.price_history: Dict[str, List[Tuple[int, FixedDecimal]]] = {}
        if price_paths:
            for asset_id, path in price_paths.items():
                for timestamp, price in path:
                    self.add_price(asset_id, timestamp, price)

    def add_price(self, asset_id: str, timestamp: int, price: PriceInput) -> None:
        history = self.price_history.setdefault(asset_id, [])
        history.append((timestamp, _as_wad_price(price)))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, PriceInput], timestamp: int) -> None:
        for asset_id, price in prices.items():
            self.add_price(asset_id, timestamp, price)

    def get_price(self, asset_id: str, timestamp: int) -> Optional[FixedDecimal]:
        """
        Get price at or before the specified timestamp.

        Returns None if no observation exists at or before the timestamp.
        """
        history = self.price_history.get(asset_id)
        if not history:
            return None
        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        return history[idx - 1][1]

    def get_prices(self, assets: Set[str], timestamp: int) -> Dict[str, FixedDecimal]:
        prices = {}
        for asset_id in assets:
            price = self.get_price(asset_id, timestamp)
            if price is not None:
                prices[asset_id] = price
        return prices

    def __repr__(self):
        return f"TimeSeriesPricingSource({len(self.price_history)} assets)"
