"""Price source adapters and the fallback aggregator."""

from .aggregator import PriceAggregator, PriceRefresh
from .base import BasePriceSource, StaticPriceSource
from .coingecko import CoinGeckoPriceSource
from .dexscreener import DexScreenerPriceSource

__all__ = [
    "BasePriceSource",
    "CoinGeckoPriceSource",
    "DexScreenerPriceSource",
    "PriceAggregator",
    "PriceRefresh",
    "StaticPriceSource",
]
