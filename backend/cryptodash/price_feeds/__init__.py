"""
Price Feeds Module

Provides the price-lookup capability consumed by the stop-order engine.
"""

from cryptodash.price_feeds.base import Candle, PriceOracle, PriceQuote
from cryptodash.price_feeds.binance_feed import BinancePriceFeed

__all__ = [
    "Candle",
    "PriceOracle",
    "PriceQuote",
    "BinancePriceFeed",
]
