"""
Base Price Feed Interface

Defines the abstract interface that price sources must follow. The stop-order
engine only depends on get_current_price(); the remaining methods back the
moving-average refresh.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List


@dataclass
class PriceQuote:
    """Last traded price for a coin"""
    symbol: str  # e.g. "BTC"
    price: float
    timestamp: datetime
    currency: str = "USD"


@dataclass
class Candle:
    """Single OHLCV candle"""
    symbol: str
    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


class PriceOracle(ABC):
    """
    Abstract price source.

    Implementations retry transient failures internally and raise
    PriceUnavailableError once retries are exhausted, so callers can skip
    and carry on.
    """

    @abstractmethod
    async def get_current_price(self, symbol: str) -> PriceQuote:
        """Get the current price for a coin symbol"""
        pass

    async def get_daily_closes(self, symbol: str, days: int) -> List[float]:
        """Get daily closing prices for the last *days* days, oldest first"""
        raise NotImplementedError(f"{type(self).__name__} does not provide historical data")
