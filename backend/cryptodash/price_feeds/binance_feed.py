"""
Binance Price Feed

Public (unauthenticated) Binance spot market data:
  GET /api/v3/ticker/price   current price
  GET /api/v3/klines         candles

Requests are rate limited (minimum gap between calls) and retried with
backoff on 429, 5xx and transport errors. Other client errors are not retried.
Any failure reaches the caller as PriceUnavailableError.
"""

import asyncio
import logging
import math
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx

from cryptodash.config import settings
from cryptodash.constants import BINANCE_SYMBOLS
from cryptodash.exceptions import PriceUnavailableError, RateLimitError
from cryptodash.price_feeds.base import Candle, PriceOracle, PriceQuote

logger = logging.getLogger(__name__)


class BinanceRequestError(Exception):
    """Raised when a Binance request fails after all retries"""


class BinancePriceFeed(PriceOracle):
    """Rate-limited, retrying client over Binance public endpoints"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        request_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        symbols: Optional[Dict[str, str]] = None,
    ):
        self.base_url = (base_url or settings.binance_base_url).rstrip("/")
        self.request_delay = settings.oracle_request_delay_seconds if request_delay is None else request_delay
        self.timeout = timeout or settings.oracle_timeout_seconds
        self.max_retries = max(1, max_retries or settings.oracle_max_retries)
        self.symbols = symbols or {
            coin: BINANCE_SYMBOLS.get(coin, f"{coin}{settings.quote_currency}")
            for coin in settings.supported_coins
        }

        self._rate_lock = asyncio.Lock()
        self._last_request_time = 0.0

    async def _ensure_rate_limit(self):
        """Space requests at least request_delay seconds apart"""
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self.request_delay:
                await asyncio.sleep(self.request_delay - elapsed)
            self._last_request_time = time.monotonic()

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make a rate-limited GET request with bounded retries.

        Backoff: 429 -> 2^attempt seconds, 5xx -> attempt seconds,
        transport error -> attempt seconds. Other HTTP errors raise immediately.
        """
        url = f"{self.base_url}{endpoint}"
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            await self._ensure_rate_limit()
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if status == 429:
                    wait_time = 2 ** attempt
                    logger.warning(
                        f"Binance rate limited (429) on {endpoint}, "
                        f"waiting {wait_time}s before retry {attempt}/{self.max_retries}"
                    )
                elif status >= 500:
                    wait_time = attempt
                    logger.warning(f"Binance server error {status} on {endpoint}, retry {attempt}/{self.max_retries}")
                else:
                    logger.error(f"Binance API error {status} on {endpoint}: {e.response.text[:200]}")
                    raise BinanceRequestError(f"HTTP {status} for {endpoint}") from e

            except httpx.TransportError as e:
                last_error = e
                wait_time = attempt
                logger.warning(f"Binance request failed ({endpoint}): {e!r}, retry {attempt}/{self.max_retries}")

            if attempt < self.max_retries:
                await asyncio.sleep(wait_time)

        if isinstance(last_error, httpx.HTTPStatusError) and last_error.response.status_code == 429:
            raise RateLimitError(
                f"Binance rate limit persisted after {self.max_retries} attempts: {endpoint}",
                retry_after=2 ** self.max_retries,
            ) from last_error
        raise BinanceRequestError(f"Request failed after {self.max_retries} attempts: {endpoint}") from last_error

    def _pair_for(self, symbol: str) -> str:
        pair = self.symbols.get(symbol.upper())
        if not pair:
            raise PriceUnavailableError(symbol, "unsupported coin")
        return pair

    async def get_current_price(self, symbol: str) -> PriceQuote:
        """Get the latest traded price for a supported coin"""
        pair = self._pair_for(symbol)
        try:
            data = await self._request("/ticker/price", {"symbol": pair})
            price = float(data["price"])
            if not math.isfinite(price):
                raise ValueError(f"non-finite price {data['price']!r}")
        except (BinanceRequestError, RateLimitError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Error fetching current price for {symbol}: {e}")
            raise PriceUnavailableError(symbol, str(e)) from e

        return PriceQuote(symbol=symbol.upper(), price=price, timestamp=datetime.utcnow())

    async def get_all_current_prices(self) -> List[PriceQuote]:
        """Get current prices for every supported coin"""
        return list(await asyncio.gather(*(self.get_current_price(coin) for coin in self.symbols)))

    async def get_candles(
        self,
        symbol: str,
        interval: str = "1d",
        limit: int = 100,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Candle]:
        """Get OHLCV candles sorted oldest first"""
        pair = self._pair_for(symbol)
        params: Dict[str, Any] = {"symbol": pair, "interval": interval, "limit": limit}
        if start:
            params["startTime"] = int(start.timestamp() * 1000)
        if end:
            params["endTime"] = int(end.timestamp() * 1000)

        try:
            rows = await self._request("/klines", params)
        except (BinanceRequestError, RateLimitError) as e:
            logger.error(f"Error fetching candles for {symbol}: {e}")
            raise PriceUnavailableError(symbol, str(e)) from e

        # Kline row: [open_time, open, high, low, close, volume, close_time, ...]
        candles = [
            Candle(
                symbol=symbol.upper(),
                date=datetime.utcfromtimestamp(row[0] / 1000),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
            for row in rows
        ]
        return sorted(candles, key=lambda c: c.date)

    async def get_daily_closes(self, symbol: str, days: int) -> List[float]:
        """Get daily closes over the last *days* days, oldest first"""
        end = datetime.utcnow()
        start = end - timedelta(days=days)
        candles = await self.get_candles(symbol, interval="1d", limit=1000, start=start, end=end)
        return [c.close for c in candles]
