"""
Moving average refresh

Recomputes simple moving averages of daily closes for every supported coin
and stores one value per (coin, period, day). Runs hourly from the engine's
scheduler; rows older than the retention window are pruned daily.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptodash.config import settings
from cryptodash.models import MovingAverage
from cryptodash.price_feeds.base import PriceOracle

logger = logging.getLogger(__name__)

# Extra days of history fetched beyond the longest period
HISTORY_PADDING_DAYS = 10


def calculate_sma(closes: Sequence[float], period: int) -> Optional[float]:
    """Average of the last *period* closes, or None if there are fewer"""
    if period <= 0 or len(closes) < period:
        return None
    window = closes[-period:]
    return sum(window) / period


def calculate_moving_averages(closes: Sequence[float], periods: Sequence[int]) -> Dict[int, Optional[float]]:
    return {period: calculate_sma(closes, period) for period in periods}


async def store_moving_average(db: AsyncSession, symbol: str, days: int, value: float, on_date: date):
    """Insert or overwrite the value for (symbol, days, on_date)"""
    query = select(MovingAverage).where(
        MovingAverage.symbol == symbol,
        MovingAverage.days == days,
        MovingAverage.calculated_date == on_date,
    )
    existing = (await db.execute(query)).scalars().first()

    if existing:
        existing.value = value
        existing.calculated_at = datetime.utcnow()
    else:
        db.add(
            MovingAverage(
                symbol=symbol,
                days=days,
                value=value,
                calculated_at=datetime.utcnow(),
                calculated_date=on_date,
            )
        )


async def refresh_moving_averages(
    db: AsyncSession,
    oracle: PriceOracle,
    coins: Optional[List[str]] = None,
    periods: Optional[List[int]] = None,
) -> Dict[str, Dict[int, Optional[float]]]:
    """
    Fetch daily closes and store SMAs for each coin.

    A coin whose history cannot be fetched is logged and skipped.

    Returns:
        {symbol: {period: value or None}} for the coins that were refreshed
    """
    coins = coins or settings.supported_coins
    periods = periods or settings.moving_average_periods
    today = datetime.utcnow().date()
    results: Dict[str, Dict[int, Optional[float]]] = {}

    logger.info("Updating moving averages...")

    for coin in coins:
        try:
            closes = await oracle.get_daily_closes(coin, max(periods) + HISTORY_PADDING_DAYS)
        except Exception as e:
            logger.error(f"Error updating moving averages for {coin}: {e}")
            continue

        averages = calculate_moving_averages(closes, periods)
        for period, value in averages.items():
            if value is not None:
                await store_moving_average(db, coin, period, value, today)
        results[coin] = averages

    await db.commit()
    logger.info(f"Moving averages updated for {len(results)}/{len(coins)} coins")
    return results


async def cleanup_old_moving_averages(db: AsyncSession, retention_days: Optional[int] = None) -> int:
    """Delete moving averages older than the retention window. Returns rows deleted."""
    retention_days = retention_days or settings.moving_average_retention_days
    cutoff = datetime.utcnow().date() - timedelta(days=retention_days)

    result = await db.execute(delete(MovingAverage).where(MovingAverage.calculated_date < cutoff))
    await db.commit()

    deleted = result.rowcount or 0
    logger.info(f"Cleaned up {deleted} moving averages older than {cutoff}")
    return deleted


async def get_latest_moving_averages(db: AsyncSession, symbol: str) -> Dict[int, float]:
    """Most recent stored value per period for a coin"""
    query = (
        select(MovingAverage)
        .where(MovingAverage.symbol == symbol)
        .order_by(MovingAverage.calculated_date.desc(), MovingAverage.days)
    )
    rows = (await db.execute(query)).scalars().all()

    latest: Dict[int, float] = {}
    for row in rows:
        latest.setdefault(row.days, row.value)
    return latest
