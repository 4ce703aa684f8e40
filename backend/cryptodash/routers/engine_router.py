"""
Engine Router

Read-only view of the stop-order engine:
- Engine status (scheduler jobs, last sweep, notification counters)
- Trading statistics across all users
- Latest stored moving averages per coin
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cryptodash.config import settings
from cryptodash.database import get_db
from cryptodash.services.moving_average_service import get_latest_moving_averages
from cryptodash.services.trade_service import get_trading_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/engine", tags=["engine"])

# Set from main.py at startup
_stop_order_engine = None


def set_stop_order_engine(engine):
    global _stop_order_engine
    _stop_order_engine = engine


@router.get("/status")
async def get_engine_status():
    """Current engine state"""
    if _stop_order_engine is None:
        raise HTTPException(status_code=503, detail="Trading engine not initialized")
    return _stop_order_engine.get_status()


@router.get("/stats")
async def get_engine_stats(db: AsyncSession = Depends(get_db)):
    """Order counts and bought/sold totals across all users"""
    return await get_trading_stats(db)


@router.get("/moving-averages/{symbol}")
async def get_moving_averages(symbol: str, db: AsyncSession = Depends(get_db)):
    """Latest stored SMA per period for a coin"""
    symbol = symbol.upper()
    if symbol not in settings.supported_coins:
        raise HTTPException(status_code=404, detail=f"Unsupported coin: {symbol}")
    return {"symbol": symbol, "moving_averages": await get_latest_moving_averages(db, symbol)}
