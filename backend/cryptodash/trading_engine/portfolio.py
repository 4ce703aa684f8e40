"""
Portfolio update rule shared by manual trades and liquidations.

- Buys add quantity and recompute the volume-weighted average price
- Sells subtract quantity and leave the average price alone
- A holding is deleted once its quantity reaches zero

Sells are applied as a single UPDATE against the current row
(quantity = quantity - :q), so concurrent sells never work from a stale copy.
Callers own the transaction; nothing here commits.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cryptodash.models import PortfolioHolding

logger = logging.getLogger(__name__)


async def get_holding(
    db: AsyncSession, user_id: int, symbol: str, for_update: bool = False
) -> Optional[PortfolioHolding]:
    query = select(PortfolioHolding).where(
        PortfolioHolding.user_id == user_id,
        PortfolioHolding.symbol == symbol,
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalars().first()


async def apply_buy(
    db: AsyncSession, user_id: int, symbol: str, quantity: float, price: float
) -> PortfolioHolding:
    """Add a bought quantity to the user's holding, creating it if needed"""
    holding = await get_holding(db, user_id, symbol, for_update=True)

    if holding is None:
        holding = PortfolioHolding(user_id=user_id, symbol=symbol, quantity=quantity, avg_price=price)
        db.add(holding)
        await db.flush()
        return holding

    new_quantity = holding.quantity + quantity
    holding.avg_price = ((holding.quantity * holding.avg_price) + (quantity * price)) / new_quantity
    holding.quantity = new_quantity
    await db.flush()
    return holding


async def apply_sell(db: AsyncSession, user_id: int, symbol: str, quantity: float) -> Optional[float]:
    """
    Subtract a sold quantity from the user's holding.

    Returns:
        Remaining quantity (0.0 if the holding was removed), or None when the
        user holds nothing of this symbol.
    """
    result = await db.execute(
        update(PortfolioHolding)
        .where(PortfolioHolding.user_id == user_id, PortfolioHolding.symbol == symbol)
        .values(quantity=PortfolioHolding.quantity - quantity)
        .returning(PortfolioHolding.quantity)
        .execution_options(synchronize_session=False)
    )
    remaining = result.scalar_one_or_none()

    if remaining is None:
        logger.warning(f"No {symbol} holding for user {user_id} to reduce by {quantity}")
        return None

    if remaining <= 0:
        await db.execute(
            delete(PortfolioHolding)
            .where(PortfolioHolding.user_id == user_id, PortfolioHolding.symbol == symbol)
            .execution_options(synchronize_session=False)
        )
        return 0.0

    return remaining


class PortfolioLocks:
    """
    In-process locks serializing portfolio changes per (user, symbol).

    Manual trades and liquidations that touch the same holding share one lock;
    the atomic SQL in apply_sell covers writers in other processes.
    """

    def __init__(self):
        self._locks: Dict[Tuple[int, str], asyncio.Lock] = {}

    def lock(self, user_id: int, symbol: str) -> asyncio.Lock:
        key = (user_id, symbol.upper())
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]


# Shared by trade_service and the liquidation executor
portfolio_locks = PortfolioLocks()
