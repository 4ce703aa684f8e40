"""
Liquidation Executor

Sells an open buy order whose stop fired. In one database transaction it:
1. Inserts a closed sell order at the current price
2. Closes the original buy order
3. Reduces the user's portfolio holding (deleting it at zero)
4. Appends an audit log entry for the new sell order

Either all four take effect or none do. The notification is queued on the
outbox only after the commit succeeds.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cryptodash.constants import ACTION_STOP_LOSS, SIDE_BUY, SIDE_SELL, STATUS_CLOSED, STATUS_OPEN
from cryptodash.database import async_session_maker
from cryptodash.models import AuditLog, Order, User
from cryptodash.services.shutdown_manager import ShutdownManager
from cryptodash.trading_engine.notifications import LiquidationNotice, NotificationOutbox
from cryptodash.trading_engine.portfolio import PortfolioLocks, apply_sell, portfolio_locks
from cryptodash.trading_engine.trigger_evaluator import TriggerType

logger = logging.getLogger(__name__)


def format_amount(value: float) -> str:
    """Format a price or quantity without float noise (1.0 -> '1', 0.5 -> '0.5')"""
    text = f"{value:.8f}".rstrip("0").rstrip(".")
    return text or "0"


@dataclass
class LiquidationResult:
    """Outcome of a committed liquidation"""
    sell_order: Order
    original_order_id: int
    remaining_quantity: Optional[float]
    notice: LiquidationNotice


class LiquidationExecutor:
    """Performs liquidations as atomic database transactions"""

    def __init__(
        self,
        session_maker: Callable[[], AsyncSession] = async_session_maker,
        outbox: Optional[NotificationOutbox] = None,
        locks: Optional[PortfolioLocks] = None,
        shutdown: Optional[ShutdownManager] = None,
    ):
        self.session_maker = session_maker
        self.outbox = outbox or NotificationOutbox()
        self.locks = locks or portfolio_locks
        self.shutdown = shutdown or ShutdownManager()

    async def execute(
        self, order: Order, current_price: float, trigger: TriggerType
    ) -> Optional[LiquidationResult]:
        """
        Liquidate an open buy order at current_price.

        Returns:
            LiquidationResult, or None if the order was no longer open

        Raises:
            Any storage error, after the transaction has been rolled back
        """
        async with self.shutdown.liquidation_in_flight():
            async with self.locks.lock(order.user_id, order.symbol):
                async with self.session_maker() as db:
                    try:
                        result = await self._liquidate(db, order.id, current_price, trigger)
                        await db.commit()
                    except Exception as e:
                        await db.rollback()
                        logger.error(f"Liquidation of order {order.id} rolled back: {e}")
                        raise

        if result is None:
            return None

        logger.info(
            f"{trigger.label} executed: Sold {format_amount(result.sell_order.quantity)} "
            f"{result.sell_order.symbol} at ${format_amount(current_price)} "
            f"(order {order.id} -> sell order {result.sell_order.id})"
        )
        self.outbox.enqueue(result.notice)
        return result

    async def _liquidate(
        self, db: AsyncSession, order_id: int, current_price: float, trigger: TriggerType
    ) -> Optional[LiquidationResult]:
        """Apply all liquidation writes in the caller's transaction"""
        # Re-read the current row image; a manual sell may have closed it already
        query = select(Order).where(Order.id == order_id).with_for_update()
        original = (await db.execute(query)).scalars().first()

        if original is None or original.status != STATUS_OPEN or original.side != SIDE_BUY:
            logger.info(f"Order {order_id} is no longer an open buy order, skipping liquidation")
            return None

        sell_order = Order(
            user_id=original.user_id,
            symbol=original.symbol,
            side=SIDE_SELL,
            quantity=original.quantity,
            price=current_price,
            status=STATUS_CLOSED,
        )
        db.add(sell_order)
        await db.flush()

        original.status = STATUS_CLOSED

        remaining = await apply_sell(db, original.user_id, original.symbol, original.quantity)

        db.add(
            AuditLog(
                user_id=original.user_id,
                order_id=sell_order.id,
                action=ACTION_STOP_LOSS,
                message=(
                    f"{trigger.label} triggered: Sold {format_amount(original.quantity)} "
                    f"{original.symbol} at ${format_amount(current_price)}"
                ),
            )
        )
        await db.flush()

        user_query = select(User).where(User.id == original.user_id).options(selectinload(User.settings))
        user = (await db.execute(user_query)).scalars().first()

        notice = LiquidationNotice(
            user_id=original.user_id,
            username=user.username if user else "",
            email=user.email if user else None,
            notify_email=bool(user and (user.settings is None or user.settings.notify_email)),
            symbol=original.symbol,
            quantity=original.quantity,
            entry_price=original.price,
            sell_price=current_price,
            trigger_type=trigger,
            original_order_id=original.id,
            sell_order_id=sell_order.id,
        )
        return LiquidationResult(
            sell_order=sell_order,
            original_order_id=original.id,
            remaining_quantity=remaining,
            notice=notice,
        )
