"""
Stop-Order Engine

Background service that watches open buy orders carrying a stop loss or a
trailing stop and liquidates them when a trigger fires.

Each sweep:
1. Loads every open buy order with stop_limit or trailing_stop_pct set
2. Looks up the current price per symbol (shared across the sweep)
3. Updates the running high for the (user, symbol) position
4. Evaluates the triggers and liquidates triggered orders

Notifications for committed liquidations are delivered by a separate
scheduled job, so a slow notifier cannot hold up the next sweep. Prices are
looked up once per symbol, concurrently and outside the concurrency limit,
so a slow symbol only delays the orders on that symbol.

A failure on one order (price lookup, storage) is logged and the sweep moves
on; the order stays open and is evaluated again on the next tick.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptodash.config import settings
from cryptodash.constants import SIDE_BUY, STATUS_OPEN
from cryptodash.database import async_session_maker
from cryptodash.exceptions import PriceUnavailableError
from cryptodash.models import Order
from cryptodash.price_feeds.base import PriceOracle, PriceQuote
from cryptodash.services.moving_average_service import cleanup_old_moving_averages, refresh_moving_averages
from cryptodash.services.shutdown_manager import ShutdownInProgressError, ShutdownManager
from cryptodash.trading_engine.liquidation_executor import LiquidationExecutor, LiquidationResult
from cryptodash.trading_engine.notifications import NotificationOutbox, Notifier
from cryptodash.trading_engine.portfolio import PortfolioLocks
from cryptodash.trading_engine.position_tracker import PositionTracker
from cryptodash.trading_engine.scheduler import Scheduler
from cryptodash.trading_engine.trigger_evaluator import TriggerType, evaluate_trigger

logger = logging.getLogger(__name__)

STOP_CHECK_JOB = "stop_check"
MOVING_AVERAGE_JOB = "moving_averages"
MOVING_AVERAGE_CLEANUP_JOB = "moving_average_cleanup"
NOTIFICATION_JOB = "notifications"
CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60


@dataclass
class SweepResult:
    """Counters for one sweep"""
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    checked: int = 0
    triggered: int = 0
    liquidated: int = 0
    skipped: int = 0  # Price unavailable or shutdown in progress
    errors: int = 0
    liquidations: List[LiquidationResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "checked": self.checked,
            "triggered": self.triggered,
            "liquidated": self.liquidated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


async def list_open_stop_orders(db: AsyncSession) -> List[Order]:
    """Open buy orders that carry a stop loss or trailing stop"""
    query = (
        select(Order)
        .where(
            Order.status == STATUS_OPEN,
            Order.side == SIDE_BUY,
            or_(Order.stop_limit.isnot(None), Order.trailing_stop_pct.isnot(None)),
        )
        .order_by(Order.id)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


class StopOrderEngine:
    """Periodically evaluates stop orders and liquidates triggered ones"""

    def __init__(
        self,
        price_oracle: PriceOracle,
        session_maker: Callable[[], AsyncSession] = async_session_maker,
        tracker: Optional[PositionTracker] = None,
        notifier: Optional[Notifier] = None,
        outbox: Optional[NotificationOutbox] = None,
        locks: Optional[PortfolioLocks] = None,
        scheduler: Optional[Scheduler] = None,
        concurrency: Optional[int] = None,
        stop_check_interval: Optional[float] = None,
        moving_average_interval: Optional[float] = None,
        notification_interval: Optional[float] = None,
    ):
        self.price_oracle = price_oracle
        self.session_maker = session_maker
        self.tracker = tracker or PositionTracker()
        self.outbox = outbox or NotificationOutbox(notifier)
        self.shutdown = ShutdownManager()
        self.executor = LiquidationExecutor(
            session_maker=session_maker,
            outbox=self.outbox,
            locks=locks,
            shutdown=self.shutdown,
        )
        self.scheduler = scheduler or Scheduler()
        self.concurrency = max(1, concurrency or settings.sweep_concurrency)
        self.stop_check_interval = stop_check_interval or settings.stop_check_interval_seconds
        self.moving_average_interval = moving_average_interval or settings.moving_average_interval_seconds
        self.notification_interval = notification_interval or settings.notification_interval_seconds

        self.running = False
        self.last_sweep: Optional[SweepResult] = None
        self._sweep_lock = asyncio.Lock()
        self._register_jobs()

    def _register_jobs(self):
        self.scheduler.add_job(STOP_CHECK_JOB, self.stop_check_interval, self.run_sweep)
        self.scheduler.add_job(NOTIFICATION_JOB, self.notification_interval, self.dispatch_notifications)
        self.scheduler.add_job(
            MOVING_AVERAGE_JOB, self.moving_average_interval, self.update_moving_averages, run_immediately=False
        )
        self.scheduler.add_job(
            MOVING_AVERAGE_CLEANUP_JOB, CLEANUP_INTERVAL_SECONDS, self.cleanup_moving_averages, run_immediately=False
        )

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def run_sweep(self) -> SweepResult:
        """Evaluate every eligible open order once"""
        async with self._sweep_lock:
            result = SweepResult()

            async with self.session_maker() as db:
                orders = await list_open_stop_orders(db)

            if orders:
                logger.info(f"Checking {len(orders)} open stop orders")

            prices: Dict[str, asyncio.Future] = {}
            for symbol in {order.symbol for order in orders}:
                self._price_future(symbol, prices)
            semaphore = asyncio.Semaphore(self.concurrency)

            await asyncio.gather(*(self.process_order(order, prices, result, semaphore) for order in orders))

            result.finished_at = datetime.utcnow()
            self.last_sweep = result
            if result.triggered or result.errors:
                logger.info(
                    f"Sweep finished: {result.checked} checked, {result.liquidated} liquidated, "
                    f"{result.skipped} skipped, {result.errors} errors"
                )
            return result

    def _price_future(self, symbol: str, prices: Dict[str, asyncio.Future]) -> "asyncio.Future[PriceQuote]":
        """One oracle lookup per symbol per sweep; concurrent callers share it"""
        if symbol not in prices:
            prices[symbol] = asyncio.ensure_future(self.price_oracle.get_current_price(symbol))
        return prices[symbol]

    async def process_order(
        self,
        order: Order,
        prices: Dict[str, asyncio.Future],
        result: SweepResult,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> Optional[LiquidationResult]:
        """
        Evaluate one order and liquidate it if a trigger fires. Never raises.

        The price wait happens before taking a semaphore slot; only the
        evaluation and liquidation count against the sweep concurrency.
        """
        if self.shutdown.is_shutting_down:
            result.skipped += 1
            return None

        try:
            quote = await self._price_future(order.symbol, prices)
        except PriceUnavailableError as e:
            result.skipped += 1
            logger.warning(f"Skipping order {order.id} this sweep: {e}")
            return None
        except Exception as e:
            result.errors += 1
            logger.error(f"Error fetching price for order {order.id} ({order.symbol}): {e}")
            return None

        result.checked += 1
        if semaphore is None:
            return await self._evaluate(order, quote.price, result)
        async with semaphore:
            return await self._evaluate(order, quote.price, result)

    async def _evaluate(self, order: Order, current_price: float, result: SweepResult) -> Optional[LiquidationResult]:
        highest = self.tracker.observe(order.user_id, order.symbol, current_price)

        trigger, reason = evaluate_trigger(order.stop_limit, order.trailing_stop_pct, current_price, highest)
        if trigger == TriggerType.NONE:
            logger.debug(f"Order {order.id}: {reason}")
            return None

        result.triggered += 1
        logger.info(f"Order {order.id} ({order.symbol}, user {order.user_id}): {reason}")

        try:
            liquidation = await self.executor.execute(order, current_price, trigger)
        except ShutdownInProgressError:
            result.skipped += 1
            logger.info(f"Shutdown in progress, leaving order {order.id} open")
            return None
        except Exception as e:
            result.errors += 1
            logger.error(f"Error executing {trigger.label} for order {order.id}: {e}")
            return None

        if liquidation is not None:
            result.liquidated += 1
            result.liquidations.append(liquidation)
        return liquidation

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def dispatch_notifications(self):
        """Deliver notices queued by committed liquidations"""
        return await self.outbox.dispatch_pending()

    # ------------------------------------------------------------------
    # Moving averages
    # ------------------------------------------------------------------

    async def update_moving_averages(self):
        async with self.session_maker() as db:
            return await refresh_moving_averages(db, self.price_oracle)

    async def cleanup_moving_averages(self):
        async with self.session_maker() as db:
            return await cleanup_old_moving_averages(db)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Start the background scheduler"""
        if self.running:
            logger.info("Trading engine is already running")
            return

        logger.info("Starting trading engine...")
        self.shutdown.reset()
        self.running = True
        await self.scheduler.start()
        logger.info(
            f"Trading engine started - stop checks every {self.stop_check_interval:g}s, "
            f"moving averages every {self.moving_average_interval:g}s"
        )

    async def stop(self, timeout: Optional[float] = None) -> dict:
        """
        Stop the engine.

        New liquidations are refused, in-flight ones are allowed to commit
        (up to timeout seconds), then the scheduler is halted and any
        queued notices get one last delivery attempt.
        """
        if not self.running:
            logger.info("Trading engine is not running")
            return self.shutdown.get_status()

        logger.info("Stopping trading engine...")
        timeout = settings.shutdown_timeout_seconds if timeout is None else timeout
        shutdown_result = await self.shutdown.prepare_shutdown(timeout=timeout)

        await self.scheduler.stop()
        if self.outbox.pending_count:
            # Notices queued by the final sweep
            await self.dispatch_notifications()
        self.running = False
        logger.info("Trading engine stopped")
        return shutdown_result

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "tracked_positions": len(self.tracker),
            "pending_notifications": self.outbox.pending_count,
            "notifications_sent": self.outbox.sent_count,
            "notifications_failed": self.outbox.failed_count,
            "last_sweep": self.last_sweep.to_dict() if self.last_sweep else None,
            "scheduler": self.scheduler.get_status(),
            "shutdown": self.shutdown.get_status(),
        }
