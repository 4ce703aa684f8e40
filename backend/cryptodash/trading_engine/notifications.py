"""
Liquidation notification outbox.

The liquidation transaction only records a LiquidationNotice here after it
commits; delivery happens separately through dispatch_pending(), which the
engine runs as its own scheduled job so a slow notifier never holds up a
sweep. Delivery is best-effort: a failing or timed-out notifier is logged and
the notice is dropped, never retried and never able to undo the liquidation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from cryptodash.config import settings
from cryptodash.trading_engine.trigger_evaluator import TriggerType

logger = logging.getLogger(__name__)


@dataclass
class LiquidationNotice:
    """Everything a notifier needs to describe a completed liquidation"""
    user_id: int
    username: str
    email: Optional[str]
    symbol: str
    quantity: float
    entry_price: float
    sell_price: float
    trigger_type: TriggerType
    original_order_id: int
    sell_order_id: int
    notify_email: bool = True
    executed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_value(self) -> float:
        return self.quantity * self.sell_price

    @property
    def profit_loss(self) -> float:
        return (self.sell_price - self.entry_price) * self.quantity


class Notifier(ABC):
    """Delivers liquidation notices to users"""

    @abstractmethod
    async def notify_liquidation(self, notice: LiquidationNotice) -> bool:
        """Send a notice. Returns True if it was handed off for delivery."""
        pass


class LogNotifier(Notifier):
    """Writes notices to the log only"""

    async def notify_liquidation(self, notice: LiquidationNotice) -> bool:
        logger.info(
            f"Liquidation notice for user {notice.user_id}: {notice.trigger_type.label} sold "
            f"{notice.quantity} {notice.symbol} at ${notice.sell_price}"
        )
        return True


class NotificationOutbox:
    """Queue of committed liquidations awaiting notification"""

    def __init__(self, notifier: Optional[Notifier] = None, timeout: Optional[float] = None):
        self.notifier = notifier or LogNotifier()
        self.timeout = settings.notification_timeout_seconds if timeout is None else timeout
        self._queue: "asyncio.Queue[LiquidationNotice]" = asyncio.Queue()
        self.sent_count = 0
        self.failed_count = 0

    def enqueue(self, notice: LiquidationNotice) -> None:
        self._queue.put_nowait(notice)

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    async def dispatch_pending(self) -> List[LiquidationNotice]:
        """
        Deliver every queued notice once, each bounded by the outbox timeout.

        Returns:
            The notices that were delivered
        """
        delivered = []
        while not self._queue.empty():
            notice = self._queue.get_nowait()

            if not notice.notify_email:
                logger.debug(f"User {notice.user_id} opted out of notifications, skipping order {notice.sell_order_id}")
                continue

            try:
                sent = await asyncio.wait_for(self.notifier.notify_liquidation(notice), timeout=self.timeout)
            except asyncio.TimeoutError:
                self.failed_count += 1
                logger.error(
                    f"Liquidation notice for sell order {notice.sell_order_id} (user {notice.user_id}) "
                    f"timed out after {self.timeout}s"
                )
                continue
            except Exception as e:
                self.failed_count += 1
                logger.error(
                    f"Failed to send liquidation notice for sell order {notice.sell_order_id} "
                    f"(user {notice.user_id}): {e}"
                )
                continue

            if sent:
                self.sent_count += 1
                delivered.append(notice)

        return delivered
