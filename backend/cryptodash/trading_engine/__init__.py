"""
Stop-order trading engine

Modules:
- position_tracker: running price highs per (user, symbol)
- trigger_evaluator: stop-loss / trailing-stop decision rules
- portfolio: portfolio update rule shared with manual trades
- liquidation_executor: atomic liquidation transaction
- notifications: outbox for post-commit notifications
- scheduler: fixed-interval job runner
- stop_order_engine: sweep orchestration and engine lifecycle
"""

from cryptodash.trading_engine.liquidation_executor import LiquidationExecutor, LiquidationResult
from cryptodash.trading_engine.notifications import LiquidationNotice, NotificationOutbox, Notifier
from cryptodash.trading_engine.position_tracker import PositionTracker
from cryptodash.trading_engine.scheduler import Scheduler
from cryptodash.trading_engine.stop_order_engine import StopOrderEngine, SweepResult, list_open_stop_orders
from cryptodash.trading_engine.trigger_evaluator import TriggerType, evaluate_trigger

__all__ = [
    "LiquidationExecutor",
    "LiquidationResult",
    "LiquidationNotice",
    "NotificationOutbox",
    "Notifier",
    "PositionTracker",
    "Scheduler",
    "StopOrderEngine",
    "SweepResult",
    "list_open_stop_orders",
    "TriggerType",
    "evaluate_trigger",
]
