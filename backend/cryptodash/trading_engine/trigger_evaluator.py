"""
Stop-loss and trailing-stop trigger rules.

Pure decision logic: given an order's stop parameters, the current price and
the highest price tracked for the position, decide whether to liquidate.

Rules:
- Stop loss fires when price <= stop_limit
- Trailing stop fires when price <= highest * (1 - trailing_stop_pct / 100)
- Stop loss is checked first; when it fires the trailing check is skipped
- A trailing_stop_pct of 0 fires on any price at or below the high
"""

from enum import Enum
from typing import Optional, Tuple


class TriggerType(str, Enum):
    NONE = "none"
    STOP_LOSS = "stop_loss"
    TRAILING_STOP = "trailing_stop"

    @property
    def label(self) -> str:
        """Human-readable name used in audit logs and e-mails"""
        return {
            TriggerType.NONE: "None",
            TriggerType.STOP_LOSS: "Stop Loss",
            TriggerType.TRAILING_STOP: "Trailing Stop",
        }[self]


def trailing_stop_price(highest_price: float, trailing_stop_pct: float) -> float:
    """Price at which a trailing stop fires for the given high"""
    return highest_price * (1 - trailing_stop_pct / 100)


def evaluate_trigger(
    stop_limit: Optional[float],
    trailing_stop_pct: Optional[float],
    current_price: float,
    highest_price: float,
) -> Tuple[TriggerType, str]:
    """
    Decide whether an open order should be liquidated.

    Args:
        stop_limit: Fixed stop-loss price, or None
        trailing_stop_pct: Trailing stop percentage, or None
        current_price: Latest observed price
        highest_price: Highest price observed for the position (includes current)

    Returns:
        Tuple of (trigger: TriggerType, reason: str)
    """
    if stop_limit is not None and current_price <= stop_limit:
        return (
            TriggerType.STOP_LOSS,
            f"Stop loss triggered: ${current_price:.4f} <= stop ${stop_limit:.4f}",
        )

    if trailing_stop_pct is not None:
        trigger_price = trailing_stop_price(highest_price, trailing_stop_pct)
        if current_price <= trigger_price:
            return (
                TriggerType.TRAILING_STOP,
                f"Trailing stop triggered: ${current_price:.4f} <= ${trigger_price:.4f} "
                f"({trailing_stop_pct}% below high ${highest_price:.4f})",
            )
        return (
            TriggerType.NONE,
            f"Trailing stop at ${trigger_price:.4f}, current price ${current_price:.4f}",
        )

    if stop_limit is not None:
        return (TriggerType.NONE, f"Stop at ${stop_limit:.4f}, current price ${current_price:.4f}")

    return (TriggerType.NONE, "No stop configured")
