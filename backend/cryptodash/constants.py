"""
Application Constants

Centralized constants for order sides/statuses, coin symbols and audit actions.
"""

from typing import Dict

# Order sides
SIDE_BUY = "buy"
SIDE_SELL = "sell"
ORDER_SIDES = (SIDE_BUY, SIDE_SELL)

# Order statuses (open -> closed exactly once)
STATUS_OPEN = "open"
STATUS_CLOSED = "closed"
ORDER_STATUSES = (STATUS_OPEN, STATUS_CLOSED)

# Binance trading pair per supported coin
BINANCE_SYMBOLS: Dict[str, str] = {
    "BTC": "BTCUSDT",
    "ETH": "ETHUSDT",
    "XRP": "XRPUSDT",
}

# Audit log actions
ACTION_CREATE = "CREATE"
ACTION_STOP_LOSS = "STOP_LOSS"
ACTION_MANUAL_SELL = "MANUAL_SELL"

# Order validation limits
MIN_ORDER_QUANTITY = 0.00000001
MAX_TRAILING_STOP_PCT = 100.0
