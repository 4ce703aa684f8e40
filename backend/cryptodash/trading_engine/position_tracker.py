"""
Highest-price tracking for trailing stops.

Keeps the highest price observed per (user, symbol) since the process
started. State is in memory only: after a restart every baseline starts
again from the next observed price.
"""

import logging
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

PositionKey = Tuple[int, str]


class PositionTracker:
    """Injectable store of running price highs, keyed by (user_id, symbol)"""

    def __init__(self):
        self._highest: Dict[PositionKey, float] = {}

    @staticmethod
    def _key(user_id: int, symbol: str) -> PositionKey:
        return (user_id, symbol.upper())

    def observe(self, user_id: int, symbol: str, price: float) -> float:
        """
        Record an observed price and return the highest price seen so far.

        The stored value never decreases; the first observation initializes it.
        """
        key = self._key(user_id, symbol)
        current = self._highest.get(key)
        highest = price if current is None else max(current, price)
        self._highest[key] = highest

        if current is not None and highest > current:
            logger.debug(f"New high for user {user_id} {symbol}: {current} -> {highest}")
        return highest

    def get(self, user_id: int, symbol: str) -> Optional[float]:
        return self._highest.get(self._key(user_id, symbol))

    def seed(self, user_id: int, symbol: str, price: float) -> None:
        """Set a baseline directly (replaces any tracked value)"""
        self._highest[self._key(user_id, symbol)] = price

    def discard(self, user_id: int, symbol: str) -> None:
        self._highest.pop(self._key(user_id, symbol), None)

    def clear(self) -> None:
        self._highest.clear()

    def snapshot(self) -> Dict[PositionKey, float]:
        return dict(self._highest)

    def __len__(self) -> int:
        return len(self._highest)
