"""
Graceful Shutdown Manager

Counts liquidations that are mid-transaction so the engine can stop without
abandoning one halfway. Once shutdown is requested no new liquidation may
start; the ones already running are awaited up to a timeout.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


class ShutdownInProgressError(RuntimeError):
    """Raised when a liquidation is attempted after shutdown was requested"""


class ShutdownManager:
    """
    Gate for liquidations during engine shutdown.

    Usage:
        async with shutdown.liquidation_in_flight():
            await liquidate(...)

        await shutdown.prepare_shutdown(timeout=60)
    """

    def __init__(self):
        self._shutting_down = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._requested_at: Optional[datetime] = None

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def in_flight_count(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def liquidation_in_flight(self) -> AsyncIterator[None]:
        """Track one liquidation; refuses to start once shutdown is requested"""
        if self._shutting_down:
            raise ShutdownInProgressError("Shutdown in progress, not starting new liquidations")

        self._in_flight += 1
        self._idle.clear()
        try:
            yield
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    def _report(self, ready: bool, waited: float, message: str) -> dict:
        return {
            "ready": ready,
            "in_flight_count": self._in_flight,
            "waited_seconds": waited,
            "message": message,
        }

    async def prepare_shutdown(self, timeout: float = 60.0) -> dict:
        """
        Refuse new liquidations and wait for running ones to finish.

        Args:
            timeout: Maximum seconds to wait

        Returns:
            dict with ready, in_flight_count, waited_seconds and message
        """
        self._shutting_down = True
        self._requested_at = datetime.utcnow()

        if self._in_flight == 0:
            logger.info("No liquidations in flight - ready for shutdown")
            return self._report(True, 0, "No liquidations in flight")

        logger.info(f"Waiting up to {timeout}s for {self._in_flight} liquidation(s) to commit")
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            message = f"Timeout: {self._in_flight} liquidation(s) still in flight after {timeout}s"
            logger.warning(message)
            return self._report(False, timeout, message)

        waited = (datetime.utcnow() - self._requested_at).total_seconds()
        logger.info(f"In-flight liquidations finished after {waited:.1f}s")
        return self._report(True, waited, f"Liquidations finished after {waited:.1f}s")

    def reset(self):
        """Accept liquidations again (engine restart)"""
        self._shutting_down = False
        self._requested_at = None

    def get_status(self) -> dict:
        return {
            "shutting_down": self._shutting_down,
            "in_flight_count": self._in_flight,
            "shutdown_requested_at": self._requested_at.isoformat() if self._requested_at else None,
        }
