"""
Database Models, organized by domain.

All model classes are re-exported here:
    from cryptodash.models import User, Order, PortfolioHolding, ...
"""

from cryptodash.database import Base  # noqa: F401 (re-exported for tests/conftest.py)
from cryptodash.models.auth import User, UserSettings
from cryptodash.models.trading import AuditLog, Order, PortfolioHolding
from cryptodash.models.system import MovingAverage

__all__ = [
    "Base",
    # Auth
    "User", "UserSettings",
    # Trading
    "Order", "PortfolioHolding", "AuditLog",
    # System
    "MovingAverage",
]
