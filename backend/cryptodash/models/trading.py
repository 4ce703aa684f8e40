"""Trading models: orders, portfolio holdings, audit log."""

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cryptodash.database import Base


class Order(Base):
    """
    A user buy or sell at a given price.

    Buy orders may carry a stop-loss price and/or a trailing-stop percentage;
    while they are open the stop-order engine watches them and liquidates
    the position when a trigger fires. An order goes open -> closed once,
    either through an explicit user sell or an engine liquidation.
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("side IN ('buy', 'sell')", name="ck_orders_side"),
        CheckConstraint("status IN ('open', 'closed')", name="ck_orders_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(10), nullable=False, index=True)  # e.g. "BTC"
    side = Column(String(4), nullable=False)  # "buy" or "sell"
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=False)  # Price at transaction (entry price for buys)

    stop_limit = Column(Float, nullable=True)  # Auto-sell at or below this price
    trailing_stop_pct = Column(Float, nullable=True)  # Auto-sell at this % drop from the high

    status = Column(String(10), default="open", nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")


class PortfolioHolding(Base):
    """Aggregate holding per (user, symbol). Deleted once quantity reaches zero."""
    __tablename__ = "portfolio"
    __table_args__ = (UniqueConstraint("user_id", "symbol", name="uq_portfolio_user_symbol"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(10), nullable=False)
    quantity = Column(Float, default=0.0, nullable=False)
    avg_price = Column(Float, default=0.0, nullable=False)  # Volume-weighted entry price


class AuditLog(Base):
    """Append-only record of order activity."""
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True, index=True)
    action = Column(String(50), nullable=False)  # CREATE, STOP_LOSS, MANUAL_SELL
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow)
