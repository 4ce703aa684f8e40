"""System models: cached market statistics."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, Integer, String, UniqueConstraint

from cryptodash.database import Base


class MovingAverage(Base):
    """Simple moving average of daily closes, one row per (symbol, period, day)"""
    __tablename__ = "moving_averages"
    __table_args__ = (
        UniqueConstraint("symbol", "days", "calculated_date", name="uq_moving_average_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String(10), nullable=False, index=True)
    days = Column(Integer, nullable=False)  # SMA period in days
    value = Column(Float, nullable=False)
    calculated_at = Column(DateTime, default=datetime.utcnow)
    calculated_date = Column(Date, nullable=False, index=True)
