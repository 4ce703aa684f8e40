"""
Trade Service

User-initiated trading: placing buy/sell orders, explicitly selling an open
buy order, and read models (order history, portfolio valuation, stats).

Portfolio changes go through the same rule and per-(user, symbol) locks as
engine liquidations, so both paths converge on the same holdings.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptodash.config import settings
from cryptodash.constants import (
    ACTION_CREATE,
    ACTION_MANUAL_SELL,
    MAX_TRAILING_STOP_PCT,
    MIN_ORDER_QUANTITY,
    ORDER_SIDES,
    ORDER_STATUSES,
    SIDE_BUY,
    SIDE_SELL,
    STATUS_CLOSED,
    STATUS_OPEN,
)
from cryptodash.database import async_session_maker
from cryptodash.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from cryptodash.models import AuditLog, Order, PortfolioHolding
from cryptodash.trading_engine.liquidation_executor import format_amount
from cryptodash.trading_engine.portfolio import (
    PortfolioLocks,
    apply_buy,
    apply_sell,
    get_holding,
    portfolio_locks,
)

logger = logging.getLogger(__name__)


@dataclass
class OrderRequest:
    symbol: str
    side: str
    quantity: float
    price: float
    stop_limit: Optional[float] = None
    trailing_stop_pct: Optional[float] = None


def validate_order_request(request: OrderRequest) -> OrderRequest:
    """Check an order request, returning it with the symbol normalized"""
    symbol = (request.symbol or "").upper()
    if symbol not in settings.supported_coins:
        raise ValidationError("Invalid coin symbol")
    if request.side not in ORDER_SIDES:
        raise ValidationError("Transaction type must be buy or sell")
    if request.quantity is None or request.quantity < MIN_ORDER_QUANTITY:
        raise ValidationError("Quantity must be a positive number")
    if request.price is None or request.price < 0:
        raise ValidationError("Price must be a positive number")
    if request.stop_limit is not None and request.stop_limit < 0:
        raise ValidationError("Stop limit must be a positive number")
    if request.trailing_stop_pct is not None and not (0 <= request.trailing_stop_pct <= MAX_TRAILING_STOP_PCT):
        raise ValidationError("Trailing stop percentage must be between 0 and 100")

    request.symbol = symbol
    return request


async def create_order(
    user_id: int,
    request: OrderRequest,
    session_maker: Callable[[], AsyncSession] = async_session_maker,
    locks: Optional[PortfolioLocks] = None,
) -> Order:
    """
    Place a buy or sell and apply it to the portfolio in one transaction.

    Buys stay open (stop fields apply only to them); sells are filled
    immediately and recorded closed.
    """
    request = validate_order_request(request)
    locks = locks or portfolio_locks

    async with locks.lock(user_id, request.symbol):
        async with session_maker() as db:
            try:
                if request.side == SIDE_SELL:
                    holding = await get_holding(db, user_id, request.symbol, for_update=True)
                    if holding is None or holding.quantity < request.quantity:
                        raise InsufficientBalanceError()

                is_buy = request.side == SIDE_BUY
                order = Order(
                    user_id=user_id,
                    symbol=request.symbol,
                    side=request.side,
                    quantity=request.quantity,
                    price=request.price,
                    stop_limit=request.stop_limit if is_buy else None,
                    trailing_stop_pct=request.trailing_stop_pct if is_buy else None,
                    status=STATUS_OPEN if is_buy else STATUS_CLOSED,
                )
                db.add(order)
                await db.flush()

                if is_buy:
                    await apply_buy(db, user_id, request.symbol, request.quantity, request.price)
                else:
                    await apply_sell(db, user_id, request.symbol, request.quantity)

                db.add(
                    AuditLog(
                        user_id=user_id,
                        order_id=order.id,
                        action=ACTION_CREATE,
                        message=(
                            f"Created {request.side} transaction for {format_amount(request.quantity)} "
                            f"{request.symbol} at ${format_amount(request.price)}"
                        ),
                    )
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    logger.info(f"User {user_id} {request.side} {request.quantity} {request.symbol} at ${request.price} (order {order.id})")
    return order


async def sell_order(
    user_id: int,
    order_id: int,
    price: float,
    session_maker: Callable[[], AsyncSession] = async_session_maker,
    locks: Optional[PortfolioLocks] = None,
) -> Order:
    """
    Explicitly sell an open buy order at *price*.

    Closes the buy order, records a closed sell for the same quantity and
    reduces the holding. Fails with NotFoundError if the order does not
    belong to the user or is no longer open (e.g. already liquidated).
    """
    if price is None or price < 0:
        raise ValidationError("Price must be a positive number")
    locks = locks or portfolio_locks

    async with session_maker() as db:
        original = await db.get(Order, order_id)
        if original is None or original.user_id != user_id:
            raise NotFoundError(f"Order {order_id} not found")
        symbol = original.symbol

    async with locks.lock(user_id, symbol):
        async with session_maker() as db:
            try:
                query = select(Order).where(Order.id == order_id).with_for_update()
                original = (await db.execute(query)).scalars().first()
                if original is None or original.status != STATUS_OPEN or original.side != SIDE_BUY:
                    raise NotFoundError(f"Order {order_id} is not an open buy order")

                sale = Order(
                    user_id=user_id,
                    symbol=symbol,
                    side=SIDE_SELL,
                    quantity=original.quantity,
                    price=price,
                    status=STATUS_CLOSED,
                )
                db.add(sale)
                await db.flush()

                original.status = STATUS_CLOSED
                await apply_sell(db, user_id, symbol, original.quantity)

                db.add(
                    AuditLog(
                        user_id=user_id,
                        order_id=sale.id,
                        action=ACTION_MANUAL_SELL,
                        message=(
                            f"Sold {format_amount(original.quantity)} {symbol} at ${format_amount(price)} "
                            f"(closed order {order_id})"
                        ),
                    )
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    logger.info(f"User {user_id} manually sold order {order_id} at ${price} (sell order {sale.id})")
    return sale


async def list_orders(
    db: AsyncSession,
    user_id: int,
    status: Optional[str] = None,
    symbol: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Order]:
    """User's orders, newest first"""
    query = select(Order).where(Order.user_id == user_id)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query = query.where(Order.status == status)
    if symbol:
        query = query.where(Order.symbol == symbol.upper())

    query = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_portfolio(db: AsyncSession, user_id: int, prices: Dict[str, float]) -> List[dict]:
    """Holdings valued at the given prices (missing prices count as 0)"""
    query = select(PortfolioHolding).where(PortfolioHolding.user_id == user_id).order_by(PortfolioHolding.symbol)
    holdings = (await db.execute(query)).scalars().all()

    portfolio = []
    for holding in holdings:
        current_price = prices.get(holding.symbol, 0.0)
        portfolio.append({
            "symbol": holding.symbol,
            "quantity": holding.quantity,
            "avg_price": holding.avg_price,
            "current_price": current_price,
            "current_value": current_price * holding.quantity,
            "unrealized_pl": (current_price - holding.avg_price) * holding.quantity,
        })
    return portfolio


async def get_trading_stats(db: AsyncSession, user_id: Optional[int] = None) -> dict:
    """Order counts by side/status, plus bought/sold totals"""
    notional = Order.quantity * Order.price
    query = select(
        func.count(Order.id),
        func.count(case((Order.side == SIDE_BUY, 1))),
        func.count(case((Order.side == SIDE_SELL, 1))),
        func.count(case((Order.status == STATUS_OPEN, 1))),
        func.count(case((Order.status == STATUS_CLOSED, 1))),
        func.coalesce(func.sum(case((Order.side == SIDE_BUY, notional), else_=0.0)), 0.0),
        func.coalesce(func.sum(case((Order.side == SIDE_SELL, notional), else_=0.0)), 0.0),
    )
    if user_id is not None:
        query = query.where(Order.user_id == user_id)

    row = (await db.execute(query)).one()
    return {
        "total_transactions": row[0],
        "buy_transactions": row[1],
        "sell_transactions": row[2],
        "open_transactions": row[3],
        "closed_transactions": row[4],
        "total_bought": float(row[5]),
        "total_sold": float(row[6]),
    }
