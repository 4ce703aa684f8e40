"""
Tests for backend/cryptodash/services/trade_service.py

Covers: validate_order_request, create_order, sell_order, list_orders,
        get_portfolio, get_trading_stats
"""

import pytest
from sqlalchemy import select

from cryptodash.constants import ACTION_CREATE, ACTION_MANUAL_SELL
from cryptodash.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from cryptodash.models import AuditLog, Order
from cryptodash.services.trade_service import (
    OrderRequest,
    get_portfolio,
    get_trading_stats,
    list_orders,
    sell_order,
    validate_order_request,
)
from cryptodash.trading_engine.portfolio import PortfolioLocks, get_holding


def _request(**overrides) -> OrderRequest:
    values = dict(symbol="BTC", side="buy", quantity=1.0, price=40000.0)
    values.update(overrides)
    return OrderRequest(**values)


class TestValidateOrderRequest:
    def test_normalizes_symbol(self):
        assert validate_order_request(_request(symbol="eth")).symbol == "ETH"

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"symbol": "DOGE"}, "Invalid coin symbol"),
            ({"side": "short"}, "Transaction type must be buy or sell"),
            ({"quantity": 0.0}, "Quantity must be a positive number"),
            ({"price": -1.0}, "Price must be a positive number"),
            ({"stop_limit": -5.0}, "Stop limit must be a positive number"),
            ({"trailing_stop_pct": 101.0}, "Trailing stop percentage must be between 0 and 100"),
            ({"trailing_stop_pct": -1.0}, "Trailing stop percentage must be between 0 and 100"),
        ],
    )
    def test_rejects_invalid_input(self, overrides, message):
        with pytest.raises(ValidationError, match=message):
            validate_order_request(_request(**overrides))

    def test_accepts_boundary_values(self):
        request = validate_order_request(
            _request(quantity=0.00000001, price=0.0, stop_limit=0.0, trailing_stop_pct=100.0)
        )
        assert request.trailing_stop_pct == 100.0


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_buy_is_open_and_updates_portfolio(self, session_maker, make_user, place_order):
        await make_user(1)

        order = await place_order(symbol="BTC", quantity=2.0, price=40000.0, stop_limit=38000.0)

        assert order.status == "open"
        assert order.stop_limit == 38000.0
        async with session_maker() as db:
            holding = await get_holding(db, 1, "BTC")
            logs = (await db.execute(select(AuditLog))).scalars().all()

        assert holding.quantity == pytest.approx(2.0)
        assert holding.avg_price == pytest.approx(40000.0)
        assert len(logs) == 1
        assert logs[0].action == ACTION_CREATE
        assert logs[0].order_id == order.id
        assert logs[0].message == "Created buy transaction for 2 BTC at $40000"

    @pytest.mark.asyncio
    async def test_sell_is_closed_and_ignores_stop_fields(self, session_maker, make_user, place_order):
        await make_user(1)
        await place_order(symbol="ETH", quantity=3.0, price=2000.0)

        sale = await place_order(symbol="ETH", side="sell", quantity=1.0, price=2100.0, stop_limit=1500.0)

        assert sale.status == "closed"
        assert sale.stop_limit is None
        async with session_maker() as db:
            holding = await get_holding(db, 1, "ETH")
        assert holding.quantity == pytest.approx(2.0)
        assert holding.avg_price == pytest.approx(2000.0)

    @pytest.mark.asyncio
    async def test_sell_without_enough_holdings_rejected(self, session_maker, make_user, place_order):
        await make_user(1)
        await place_order(symbol="BTC", quantity=1.0, price=40000.0)

        with pytest.raises(InsufficientBalanceError):
            await place_order(symbol="BTC", side="sell", quantity=2.0, price=41000.0)

        async with session_maker() as db:
            orders = (await db.execute(select(Order))).scalars().all()
        assert len(orders) == 1

    @pytest.mark.asyncio
    async def test_sell_with_no_holding_rejected(self, make_user, place_order):
        await make_user(1)

        with pytest.raises(InsufficientBalanceError):
            await place_order(symbol="XRP", side="sell", quantity=1.0, price=0.5)


class TestSellOrder:
    @pytest.mark.asyncio
    async def test_closes_buy_and_records_sale(self, session_maker, make_user, place_order):
        await make_user(1)
        order = await place_order(symbol="BTC", quantity=1.0, price=40000.0, trailing_stop_pct=5.0)

        sale = await sell_order(1, order.id, 45000.0, session_maker=session_maker, locks=PortfolioLocks())

        assert sale.side == "sell"
        assert sale.status == "closed"
        assert sale.quantity == pytest.approx(1.0)
        async with session_maker() as db:
            original = await db.get(Order, order.id)
            holding = await get_holding(db, 1, "BTC")
            log = (
                await db.execute(select(AuditLog).where(AuditLog.action == ACTION_MANUAL_SELL))
            ).scalars().one()

        assert original.status == "closed"
        assert holding is None
        assert log.order_id == sale.id

    @pytest.mark.asyncio
    async def test_other_users_order_not_found(self, session_maker, make_user, place_order):
        await make_user(1)
        await make_user(2)
        order = await place_order(user_id=1, symbol="BTC", quantity=1.0, price=40000.0)

        with pytest.raises(NotFoundError):
            await sell_order(2, order.id, 41000.0, session_maker=session_maker, locks=PortfolioLocks())

    @pytest.mark.asyncio
    async def test_closed_order_cannot_be_sold_again(self, session_maker, make_user, place_order):
        await make_user(1)
        order = await place_order(symbol="BTC", quantity=1.0, price=40000.0)
        locks = PortfolioLocks()
        await sell_order(1, order.id, 41000.0, session_maker=session_maker, locks=locks)

        with pytest.raises(NotFoundError):
            await sell_order(1, order.id, 41000.0, session_maker=session_maker, locks=locks)

    @pytest.mark.asyncio
    async def test_missing_order_not_found(self, session_maker, make_user):
        await make_user(1)

        with pytest.raises(NotFoundError):
            await sell_order(1, 999, 41000.0, session_maker=session_maker, locks=PortfolioLocks())


class TestReadModels:
    @pytest.mark.asyncio
    async def test_list_orders_newest_first_with_filters(self, session_maker, make_user, place_order):
        await make_user(1)
        first = await place_order(symbol="BTC", quantity=1.0, price=40000.0)
        second = await place_order(symbol="ETH", quantity=1.0, price=2000.0)
        third = await place_order(symbol="BTC", side="sell", quantity=0.5, price=41000.0)

        async with session_maker() as db:
            everything = await list_orders(db, 1)
            open_btc = await list_orders(db, 1, status="open", symbol="btc")
            paged = await list_orders(db, 1, limit=1, offset=1)

        assert [o.id for o in everything] == [third.id, second.id, first.id]
        assert [o.id for o in open_btc] == [first.id]
        assert [o.id for o in paged] == [second.id]

    @pytest.mark.asyncio
    async def test_list_orders_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            await list_orders(db_session, 1, status="pending")

    @pytest.mark.asyncio
    async def test_portfolio_valuation(self, session_maker, make_user, place_order):
        await make_user(1)
        await place_order(symbol="BTC", quantity=2.0, price=40000.0)
        await place_order(symbol="ETH", quantity=1.0, price=2000.0)

        async with session_maker() as db:
            portfolio = await get_portfolio(db, 1, {"BTC": 41000.0})

        btc, eth = portfolio
        assert btc["symbol"] == "BTC"
        assert btc["current_value"] == pytest.approx(82000.0)
        assert btc["unrealized_pl"] == pytest.approx(2000.0)
        assert eth["current_price"] == 0.0

    @pytest.mark.asyncio
    async def test_trading_stats(self, session_maker, make_user, place_order):
        await make_user(1)
        await make_user(2)
        await place_order(user_id=1, symbol="BTC", quantity=1.0, price=40000.0)
        await place_order(user_id=1, symbol="BTC", side="sell", quantity=0.5, price=42000.0)
        await place_order(user_id=2, symbol="ETH", quantity=2.0, price=2000.0)

        async with session_maker() as db:
            overall = await get_trading_stats(db)
            user_one = await get_trading_stats(db, user_id=1)

        assert overall == {
            "total_transactions": 3,
            "buy_transactions": 2,
            "sell_transactions": 1,
            "open_transactions": 2,
            "closed_transactions": 1,
            "total_bought": pytest.approx(44000.0),
            "total_sold": pytest.approx(21000.0),
        }
        assert user_one["total_transactions"] == 2
        assert user_one["total_bought"] == pytest.approx(40000.0)

    @pytest.mark.asyncio
    async def test_trading_stats_empty(self, db_session):
        stats = await get_trading_stats(db_session)

        assert stats["total_transactions"] == 0
        assert stats["total_bought"] == 0.0
