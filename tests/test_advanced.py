from __future__ import annotations

from decimal import Decimal
from typing import List

import pytest

from binance_futures.api.advanced import AdvancedTradingApi, BracketOrderConfig
from binance_futures.common.errors import InvalidParameterError
from binance_futures.common.schema import NewOrderRequest, Order, OrderSide, OrderType, PositionSide


class FakeTrading:
    def __init__(self, open_orders=None):
        self.placed: List[NewOrderRequest] = []
        self.calls: List[str] = []
        self._open = open_orders or []

    async def new_order(self, order: NewOrderRequest) -> Order:
        self.placed.append(order)
        self.calls.append("new_order")
        return Order(
            order_id=len(self.placed),
            symbol=order.symbol,
            status="NEW",
            client_order_id=f"c{len(self.placed)}",
            type=order.order_type,
            side=order.side,
        )

    async def open_orders(self, symbol=None):
        self.calls.append("open_orders")
        return list(self._open)

    async def cancel_all_orders(self, symbol):
        self.calls.append("cancel_all_orders")


@pytest.mark.asyncio
async def test_stop_loss_market_without_limit_price():
    trading = FakeTrading()
    await AdvancedTradingApi(trading).stop_loss_order("BTCUSDT", OrderSide.SELL, Decimal("1"), Decimal("39000"))
    assert trading.placed[0].order_type is OrderType.STOP_MARKET
    assert trading.placed[0].price is None


@pytest.mark.asyncio
async def test_stop_loss_limit_with_price():
    trading = FakeTrading()
    await AdvancedTradingApi(trading).stop_loss_order(
        "BTCUSDT", OrderSide.SELL, Decimal("1"), Decimal("39000"), price=Decimal("38990")
    )
    params = trading.placed[0].to_params()
    assert params["type"] == "STOP"
    assert params["stopPrice"] == "39000"
    assert params["price"] == "38990"
    assert params["timeInForce"] == "GTC"


@pytest.mark.asyncio
async def test_take_profit_variants():
    trading = FakeTrading()
    api = AdvancedTradingApi(trading)
    await api.take_profit_order("BTCUSDT", OrderSide.SELL, Decimal("1"), Decimal("42000"))
    await api.take_profit_order("BTCUSDT", OrderSide.SELL, Decimal("1"), Decimal("42000"), price=Decimal("42010"))
    assert [o.order_type for o in trading.placed] == [OrderType.TAKE_PROFIT_MARKET, OrderType.TAKE_PROFIT]


@pytest.mark.asyncio
@pytest.mark.parametrize("rate", ["0.05", "10.5"])
async def test_trailing_stop_rate_bounds(rate):
    trading = FakeTrading()
    with pytest.raises(InvalidParameterError):
        await AdvancedTradingApi(trading).trailing_stop_order("BTCUSDT", OrderSide.SELL, Decimal("1"), Decimal(rate))
    assert trading.placed == []


@pytest.mark.asyncio
async def test_trailing_stop_params():
    trading = FakeTrading()
    await AdvancedTradingApi(trading).trailing_stop_order(
        "BTCUSDT", OrderSide.SELL, Decimal("1"), Decimal("1.5"), activation_price=Decimal("41000")
    )
    params = trading.placed[0].to_params()
    assert params["type"] == "TRAILING_STOP_MARKET"
    assert params["callbackRate"] == "1.5"
    assert params["activationPrice"] == "41000"


@pytest.mark.asyncio
async def test_bracket_exits_on_opposite_side_reduce_only():
    trading = FakeTrading()
    cfg = BracketOrderConfig(
        symbol="BTCUSDT",
        side=OrderSide.BUY,
        quantity=Decimal("0.5"),
        stop_loss_price=Decimal("39000"),
        take_profit_price=Decimal("42000"),
    )
    result = await AdvancedTradingApi(trading).bracket_order(cfg)
    entry, sl, tp = trading.placed
    assert entry.order_type is OrderType.MARKET and entry.side is OrderSide.BUY
    assert sl.order_type is OrderType.STOP_MARKET and sl.side is OrderSide.SELL
    assert tp.order_type is OrderType.TAKE_PROFIT_MARKET and tp.side is OrderSide.SELL
    assert sl.reduce_only is True and tp.reduce_only is True
    assert result.entry.order_id == 1 and result.take_profit.order_id == 3


@pytest.mark.asyncio
async def test_bracket_hedge_mode_omits_reduce_only():
    trading = FakeTrading()
    cfg = BracketOrderConfig(
        symbol="BTCUSDT",
        side=OrderSide.SELL,
        quantity=Decimal("1"),
        entry_type=OrderType.LIMIT,
        entry_price=Decimal("40500"),
        stop_loss_price=Decimal("41000"),
        take_profit_price=Decimal("39000"),
        position_side=PositionSide.SHORT,
    )
    await AdvancedTradingApi(trading).bracket_order(cfg)
    _, sl, tp = trading.placed
    assert sl.side is OrderSide.BUY
    assert "reduceOnly" not in sl.to_params()
    assert tp.to_params()["positionSide"] == "SHORT"


def test_bracket_config_validation():
    with pytest.raises(ValueError):
        BracketOrderConfig(
            symbol="BTCUSDT",
            side=OrderSide.BUY,
            quantity=Decimal("1"),
            entry_type=OrderType.LIMIT,
            stop_loss_price=Decimal("1"),
            take_profit_price=Decimal("2"),
        )
    with pytest.raises(ValueError):
        BracketOrderConfig(
            symbol="BTCUSDT",
            side=OrderSide.BUY,
            quantity=Decimal("1"),
            entry_type=OrderType.STOP_MARKET,
            stop_loss_price=Decimal("1"),
            take_profit_price=Decimal("2"),
        )


@pytest.mark.asyncio
async def test_oco_places_limit_and_stop_same_side():
    trading = FakeTrading()
    res = await AdvancedTradingApi(trading).oco_order(
        "BTCUSDT", OrderSide.SELL, Decimal("1"), Decimal("42000"), Decimal("39000")
    )
    limit, stop = trading.placed
    assert limit.order_type is OrderType.LIMIT and stop.order_type is OrderType.STOP_MARKET
    assert limit.side is stop.side is OrderSide.SELL
    assert limit.reduce_only is True and stop.reduce_only is True
    assert res.stop_order.order_id == 2


@pytest.mark.asyncio
async def test_replace_all_orders_cancels_then_places():
    existing = Order(order_id=77, symbol="BTCUSDT", status="NEW", client_order_id="old", type="LIMIT", side="BUY")
    trading = FakeTrading(open_orders=[existing])
    new = NewOrderRequest(
        symbol="BTCUSDT", side=OrderSide.BUY, order_type=OrderType.LIMIT, quantity=Decimal("1"), price=Decimal("100")
    )
    res = await AdvancedTradingApi(trading).replace_all_orders("BTCUSDT", [new, new])
    assert trading.calls == ["open_orders", "cancel_all_orders", "new_order", "new_order"]
    assert [o.order_id for o in res.cancelled] == [77]
    assert len(res.placed) == 2


@pytest.mark.asyncio
async def test_replace_all_orders_rejects_foreign_symbol():
    trading = FakeTrading()
    other = NewOrderRequest(symbol="ETHUSDT", side=OrderSide.BUY, order_type=OrderType.MARKET, quantity=Decimal("1"))
    with pytest.raises(InvalidParameterError):
        await AdvancedTradingApi(trading).replace_all_orders("BTCUSDT", [other])
    assert trading.calls == []
