from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from ..common.errors import InvalidParameterError
from ..common.logging import get_logger
from ..common.schema import NewOrderRequest, Order, OrderSide, OrderType, PositionSide
from .trading import TradingApi

log = get_logger("advanced")


def build_order(**fields: Any) -> NewOrderRequest:
    try:
        return NewOrderRequest(**fields)
    except ValidationError as e:
        raise InvalidParameterError(str(e)) from e


class BracketOrderConfig(BaseModel):
    """Entry order plus a protective stop loss and a take profit on the opposite side."""

    model_config = ConfigDict(extra="forbid", frozen=True)
    symbol: str
    side: OrderSide
    quantity: Decimal
    entry_type: OrderType = OrderType.MARKET
    entry_price: Optional[Decimal] = None
    stop_loss_price: Decimal
    stop_loss_limit_price: Optional[Decimal] = None
    take_profit_price: Decimal
    take_profit_limit_price: Optional[Decimal] = None
    position_side: Optional[PositionSide] = None

    @model_validator(mode="after")
    def validate_prices(self):
        if self.entry_type not in (OrderType.MARKET, OrderType.LIMIT):
            raise ValueError("entry_type must be MARKET or LIMIT")
        if self.entry_type is OrderType.LIMIT and self.entry_price is None:
            raise ValueError("LIMIT entry requires entry_price")
        return self

    @property
    def exit_side(self) -> OrderSide:
        return self.side.opposite()


@dataclass
class BracketOrderResult:
    entry: Order
    stop_loss: Order
    take_profit: Order


@dataclass
class OcoOrderResult:
    limit_order: Order
    stop_order: Order


@dataclass
class ReplaceOrdersResult:
    cancelled: List[Order] = field(default_factory=list)
    placed: List[Order] = field(default_factory=list)


def _exit_reduce_only(position_side: Optional[PositionSide]) -> Optional[bool]:
    # hedge mode rejects reduceOnly; exits are implied by positionSide there
    return None if position_side not in (None, PositionSide.BOTH) else True


class AdvancedTradingApi:
    def __init__(self, trading: TradingApi) -> None:
        self.trading = trading

    async def stop_loss_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        stop_price: Decimal,
        *,
        price: Optional[Decimal] = None,
        position_side: Optional[PositionSide] = None,
        reduce_only: Optional[bool] = None,
    ) -> Order:
        order = build_order(
            symbol=symbol,
            side=side,
            order_type=OrderType.STOP if price is not None else OrderType.STOP_MARKET,
            quantity=quantity,
            stop_price=stop_price,
            price=price,
            position_side=position_side,
            reduce_only=reduce_only,
        )
        return await self.trading.new_order(order)

    async def take_profit_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        stop_price: Decimal,
        *,
        price: Optional[Decimal] = None,
        position_side: Optional[PositionSide] = None,
        reduce_only: Optional[bool] = None,
    ) -> Order:
        order = build_order(
            symbol=symbol,
            side=side,
            order_type=OrderType.TAKE_PROFIT if price is not None else OrderType.TAKE_PROFIT_MARKET,
            quantity=quantity,
            stop_price=stop_price,
            price=price,
            position_side=position_side,
            reduce_only=reduce_only,
        )
        return await self.trading.new_order(order)

    async def trailing_stop_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        callback_rate: Decimal,
        *,
        activation_price: Optional[Decimal] = None,
        position_side: Optional[PositionSide] = None,
    ) -> Order:
        # exchange accepts callbackRate in [0.1, 10] percent
        if not Decimal("0.1") <= Decimal(str(callback_rate)) <= Decimal("10"):
            raise InvalidParameterError("callback_rate must be between 0.1 and 10")
        order = build_order(
            symbol=symbol,
            side=side,
            order_type=OrderType.TRAILING_STOP_MARKET,
            quantity=quantity,
            callback_rate=callback_rate,
            activation_price=activation_price,
            position_side=position_side,
        )
        return await self.trading.new_order(order)

    async def bracket_order(self, cfg: BracketOrderConfig) -> BracketOrderResult:
        reduce_only = _exit_reduce_only(cfg.position_side)
        entry = await self.trading.new_order(
            build_order(
                symbol=cfg.symbol,
                side=cfg.side,
                order_type=cfg.entry_type,
                quantity=cfg.quantity,
                price=cfg.entry_price,
                position_side=cfg.position_side,
            )
        )
        stop_loss = await self.stop_loss_order(
            cfg.symbol,
            cfg.exit_side,
            cfg.quantity,
            cfg.stop_loss_price,
            price=cfg.stop_loss_limit_price,
            position_side=cfg.position_side,
            reduce_only=reduce_only,
        )
        take_profit = await self.take_profit_order(
            cfg.symbol,
            cfg.exit_side,
            cfg.quantity,
            cfg.take_profit_price,
            price=cfg.take_profit_limit_price,
            position_side=cfg.position_side,
            reduce_only=reduce_only,
        )
        log.info("bracket_placed", symbol=cfg.symbol, entry_id=entry.order_id)
        return BracketOrderResult(entry=entry, stop_loss=stop_loss, take_profit=take_profit)

    async def oco_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal,
        stop_price: Decimal,
        *,
        stop_limit_price: Optional[Decimal] = None,
        position_side: Optional[PositionSide] = None,
    ) -> OcoOrderResult:
        """Two exits on the same side: a limit order and a stop.

        Futures has no native OCO; whichever fills first does not cancel the
        other, so callers watch the user-data stream and cancel the survivor.
        """
        reduce_only = _exit_reduce_only(position_side)
        limit_order = await self.trading.new_order(
            build_order(
                symbol=symbol,
                side=side,
                order_type=OrderType.LIMIT,
                quantity=quantity,
                price=price,
                position_side=position_side,
                reduce_only=reduce_only,
            )
        )
        stop_order = await self.stop_loss_order(
            symbol,
            side,
            quantity,
            stop_price,
            price=stop_limit_price,
            position_side=position_side,
            reduce_only=reduce_only,
        )
        return OcoOrderResult(limit_order=limit_order, stop_order=stop_order)

    async def replace_all_orders(self, symbol: str, orders: Sequence[NewOrderRequest]) -> ReplaceOrdersResult:
        for o in orders:
            if o.symbol != symbol:
                raise InvalidParameterError(f"order for {o.symbol} passed to replace_all_orders({symbol})")
        cancelled = await self.trading.open_orders(symbol)
        await self.trading.cancel_all_orders(symbol)
        result = ReplaceOrdersResult(cancelled=list(cancelled))
        for o in orders:
            result.placed.append(await self.trading.new_order(o))
        log.info("orders_replaced", symbol=symbol, cancelled=len(result.cancelled), placed=len(result.placed))
        return result
