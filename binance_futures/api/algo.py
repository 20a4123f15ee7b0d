from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..common.errors import AlgoExecutionError, BinanceError, InvalidParameterError
from ..common.logging import get_logger
from ..common.schema import KlineInterval, Order, OrderSide, OrderType, PositionSide
from ..common.utils import format_decimal
from .account import AccountApi
from .advanced import build_order
from .market import MarketApi
from .trading import TradingApi

log = get_logger("algo")


class DcaConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    symbol: str
    side: OrderSide
    total_quantity: Decimal = Field(gt=0)
    order_count: int = Field(gt=0)
    interval_sec: float = Field(ge=0)
    # skip a slice when last price strays this far (fraction) from the 24h weighted average
    price_deviation_threshold: Optional[float] = Field(default=None, gt=0)
    position_side: Optional[PositionSide] = None
    quantity_precision: int = 3


class GridConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    symbol: str
    lower_price: Decimal = Field(gt=0)
    upper_price: Decimal = Field(gt=0)
    grid_count: int = Field(gt=0)
    quantity_per_grid: Decimal = Field(gt=0)
    position_side: Optional[PositionSide] = None
    price_precision: int = 2

    @model_validator(mode="after")
    def validate_range(self):
        if self.upper_price <= self.lower_price:
            raise ValueError("upper_price must be above lower_price")
        return self


class TwapConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    symbol: str
    side: OrderSide
    total_quantity: Decimal = Field(gt=0)
    duration_sec: float = Field(ge=0)
    slices: int = Field(gt=0)
    position_side: Optional[PositionSide] = None
    quantity_precision: int = 3


class VwapConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    symbol: str
    side: OrderSide
    total_quantity: Decimal = Field(gt=0)
    duration_sec: float = Field(ge=0)
    max_slices: int = Field(gt=0)
    participation_rate: float = Field(gt=0, le=1)
    volume_lookback: int = Field(default=5, gt=0)
    position_side: Optional[PositionSide] = None
    quantity_precision: int = 3


class PositionSizingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    symbol: str
    risk_percentage: float = Field(gt=0, le=1)
    stop_loss_price: float = Field(gt=0)
    take_profit_price: float = Field(gt=0)
    max_position_size: float = Field(gt=0)


@dataclass
class SliceFill:
    slice_number: int
    order_id: int
    price: float
    quantity: float
    timestamp: int
    market_volume: Optional[float] = None


@dataclass
class DcaResult:
    orders: List[SliceFill]
    skipped: int
    total_executed_amount: float


@dataclass
class GridLevel:
    level: int
    buy_price: Decimal
    sell_price: Decimal


@dataclass
class GridOrderPair:
    level: int
    buy_order_id: int
    sell_order_id: int
    buy_price: Decimal
    sell_price: Decimal


@dataclass
class GridResult:
    levels: List[GridLevel]
    orders: List[GridOrderPair]
    total_capital: Decimal


@dataclass
class TwapResult:
    orders: List[SliceFill]
    average_price: float
    total_executed_quantity: float


@dataclass
class VwapResult:
    orders: List[SliceFill]
    vwap_price: float
    total_executed_quantity: float
    remaining_quantity: Decimal


@dataclass
class PositionSizeResult:
    recommended_size: float
    risk_amount: float
    current_price: float
    stop_distance: float
    risk_reward_ratio: float


def grid_levels(cfg: GridConfig) -> List[GridLevel]:
    step = (cfg.upper_price - cfg.lower_price) / cfg.grid_count
    half = step / 2
    levels = []
    for i in range(cfg.grid_count):
        price = cfg.lower_price + step * i
        levels.append(
            GridLevel(
                level=i + 1,
                buy_price=Decimal(format_decimal(price - half, cfg.price_precision)),
                sell_price=Decimal(format_decimal(price + half, cfg.price_precision)),
            )
        )
    return levels


def weighted_price(fills: List[SliceFill]) -> float:
    qty = sum(f.quantity for f in fills)
    if qty <= 0:
        return 0.0
    return sum(f.price * f.quantity for f in fills) / qty


def risk_reward_ratio(entry: float, stop_loss: float, take_profit: float) -> float:
    risk = abs(entry - stop_loss)
    if risk <= 0:
        return 0.0
    return abs(take_profit - entry) / risk


def _slice_quantity(total: Decimal, parts: int, precision: int) -> str:
    qty = format_decimal(total / parts, precision)
    if Decimal(qty) <= 0:
        raise InvalidParameterError(f"slice quantity rounds to zero at precision {precision}")
    return qty


def _fill(n: int, order: Order, market_volume: Optional[float] = None) -> SliceFill:
    qty = order.executed_qty or order.orig_qty
    return SliceFill(
        slice_number=n,
        order_id=order.order_id,
        price=order.fill_price,
        quantity=qty,
        timestamp=order.update_time,
        market_volume=market_volume,
    )


class AlgoTradingApi:
    """Order sequencing helpers built on plain market and limit orders.

    Slices are paced with ``sleep`` (first slice fires immediately). There is
    no slippage control or partial-fill recovery: a failed slice stops the run
    and raises ``AlgoExecutionError`` with the slices placed so far.
    """

    def __init__(
        self,
        trading: TradingApi,
        market: MarketApi,
        account: AccountApi,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.trading = trading
        self.market = market
        self.account = account
        self._sleep = sleep

    async def _market_order(
        self, symbol: str, side: OrderSide, quantity: str, position_side: Optional[PositionSide]
    ) -> Order:
        order = build_order(
            symbol=symbol, side=side, order_type=OrderType.MARKET, quantity=quantity, position_side=position_side
        )
        return await self.trading.new_order(order)

    async def _limit_order(
        self, symbol: str, side: OrderSide, quantity: Decimal, price: Decimal, position_side: Optional[PositionSide]
    ) -> Order:
        order = build_order(
            symbol=symbol,
            side=side,
            order_type=OrderType.LIMIT,
            quantity=quantity,
            price=price,
            position_side=position_side,
        )
        return await self.trading.new_order(order)

    async def should_skip(self, symbol: str, threshold: float) -> bool:
        tickers = await self.market.ticker_24hr(symbol)
        if not tickers or tickers[0].weighted_avg_price <= 0:
            return False
        t = tickers[0]
        deviation = abs(t.last_price - t.weighted_avg_price) / t.weighted_avg_price
        return deviation > threshold

    async def dca(self, cfg: DcaConfig) -> DcaResult:
        qty = _slice_quantity(cfg.total_quantity, cfg.order_count, cfg.quantity_precision)
        fills: List[SliceFill] = []
        skipped = 0
        for i in range(cfg.order_count):
            if i:
                await self._sleep(cfg.interval_sec)
            try:
                if cfg.price_deviation_threshold is not None and await self.should_skip(
                    cfg.symbol, cfg.price_deviation_threshold
                ):
                    skipped += 1
                    log.info("dca_slice_skipped", symbol=cfg.symbol, slice=i + 1)
                    continue
                order = await self._market_order(cfg.symbol, cfg.side, qty, cfg.position_side)
            except BinanceError as e:
                raise AlgoExecutionError(f"DCA slice {i + 1}/{cfg.order_count} failed: {e}", fills) from e
            fills.append(_fill(i + 1, order))
        total = sum(f.price * f.quantity for f in fills)
        log.info("dca_done", symbol=cfg.symbol, orders=len(fills), skipped=skipped)
        return DcaResult(orders=fills, skipped=skipped, total_executed_amount=total)

    async def grid(self, cfg: GridConfig) -> GridResult:
        levels = grid_levels(cfg)
        pairs: List[GridOrderPair] = []
        for lv in levels:
            try:
                buy = await self._limit_order(cfg.symbol, OrderSide.BUY, cfg.quantity_per_grid, lv.buy_price, cfg.position_side)
                sell = await self._limit_order(
                    cfg.symbol, OrderSide.SELL, cfg.quantity_per_grid, lv.sell_price, cfg.position_side
                )
            except BinanceError as e:
                raise AlgoExecutionError(f"grid level {lv.level} failed: {e}", pairs) from e
            pairs.append(
                GridOrderPair(
                    level=lv.level,
                    buy_order_id=buy.order_id,
                    sell_order_id=sell.order_id,
                    buy_price=lv.buy_price,
                    sell_price=lv.sell_price,
                )
            )
        capital = sum((lv.buy_price * cfg.quantity_per_grid for lv in levels), Decimal(0))
        return GridResult(levels=levels, orders=pairs, total_capital=capital)

    async def twap(self, cfg: TwapConfig) -> TwapResult:
        qty = _slice_quantity(cfg.total_quantity, cfg.slices, cfg.quantity_precision)
        pause = cfg.duration_sec / cfg.slices
        fills: List[SliceFill] = []
        for i in range(cfg.slices):
            if i:
                await self._sleep(pause)
            try:
                order = await self._market_order(cfg.symbol, cfg.side, qty, cfg.position_side)
            except BinanceError as e:
                raise AlgoExecutionError(f"TWAP slice {i + 1}/{cfg.slices} failed: {e}", fills) from e
            fills.append(_fill(i + 1, order))
        return TwapResult(
            orders=fills,
            average_price=weighted_price(fills),
            total_executed_quantity=sum(f.quantity for f in fills),
        )

    async def recent_volume(self, symbol: str, lookback: int) -> float:
        klines = await self.market.klines(symbol, KlineInterval.M1, limit=lookback)
        return sum(k.volume for k in klines)

    async def vwap(self, cfg: VwapConfig) -> VwapResult:
        remaining = cfg.total_quantity
        pause = cfg.duration_sec / cfg.max_slices
        fills: List[SliceFill] = []
        for i in range(cfg.max_slices):
            if remaining <= 0:
                break
            if i:
                await self._sleep(pause)
            try:
                volume = await self.recent_volume(cfg.symbol, cfg.volume_lookback)
                cap = Decimal(str(volume)) * Decimal(str(cfg.participation_rate))
                qty = Decimal(format_decimal(min(remaining, cap), cfg.quantity_precision))
                if qty <= 0:
                    continue
                order = await self._market_order(cfg.symbol, cfg.side, format_decimal(qty, cfg.quantity_precision), cfg.position_side)
            except BinanceError as e:
                raise AlgoExecutionError(f"VWAP slice {i + 1}/{cfg.max_slices} failed: {e}", fills) from e
            fill = _fill(i + 1, order, market_volume=volume)
            remaining -= Decimal(str(fill.quantity))
            fills.append(fill)
        return VwapResult(
            orders=fills,
            vwap_price=weighted_price(fills),
            total_executed_quantity=sum(f.quantity for f in fills),
            remaining_quantity=max(remaining, Decimal(0)),
        )

    async def position_size(self, cfg: PositionSizingConfig) -> PositionSizeResult:
        info = await self.account.account_info()
        tickers = await self.market.price_ticker(cfg.symbol)
        price = tickers[0].price if tickers else 0.0
        risk_amount = info.available_balance * cfg.risk_percentage
        distance = abs(price - cfg.stop_loss_price)
        size = risk_amount / distance if distance > 0 else 0.0
        return PositionSizeResult(
            recommended_size=min(size, cfg.max_position_size),
            risk_amount=risk_amount,
            current_price=price,
            stop_distance=distance,
            risk_reward_ratio=risk_reward_ratio(price, cfg.stop_loss_price, cfg.take_profit_price),
        )
