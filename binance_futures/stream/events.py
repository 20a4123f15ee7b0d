from __future__ import annotations

from typing import Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class StreamModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class DepthUpdate(StreamModel):
    kind: Literal["depth_update"] = "depth_update"
    event_time: int = Field(alias="E")
    transaction_time: int = Field(alias="T")
    symbol: str = Field(alias="s")
    first_update_id: int = Field(alias="U")
    final_update_id: int = Field(alias="u")
    prev_final_update_id: int = Field(alias="pu")
    bids: List[Tuple[float, float]] = Field(alias="b")
    asks: List[Tuple[float, float]] = Field(alias="a")


class TradeEvent(StreamModel):
    kind: Literal["trade"] = "trade"
    event_time: int = Field(alias="E")
    trade_time: int = Field(alias="T")
    symbol: str = Field(alias="s")
    trade_id: int = Field(alias="t")
    price: float = Field(alias="p")
    qty: float = Field(alias="q")
    order_type: Optional[str] = Field(default=None, alias="X")
    is_buyer_maker: bool = Field(alias="m")


class KlineData(StreamModel):
    start_time: int = Field(alias="t")
    close_time: int = Field(alias="T")
    symbol: str = Field(alias="s")
    interval: str = Field(alias="i")
    first_trade_id: int = Field(alias="f")
    last_trade_id: int = Field(alias="L")
    open: float = Field(alias="o")
    close: float = Field(alias="c")
    high: float = Field(alias="h")
    low: float = Field(alias="l")
    volume: float = Field(alias="v")
    trades: int = Field(alias="n")
    is_closed: bool = Field(alias="x")
    quote_volume: float = Field(alias="q")
    taker_buy_volume: float = Field(alias="V")
    taker_buy_quote_volume: float = Field(alias="Q")


class KlineEvent(StreamModel):
    kind: Literal["kline"] = "kline"
    event_time: int = Field(alias="E")
    symbol: str = Field(alias="s")
    kline: KlineData = Field(alias="k")


class TickerEvent(StreamModel):
    kind: Literal["ticker"] = "ticker"
    event_time: int = Field(alias="E")
    symbol: str = Field(alias="s")
    price_change: float = Field(alias="p")
    price_change_percent: float = Field(alias="P")
    weighted_avg_price: float = Field(alias="w")
    last_price: float = Field(alias="c")
    last_qty: float = Field(alias="Q")
    open_price: float = Field(alias="o")
    high_price: float = Field(alias="h")
    low_price: float = Field(alias="l")
    volume: float = Field(alias="v")
    quote_volume: float = Field(alias="q")
    open_time: int = Field(alias="O")
    close_time: int = Field(alias="C")
    first_trade_id: int = Field(alias="F")
    last_trade_id: int = Field(alias="L")
    trade_count: int = Field(alias="n")


class TickerBatch(StreamModel):
    kind: Literal["ticker_batch"] = "ticker_batch"
    tickers: List[TickerEvent]


class BalanceUpdate(StreamModel):
    asset: str = Field(alias="a")
    wallet_balance: float = Field(alias="wb")
    cross_wallet_balance: float = Field(alias="cw")
    balance_change: float = Field(default=0.0, alias="bc")


class PositionUpdate(StreamModel):
    symbol: str = Field(alias="s")
    position_amount: float = Field(alias="pa")
    entry_price: float = Field(alias="ep")
    accumulated_realized: float = Field(default=0.0, alias="cr")
    unrealized_pnl: float = Field(alias="up")
    margin_type: str = Field(alias="mt")
    isolated_wallet: float = Field(default=0.0, alias="iw")
    position_side: str = Field(alias="ps")


class AccountUpdateData(StreamModel):
    reason: str = Field(alias="m")
    balances: List[BalanceUpdate] = Field(default_factory=list, alias="B")
    positions: List[PositionUpdate] = Field(default_factory=list, alias="P")


class AccountUpdate(StreamModel):
    kind: Literal["account_update"] = "account_update"
    event_time: int = Field(alias="E")
    transaction_time: int = Field(alias="T")
    data: AccountUpdateData = Field(alias="a")


class OrderUpdateData(StreamModel):
    symbol: str = Field(alias="s")
    client_order_id: str = Field(alias="c")
    side: str = Field(alias="S")
    order_type: str = Field(alias="o")
    time_in_force: str = Field(alias="f")
    original_qty: float = Field(alias="q")
    original_price: float = Field(alias="p")
    average_price: float = Field(alias="ap")
    stop_price: float = Field(alias="sp")
    execution_type: str = Field(alias="x")
    order_status: str = Field(alias="X")
    order_id: int = Field(alias="i")
    last_filled_qty: float = Field(alias="l")
    filled_qty: float = Field(alias="z")
    last_filled_price: float = Field(alias="L")
    commission_asset: Optional[str] = Field(default=None, alias="N")
    commission: Optional[float] = Field(default=None, alias="n")
    trade_time: int = Field(alias="T")
    trade_id: int = Field(alias="t")
    bids_notional: float = Field(default=0.0, alias="b")
    asks_notional: float = Field(default=0.0, alias="a")
    is_maker: bool = Field(alias="m")
    is_reduce_only: bool = Field(alias="R")
    working_type: str = Field(alias="wt")
    original_order_type: str = Field(alias="ot")
    position_side: str = Field(alias="ps")
    close_position: bool = Field(default=False, alias="cp")
    activation_price: Optional[float] = Field(default=None, alias="AP")
    callback_rate: Optional[float] = Field(default=None, alias="cr")
    realized_profit: float = Field(default=0.0, alias="rp")


class OrderUpdate(StreamModel):
    kind: Literal["order_update"] = "order_update"
    event_time: int = Field(alias="E")
    transaction_time: int = Field(alias="T")
    order: OrderUpdateData = Field(alias="o")


class Ping(StreamModel):
    kind: Literal["ping"] = "ping"
    payload: Any = None


class Pong(StreamModel):
    kind: Literal["pong"] = "pong"
    payload: Any = None


class StreamErrorMessage(StreamModel):
    kind: Literal["error"] = "error"
    code: Optional[int] = None
    msg: str
    request_id: Optional[int] = Field(default=None, alias="id")


StreamMessage = Union[
    DepthUpdate,
    TradeEvent,
    KlineEvent,
    TickerEvent,
    TickerBatch,
    AccountUpdate,
    OrderUpdate,
    Ping,
    Pong,
    StreamErrorMessage,
]
