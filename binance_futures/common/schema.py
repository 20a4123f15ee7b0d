from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .utils import clean_params


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(str, Enum):
    LIMIT = "LIMIT"
    MARKET = "MARKET"
    STOP = "STOP"
    STOP_MARKET = "STOP_MARKET"
    TAKE_PROFIT = "TAKE_PROFIT"
    TAKE_PROFIT_MARKET = "TAKE_PROFIT_MARKET"
    TRAILING_STOP_MARKET = "TRAILING_STOP_MARKET"


class TimeInForce(str, Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"
    GTX = "GTX"  # post-only
    GTD = "GTD"


class PositionSide(str, Enum):
    BOTH = "BOTH"
    LONG = "LONG"
    SHORT = "SHORT"


class WorkingType(str, Enum):
    MARK_PRICE = "MARK_PRICE"
    CONTRACT_PRICE = "CONTRACT_PRICE"


class OrderStatus(str, Enum):
    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    EXPIRED_IN_MATCH = "EXPIRED_IN_MATCH"


class MarginType(str, Enum):
    ISOLATED = "ISOLATED"
    CROSSED = "CROSSED"


class IncomeType(str, Enum):
    TRANSFER = "TRANSFER"
    WELCOME_BONUS = "WELCOME_BONUS"
    REALIZED_PNL = "REALIZED_PNL"
    FUNDING_FEE = "FUNDING_FEE"
    COMMISSION = "COMMISSION"
    INSURANCE_CLEAR = "INSURANCE_CLEAR"


class KlineInterval(str, Enum):
    M1 = "1m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H2 = "2h"
    H4 = "4h"
    H6 = "6h"
    H8 = "8h"
    H12 = "12h"
    D1 = "1d"
    D3 = "3d"
    W1 = "1w"
    MN1 = "1M"


_CONDITIONAL_LIMIT = {OrderType.STOP, OrderType.TAKE_PROFIT}
_CONDITIONAL_MARKET = {OrderType.STOP_MARKET, OrderType.TAKE_PROFIT_MARKET}


class NewOrderRequest(BaseModel):
    """Parameters of one ``POST /fapi/v1/order`` call.

    Unset optional fields are omitted from the request so the exchange applies
    its own defaults (``positionSide=BOTH``, ``workingType=CONTRACT_PRICE``...).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Optional[Decimal] = None
    price: Optional[Decimal] = None
    position_side: Optional[PositionSide] = None
    time_in_force: Optional[TimeInForce] = None
    reduce_only: Optional[bool] = None
    new_client_order_id: Optional[str] = Field(default=None, max_length=36)
    stop_price: Optional[Decimal] = None
    close_position: Optional[bool] = None
    activation_price: Optional[Decimal] = None
    callback_rate: Optional[Decimal] = None
    working_type: Optional[WorkingType] = None
    price_protect: Optional[bool] = None

    @model_validator(mode="after")
    def validate_shape(self):
        t = self.order_type
        if self.quantity is None and not self.close_position:
            raise ValueError("quantity is required unless close_position is set")
        if self.quantity is not None and self.quantity <= 0:
            raise ValueError("quantity must be positive")
        if t is OrderType.LIMIT and self.price is None:
            raise ValueError("LIMIT orders require price")
        if t in _CONDITIONAL_LIMIT and (self.price is None or self.stop_price is None):
            raise ValueError(f"{t.value} orders require price and stop_price")
        if t in _CONDITIONAL_MARKET and self.stop_price is None:
            raise ValueError(f"{t.value} orders require stop_price")
        if t is OrderType.TRAILING_STOP_MARKET and self.callback_rate is None:
            raise ValueError("TRAILING_STOP_MARKET orders require callback_rate")
        if self.close_position and t not in _CONDITIONAL_MARKET:
            raise ValueError("close_position only applies to STOP_MARKET/TAKE_PROFIT_MARKET")
        return self

    def to_params(self) -> Dict[str, str]:
        tif = self.time_in_force
        if tif is None and self.order_type in (OrderType.LIMIT, *_CONDITIONAL_LIMIT):
            tif = TimeInForce.GTC
        return clean_params(
            {
                "symbol": self.symbol,
                "side": self.side,
                "type": self.order_type,
                "positionSide": self.position_side,
                "timeInForce": tif,
                "quantity": self.quantity,
                "reduceOnly": self.reduce_only,
                "price": self.price,
                "newClientOrderId": self.new_client_order_id,
                "stopPrice": self.stop_price,
                "closePosition": self.close_position,
                "activationPrice": self.activation_price,
                "callbackRate": self.callback_rate,
                "workingType": self.working_type,
                "priceProtect": self.price_protect,
            }
        )


class ExchangeModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)


# Market data


class OrderBook(ExchangeModel):
    last_update_id: int
    event_time: Optional[int] = Field(default=None, alias="E")
    transaction_time: Optional[int] = Field(default=None, alias="T")
    bids: List[Tuple[float, float]]
    asks: List[Tuple[float, float]]


class Trade(ExchangeModel):
    id: int
    price: float
    qty: float
    quote_qty: Optional[float] = None
    time: int
    is_buyer_maker: bool


class AggTrade(ExchangeModel):
    agg_trade_id: int = Field(alias="a")
    price: float = Field(alias="p")
    qty: float = Field(alias="q")
    first_trade_id: int = Field(alias="f")
    last_trade_id: int = Field(alias="l")
    time: int = Field(alias="T")
    is_buyer_maker: bool = Field(alias="m")


class Kline(ExchangeModel):
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int
    quote_volume: float
    trades: int
    taker_buy_base_volume: float
    taker_buy_quote_volume: float

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Kline":
        if len(row) < 11:
            raise ValueError(f"kline row has {len(row)} fields, expected at least 11")
        return cls(
            open_time=row[0],
            open=row[1],
            high=row[2],
            low=row[3],
            close=row[4],
            volume=row[5],
            close_time=row[6],
            quote_volume=row[7],
            trades=row[8],
            taker_buy_base_volume=row[9],
            taker_buy_quote_volume=row[10],
        )


class MarkPrice(ExchangeModel):
    symbol: str
    mark_price: float
    index_price: Optional[float] = None
    estimated_settle_price: Optional[float] = None
    last_funding_rate: Optional[float] = None
    interest_rate: Optional[float] = None
    next_funding_time: Optional[int] = None
    time: int


class Ticker24hr(ExchangeModel):
    symbol: str
    price_change: float
    price_change_percent: float
    weighted_avg_price: float
    last_price: float
    last_qty: Optional[float] = None
    open_price: float
    high_price: float
    low_price: float
    volume: float
    quote_volume: float
    open_time: int
    close_time: int
    first_id: Optional[int] = None
    last_id: Optional[int] = None
    count: int = 0


class PriceTicker(ExchangeModel):
    symbol: str
    price: float
    time: Optional[int] = None


class ServerTime(ExchangeModel):
    server_time: int


class SymbolInfo(ExchangeModel):
    symbol: str
    pair: Optional[str] = None
    contract_type: Optional[str] = None
    status: str
    base_asset: str
    quote_asset: str
    price_precision: int
    quantity_precision: int
    filters: List[Dict[str, Any]] = Field(default_factory=list)

    def filter(self, filter_type: str) -> Optional[Dict[str, Any]]:
        for f in self.filters:
            if f.get("filterType") == filter_type:
                return f
        return None


class ExchangeInfo(ExchangeModel):
    timezone: str
    server_time: int
    rate_limits: List[Dict[str, Any]] = Field(default_factory=list)
    symbols: List[SymbolInfo] = Field(default_factory=list)

    def symbol(self, name: str) -> Optional[SymbolInfo]:
        name = name.upper()
        for s in self.symbols:
            if s.symbol == name:
                return s
        return None


# Trading


class Order(ExchangeModel):
    order_id: int
    symbol: str
    status: OrderStatus
    client_order_id: str
    price: float = 0.0
    avg_price: float = 0.0
    orig_qty: float = 0.0
    executed_qty: float = 0.0
    cum_quote: float = 0.0
    time_in_force: Optional[TimeInForce] = None
    type: OrderType
    reduce_only: bool = False
    close_position: bool = False
    side: OrderSide
    position_side: Optional[PositionSide] = None
    stop_price: float = 0.0
    working_type: Optional[WorkingType] = None
    price_protect: bool = False
    orig_type: Optional[OrderType] = None
    activate_price: Optional[float] = None
    price_rate: Optional[float] = None
    update_time: int = 0

    @property
    def fill_price(self) -> float:
        return self.avg_price or self.price


class UserTrade(ExchangeModel):
    symbol: str
    id: int
    order_id: int
    side: OrderSide
    price: float
    qty: float
    realized_pnl: float = 0.0
    margin_asset: Optional[str] = None
    quote_qty: float = 0.0
    commission: float = 0.0
    commission_asset: Optional[str] = None
    time: int
    position_side: Optional[PositionSide] = None
    buyer: bool = False
    maker: bool = False


# Account


class AccountAsset(ExchangeModel):
    asset: str
    wallet_balance: float
    unrealized_profit: float = 0.0
    margin_balance: float = 0.0
    available_balance: float = 0.0
    max_withdraw_amount: float = 0.0


class AccountPosition(ExchangeModel):
    symbol: str
    position_amt: float = 0.0
    entry_price: float = 0.0
    unrealized_profit: float = 0.0
    leverage: Optional[int] = None
    isolated: bool = False
    position_side: Optional[PositionSide] = None


class AccountInfo(ExchangeModel):
    total_wallet_balance: float
    total_unrealized_profit: float = 0.0
    total_margin_balance: float = 0.0
    available_balance: float
    max_withdraw_amount: float = 0.0
    can_trade: bool = True
    assets: List[AccountAsset] = Field(default_factory=list)
    positions: List[AccountPosition] = Field(default_factory=list)


class Balance(ExchangeModel):
    account_alias: Optional[str] = None
    asset: str
    balance: float
    cross_wallet_balance: float = 0.0
    cross_un_pnl: float = 0.0
    available_balance: float = 0.0
    max_withdraw_amount: float = 0.0


class PositionRisk(ExchangeModel):
    symbol: str
    position_amt: float
    entry_price: float
    mark_price: float
    un_realized_profit: float
    liquidation_price: float = 0.0
    leverage: int
    max_notional_value: Optional[float] = None
    margin_type: str
    isolated_margin: float = 0.0
    position_side: PositionSide = PositionSide.BOTH
    update_time: int = 0


class Income(ExchangeModel):
    symbol: str = ""
    income_type: str
    income: float
    asset: str
    info: str = ""
    time: int
    tran_id: int
    trade_id: str = ""


class Bracket(ExchangeModel):
    bracket: int
    initial_leverage: int
    notional_cap: float
    notional_floor: float
    maint_margin_ratio: float
    cum: float = 0.0


class LeverageBracket(ExchangeModel):
    symbol: str
    brackets: List[Bracket]


class AdlQuantile(ExchangeModel):
    symbol: str
    adl_quantile: Dict[str, int]


class LeverageChange(ExchangeModel):
    leverage: int
    max_notional_value: float
    symbol: str


class CodeMessage(ExchangeModel):
    code: int
    msg: str


class PositionMarginChange(ExchangeModel):
    amount: float
    code: int
    msg: str
    type: int


class PositionMarginHistory(ExchangeModel):
    symbol: str
    type: int
    amount: float
    asset: str
    time: int
    position_side: Optional[PositionSide] = None


class CommissionRate(ExchangeModel):
    symbol: str
    maker_commission_rate: float
    taker_commission_rate: float


class ApiTradingStatus(ExchangeModel):
    indicators: Dict[str, Any] = Field(default_factory=dict)
    update_time: int = 0


class ListenKey(ExchangeModel):
    listen_key: str
