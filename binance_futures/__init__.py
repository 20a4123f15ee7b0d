from __future__ import annotations

from .client import BinanceClient
from .common.config import ClientConfig, load_client_config
from .common.errors import (
    AlgoExecutionError,
    ApiError,
    AuthenticationError,
    BinanceError,
    ConfigError,
    DeserializationError,
    HttpStatusError,
    InvalidParameterError,
    ListenKeyError,
    MessageDecodeError,
    RateLimitError,
    RequestTimeout,
    StreamError,
    TransportError,
)
from .common.schema import NewOrderRequest, OrderSide, OrderType, PositionSide, TimeInForce
from .rest.auth import Credentials, authenticate, canonicalize, sign
from .stream.connector import (
    all_tickers_topic,
    depth_topic,
    kline_topic,
    parse_message,
    ticker_topic,
    trade_topic,
)
from .stream.listen_key import ListenKeyManager, ListenKeyState, UserDataStream

__version__ = "0.1.0"

__all__ = [
    "AlgoExecutionError",
    "ApiError",
    "AuthenticationError",
    "BinanceClient",
    "BinanceError",
    "ClientConfig",
    "ConfigError",
    "Credentials",
    "DeserializationError",
    "HttpStatusError",
    "InvalidParameterError",
    "ListenKeyError",
    "ListenKeyManager",
    "ListenKeyState",
    "MessageDecodeError",
    "NewOrderRequest",
    "OrderSide",
    "OrderType",
    "PositionSide",
    "RateLimitError",
    "RequestTimeout",
    "StreamError",
    "TimeInForce",
    "TransportError",
    "UserDataStream",
    "all_tickers_topic",
    "authenticate",
    "canonicalize",
    "depth_topic",
    "kline_topic",
    "load_client_config",
    "parse_message",
    "sign",
    "ticker_topic",
    "trade_topic",
]
