from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from ..common.config import WS_URL, ClientConfig
from ..common.errors import MessageDecodeError, StreamError
from ..common.logging import get_logger
from ..common.metrics import STREAM_DECODE_ERRORS, STREAM_FRAMES
from ..common.schema import KlineInterval
from .events import (
    AccountUpdate,
    DepthUpdate,
    KlineEvent,
    OrderUpdate,
    Ping,
    Pong,
    StreamErrorMessage,
    StreamMessage,
    TickerBatch,
    TickerEvent,
    TradeEvent,
)

log = get_logger("stream")

Handler = Callable[[StreamMessage], Union[None, Awaitable[None]]]
ErrorHandler = Callable[[MessageDecodeError], Union[None, Awaitable[None]]]

ALL_TICKERS = "!ticker@arr"


def depth_topic(symbol: str, levels: Optional[int] = None) -> str:
    sym = symbol.lower()
    if levels is None:
        return f"{sym}@depth@100ms"
    return f"{sym}@depth{levels}@100ms"


def trade_topic(symbol: str) -> str:
    return f"{symbol.lower()}@trade"


def kline_topic(symbol: str, interval: KlineInterval | str) -> str:
    value = interval.value if isinstance(interval, KlineInterval) else interval
    return f"{symbol.lower()}@kline_{value}"


def ticker_topic(symbol: str) -> str:
    return f"{symbol.lower()}@ticker"


def all_tickers_topic() -> str:
    return ALL_TICKERS


# Single-topic frames are dispatched on their "e" field.
_EVENT_TYPES = {
    "depthUpdate": DepthUpdate,
    "trade": TradeEvent,
    "kline": KlineEvent,
    "24hrTicker": TickerEvent,
    "ACCOUNT_UPDATE": AccountUpdate,
    "ORDER_TRADE_UPDATE": OrderUpdate,
}

# Multiplexed frames are dispatched on a substring of the stream name, in this order.
_STREAM_SUFFIXES = (
    ("@depth", DepthUpdate),
    ("@trade", TradeEvent),
    ("@kline", KlineEvent),
    ("@ticker", TickerEvent),
)


def _validate(model: Any, data: Any) -> StreamMessage:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MessageDecodeError(f"{model.__name__} payload invalid: {e.error_count()} errors", data) from e


def _ticker_batch(data: Any) -> TickerBatch:
    if not isinstance(data, list):
        raise MessageDecodeError("ticker array payload is not a list", data)
    try:
        return TickerBatch(tickers=[TickerEvent.model_validate(item) for item in data])
    except ValidationError as e:
        raise MessageDecodeError(f"TickerBatch payload invalid: {e.error_count()} errors", data) from e


def parse_message(text: str | bytes) -> StreamMessage:
    try:
        value = json.loads(text)
    except ValueError as e:
        raise MessageDecodeError(f"invalid JSON: {e}", text) from e

    if isinstance(value, list):
        return _ticker_batch(value)
    if not isinstance(value, dict):
        raise MessageDecodeError("Unknown message format", value)

    stream = value.get("stream")
    if isinstance(stream, str):
        data = value.get("data")
        if stream == ALL_TICKERS:
            return _ticker_batch(data)
        for suffix, model in _STREAM_SUFFIXES:
            if suffix in stream:
                return _validate(model, data)
        raise MessageDecodeError(f"Unknown stream type: {stream}", value)

    event_type = value.get("e")
    if event_type is not None:
        if not isinstance(event_type, str):
            raise MessageDecodeError("Unknown event type", value)
        model = _EVENT_TYPES.get(event_type)
        if model is None:
            raise MessageDecodeError(f"Unknown event type: {event_type}", value)
        return _validate(model, value)

    if "ping" in value:
        return Ping(payload=value["ping"])
    if "pong" in value:
        return Pong(payload=value["pong"])

    err = value.get("error")
    if isinstance(err, dict):
        return _validate(StreamErrorMessage, {**err, "id": value.get("id")})

    raise MessageDecodeError("Unknown message format", value)


async def _call(fn: Callable[..., Any], *args: Any) -> None:
    result = fn(*args)
    if inspect.isawaitable(result):
        await result


async def consume(
    ws: Any,
    handler: Handler,
    *,
    on_error: Optional[ErrorHandler] = None,
    stop_event: Optional[asyncio.Event] = None,
    recv_timeout: Optional[float] = None,
) -> int:
    """Decode frames from ``ws`` in arrival order and hand them to ``handler``.

    Frames that fail to decode are logged, passed to ``on_error`` and skipped.
    Returns the number of messages delivered once the remote side closes the
    connection cleanly or ``stop_event`` is set. Protocol-level pings are
    answered by the websockets library; JSON ``ping`` frames get a JSON pong.
    """
    delivered = 0
    while stop_event is None or not stop_event.is_set():
        try:
            if recv_timeout:
                raw = await asyncio.wait_for(ws.recv(), timeout=recv_timeout)
            else:
                raw = await ws.recv()
        except ConnectionClosedOK:
            log.info("stream_closed")
            return delivered
        except asyncio.TimeoutError as e:
            raise StreamError(f"no frame received within {recv_timeout}s") from e
        except WebSocketException as e:
            raise StreamError(f"connection closed unexpectedly: {e}") from e

        try:
            msg = parse_message(raw)
        except MessageDecodeError as e:
            STREAM_DECODE_ERRORS.inc()
            log.warning("stream_decode_failed", reason=e.reason)
            if on_error is not None:
                await _call(on_error, e)
            continue

        STREAM_FRAMES.labels(kind=msg.kind).inc()
        if isinstance(msg, Ping):
            await ws.send(json.dumps({"pong": msg.payload}))
        await _call(handler, msg)
        delivered += 1
    return delivered


class StreamClient:
    def __init__(
        self,
        *,
        base_url: str = WS_URL,
        ping_interval: float = 20.0,
        ping_timeout: float = 10.0,
        recv_timeout: Optional[float] = 60.0,
        reconnect_backoff_ms: Sequence[int] = (500, 1000, 2000, 5000),
        connect: Callable[..., Any] = websockets.connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.recv_timeout = recv_timeout
        self.reconnect_backoff = [ms / 1000.0 for ms in reconnect_backoff_ms] or [1.0]
        self._connect = connect
        self.sleep = sleep

    @classmethod
    def from_config(cls, cfg: ClientConfig, **kwargs: Any) -> "StreamClient":
        return cls(
            base_url=cfg.ws_url,
            ping_interval=cfg.ws.ping_interval,
            ping_timeout=cfg.ws.ping_timeout,
            recv_timeout=cfg.ws.recv_timeout,
            reconnect_backoff_ms=cfg.ws.reconnect_backoff_ms,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def stream_url(self, topics: Sequence[str]) -> str:
        topics = list(topics)
        if not topics:
            raise StreamError("No streams configured")
        if len(topics) == 1:
            return f"{self._base_url}/ws/{topics[0]}"
        return f"{self._base_url}/stream?streams={'/'.join(topics)}"

    def user_stream_url(self, listen_key: str) -> str:
        if not listen_key:
            raise StreamError("listen key is empty")
        return f"{self._base_url}/ws/{listen_key}"

    def _open(self, url: str):
        return self._connect(url, ping_interval=self.ping_interval, ping_timeout=self.ping_timeout)

    def open_stream(self, topics: Sequence[str]):
        """Return an async context manager yielding the websocket connection."""
        return self._open(self.stream_url(topics))

    def open_user_stream(self, listen_key: str):
        return self._open(self.user_stream_url(listen_key))

    async def run_stream(
        self,
        topics: Sequence[str],
        handler: Handler,
        *,
        on_error: Optional[ErrorHandler] = None,
        stop_event: Optional[asyncio.Event] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        """Consume ``topics`` until ``stop_event`` is set, reconnecting with backoff."""
        url = self.stream_url(topics)
        backoff: List[float] = list(self.reconnect_backoff)
        failures = 0
        while stop_event is None or not stop_event.is_set():
            try:
                async with self._open(url) as ws:
                    log.info("stream_connected", url=url)
                    backoff = list(self.reconnect_backoff)
                    failures = 0
                    await consume(ws, handler, on_error=on_error, stop_event=stop_event, recv_timeout=self.recv_timeout)
            except (StreamError, WebSocketException, OSError, asyncio.TimeoutError) as e:
                failures += 1
                if max_attempts is not None and failures > max_attempts:
                    raise StreamError(f"giving up on {url} after {max_attempts} reconnect attempts") from e
                log.error("stream_error", url=url, error=str(e), attempt=failures)
                await self.sleep(backoff[0])
                backoff = backoff[1:] + [backoff[-1]]
