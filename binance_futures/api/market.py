from __future__ import annotations

from typing import Any, List, Optional

from pydantic import ValidationError

from ..common.errors import DeserializationError, InvalidParameterError
from ..common.schema import (
    AggTrade,
    ExchangeInfo,
    Kline,
    KlineInterval,
    MarkPrice,
    OrderBook,
    PriceTicker,
    ServerTime,
    Ticker24hr,
    Trade,
)
from ..rest.http import HttpClient

DEPTH_LIMITS = (5, 10, 20, 50, 100, 500, 1000)


def as_list(data: Any) -> List[Any]:
    """Endpoints queried without a symbol return an array, with one a single object."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return [data]
    raise DeserializationError(f"expected object or array, got {type(data).__name__}")


def validate_list(model: Any, data: Any) -> List[Any]:
    try:
        return [model.model_validate(item) for item in as_list(data)]
    except ValidationError as e:
        raise DeserializationError(f"unexpected {model.__name__} shape: {e}") from e


class MarketApi:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def order_book(self, symbol: str, limit: Optional[int] = None) -> OrderBook:
        if limit is not None and limit not in DEPTH_LIMITS:
            raise InvalidParameterError(f"depth limit must be one of {DEPTH_LIMITS}")
        return await self.http.public_get("/fapi/v1/depth", {"symbol": symbol, "limit": limit}, model=OrderBook)

    async def recent_trades(self, symbol: str, limit: Optional[int] = None) -> List[Trade]:
        return await self.http.public_get("/fapi/v1/trades", {"symbol": symbol, "limit": limit}, model=List[Trade])

    async def historical_trades(
        self, symbol: str, limit: Optional[int] = None, from_id: Optional[int] = None
    ) -> List[Trade]:
        # MARKET_DATA endpoint: needs the API key header but no signature
        return await self.http.public_get(
            "/fapi/v1/historicalTrades",
            {"symbol": symbol, "limit": limit, "fromId": from_id},
            model=List[Trade],
            with_api_key=True,
        )

    async def agg_trades(
        self,
        symbol: str,
        *,
        from_id: Optional[int] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[AggTrade]:
        params = {"symbol": symbol, "fromId": from_id, "startTime": start_time, "endTime": end_time, "limit": limit}
        return await self.http.public_get("/fapi/v1/aggTrades", params, model=List[AggTrade])

    async def klines(
        self,
        symbol: str,
        interval: KlineInterval,
        *,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Kline]:
        params = {"symbol": symbol, "interval": interval, "startTime": start_time, "endTime": end_time, "limit": limit}
        rows = await self.http.public_get("/fapi/v1/klines", params)
        if not isinstance(rows, list):
            raise DeserializationError("klines response is not an array")
        try:
            return [Kline.from_row(row) for row in rows]
        except (ValidationError, ValueError, TypeError) as e:
            raise DeserializationError(f"malformed kline row: {e}") from e

    async def mark_price(self, symbol: Optional[str] = None) -> List[MarkPrice]:
        data = await self.http.public_get("/fapi/v1/premiumIndex", {"symbol": symbol})
        return validate_list(MarkPrice, data)

    async def ticker_24hr(self, symbol: Optional[str] = None) -> List[Ticker24hr]:
        data = await self.http.public_get("/fapi/v1/ticker/24hr", {"symbol": symbol})
        return validate_list(Ticker24hr, data)

    async def price_ticker(self, symbol: Optional[str] = None) -> List[PriceTicker]:
        data = await self.http.public_get("/fapi/v1/ticker/price", {"symbol": symbol})
        return validate_list(PriceTicker, data)

    async def exchange_info(self) -> ExchangeInfo:
        return await self.http.public_get("/fapi/v1/exchangeInfo", model=ExchangeInfo)

    async def ping(self) -> None:
        await self.http.public_get("/fapi/v1/ping")

    async def server_time(self) -> int:
        resp: ServerTime = await self.http.public_get("/fapi/v1/time", model=ServerTime)
        return resp.server_time
