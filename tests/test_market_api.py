from __future__ import annotations

import pytest

from binance_futures.api.market import MarketApi, as_list
from binance_futures.common.errors import DeserializationError, InvalidParameterError
from binance_futures.common.schema import KlineInterval

TICKER = {
    "symbol": "BTCUSDT",
    "priceChange": "100.0",
    "priceChangePercent": "0.25",
    "weightedAvgPrice": "40000.0",
    "lastPrice": "40100.0",
    "openPrice": "40000.0",
    "highPrice": "40500.0",
    "lowPrice": "39500.0",
    "volume": "1000",
    "quoteVolume": "40000000",
    "openTime": 1,
    "closeTime": 2,
    "count": 10,
}

KLINE_ROW = [1700000000000, "40000", "40100", "39900", "40050", "12.5", 1700000059999, "500000", 42, "6.0", "240000", "0"]


def test_as_list_normalizes_single_objects():
    assert as_list({"a": 1}) == [{"a": 1}]
    assert as_list([1, 2]) == [1, 2]
    with pytest.raises(DeserializationError):
        as_list("nope")


@pytest.mark.asyncio
async def test_order_book_parses_levels(router, http):
    router.add(
        "GET",
        "/fapi/v1/depth",
        {"lastUpdateId": 7, "E": 1, "T": 2, "bids": [["40000.1", "1.5"]], "asks": [["40000.2", "0.5"]]},
    )
    book = await MarketApi(http).order_book("BTCUSDT", limit=5)
    assert book.last_update_id == 7
    assert book.bids == [(40000.1, 1.5)]
    assert router.params() == {"symbol": "BTCUSDT", "limit": "5"}
    assert "X-MBX-APIKEY" not in router.requests[0].headers


@pytest.mark.asyncio
async def test_order_book_rejects_unsupported_limit(router, http):
    with pytest.raises(InvalidParameterError):
        await MarketApi(http).order_book("BTCUSDT", limit=7)
    assert router.requests == []


@pytest.mark.asyncio
async def test_historical_trades_sends_api_key_without_signature(router, http):
    router.add(
        "GET",
        "/fapi/v1/historicalTrades",
        [{"id": 1, "price": "1.0", "qty": "2.0", "quoteQty": "2.0", "time": 3, "isBuyerMaker": True}],
    )
    trades = await MarketApi(http).historical_trades("BTCUSDT", limit=1)
    assert trades[0].is_buyer_maker is True
    req = router.requests[0]
    assert req.headers["X-MBX-APIKEY"] == "test-key"
    assert "signature" not in router.params()


@pytest.mark.asyncio
async def test_agg_trades_short_field_names(router, http):
    router.add(
        "GET",
        "/fapi/v1/aggTrades",
        [{"a": 5, "p": "100.5", "q": "0.3", "f": 10, "l": 12, "T": 1700000000000, "m": False}],
    )
    trades = await MarketApi(http).agg_trades("BTCUSDT", limit=1)
    assert trades[0].agg_trade_id == 5
    assert trades[0].last_trade_id == 12


@pytest.mark.asyncio
async def test_klines_parse_positional_rows(router, http):
    router.add("GET", "/fapi/v1/klines", [KLINE_ROW, KLINE_ROW])
    klines = await MarketApi(http).klines("BTCUSDT", KlineInterval.M1, limit=2)
    assert len(klines) == 2
    k = klines[0]
    assert k.open == 40000.0 and k.close == 40050.0
    assert k.volume == 12.5 and k.trades == 42
    assert router.params()["interval"] == "1m"


@pytest.mark.asyncio
async def test_klines_short_row_is_deserialization_error(router, http):
    router.add("GET", "/fapi/v1/klines", [KLINE_ROW[:5]])
    with pytest.raises(DeserializationError):
        await MarketApi(http).klines("BTCUSDT", KlineInterval.H1)


@pytest.mark.asyncio
async def test_ticker_single_symbol_becomes_list(router, http):
    router.add("GET", "/fapi/v1/ticker/24hr", TICKER)
    tickers = await MarketApi(http).ticker_24hr("BTCUSDT")
    assert len(tickers) == 1
    assert tickers[0].weighted_avg_price == 40000.0


@pytest.mark.asyncio
async def test_price_ticker_all_symbols(router, http):
    router.add("GET", "/fapi/v1/ticker/price", [{"symbol": "BTCUSDT", "price": "1"}, {"symbol": "ETHUSDT", "price": "2"}])
    tickers = await MarketApi(http).price_ticker()
    assert [t.symbol for t in tickers] == ["BTCUSDT", "ETHUSDT"]
    assert router.params() == {}


@pytest.mark.asyncio
async def test_mark_price_wrong_shape(router, http):
    router.add("GET", "/fapi/v1/premiumIndex", [{"symbol": "BTCUSDT"}])
    with pytest.raises(DeserializationError):
        await MarketApi(http).mark_price()


@pytest.mark.asyncio
async def test_exchange_info_symbol_lookup(router, http):
    router.add(
        "GET",
        "/fapi/v1/exchangeInfo",
        {
            "timezone": "UTC",
            "serverTime": 1,
            "symbols": [
                {
                    "symbol": "BTCUSDT",
                    "status": "TRADING",
                    "baseAsset": "BTC",
                    "quoteAsset": "USDT",
                    "pricePrecision": 2,
                    "quantityPrecision": 3,
                    "filters": [{"filterType": "LOT_SIZE", "stepSize": "0.001"}],
                }
            ],
        },
    )
    info = await MarketApi(http).exchange_info()
    sym = info.symbol("btcusdt")
    assert sym is not None and sym.quantity_precision == 3
    assert sym.filter("LOT_SIZE")["stepSize"] == "0.001"
    assert sym.filter("PRICE_FILTER") is None
    assert info.symbol("XRPUSDT") is None


@pytest.mark.asyncio
async def test_server_time_and_ping(router, http):
    router.add("GET", "/fapi/v1/time", {"serverTime": 1700000000123})
    router.add("GET", "/fapi/v1/ping", {})
    api = MarketApi(http)
    assert await api.server_time() == 1700000000123
    assert await api.ping() is None
