from __future__ import annotations

from typing import Any, Optional

import httpx

from .api.account import AccountApi
from .api.advanced import AdvancedTradingApi
from .api.algo import AlgoTradingApi
from .api.market import MarketApi
from .api.trading import TradingApi
from .common.config import ClientConfig
from .common.utils import env_bool
from .rest.auth import Credentials
from .rest.http import HttpClient
from .stream.connector import StreamClient
from .stream.listen_key import ListenKeyManager, UserDataStream


class BinanceClient:
    """Entry point wiring one REST transport into every API group."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        credentials: Optional[Credentials] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        stream_kwargs: Optional[dict] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.http = HttpClient.from_config(self.config, credentials, transport=transport)
        self.market = MarketApi(self.http)
        self.trading = TradingApi(self.http)
        self.account = AccountApi(self.http)
        self.advanced = AdvancedTradingApi(self.trading)
        self.algo = AlgoTradingApi(self.trading, self.market, self.account)
        self.streams = StreamClient.from_config(self.config, **(stream_kwargs or {}))
        us = self.config.user_stream
        self.listen_key = ListenKeyManager(
            self.http, refresh_interval=us.keepalive_interval_sec, expiry=us.expiry_sec
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "BinanceClient":
        cfg = ClientConfig(testnet=env_bool("BINANCE_TESTNET"))
        return cls(cfg, credentials=Credentials.from_env(), **kwargs)

    def user_data_stream(self) -> UserDataStream:
        return UserDataStream(self.listen_key, self.streams, self.config.user_stream)

    async def __aenter__(self) -> "BinanceClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()
