from __future__ import annotations

from typing import Any, Dict, List, Tuple
from urllib.parse import parse_qsl

import httpx
import pytest

from binance_futures.rest.auth import Credentials
from binance_futures.rest.http import HttpClient


class Router:
    """MockTransport handler answering canned JSON per (method, path)."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, body: Any, status: int = 200) -> "Router":
        self.routes[(method, path)] = (status, body)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (404, {"code": -1, "msg": "no route"}))
        return httpx.Response(status, json=body)

    def params(self, index: int = -1) -> Dict[str, str]:
        req = self.requests[index]
        if req.method == "POST":
            return dict(parse_qsl(req.content.decode(), keep_blank_values=True))
        return dict(parse_qsl(req.url.query.decode(), keep_blank_values=True))


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
def http(router: Router) -> HttpClient:
    return HttpClient(credentials=Credentials("test-key", "test-secret"), transport=httpx.MockTransport(router))


def _order_payload(**overrides: Any) -> Dict[str, Any]:
    body = {
        "orderId": 1,
        "symbol": "BTCUSDT",
        "status": "NEW",
        "clientOrderId": "cid-1",
        "price": "0",
        "avgPrice": "0",
        "origQty": "0.010",
        "executedQty": "0",
        "type": "MARKET",
        "side": "BUY",
        "updateTime": 1700000000000,
    }
    body.update(overrides)
    return body


@pytest.fixture
def order_payload():
    return _order_payload
