from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from binance_futures.common.errors import ApiError, ListenKeyError, TransportError
from binance_futures.common.schema import ListenKey
from binance_futures.rest.auth import Credentials
from binance_futures.rest.http import HttpClient
from binance_futures.stream.listen_key import ListenKeyManager, ListenKeyState


class FakeHttp:
    def __init__(self):
        self.calls: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        self.keys = iter(["key-1", "key-2", "key-3"])
        self.fail_put: Optional[Exception] = None
        self.fail_post: Optional[Exception] = None

    async def signed_post(self, path, params=None, *, model=None):
        self.calls.append(("POST", path, params))
        if self.fail_post:
            raise self.fail_post
        return ListenKey(listenKey=next(self.keys))

    async def signed_put(self, path, params=None, *, model=None):
        self.calls.append(("PUT", path, params))
        if self.fail_put:
            raise self.fail_put
        return {}

    async def signed_delete(self, path, params=None, *, model=None):
        self.calls.append(("DELETE", path, params))
        return {}


def make_manager(**kwargs):
    now = [0.0]
    http = FakeHttp()
    mgr = ListenKeyManager(http, clock=lambda: now[0], **kwargs)
    return mgr, http, now


def test_absent_before_create():
    mgr, _, _ = make_manager()
    assert mgr.state is ListenKeyState.ABSENT
    assert mgr.current is None
    assert mgr.is_expired()
    assert not mgr.needs_keepalive()


@pytest.mark.asyncio
async def test_create_then_keepalive_due_after_refresh_interval():
    mgr, http, now = make_manager()
    key = await mgr.create()
    assert key == "key-1"
    assert mgr.state is ListenKeyState.ACTIVE
    assert not mgr.needs_keepalive()
    assert not mgr.is_expired()
    now[0] = 1799.0
    assert not mgr.needs_keepalive()
    now[0] = 1800.0
    assert mgr.needs_keepalive()
    assert not mgr.is_expired()
    assert http.calls == [("POST", "/fapi/v1/listenKey", None)]


@pytest.mark.asyncio
async def test_expires_after_window_without_keepalive():
    mgr, _, now = make_manager()
    await mgr.create()
    now[0] = 3600.0
    assert mgr.is_expired()
    assert mgr.state is ListenKeyState.EXPIRED


@pytest.mark.asyncio
async def test_keepalive_resets_anchor():
    mgr, http, now = make_manager()
    await mgr.create()
    now[0] = 2000.0
    await mgr.keepalive()
    assert http.calls[-1] == ("PUT", "/fapi/v1/listenKey", {"listenKey": "key-1"})
    assert not mgr.needs_keepalive()
    now[0] = 2000.0 + 3599.0
    assert not mgr.is_expired()


@pytest.mark.asyncio
async def test_keepalive_without_key_raises():
    mgr, http, _ = make_manager()
    with pytest.raises(ListenKeyError):
        await mgr.keepalive()
    assert http.calls == []


@pytest.mark.asyncio
async def test_failed_keepalive_leaves_state_unchanged():
    mgr, http, now = make_manager()
    await mgr.create()
    now[0] = 1900.0
    http.fail_put = TransportError("network down")
    with pytest.raises(TransportError):
        await mgr.keepalive()
    assert mgr.current == "key-1"
    assert mgr.needs_keepalive()
    assert mgr.state is ListenKeyState.ACTIVE


@pytest.mark.asyncio
async def test_failed_create_surfaces_error_unchanged():
    mgr, http, _ = make_manager()
    err = ApiError(-2015, "Invalid API-key, IP, or permissions for action.")
    http.fail_post = err
    with pytest.raises(ApiError) as exc:
        await mgr.create()
    assert exc.value is err
    assert mgr.state is ListenKeyState.ABSENT


@pytest.mark.asyncio
async def test_get_or_create_creates_once_then_reuses():
    mgr, http, now = make_manager()
    assert await mgr.get_or_create() == "key-1"
    now[0] = 10.0
    assert await mgr.get_or_create() == "key-1"
    assert [c[0] for c in http.calls] == ["POST"]


@pytest.mark.asyncio
async def test_get_or_create_keeps_alive_when_due():
    mgr, http, now = make_manager()
    await mgr.get_or_create()
    now[0] = 1800.0
    assert await mgr.get_or_create() == "key-1"
    assert [c[0] for c in http.calls] == ["POST", "PUT"]
    assert not mgr.needs_keepalive()


@pytest.mark.asyncio
async def test_maintain_is_idempotent_between_deadlines():
    mgr, http, now = make_manager()
    await mgr.maintain()
    now[0] = 100.0
    await mgr.maintain()
    await mgr.maintain()
    assert [c[0] for c in http.calls] == ["POST"]


@pytest.mark.asyncio
async def test_maintain_keeps_alive_then_recreates_after_expiry():
    mgr, http, now = make_manager()
    await mgr.maintain()
    now[0] = 1800.0
    assert await mgr.maintain() == "key-1"
    now[0] = 1800.0 + 3600.0
    assert await mgr.maintain() == "key-2"
    assert [c[0] for c in http.calls] == ["POST", "PUT", "POST"]
    assert mgr.state is ListenKeyState.ACTIVE


@pytest.mark.asyncio
async def test_close_clears_state():
    mgr, http, _ = make_manager()
    await mgr.create()
    await mgr.close()
    assert http.calls[-1] == ("DELETE", "/fapi/v1/listenKey", {"listenKey": "key-1"})
    assert mgr.state is ListenKeyState.ABSENT
    assert mgr.current is None
    assert not mgr.needs_keepalive()


@pytest.mark.asyncio
async def test_close_without_key_is_noop():
    mgr, http, _ = make_manager()
    await mgr.close()
    assert http.calls == []


def test_refresh_interval_must_be_below_expiry():
    with pytest.raises(ValueError):
        make_manager(refresh_interval=3600.0, expiry=3600.0)
    mgr, _, _ = make_manager()
    with pytest.raises(ValueError):
        mgr.set_refresh_interval(4000.0)
    mgr.set_refresh_interval(600.0)
    assert mgr.refresh_interval == 600.0


@pytest.mark.asyncio
async def test_keepalive_loop_maintains_until_stopped():
    mgr, http, now = make_manager()
    stop = asyncio.Event()
    ticks = []

    async def fake_sleep(seconds: float) -> None:
        ticks.append(seconds)
        now[0] += 1800.0
        if len(ticks) == 2:
            stop.set()

    await mgr.run_keepalive_loop(stop, check_every=30.0, sleep=fake_sleep)
    assert ticks == [30.0, 30.0]
    assert [c[0] for c in http.calls] == ["POST", "PUT"]


@pytest.mark.asyncio
async def test_keepalive_loop_survives_errors():
    mgr, http, now = make_manager()
    await mgr.create()
    now[0] = 1800.0
    http.fail_put = TransportError("flaky")
    stop = asyncio.Event()

    async def fake_sleep(seconds: float) -> None:
        stop.set()

    await mgr.run_keepalive_loop(stop, sleep=fake_sleep)
    assert mgr.current == "key-1"


@pytest.mark.asyncio
async def test_listen_key_endpoints_over_real_transport():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, dict(request.url.params), request.content))
        if request.method == "POST":
            return httpx.Response(200, json={"listenKey": "pqia91ma19a5s61cv6a81va65sdf19v8a65a1a5s61cv6a81va65sdf19v8a65a1"})
        return httpx.Response(200, json={})

    http = HttpClient(credentials=Credentials("k", "s"), transport=httpx.MockTransport(handler))
    mgr = ListenKeyManager(http)
    key = await mgr.create()
    await mgr.keepalive()
    await mgr.close()
    methods = [s[0] for s in seen]
    assert methods == ["POST", "PUT", "DELETE"]
    assert all(path == "/fapi/v1/listenKey" for _, path, _, _ in seen)
    assert seen[1][2]["listenKey"] == key
    assert seen[2][2]["listenKey"] == key
    assert b"timestamp=" in seen[0][3]
    await http.aclose()


@pytest.mark.asyncio
async def test_maintain_returns_current_key_on_every_branch():
    mgr, http, now = make_manager()
    assert await mgr.maintain() == mgr.current == "key-1"
    now[0] = 10.0
    assert await mgr.maintain() == mgr.current
    now[0] = 1900.0
    assert await mgr.maintain() == mgr.current == "key-1"
    await mgr.close()
    assert await mgr.maintain() == mgr.current == "key-2"
