from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from websockets.exceptions import WebSocketException

from ..common.config import UserDataStreamConfig
from ..common.errors import BinanceError, ListenKeyError, StreamError
from ..common.logging import get_logger
from ..common.metrics import LISTEN_KEY_ACTIONS
from ..common.schema import ListenKey
from ..rest.http import HttpClient
from .connector import ErrorHandler, Handler, StreamClient, consume

log = get_logger("listen_key")

LISTEN_KEY_PATH = "/fapi/v1/listenKey"
DEFAULT_REFRESH_SEC = 30 * 60
DEFAULT_EXPIRY_SEC = 60 * 60


class ListenKeyState(str, Enum):
    ABSENT = "absent"
    ACTIVE = "active"
    EXPIRED = "expired"


class ListenKeyManager:
    """Owns the user-data stream session token.

    Expiry is a local heuristic: the exchange drops a key silently when it has
    not been kept alive for ``expiry`` seconds. There is no internal locking;
    one task is expected to drive every lifecycle call.
    """

    def __init__(
        self,
        http: HttpClient,
        *,
        refresh_interval: float = DEFAULT_REFRESH_SEC,
        expiry: float = DEFAULT_EXPIRY_SEC,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if not 0 < refresh_interval < expiry:
            raise ValueError("refresh_interval must be positive and shorter than expiry")
        self._http = http
        self._refresh = float(refresh_interval)
        self._expiry = float(expiry)
        self._clock = clock or time.monotonic
        self._key: Optional[str] = None
        self._anchor: Optional[float] = None

    @property
    def current(self) -> Optional[str]:
        return self._key

    @property
    def refresh_interval(self) -> float:
        return self._refresh

    @property
    def state(self) -> ListenKeyState:
        if self._key is None:
            return ListenKeyState.ABSENT
        if self.is_expired():
            return ListenKeyState.EXPIRED
        return ListenKeyState.ACTIVE

    def set_refresh_interval(self, seconds: float) -> None:
        if not 0 < seconds < self._expiry:
            raise ValueError(f"refresh interval must be in (0, {self._expiry})")
        self._refresh = float(seconds)

    def _elapsed(self) -> Optional[float]:
        if self._anchor is None:
            return None
        return self._clock() - self._anchor

    def needs_keepalive(self) -> bool:
        elapsed = self._elapsed()
        if self._key is None or elapsed is None:
            return False
        return elapsed >= self._refresh

    def is_expired(self) -> bool:
        elapsed = self._elapsed()
        if self._key is None or elapsed is None:
            return True
        return elapsed >= self._expiry

    async def create(self) -> str:
        try:
            resp: ListenKey = await self._http.signed_post(LISTEN_KEY_PATH, model=ListenKey)
        except BinanceError:
            LISTEN_KEY_ACTIONS.labels(action="create", outcome="error").inc()
            raise
        self._key = resp.listen_key
        self._anchor = self._clock()
        LISTEN_KEY_ACTIONS.labels(action="create", outcome="ok").inc()
        log.info("listen_key_created")
        return self._key

    async def keepalive(self) -> None:
        if self._key is None:
            raise ListenKeyError("No listen key available")
        try:
            await self._http.signed_put(LISTEN_KEY_PATH, {"listenKey": self._key})
        except BinanceError as e:
            # key may still be valid until expiry; state is left as is
            LISTEN_KEY_ACTIONS.labels(action="keepalive", outcome="error").inc()
            log.warning("listen_key_keepalive_failed", error=str(e))
            raise
        self._anchor = self._clock()
        LISTEN_KEY_ACTIONS.labels(action="keepalive", outcome="ok").inc()
        log.debug("listen_key_kept_alive")

    async def close(self) -> None:
        if self._key is None:
            return
        try:
            await self._http.signed_delete(LISTEN_KEY_PATH, {"listenKey": self._key})
        except BinanceError:
            LISTEN_KEY_ACTIONS.labels(action="close", outcome="error").inc()
            raise
        self._key = None
        self._anchor = None
        LISTEN_KEY_ACTIONS.labels(action="close", outcome="ok").inc()
        log.info("listen_key_closed")

    async def get_or_create(self) -> str:
        if self._key is not None and self.needs_keepalive():
            await self.keepalive()
        if self._key is not None:
            return self._key
        return await self.create()

    async def maintain(self) -> str:
        key = self._key
        if key is None:
            return await self.create()
        if self.is_expired():
            log.warning("listen_key_expired", elapsed=self._elapsed())
            return await self.create()
        if self.needs_keepalive():
            await self.keepalive()
        return key

    async def run_keepalive_loop(
        self,
        stop_event: Optional[asyncio.Event] = None,
        *,
        check_every: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        while stop_event is None or not stop_event.is_set():
            try:
                await self.maintain()
            except BinanceError as e:
                log.error("listen_key_maintain_failed", error=str(e))
            await sleep(check_every)


class UserDataStream:
    """User-data websocket bound to a listen key that is kept alive in the background."""

    def __init__(
        self,
        manager: ListenKeyManager,
        streams: StreamClient,
        cfg: Optional[UserDataStreamConfig] = None,
        *,
        check_every: float = 60.0,
    ) -> None:
        self.cfg = cfg or UserDataStreamConfig()
        self._manager = manager
        self._streams = streams
        self._check_every = check_every
        if abs(manager.refresh_interval - self.cfg.keepalive_interval_sec) > 1e-9:
            manager.set_refresh_interval(self.cfg.keepalive_interval_sec)

    @property
    def manager(self) -> ListenKeyManager:
        return self._manager

    @property
    def listen_key(self) -> Optional[str]:
        return self._manager.current

    async def start(self) -> str:
        key = await self._manager.get_or_create()
        log.info("user_stream_started")
        return key

    async def stop(self) -> None:
        await self._manager.close()
        log.info("user_stream_stopped")

    async def keepalive(self) -> None:
        await self._manager.keepalive()

    def needs_maintenance(self) -> bool:
        return self._manager.is_expired() or self._manager.needs_keepalive()

    async def maintain(self) -> str:
        return await self._manager.maintain()

    async def run(
        self,
        handler: Handler,
        *,
        on_error: Optional[ErrorHandler] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Consume user-data events until ``stop_event`` is set.

        Connection failures reconnect on a fresh or refreshed key, up to
        ``max_reconnect_attempts`` consecutive times when ``reconnect_on_failure``
        is enabled. The listen key is not closed on exit; call ``stop()``.
        """
        failures = 0
        backoff: List[float] = list(self._streams.reconnect_backoff)
        key = await self.start()
        reconnecting = False
        while stop_event is None or not stop_event.is_set():
            keepalive_task: Optional[asyncio.Task] = None
            try:
                if reconnecting:
                    key = await self._manager.maintain()
                reconnecting = True
                async with self._streams.open_user_stream(key) as ws:
                    log.info("user_stream_connected")
                    failures = 0
                    backoff = list(self._streams.reconnect_backoff)
                    if self.cfg.auto_keepalive:
                        keepalive_task = asyncio.create_task(
                            self._manager.run_keepalive_loop(stop_event, check_every=self._check_every)
                        )
                    await consume(
                        ws,
                        handler,
                        on_error=on_error,
                        stop_event=stop_event,
                        recv_timeout=self.cfg.recv_timeout,
                    )
            except (BinanceError, WebSocketException, OSError, asyncio.TimeoutError) as e:
                failures += 1
                if not self.cfg.reconnect_on_failure or failures > self.cfg.max_reconnect_attempts:
                    raise StreamError(f"user data stream failed after {failures} attempts: {e}") from e
                log.error("user_stream_error", error=str(e), attempt=failures)
                await self._streams.sleep(backoff[0])
                backoff = backoff[1:] + [backoff[-1]]
            finally:
                if keepalive_task is not None:
                    keepalive_task.cancel()
                    try:
                        await keepalive_task
                    except asyncio.CancelledError:
                        pass
