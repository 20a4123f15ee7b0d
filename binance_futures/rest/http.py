from __future__ import annotations

import time
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from ..common.config import REST_TESTNET_URL, REST_URL, ClientConfig
from ..common.errors import (
    ApiError,
    DeserializationError,
    HttpStatusError,
    RateLimitError,
    RequestTimeout,
    TransportError,
)
from ..common.logging import get_logger
from ..common.metrics import REST_LATENCY, REST_REQUESTS
from ..common.utils import clean_params
from .auth import Credentials, authenticate, encode_params

log = get_logger("rest")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@lru_cache(maxsize=256)
def _adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)


class HttpClient:
    """Async REST transport shared by all endpoint wrappers.

    Holds no per-call state: every call builds its own parameters and
    timestamp, so one instance can serve many concurrent tasks.
    """

    def __init__(
        self,
        *,
        base_url: str = REST_URL,
        credentials: Optional[Credentials] = None,
        timeout: float = 30.0,
        recv_window: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._recv_window = recv_window
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self._base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(
        cls,
        cfg: ClientConfig,
        credentials: Optional[Credentials] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "HttpClient":
        if credentials is None and cfg.api_key and cfg.api_secret:
            credentials = Credentials(api_key=cfg.api_key, secret=cfg.api_secret.get_secret_value())
        return cls(
            base_url=cfg.rest_url,
            credentials=credentials,
            timeout=cfg.rest.timeout_sec,
            recv_window=cfg.rest.recv_window,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_testnet(self) -> bool:
        return self._base_url == REST_TESTNET_URL

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # Call shapes

    async def public_get(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        model: Any = None,
        with_api_key: bool = False,
    ) -> Any:
        return await self._request("GET", path, params, signed=False, with_api_key=with_api_key, model=model)

    async def signed_get(self, path: str, params: Optional[Mapping[str, Any]] = None, *, model: Any = None) -> Any:
        return await self._request("GET", path, params, signed=True, model=model)

    async def signed_post(self, path: str, params: Optional[Mapping[str, Any]] = None, *, model: Any = None) -> Any:
        return await self._request("POST", path, params, signed=True, model=model)

    async def signed_put(self, path: str, params: Optional[Mapping[str, Any]] = None, *, model: Any = None) -> Any:
        return await self._request("PUT", path, params, signed=True, model=model)

    async def signed_delete(self, path: str, params: Optional[Mapping[str, Any]] = None, *, model: Any = None) -> Any:
        return await self._request("DELETE", path, params, signed=True, model=model)

    # Internals

    def _api_key_header(self) -> Dict[str, str]:
        if self._credentials is None:
            return {}
        return {"X-MBX-APIKEY": self._credentials.api_key}

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]],
        *,
        signed: bool,
        with_api_key: bool = False,
        model: Any = None,
    ) -> Any:
        cleaned = clean_params(dict(params or {}))
        headers: Dict[str, str] = {}
        if signed:
            if self._recv_window is not None:
                cleaned.setdefault("recvWindow", str(self._recv_window))
            # raises AuthenticationError before any I/O when keys are missing
            cleaned = authenticate(cleaned, self._credentials)
            headers.update(self._api_key_header())
        elif with_api_key:
            headers.update(self._api_key_header())

        query = encode_params(cleaned)
        url = path
        content: Optional[bytes] = None
        if method == "POST" and signed:
            content = query.encode("utf-8")
            headers["Content-Type"] = FORM_CONTENT_TYPE
        elif query:
            url = f"{path}?{query}"

        started = time.perf_counter()
        try:
            resp = await self._client.request(method, url, content=content, headers=headers)
        except httpx.TimeoutException as e:
            REST_REQUESTS.labels(method=method, path=path, outcome="timeout").inc()
            log.warning("rest_timeout", method=method, path=path, error=str(e))
            raise RequestTimeout(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            REST_REQUESTS.labels(method=method, path=path, outcome="transport_error").inc()
            log.warning("rest_transport_error", method=method, path=path, error=str(e))
            raise TransportError(f"{method} {path} failed: {e}") from e
        finally:
            REST_LATENCY.labels(method=method, path=path).observe(time.perf_counter() - started)

        log.debug("rest_response", method=method, path=path, status=resp.status_code)
        return self._handle_response(method, path, resp, model)

    def _handle_response(self, method: str, path: str, resp: httpx.Response, model: Any) -> Any:
        if resp.is_success:
            try:
                data = resp.json()
            except ValueError as e:
                REST_REQUESTS.labels(method=method, path=path, outcome="deserialization_error").inc()
                raise DeserializationError(f"{method} {path}: invalid JSON body: {resp.text[:200]}") from e
            if model is not None:
                try:
                    data = _adapter(model).validate_python(data)
                except ValidationError as e:
                    REST_REQUESTS.labels(method=method, path=path, outcome="deserialization_error").inc()
                    raise DeserializationError(f"{method} {path}: unexpected response shape: {e}") from e
            REST_REQUESTS.labels(method=method, path=path, outcome="ok").inc()
            return data

        REST_REQUESTS.labels(method=method, path=path, outcome="error").inc()
        body = resp.text
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        code = payload.get("code") if isinstance(payload, dict) else None
        if isinstance(code, int) and not isinstance(code, bool) and "msg" in payload:
            err_cls = RateLimitError if resp.status_code in (418, 429) else ApiError
            log.warning("rest_api_error", method=method, path=path, status=resp.status_code, code=code, msg=payload["msg"])
            raise err_cls(code, str(payload["msg"]), status=resp.status_code)
        log.warning("rest_http_error", method=method, path=path, status=resp.status_code)
        raise HttpStatusError(resp.status_code, body)
