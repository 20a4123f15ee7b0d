from __future__ import annotations

from typing import Any, Dict, List, Optional


# Short operator hints for error codes that show up often in practice.
ERROR_HINTS: Dict[int, str] = {
    -1021: "timestamp outside recvWindow; check the local clock",
    -1022: "signature rejected; check the API secret",
    -1125: "listen key does not exist; create a new one",
    -2014: "API key format invalid",
    -2015: "API key, IP or permissions rejected",
    -2019: "margin is insufficient",
    -4164: "order notional below the symbol minimum",
}


class BinanceError(Exception):
    """Base class for every error raised by this package."""


class TransportError(BinanceError):
    """Connectivity, TLS or socket level failure before a response arrived."""


class RequestTimeout(TransportError):
    pass


class DeserializationError(BinanceError):
    """A successful response whose body is not the JSON shape we expected."""


class ApiError(BinanceError):
    """The exchange rejected the request with a ``{code, msg}`` payload."""

    def __init__(self, code: int, msg: str, *, status: Optional[int] = None) -> None:
        self.code = int(code)
        self.msg = msg
        self.status = status
        self.hint = ERROR_HINTS.get(self.code)
        text = f"API error {self.code}: {msg}"
        if self.hint:
            text = f"{text} ({self.hint})"
        super().__init__(text)


class RateLimitError(ApiError):
    """HTTP 429 (throttled) or 418 (IP banned) with an exchange payload."""


class HttpStatusError(BinanceError):
    """Non-2xx response that did not carry a recognizable error payload."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body[:200]}")


class AuthenticationError(BinanceError):
    pass


class InvalidParameterError(BinanceError, ValueError):
    pass


class ConfigError(BinanceError):
    pass


class ListenKeyError(BinanceError):
    pass


class StreamError(BinanceError):
    pass


class MessageDecodeError(StreamError):
    def __init__(self, reason: str, raw: Any = None) -> None:
        self.reason = reason
        self.raw = raw
        super().__init__(reason)


class AlgoExecutionError(BinanceError):
    """A slice of an algorithmic sequence failed; ``completed`` holds the orders placed before it."""

    def __init__(self, message: str, completed: List[Any]) -> None:
        self.completed = list(completed)
        super().__init__(message)
