from __future__ import annotations

import os
import re
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator

from .errors import ConfigError

REST_URL = "https://fapi.binance.com"
REST_TESTNET_URL = "https://testnet.binancefuture.com"
WS_URL = "wss://fstream.binance.com"
WS_TESTNET_URL = "wss://stream.binancefuture.com"


class RestConfig(BaseModel):
    base_url: Optional[str] = None
    timeout_sec: float = 30.0
    recv_window: Optional[int] = None

    @field_validator("recv_window")
    @classmethod
    def validate_recv_window(cls, v: Optional[int]):
        # exchange caps recvWindow at 60s
        if v is not None and not 0 < v <= 60_000:
            raise ValueError("recv_window must be in (0, 60000] ms")
        return v


class WsConfig(BaseModel):
    base_url: Optional[str] = None
    ping_interval: float = 20.0
    ping_timeout: float = 10.0
    recv_timeout: float = 60.0
    reconnect_backoff_ms: List[int] = Field(default_factory=lambda: [500, 1000, 2000, 5000])


class UserDataStreamConfig(BaseModel):
    auto_keepalive: bool = True
    keepalive_interval_sec: float = 30 * 60
    expiry_sec: float = 60 * 60
    reconnect_on_failure: bool = True
    max_reconnect_attempts: int = 5
    # account streams stay silent between events; liveness comes from websocket pings
    recv_timeout: Optional[float] = None

    @model_validator(mode="after")
    def validate_intervals(self):
        if self.keepalive_interval_sec <= 0:
            raise ValueError("keepalive_interval_sec must be positive")
        if self.keepalive_interval_sec >= self.expiry_sec:
            raise ValueError("keepalive_interval_sec must be shorter than expiry_sec")
        return self


class ClientConfig(BaseModel):
    api_key: Optional[str] = None
    api_secret: Optional[SecretStr] = None
    testnet: bool = False
    rest: RestConfig = Field(default_factory=RestConfig)
    ws: WsConfig = Field(default_factory=WsConfig)
    user_stream: UserDataStreamConfig = Field(default_factory=UserDataStreamConfig)

    @field_validator("api_key", "api_secret", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def rest_url(self) -> str:
        if self.rest.base_url:
            return self.rest.base_url.rstrip("/")
        return REST_TESTNET_URL if self.testnet else REST_URL

    @property
    def ws_url(self) -> str:
        if self.ws.base_url:
            return self.ws.base_url.rstrip("/")
        return WS_TESTNET_URL if self.testnet else WS_URL


ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)(?::-(.+?))?\}")


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        def repl(m: re.Match[str]):
            name = m.group(1)
            default = m.group(2)
            return os.environ.get(name, default or "")

        return ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def load_client_config(path: Optional[str] = None) -> ClientConfig:
    cfg_path = path or os.environ.get("BINANCE_CLIENT_CONFIG", "config/client.yml")
    raw: Any = {}
    if os.path.exists(cfg_path):
        with open(cfg_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    elif path is not None:
        raise ConfigError(f"Config file not found: {cfg_path}")
    expanded = _expand_env(raw)
    try:
        cfg = ClientConfig.model_validate(expanded)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {cfg_path}: {e}") from e
    if cfg.api_key is None:
        cfg.api_key = os.environ.get("BINANCE_API_KEY") or None
    if cfg.api_secret is None and os.environ.get("BINANCE_API_SECRET"):
        cfg.api_secret = SecretStr(os.environ["BINANCE_API_SECRET"])
    return cfg
