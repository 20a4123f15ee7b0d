from __future__ import annotations

import hmac
import os
from dataclasses import dataclass, field
from hashlib import sha256
from typing import Any, Dict, Mapping, Optional

from ..common.errors import AuthenticationError
from ..common.utils import param_value, utc_ms


@dataclass(frozen=True)
class Credentials:
    api_key: str
    secret: str = field(repr=False)

    @classmethod
    def from_env(cls) -> Optional["Credentials"]:
        key = os.getenv("BINANCE_API_KEY", "")
        secret = os.getenv("BINANCE_API_SECRET", "")
        if not (key and secret):
            return None
        return cls(api_key=key, secret=secret)


def sign(message: str, secret: bytes | str) -> str:
    key = secret.encode() if isinstance(secret, str) else secret
    return hmac.new(key, message.encode("utf-8"), sha256).hexdigest()


def canonicalize(params: Mapping[str, Any]) -> str:
    return "&".join(f"{k}={param_value(params[k])}" for k in sorted(params))


def encode_params(params: Mapping[str, Any]) -> str:
    """Join an already ordered mapping as ``k=v&...`` without re-sorting."""
    return "&".join(f"{k}={param_value(v)}" for k, v in params.items())


def authenticate(
    params: Optional[Mapping[str, Any]],
    credentials: Optional[Credentials],
    *,
    timestamp_ms: Optional[int] = None,
) -> Dict[str, str]:
    """Return ``params`` plus ``timestamp`` and ``signature``, keys in signing order.

    The returned mapping preserves the canonical (sorted) order with
    ``signature`` last, so ``encode_params`` of the result is exactly the
    string the exchange will hash.
    """
    if credentials is None or not credentials.api_key or not credentials.secret:
        raise AuthenticationError("API key and secret are required for signed endpoints")
    merged = {k: param_value(v) for k, v in (params or {}).items()}
    merged.pop("signature", None)
    merged["timestamp"] = str(timestamp_ms if timestamp_ms is not None else utc_ms())
    query = canonicalize(merged)
    signed = {k: merged[k] for k in sorted(merged)}
    signed["signature"] = sign(query, credentials.secret)
    return signed
