from __future__ import annotations

import os
import time
import uuid
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import Any, Dict, Optional


def utc_ms() -> int:
    return int(time.time() * 1000)


def gen_id(prefix: str = "") -> str:
    # newClientOrderId is limited to 36 chars
    return f"{prefix}{uuid.uuid4().hex}"[:36]


def format_decimal(value: Decimal | float | str, precision: int) -> str:
    """Render ``value`` with at most ``precision`` decimals, truncating toward zero."""
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    if precision <= 0:
        q = Decimal(1)
    else:
        q = Decimal(1).scaleb(-precision)
    out = d.quantize(q, rounding=ROUND_DOWN)
    text = format(out, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Drop ``None`` values and stringify the rest."""
    return {k: param_value(v) for k, v in (params or {}).items() if v is not None}


def env_bool(name: str, default: bool = False) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "y"}
