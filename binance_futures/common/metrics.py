from __future__ import annotations

from prometheus_client import Counter, Histogram

REST_REQUESTS = Counter(
    "binance_rest_requests_total",
    "REST calls by method, path and outcome",
    labelnames=["method", "path", "outcome"],
)
REST_LATENCY = Histogram(
    "binance_rest_latency_seconds",
    "REST round-trip latency",
    labelnames=["method", "path"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
STREAM_FRAMES = Counter(
    "binance_stream_frames_total",
    "Decoded stream frames by message kind",
    labelnames=["kind"],
)
STREAM_DECODE_ERRORS = Counter(
    "binance_stream_decode_errors_total",
    "Stream frames skipped because they failed to decode",
)
LISTEN_KEY_ACTIONS = Counter(
    "binance_listen_key_actions_total",
    "Listen key lifecycle calls by action and outcome",
    labelnames=["action", "outcome"],
)
