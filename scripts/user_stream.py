#!/usr/bin/env python3
"""Follow account and order updates on the user-data stream until interrupted."""
from __future__ import annotations

import argparse
import asyncio
import signal

from prometheus_client import start_http_server

from binance_futures.client import BinanceClient
from binance_futures.common.config import load_client_config
from binance_futures.common.logging import get_logger, setup_logging

log = get_logger("user_stream")


async def run(config_path: str | None) -> None:
    cfg = load_client_config(config_path)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    def on_message(msg) -> None:
        print(msg.model_dump_json(by_alias=False))

    def on_error(err) -> None:
        log.warning("user_stream_bad_frame", reason=err.reason)

    async with BinanceClient(cfg) as client:
        uds = client.user_data_stream()
        try:
            await uds.run(on_message, on_error=on_error, stop_event=stop)
        finally:
            await uds.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description='Follow the futures user-data stream')
    parser.add_argument('--config', default=None)
    parser.add_argument('--metrics-port', type=int, default=0)
    args = parser.parse_args()

    setup_logging()
    if args.metrics_port:
        start_http_server(args.metrics_port)
    asyncio.run(run(args.config))


if __name__ == '__main__':
    main()
