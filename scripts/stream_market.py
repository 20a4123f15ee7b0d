#!/usr/bin/env python3
"""Print decoded market stream events, e.g. ``stream_market.py BTCUSDT --depth --trades``."""
from __future__ import annotations

import argparse
import asyncio
import signal

from prometheus_client import start_http_server

from binance_futures.common.config import load_client_config
from binance_futures.common.logging import get_logger, setup_logging
from binance_futures.stream.connector import (
    StreamClient,
    all_tickers_topic,
    depth_topic,
    kline_topic,
    ticker_topic,
    trade_topic,
)

log = get_logger("stream_market")


def build_topics(args: argparse.Namespace) -> list[str]:
    topics = []
    for symbol in args.symbols:
        if args.depth:
            topics.append(depth_topic(symbol, args.depth_levels))
        if args.trades:
            topics.append(trade_topic(symbol))
        if args.kline:
            topics.append(kline_topic(symbol, args.kline))
        if args.ticker:
            topics.append(ticker_topic(symbol))
    if args.all_tickers:
        topics.append(all_tickers_topic())
    return topics


async def run(args: argparse.Namespace) -> None:
    cfg = load_client_config(args.config)
    client = StreamClient.from_config(cfg)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    def on_message(msg) -> None:
        print(msg.model_dump_json(by_alias=False))

    topics = build_topics(args)
    log.info("stream_start", topics=topics, url=client.stream_url(topics))
    await client.run_stream(topics, on_message, stop_event=stop)


def main() -> None:
    parser = argparse.ArgumentParser(description='Stream USD-M futures market data')
    parser.add_argument('symbols', nargs='*', default=['BTCUSDT'])
    parser.add_argument('--config', default=None)
    parser.add_argument('--depth', action='store_true')
    parser.add_argument('--depth-levels', type=int, default=None)
    parser.add_argument('--trades', action='store_true')
    parser.add_argument('--kline', default=None, help='interval, e.g. 1m')
    parser.add_argument('--ticker', action='store_true')
    parser.add_argument('--all-tickers', action='store_true')
    parser.add_argument('--metrics-port', type=int, default=0)
    args = parser.parse_args()

    setup_logging()
    if not build_topics(args):
        parser.error('select at least one stream')
    if args.metrics_port:
        start_http_server(args.metrics_port)
    asyncio.run(run(args))


if __name__ == '__main__':
    main()
