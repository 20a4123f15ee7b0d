#!/usr/bin/env python3
from __future__ import annotations

import argparse

from binance_futures.common.config import load_client_config
from binance_futures.common.errors import ConfigError


def main() -> None:
    parser = argparse.ArgumentParser(description='Validate client configuration using Pydantic schema')
    parser.add_argument('--config', default='config/client.yml')
    args = parser.parse_args()

    try:
        cfg = load_client_config(args.config)
    except ConfigError as exc:
        raise SystemExit(f'configuration invalid: {exc}')
    summary = {
        'rest_url': cfg.rest_url,
        'ws_url': cfg.ws_url,
        'credentials': bool(cfg.api_key and cfg.api_secret),
        'keepalive_interval_sec': cfg.user_stream.keepalive_interval_sec,
    }
    print('configuration valid:', summary)


if __name__ == '__main__':
    main()
