"""
Command line entry point.

Usage:
    python -m metabase_proxy                          # Uses ./metabase-api-proxy.conf
    python -m metabase_proxy -c /etc/metabase-proxy.yml
"""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from dotenv import load_dotenv

from metabase_proxy.config import get_config, load_config
from metabase_proxy.errors import ConfigError, TLSMaterialError
from metabase_proxy.logging import configure_logging, get_logger
from metabase_proxy.server import build_server
from metabase_proxy.services.shutdown import ShutdownCoordinator
from metabase_proxy.services.tls import load_tls_material
from metabase_proxy.state import app_state

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="metabase-proxy",
        description="Reverse proxy that signs requests with a managed Metabase session",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to config file in YAML, TOML or JSON (or set METABASE_PROXY_CONFIG)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    settings = get_config()
    config_path = args.config or settings.metabase_proxy_config

    try:
        config = load_config(config_path)
        configure_logging(config.debug or settings.metabase_proxy_debug)
        tls = load_tls_material(config.proxy) if config.proxy.ssl else None
    except (ConfigError, TLSMaterialError) as e:
        logger.error(str(e))
        return 1

    logger.info(f"Loaded config from {config_path}")
    coordinator = ShutdownCoordinator(app_state.connections)
    server = build_server(config, tls, coordinator)
    server.run()
    return coordinator.exit_code


if __name__ == "__main__":
    sys.exit(main())
