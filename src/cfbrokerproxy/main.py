"""
Broker proxy entry point.

Loads configuration, configures logging, authenticates against the Cloud
Controller and serves the Open Service Broker API.
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

from .broker import BrokerProxy
from .broker.app import create_app
from .cloudcontroller import CloudControllerClient, CloudControllerError
from .config import ConfigManager, initialize_config
from .observability import configure_logging, on_config_updated

logger = structlog.get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Open Service Broker proxy for the Cloud Controller")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="TOML config file (default: config/default.toml)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help=".env file (default: .env)",
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Human-readable log output instead of JSON lines",
    )
    return parser.parse_args(argv)


def build_client(config: ConfigManager) -> CloudControllerClient:
    """Create and authenticate the Cloud Controller client."""
    client = CloudControllerClient(
        api_url=config.get("cf.api_url"),
        username=config.get("cf.username"),
        password=config.get("cf.password"),
        skip_ssl_validation=config.get("cf.skip_ssl_validation"),
        timeout=config.get("cf.request_timeout_seconds"),
    )
    client.authenticate()

    def apply_timeout(key: str, value: Any) -> None:
        if key == "cf.request_timeout_seconds":
            client.timeout = value

    config.subscribe(apply_timeout)
    return client


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for clean shutdown, 1 for startup failure)
    """
    args = parse_args(argv)
    configure_logging(json_output=not args.console_logs)
    logger.info("starting_up_broker")

    try:
        config = initialize_config(args.config, args.env_file)
    except ValueError as e:
        logger.error("config_invalid", error=str(e))
        return 1

    configure_logging(config.get("logging.level"), json_output=not args.console_logs)
    config.subscribe(on_config_updated)

    try:
        client = build_client(config)
    except CloudControllerError as e:
        logger.error("cc_client_creation_failed", **e.to_dict())
        return 1

    broker = BrokerProxy(
        client,
        description_max_length=config.get("catalog.description_max_length"),
    )
    app = create_app(
        broker,
        username=config.get("broker.username"),
        password=config.get("broker.password"),
    )

    host = config.get("broker.host")
    port = config.get("broker.port")
    logger.info("http_listen", host=host, port=port)
    try:
        app.run(host=host, port=port, threaded=True)
    except OSError as e:
        logger.error("http_listen_failed", host=host, port=port, error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
