#!/usr/bin/env python3

import asyncio
import argparse

from prometheus_client import start_http_server

from config.config import LOG_FILE, LOG_LEVEL
from config.node_config import NodeConfig, load_config
from errors.exceptions import ConfigError
from log_utils import setup_logging
from node.startup import ProofNode


async def main(args, logger):
    config = load_config(args.config) if args.config else NodeConfig()
    if args.bind_address:
        config.bind_address = args.bind_address
    if args.ingest_address:
        config.ingest_address = args.ingest_address

    logger.info("Starting account proof node")
    logger.info(f"Update stream on {config.bind_address}, ingest on {config.ingest_address}")

    if args.metrics_port:
        start_http_server(args.metrics_port)
        logger.info(f"Metrics exported on port {args.metrics_port}")

    node = ProofNode(config, require_startup=not args.skip_startup_gate)
    try:
        await node.startup()
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Node cancelled, shutting down gracefully")
    finally:
        await node.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Account proof node')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to JSON config with account_list and addresses')
    parser.add_argument('--bind-address', type=str, default=None,
                        help='host:port for update subscribers')
    parser.add_argument('--ingest-address', type=str, default=None,
                        help='host:port for the JSON-lines event feed')
    parser.add_argument('--metrics-port', type=int, default=None,
                        help='Expose Prometheus metrics on this port')
    parser.add_argument('--skip-startup-gate', action='store_true',
                        help='Accept events before the host reports end of startup')
    parser.add_argument('--log-level', type=str, default=LOG_LEVEL)
    parser.add_argument('--log-file', type=str, default=LOG_FILE)

    args = parser.parse_args()

    logger = setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        enable_console=True,
        enable_structured=True
    )

    try:
        asyncio.run(main(args, logger))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down")
    except ConfigError as e:
        logger.critical(f"Configuration error: {e.message}")
        raise SystemExit(2)
    except Exception as e:
        logger.critical(f"Fatal error: {str(e)}")
        raise
