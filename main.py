#!/usr/bin/env python3
"""Entry point for the chain watcher service.

Polls the configured node for new blocks and logs one line per
transaction, with decoded contract calls where an ABI is available.
"""

import argparse
import asyncio
import logging
import os
import sys

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from src.chain_watcher.chain_poller import ChainPoller
from src.chain_watcher.config import PollingConfig, WatcherConfig
from src.chain_watcher.models import TransactionRecord


def log_record(record: TransactionRecord) -> None:
    """Default record sink: one log line per transaction."""
    logger.info(str(record))
    if record.sender_error:
        logger.info(f"  sender unavailable: {record.sender_error}")
    if record.detail:
        logger.info(f"  {record.detail}")


async def main() -> None:
    """Main entry point for the chain watcher.

    Parses startup arguments, loads configuration from environment,
    connects to the node and polls until interrupted.

    Raises:
        SystemExit: On configuration or connection errors
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Chain Watcher - decode contract calls in new blocks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RPC_URL                - JSON-RPC endpoint of the node (default: https://ethereum.publicnode.com)
  ETHERSCAN_API_KEY      - API key for the ABI registry (required)
  REGISTRY_URL           - ABI registry endpoint (default: https://api.etherscan.io/v2/api)
  REGISTRY_MIN_INTERVAL  - Seconds between registry requests (default: 0.2)
  POLLING_INTERVAL       - Seconds between head checks (default: 10)
  REQUEST_TIMEOUT        - Deadline for each network call (default: 30)
  LOG_LEVEL              - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Override POLLING_INTERVAL (seconds)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("=== Chain Watcher Starting ===")

    poller: ChainPoller | None = None
    try:
        config: WatcherConfig = WatcherConfig.from_env()
        if args.interval is not None:
            config = WatcherConfig(
                node=config.node,
                registry=config.registry,
                polling=PollingConfig(
                    polling_interval=args.interval,
                    request_timeout=config.polling.request_timeout
                )
            )
        logger.info("Configuration loaded successfully")

        poller = await ChainPoller.connect(config, sink=log_record)
        await poller.run()

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - RPC_URL: JSON-RPC endpoint of the node")
        logger.error("  - ETHERSCAN_API_KEY: API key for the ABI registry")
        logger.error("  - POLLING_INTERVAL: Seconds between head checks (default: 10)")
        sys.exit(1)

    except ConnectionError as e:
        logger.error(f"Connection Error: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down gracefully...")

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)

    finally:
        if poller is not None:
            await poller.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)
