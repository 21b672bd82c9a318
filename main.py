#!/usr/bin/env python3
"""Entry point for the ETH-DA storage relayer.

Runs the relayer in either production (ROFL) or local testing mode until the
source chain stalls or the process is interrupted.
"""

import argparse
import asyncio
import logging
import os
import sys


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


logger = logging.getLogger(__name__)

from ethda_relayer.errors import ChainStalledError, InvalidConfiguration
from ethda_relayer.monitor import RelayerMonitor


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="ETH-DA Relayer - pin EthDAEvent payloads and place storage orders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  SOURCE_RPC_URL           - RPC endpoint for the source chain
  SOURCE_CONTRACT_ADDRESS  - Contract emitting EthDAEvent
  IPFS_GATEWAY_URL         - Pinning gateway base URL
  TARGET_NETWORK           - Target network name or RPC URL (default: sapphire-testnet)
  TARGET_CONTRACT_ADDRESS  - StorageOrder contract on the target chain
  CHECKPOINT_PATH          - Checkpoint record (default: ./block.json)
  POLLING_INTERVAL         - Seconds between scan passes (default: 10)
  LOCAL_PRIVATE_KEY        - Private key for local mode (required with --local)
  LOG_LEVEL                - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--local",
        action="store_true",
        default=False,
        help="Run in local mode without ROFL utilities (for testing)"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    return parser.parse_args(argv)


async def main() -> None:
    """Load configuration, start the relayer and map failures to exit codes."""
    args = parse_args()
    setup_logging(args.log_level)

    logger.info(f"=== ETH-DA Relayer Starting {'(LOCAL MODE)' if args.local else ''} ===")

    monitor: RelayerMonitor | None = None
    try:
        monitor = RelayerMonitor.from_env(local_mode=args.local)
        await monitor.run()

    except InvalidConfiguration as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - SOURCE_RPC_URL, SOURCE_CONTRACT_ADDRESS")
        logger.error("  - IPFS_GATEWAY_URL")
        logger.error("  - TARGET_NETWORK, TARGET_CONTRACT_ADDRESS")
        if args.local:
            logger.error("  - LOCAL_PRIVATE_KEY: Required for local mode")
        sys.exit(1)

    except ChainStalledError as e:
        logger.error(f"Source chain stalled: {e}")
        sys.exit(1)

    except asyncio.CancelledError:
        # asyncio.run delivers Ctrl-C to this coroutine as a cancellation
        logger.info("Received interrupt signal, shutting down...")
        if monitor is not None:
            monitor.stop()
        raise

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Relayer interrupted, exiting")
        sys.exit(0)


if __name__ == "__main__":
    run()
