#!/usr/bin/env python3
"""Entry point for the POAP Relayer service.

Watches POAP Mint events and records mints for the configured event IDs
on the indexer contract.
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

from poap_relayer.relayer import PoapRelayer  # noqa: E402


def build_parser() -> argparse.ArgumentParser:
    """Command line parser; the epilog lists every supported variable."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="POAP Relayer - record POAP mints on the indexer contract",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RPC_URL                  - RPC endpoint (falls back to PONDER_RPC_URL_8453)
  PRIVATE_KEY              - Private key of the relayer account
  TARGET_EVENT_ID          - Comma-separated POAP event IDs (default: 190857)
  INDEXER_CONTRACT_ADDRESS - Indexer contract address
  POAP_CONTRACT_ADDRESS    - POAP contract address
  START_BLOCK              - First block of the initial sync, or "latest" (default: 23049780)
  POLLING_INTERVAL         - Event polling interval in seconds (default: 12)
  LOOKBACK_BLOCKS          - Blocks to look back when START_BLOCK=latest (default: 100)
  MAX_BLOCK_RANGE          - Blocks per get_logs request (default: 2000)
  REQUEST_TIMEOUT          - HTTP request timeout in seconds (default: 30)
  CONFIRMATION_TIMEOUT     - Seconds to wait for a receipt (default: 120)
  LOG_LEVEL                - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    return parser


async def main() -> None:
    """Main entry point for the POAP Relayer.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    args: argparse.Namespace = build_parser().parse_args()

    setup_logging(args.log_level)
    logger.info("=== POAP Relayer Starting ===")

    relayer: PoapRelayer | None = None
    try:
        relayer = PoapRelayer.from_env()
        await relayer.run()

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - RPC_URL: RPC endpoint of the chain hosting both contracts")
        logger.error("  - PRIVATE_KEY: Private key for signing indexer transactions")
        logger.error("  - TARGET_EVENT_ID: Comma-separated list of POAP event IDs")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        if relayer:
            relayer.stop()

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
