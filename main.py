#!/usr/bin/env python3
"""Entry point for the superchain message safety backend.

Runs the backend as a long-lived service that keeps the finalized head
fresh, or performs a single message safety check from the command line.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from hexbytes import HexBytes

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

from superchain_backend.backend import SuperchainBackend
from superchain_backend.config import BackendConfig
from superchain_backend.errors import MessageSafetyError
from superchain_backend.models import MessageIdentifier, MessageSafetyLabel

STATUS_LOG_INTERVAL = 60  # seconds

EXIT_FINALIZED = 0
EXIT_ERROR = 1
EXIT_INVALID = 2


async def run_check(backend: SuperchainBackend, identifier: MessageIdentifier, payload: bytes) -> int:
    """Run one message safety check and print the resulting label.

    Returns:
        Process exit code for the outcome
    """
    try:
        label = await backend.message_safety(identifier, payload)
    except MessageSafetyError as e:
        logger.error(f"Message safety check failed: {e}")
        print(f"{str(e.label)}: {e}")
        return EXIT_ERROR

    print(label)
    return EXIT_FINALIZED if label is MessageSafetyLabel.FINALIZED else EXIT_INVALID


async def run_service(backend: SuperchainBackend) -> None:
    """Keep the backend running, logging metrics periodically."""
    logger.info("Superchain backend running, press Ctrl+C to stop")
    while True:
        await asyncio.sleep(STATUS_LOG_INTERVAL)
        backend.log_metrics()


async def main() -> int:
    """Main entry point for the superchain message safety backend.

    Parses startup arguments, loads configuration from environment,
    connects to every configured node and either serves until
    interrupted or runs a single check.

    Returns:
        Process exit code
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Superchain Message Safety Backend - Verify cross-chain messages against their origin chain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  L2_NODE_RPC_URL          - RPC endpoint of the node providing the finalized head
  PEER_L2_NODE_RPC_URLS    - chainId=url pairs, comma separated
  FINALIZED_POLL_INTERVAL  - Finalized head polling interval (default: 384)
  FINALIZED_FETCH_TIMEOUT  - Timeout per finalized head fetch (default: 10)
  REQUEST_TIMEOUT          - HTTP request timeout (default: 30)
  DIAL_ATTEMPTS            - Connection attempts per node (default: 10)
  LOG_LEVEL                - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--identifier",
        help='Message identifier as JSON, e.g. \'{"chainId": 10, "blockNumber": 100, '
             '"logIndex": 2, "origin": "0x...", "timestamp": 1000}\''
    )
    parser.add_argument(
        "--payload",
        help="Message payload as hex (required with --identifier)"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)

    identifier: MessageIdentifier | None = None
    payload: bytes = b""
    if args.identifier is not None:
        if args.payload is None:
            parser.error("--payload is required with --identifier")
        try:
            identifier = MessageIdentifier.from_dict(json.loads(args.identifier))
            payload = bytes(HexBytes(args.payload))
        except ValueError as e:
            logger.error(f"Invalid message: {e}")
            return EXIT_ERROR

    logger.info("=== Superchain Backend Starting ===")
    logger.info("Loading configuration from environment...")

    try:
        config: BackendConfig = BackendConfig.from_env()
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - L2_NODE_RPC_URL: RPC endpoint of the node providing the finalized head")
        logger.error("  - PEER_L2_NODE_RPC_URLS: chainId=url pairs, comma separated")
        logger.error("  - FINALIZED_POLL_INTERVAL: Finalized head polling interval (default: 384)")
        logger.error("  - FINALIZED_FETCH_TIMEOUT: Timeout per finalized head fetch (default: 10)")
        return EXIT_ERROR

    logger.info("Configuration loaded successfully")
    config.log_config()

    try:
        async with await SuperchainBackend.create(config) as backend:
            if identifier is not None:
                return await run_check(backend, identifier, payload)
            await run_service(backend)
            return EXIT_FINALIZED

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        return EXIT_ERROR


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
        sys.exit(0)
