#!/usr/bin/env python3
"""Configuration management for the superchain backend.

This module provides type-safe configuration dataclasses with validation
for the message safety backend. Configuration is loaded from environment
variables with sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

# Get logger for this module
logger = logging.getLogger(__name__)


def _validate_rpc_url(rpc_url: str, name: str) -> None:
    """Validate that an RPC URL is present and uses an HTTP scheme."""
    if not rpc_url:
        raise ValueError(f"{name} is required")

    parsed = urlparse(rpc_url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(
            f"Invalid RPC URL scheme for {name}: {parsed.scheme}. "
            "Expected http or https"
        )
    if not parsed.netloc:
        raise ValueError(f"Invalid RPC URL for {name}: {rpc_url}")


def parse_peer_urls(value: str) -> dict[int, str]:
    """Parse a comma separated list of chainId=url pairs.

    Example:
        "10=http://op-node:8545,8453=http://base-node:8545"

    Raises:
        ValueError: If an entry is malformed or a chain id repeats
    """
    peers: dict[int, str] = {}
    for entry in value.split(','):
        entry = entry.strip()
        if not entry:
            continue

        chain_id_str, sep, rpc_url = entry.partition('=')
        if not sep:
            raise ValueError(f"Invalid peer entry (expected chainId=url): {entry}")

        try:
            chain_id = int(chain_id_str.strip(), 0)
        except ValueError:
            raise ValueError(f"Invalid peer chain id: {chain_id_str.strip()}") from None

        if chain_id in peers:
            raise ValueError(f"Duplicate peer chain id: {chain_id}")
        peers[chain_id] = rpc_url.strip()
    return peers


@dataclass(frozen=True, slots=True)
class L2NodeConfig:
    """Configuration of the primary and peer L2 nodes.

    Attributes:
        rpc_url: RPC endpoint of the node whose finalized head grounds safety decisions
        peer_rpc_urls: RPC endpoint per chain id of the dependency set
    """

    rpc_url: str
    peer_rpc_urls: dict[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate node configuration."""
        _validate_rpc_url(self.rpc_url, "L2 node RPC URL (L2_NODE_RPC_URL)")

        if not self.peer_rpc_urls:
            raise ValueError("At least one peer L2 node is required (PEER_L2_NODE_RPC_URLS)")

        for chain_id, rpc_url in self.peer_rpc_urls.items():
            if chain_id <= 0:
                raise ValueError(f"Peer chain id must be positive, got {chain_id}")
            _validate_rpc_url(rpc_url, f"peer L2 node RPC URL for chain {chain_id}")


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Configuration for finalized head polling and connections."""
    # One poll per finalization epoch (12s slots, 32 slots)
    finalized_poll_interval: int = 384  # seconds between finalized head polls
    finalized_fetch_timeout: int = 10  # timeout for each finalized head fetch
    request_timeout: int = 30  # HTTP request timeout in seconds
    dial_attempts: int = 10  # connection attempts per node at startup

    def __post_init__(self) -> None:
        """Validate polling configuration."""
        if self.finalized_poll_interval <= 0:
            raise ValueError(
                f"Finalized poll interval must be positive, got {self.finalized_poll_interval}"
            )
        if self.finalized_poll_interval > 3600:
            raise ValueError(
                f"Finalized poll interval too long (max 3600s), got {self.finalized_poll_interval}"
            )

        if self.finalized_fetch_timeout <= 0:
            raise ValueError(
                f"Finalized fetch timeout must be positive, got {self.finalized_fetch_timeout}"
            )
        if self.finalized_fetch_timeout >= self.finalized_poll_interval:
            raise ValueError(
                f"Finalized fetch timeout ({self.finalized_fetch_timeout}s) must be shorter "
                f"than the poll interval ({self.finalized_poll_interval}s)"
            )

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.dial_attempts <= 0:
            raise ValueError(f"Dial attempts must be positive, got {self.dial_attempts}")
        if self.dial_attempts > 20:
            raise ValueError(f"Dial attempts too high (max 20), got {self.dial_attempts}")


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Main configuration for the superchain backend.

    Attributes:
        nodes: Primary and peer L2 node endpoints
        polling: Finalized head polling and connection settings
    """

    nodes: L2NodeConfig
    polling: PollingConfig = field(default_factory=PollingConfig)

    @classmethod
    def from_env(cls) -> "BackendConfig":
        """Load configuration from environment variables.

        Returns:
            BackendConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        rpc_url = os.environ.get("L2_NODE_RPC_URL", "")
        if not rpc_url:
            raise ValueError(
                "L2_NODE_RPC_URL environment variable is required. "
                "This is the node whose finalized head grounds safety decisions."
            )

        peer_urls = os.environ.get("PEER_L2_NODE_RPC_URLS", "")
        if not peer_urls:
            raise ValueError(
                "PEER_L2_NODE_RPC_URLS environment variable is required. "
                "Example: 10=http://op-node:8545,8453=http://base-node:8545"
            )

        nodes = L2NodeConfig(
            rpc_url=rpc_url,
            peer_rpc_urls=parse_peer_urls(peer_urls)
        )

        try:
            polling = PollingConfig(
                finalized_poll_interval=int(os.environ.get("FINALIZED_POLL_INTERVAL", "384")),
                finalized_fetch_timeout=int(os.environ.get("FINALIZED_FETCH_TIMEOUT", "10")),
                request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
                dial_attempts=int(os.environ.get("DIAL_ATTEMPTS", "10"))
            )
        except ValueError as e:
            raise ValueError(f"Invalid polling configuration: {e}") from e

        return cls(nodes=nodes, polling=polling)

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Superchain Backend Configuration")
        logger.info("=" * 60)

        logger.info("L2 Node:")
        logger.info(f"  RPC URL: {self.nodes.rpc_url}")

        logger.info("Peer L2 Nodes:")
        for chain_id, rpc_url in sorted(self.nodes.peer_rpc_urls.items()):
            logger.info(f"  Chain {chain_id}: {rpc_url}")

        logger.info("Polling Settings:")
        logger.info(f"  Finalized Poll Interval: {self.polling.finalized_poll_interval} seconds")
        logger.info(f"  Finalized Fetch Timeout: {self.polling.finalized_fetch_timeout} seconds")
        logger.info(f"  Request Timeout: {self.polling.request_timeout} seconds")
        logger.info(f"  Dial Attempts: {self.polling.dial_attempts}")

        logger.info("=" * 60)
