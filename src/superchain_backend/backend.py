import logging
from functools import partial
from typing import Any

from .config import BackendConfig
from .errors import MessageIntegrityError, PeerNotConfiguredError, RPCBatchError
from .head_tracker import FinalizedHeadTracker, fetch_finalized_reference
from .models import MessageIdentifier, MessageSafetyLabel
from .peers import PeerConnection, PeerRegistry, connect
from .verifier import MessageSafetyVerifier

# Get logger for this module
logger = logging.getLogger(__name__)


class SuperchainBackend:
    """
    Message safety backend for the superchain.

    Owns the connection to the primary L2 node, the peer registry and the
    finalized head tracker, and answers message safety queries through
    the verifier. Safe for concurrent use from multiple tasks.
    """

    def __init__(
        self,
        l2_node: PeerConnection,
        registry: PeerRegistry,
        tracker: FinalizedHeadTracker,
    ) -> None:
        """
        Wire up an already started set of components.

        Use create() to build a backend from configuration.
        """
        self.l2_node = l2_node
        self.registry = registry
        self.tracker = tracker
        self.verifier = MessageSafetyVerifier(registry, tracker)

        # Metrics tracking
        self.checks_total = 0
        self.checks_finalized = 0
        self.checks_unfinalized = 0
        self.checks_not_configured = 0
        self.checks_fetch_failed = 0
        self.checks_integrity_failed = 0

    @classmethod
    async def create(cls, config: BackendConfig) -> "SuperchainBackend":
        """
        Connect to every configured node and start the finalized head tracker.

        Any failure is fatal: everything opened so far is closed and the
        error is raised.

        :param config: Backend configuration
        :return: Ready backend
        """
        logger.info("Starting SuperchainBackend initialization")
        polling = config.polling
        l2_node: PeerConnection | None = None
        registry: PeerRegistry | None = None

        try:
            logger.debug(f"Connecting to L2 node at {config.nodes.rpc_url}")
            try:
                l2_node = await connect(
                    config.nodes.rpc_url,
                    dial_attempts=polling.dial_attempts,
                    request_timeout=polling.request_timeout
                )
            except ConnectionError as e:
                raise ConnectionError(f"failed to connect to L2 node: {e}") from e

            registry = await PeerRegistry.connect_all(
                config.nodes.peer_rpc_urls,
                dial_attempts=polling.dial_attempts,
                request_timeout=polling.request_timeout
            )

            logger.debug("Fetching initial finalized head...")
            tracker = await FinalizedHeadTracker.start(
                partial(fetch_finalized_reference, l2_node.w3),
                poll_interval=polling.finalized_poll_interval,
                fetch_timeout=polling.finalized_fetch_timeout
            )

        except BaseException as e:
            logger.error(f"SuperchainBackend initialization failed: {e}")
            if registry is not None:
                await registry.close()
            if l2_node is not None:
                await l2_node.close()
            raise

        logger.info(f"SuperchainBackend initialized (peer chains: {registry.chain_ids})")
        return cls(l2_node, registry, tracker)

    async def message_safety(self, identifier: MessageIdentifier, payload: bytes) -> MessageSafetyLabel:
        """
        Verify a cross-chain message and return its safety label.

        :param identifier: Claimed origin of the message
        :param payload: Claimed message payload
        :return: Safety label; INVALID without an error if not yet finalized
        :raises MessageSafetyError: If the message could not be verified
        """
        logger.info(
            f"message safety check chain_id={identifier.chain_id} "
            f"block_num={identifier.block_number} log_index={identifier.log_index}"
        )
        self.checks_total += 1

        try:
            label = await self.verifier.message_safety(identifier, payload)
        except PeerNotConfiguredError:
            self.checks_not_configured += 1
            raise
        except RPCBatchError as e:
            self.checks_fetch_failed += 1
            logger.warning(f"Message safety fetch failed for {identifier}: {e}")
            raise
        except MessageIntegrityError as e:
            self.checks_integrity_failed += 1
            logger.info(f"Message failed integrity check {identifier}: {e}")
            raise

        if label is MessageSafetyLabel.FINALIZED:
            self.checks_finalized += 1
        else:
            self.checks_unfinalized += 1
        return label

    def get_metrics(self) -> dict[str, Any]:
        """
        Get current verification and tracker metrics.

        :return: Dictionary of metric names to values
        """
        return {
            "checks_total": self.checks_total,
            "checks_finalized": self.checks_finalized,
            "checks_unfinalized": self.checks_unfinalized,
            "checks_not_configured": self.checks_not_configured,
            "checks_fetch_failed": self.checks_fetch_failed,
            "checks_integrity_failed": self.checks_integrity_failed,
            **self.tracker.get_status(),
        }

    def log_metrics(self) -> None:
        """Log current metrics."""
        metrics = self.get_metrics()
        logger.info(
            f"SuperchainBackend Metrics: "
            f"Checks={metrics['checks_total']}, "
            f"Finalized={metrics['checks_finalized']}, "
            f"Unfinalized={metrics['checks_unfinalized']}, "
            f"NotConfigured={metrics['checks_not_configured']}, "
            f"FetchFailed={metrics['checks_fetch_failed']}, "
            f"IntegrityFailed={metrics['checks_integrity_failed']}, "
            f"FinalizedHead={metrics['finalized_number']}@{metrics['finalized_timestamp']}, "
            f"PollFailures={metrics['polls_failed']}"
        )

    async def close(self) -> None:
        """Stop the tracker and close every connection."""
        logger.info("Shutting down SuperchainBackend...")
        await self.tracker.stop()
        await self.registry.close()
        await self.l2_node.close()
        logger.info("SuperchainBackend shutdown complete")

    async def __aenter__(self) -> "SuperchainBackend":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
