#!/usr/bin/env python3
"""Finalized head tracking for the authoritative L2 chain.

The tracker owns the only mutable shared state of the backend: the latest
finalized block reference. The value is an immutable FinalizedReference that
is replaced whole on every refresh, so readers never need a lock and never
see a partially updated reference.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from web3 import AsyncWeb3

from .errors import FinalizedHeadUnavailableError
from .models import FinalizedReference
from .utils.block_ref_poller import BlockRefPoller

# Get logger for this module
logger = logging.getLogger(__name__)

# 12 second slots, 32 slot epochs
DEFAULT_POLL_INTERVAL = 12 * 32
DEFAULT_FETCH_TIMEOUT = 10


async def fetch_finalized_reference(w3: AsyncWeb3) -> FinalizedReference:
    """Fetch the block the node currently reports as finalized.

    Args:
        w3: Connection to the authoritative node

    Returns:
        FinalizedReference for the finalized head
    """
    block = await w3.eth.get_block("finalized")
    return FinalizedReference.from_block(block)


class FinalizedHeadTracker:
    """Keeps the latest finalized reference of one chain fresh in the background.

    Only update() writes the reference; it is the callback of the poller and
    runs on the event loop, so the single assignment needs no lock.
    current() and finalized_timestamp may be read concurrently from any
    number of verification calls.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[FinalizedReference]],
        initial: FinalizedReference,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        """Initialize the tracker with an already fetched reference.

        Use start() to fetch the initial reference and begin refreshing.

        Args:
            fetch: Async function returning the current finalized reference
            initial: Reference to serve until the first refresh
            poll_interval: Seconds between refreshes
            fetch_timeout: Maximum seconds for each refresh
        """
        self.poll_interval = poll_interval
        self.fetch_timeout = fetch_timeout
        self._ref = initial
        self.updates = 0
        self.poller: BlockRefPoller[FinalizedReference] = BlockRefPoller(fetch, name="finalized head")

    @classmethod
    async def start(
        cls,
        fetch: Callable[[], Awaitable[FinalizedReference]],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> "FinalizedHeadTracker":
        """Fetch the initial finalized reference and start refreshing it.

        Every safety decision depends on this value, so a failed initial
        fetch is fatal.

        Raises:
            FinalizedHeadUnavailableError: If the initial fetch fails or times out
        """
        try:
            initial = await asyncio.wait_for(fetch(), timeout=fetch_timeout)
        except asyncio.TimeoutError as e:
            raise FinalizedHeadUnavailableError(
                f"timed out querying finalized block ref after {fetch_timeout} seconds"
            ) from e
        except Exception as e:
            raise FinalizedHeadUnavailableError(f"failed to query finalized block ref: {e}") from e

        logger.info(f"Initial finalized head: {initial}")
        tracker = cls(fetch, initial, poll_interval=poll_interval, fetch_timeout=fetch_timeout)
        tracker.poller.start(tracker.update, interval=poll_interval, timeout=fetch_timeout)
        return tracker

    def update(self, ref: FinalizedReference) -> None:
        """Replace the stored reference with a newly observed one."""
        previous = self._ref
        self._ref = ref
        self.updates += 1

        if ref.number < previous.number:
            logger.warning(f"Finalized head moved backwards: {previous.number} -> {ref.number}")
        elif ref != previous:
            logger.info(f"Finalized head advanced to block {ref.number} (time {ref.timestamp})")
        else:
            logger.debug(f"Finalized head unchanged at block {ref.number}")

    def current(self) -> FinalizedReference:
        """Return the current finalized reference snapshot."""
        return self._ref

    @property
    def finalized_timestamp(self) -> int:
        """Timestamp of the current finalized reference."""
        return self._ref.timestamp

    async def stop(self) -> None:
        """Stop the background refresh."""
        await self.poller.stop()

    def get_status(self) -> dict[str, Any]:
        """Get tracker status for logging and metrics."""
        ref = self._ref
        poller_status = self.poller.get_status()
        return {
            "finalized_number": ref.number,
            "finalized_timestamp": ref.timestamp,
            "updates": self.updates,
            "polls_succeeded": poller_status["polls_succeeded"],
            "polls_failed": poller_status["polls_failed"],
            "is_polling": poller_status["is_running"],
            "last_polled": poller_status["last_ref"],
        }
