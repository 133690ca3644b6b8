#!/usr/bin/env python3
"""Peer connections to the L2 nodes of the superchain.

One connection is held per configured chain id. Connections are dialed
once at startup and never replaced; the registry is a plain lookup table.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from aiohttp import ClientTimeout
from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from .errors import PeerNotConfiguredError, RPCBatchError

# Get logger for this module
logger = logging.getLogger(__name__)


@dataclass
class BatchElem:
    """One request of a batched JSON-RPC call.

    After the batch completes, exactly one of result or error is meaningful
    for the element. A null result with no error is a valid answer.

    Attributes:
        method: JSON-RPC method name
        args: Positional parameters
        result: Raw JSON result, filled in by the batch call
        error: JSON-RPC error object for this element, if it failed
    """

    method: str
    args: list[Any]
    result: Any = None
    error: dict[str, Any] | None = None


class PeerConnection:
    """JSON-RPC connection to a single L2 node."""

    def __init__(self, rpc_url: str, w3: AsyncWeb3) -> None:
        self.rpc_url = rpc_url
        self.w3 = w3

    def __repr__(self) -> str:
        return f"PeerConnection({self.rpc_url!r})"

    async def batch_call(self, elems: list[BatchElem]) -> None:
        """Send every element in a single JSON-RPC batch round trip.

        Per-element failures are stored on the element; only a failure of
        the batch as a whole raises.

        Args:
            elems: Requests to send; results are written back in place

        Raises:
            RPCBatchError: If the round trip fails or the response is malformed
        """
        requests = [(elem.method, elem.args) for elem in elems]
        try:
            responses = await self.w3.provider.make_batch_request(requests)
        except Exception as e:
            raise RPCBatchError(f"batch request to {self.rpc_url} failed: {e}") from e

        # A single error object instead of a list means the whole batch was rejected
        if isinstance(responses, Mapping):
            raise RPCBatchError(f"batch request to {self.rpc_url} rejected: {responses.get('error')}")

        if len(responses) != len(elems):
            raise RPCBatchError(
                f"batch response size mismatch: sent {len(elems)}, received {len(responses)}"
            )

        for elem, response in zip(elems, responses):
            if error := response.get("error"):
                elem.error = error
            else:
                elem.result = response.get("result")

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        provider = self.w3.provider
        if hasattr(provider, "disconnect"):
            try:
                await provider.disconnect()
            except Exception as e:
                logger.warning(f"Error closing connection to {self.rpc_url}: {e}")


async def connect(
    rpc_url: str,
    dial_attempts: int = 10,
    request_timeout: int = 30,
    base_delay: float = 1,
    max_delay: float = 60,
) -> PeerConnection:
    """Dial an L2 node, retrying with exponential backoff until it answers.

    Args:
        rpc_url: HTTP(S) RPC endpoint of the node
        dial_attempts: Maximum number of connection attempts
        request_timeout: HTTP request timeout in seconds
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound on the delay between retries

    Returns:
        Connected PeerConnection

    Raises:
        ConnectionError: If the node does not answer within dial_attempts
    """
    w3 = AsyncWeb3(AsyncHTTPProvider(
        rpc_url,
        request_kwargs={"timeout": ClientTimeout(total=request_timeout)}
    ))

    for attempt in range(1, dial_attempts + 1):
        if await w3.is_connected():
            logger.debug(f"Connected to {rpc_url} (attempt {attempt})")
            return PeerConnection(rpc_url, w3)

        if attempt < dial_attempts:
            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.warning(
                f"Connection to {rpc_url} failed (attempt {attempt}/{dial_attempts}), "
                f"retrying in {delay} seconds..."
            )
            await asyncio.sleep(delay)

    await PeerConnection(rpc_url, w3).close()
    raise ConnectionError(f"Failed to connect to {rpc_url} after {dial_attempts} attempts")


class PeerRegistry:
    """Fixed mapping from chain id to peer connection.

    Configured peers are assumed to be exactly the chains of the interop
    dependency set.
    """

    def __init__(self, peers: Mapping[int, PeerConnection]) -> None:
        self._peers: dict[int, PeerConnection] = dict(peers)

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._peers

    def __len__(self) -> int:
        return len(self._peers)

    @property
    def chain_ids(self) -> list[int]:
        """Configured chain ids, sorted."""
        return sorted(self._peers)

    def resolve(self, chain_id: int) -> PeerConnection:
        """Look up the connection for a chain.

        Raises:
            PeerNotConfiguredError: If no peer is configured for chain_id
        """
        try:
            return self._peers[chain_id]
        except KeyError:
            raise PeerNotConfiguredError(chain_id) from None

    @classmethod
    async def connect_all(
        cls,
        peer_urls: Mapping[int, str],
        dial_attempts: int = 10,
        request_timeout: int = 30,
    ) -> "PeerRegistry":
        """Dial every configured peer.

        A failure on any peer closes the connections already opened and is
        raised; a partially connected registry is never returned.

        Raises:
            ConnectionError: If any peer cannot be reached
        """
        peers: dict[int, PeerConnection] = {}
        try:
            for chain_id, rpc_url in peer_urls.items():
                logger.info(f"Connecting to peer L2 node for chain {chain_id} at {rpc_url}")
                try:
                    peers[chain_id] = await connect(
                        rpc_url,
                        dial_attempts=dial_attempts,
                        request_timeout=request_timeout
                    )
                except ConnectionError as e:
                    raise ConnectionError(f"failed to connect to peer L2 node, {chain_id}: {e}") from e
        except BaseException:
            for peer in peers.values():
                await peer.close()
            raise

        logger.info(f"Connected to {len(peers)} peer L2 nodes: {sorted(peers)}")
        return cls(peers)

    async def close(self) -> None:
        """Close every peer connection."""
        for peer in self._peers.values():
            await peer.close()
