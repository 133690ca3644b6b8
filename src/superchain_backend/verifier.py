#!/usr/bin/env python3
"""Message safety verification.

This module checks a claimed cross-chain message against the log data of
its origin chain and labels it with the strongest safety guarantee that
currently applies.
"""

import logging

from .errors import (
    BlockNotFoundError,
    LogIndexMismatchError,
    LogIndexOutOfRangeError,
    OriginMismatchError,
    PayloadMismatchError,
    RPCBatchError,
    TimestampMismatchError,
)
from .head_tracker import FinalizedHeadTracker
from .models import (
    BlockHeader,
    LogEntry,
    MessageIdentifier,
    MessageSafetyLabel,
    message_payload_bytes,
)
from .peers import BatchElem, PeerConnection, PeerRegistry

# Get logger for this module
logger = logging.getLogger(__name__)


class MessageSafetyVerifier:
    """Verifies cross-chain messages and computes their safety label.

    Verification only checks log content integrity. The chain id and block
    number are pinned by which peer is queried and for which block; the
    block builder and verifier must enforce the timestamp invariant locally.
    """

    def __init__(self, registry: PeerRegistry, tracker: FinalizedHeadTracker) -> None:
        """
        Args:
            registry: Peer connections keyed by chain id
            tracker: Source of the current finalized timestamp
        """
        self.registry = registry
        self.tracker = tracker

    async def message_safety(self, identifier: MessageIdentifier, payload: bytes) -> MessageSafetyLabel:
        """Verify a message and return its safety label.

        A message that checks out but is not yet covered by finality is
        labelled INVALID without raising.

        Args:
            identifier: Claimed position and origin of the message
            payload: Claimed message payload

        Returns:
            Safety label of the message

        Raises:
            PeerNotConfiguredError: If the origin chain has no configured peer
            RPCBatchError: If the corroborating data could not be fetched
            MessageIntegrityError: If the fetched data contradicts the claim
        """
        peer = self.registry.resolve(identifier.chain_id)
        header, logs = await self._fetch_block_logs(peer, identifier.block_number)
        self._check_integrity(identifier, bytes(payload), header, logs)
        return self._safety_label(identifier)

    async def _fetch_block_logs(self, peer: PeerConnection, block_number: int) -> tuple[BlockHeader, list[LogEntry]]:
        """Fetch the header and all logs of a block in one batched round trip.

        eth_getLogs cannot select a single log index, so every log of the
        block is fetched (no address filter) and the header supplies the
        timestamp that getLogs omits.
        """
        block_tag = hex(block_number)
        header_elem = BatchElem(method="eth_getBlockByNumber", args=[block_tag, False])
        logs_elem = BatchElem(method="eth_getLogs", args=[{"fromBlock": block_tag, "toBlock": block_tag}])

        try:
            await peer.batch_call([header_elem, logs_elem])
        except RPCBatchError as e:
            raise RPCBatchError(f"unable to request logs: {e}") from e

        if header_elem.error is not None or logs_elem.error is not None:
            raise RPCBatchError(
                f"caught batch rpc failures: getBlockByNumber: {header_elem.error}, "
                f"getLogs: {logs_elem.error}"
            )
        if header_elem.result is None:
            raise BlockNotFoundError(block_number)

        try:
            header = BlockHeader.from_rpc(header_elem.result)
            logs = [LogEntry.from_rpc(raw) for raw in (logs_elem.result or [])]
        except (ValueError, TypeError) as e:
            raise RPCBatchError(f"malformed rpc response for block {block_number}: {e}") from e

        return header, logs

    def _check_integrity(
        self,
        identifier: MessageIdentifier,
        payload: bytes,
        header: BlockHeader,
        logs: list[LogEntry],
    ) -> None:
        """Check the claimed message against the fetched header and logs."""
        # Positional lookup; must change if logs are ever filtered by address
        if identifier.log_index >= len(logs):
            raise LogIndexOutOfRangeError(
                f"invalid log index {identifier.log_index}: block {identifier.block_number} has {len(logs)} logs"
            )

        log = logs[identifier.log_index]
        if log.log_index != identifier.log_index:
            raise LogIndexMismatchError(
                f"message log index mismatch: requested {identifier.log_index}, log reports {log.log_index}"
            )
        if payload != message_payload_bytes(log):
            raise PayloadMismatchError("message payload bytes mismatch")
        if log.address != identifier.origin:
            raise OriginMismatchError(
                f"message origin mismatch: expected {identifier.origin}, log emitted by {log.address}"
            )
        if header.timestamp != identifier.timestamp:
            raise TimestampMismatchError(
                f"message timestamp mismatch: expected {identifier.timestamp}, block has {header.timestamp}"
            )

    def _safety_label(self, identifier: MessageIdentifier) -> MessageSafetyLabel:
        """Compute the strongest label that applies to a verified message."""
        finalized_timestamp = self.tracker.finalized_timestamp
        if identifier.timestamp <= finalized_timestamp:
            return MessageSafetyLabel.FINALIZED

        logger.debug(
            f"Message at time {identifier.timestamp} is past the finalized head "
            f"(time {finalized_timestamp})"
        )
        return MessageSafetyLabel.INVALID
