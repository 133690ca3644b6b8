"""Shared fixtures for the superchain backend tests."""

import asyncio
from typing import Any

import pytest
from unittest.mock import AsyncMock
from web3 import Web3

from superchain_backend.head_tracker import FinalizedHeadTracker
from superchain_backend.models import FinalizedReference
from superchain_backend.peers import BatchElem, PeerRegistry

ORIGIN = "0x" + "aa" * 20
OTHER_ADDRESS = "0x" + "bb" * 20
CHAIN_ID = 10
BLOCK_NUMBER = 100
BLOCK_TIMESTAMP = 1000


def raw_header(number: int = BLOCK_NUMBER, timestamp: int = BLOCK_TIMESTAMP) -> dict[str, Any]:
    """Build a raw eth_getBlockByNumber result."""
    return {
        "number": hex(number),
        "hash": "0x" + f"{number:064x}",
        "parentHash": "0x" + f"{max(number - 1, 0):064x}",
        "timestamp": hex(timestamp),
        "miner": "0x" + "00" * 20,
        "transactions": [],
    }


def raw_log(
    log_index: int,
    address: str = OTHER_ADDRESS,
    data: str = "0x",
    topics: list[str] | None = None,
    block_number: int = BLOCK_NUMBER,
) -> dict[str, Any]:
    """Build a raw eth_getLogs entry."""
    return {
        "address": address,
        "topics": topics or [],
        "data": data,
        "blockNumber": hex(block_number),
        "blockHash": "0x" + f"{block_number:064x}",
        "transactionHash": "0x" + f"{log_index + 1:064x}",
        "transactionIndex": "0x0",
        "logIndex": hex(log_index),
        "removed": False,
    }


def block_logs() -> list[dict[str, Any]]:
    """Logs of the reference block: the message is the log at index 2."""
    return [
        raw_log(0, data="0xdead"),
        raw_log(1, data="0xbeef"),
        raw_log(2, address=ORIGIN, data="0x1234"),
    ]


class FakePeer:
    """Peer connection answering batch calls from canned block data."""

    def __init__(
        self,
        header: dict[str, Any] | None = None,
        logs: list[dict[str, Any]] | None = None,
        header_error: dict[str, Any] | None = None,
        logs_error: dict[str, Any] | None = None,
        batch_exception: Exception | None = None,
    ) -> None:
        self.header = header
        self.logs = logs if logs is not None else []
        self.header_error = header_error
        self.logs_error = logs_error
        self.batch_exception = batch_exception
        self.calls: list[list[BatchElem]] = []
        self.close = AsyncMock()

    async def batch_call(self, elems: list[BatchElem]) -> None:
        self.calls.append(elems)
        # Yield so concurrent checks interleave
        await asyncio.sleep(0)
        if self.batch_exception is not None:
            raise self.batch_exception

        header_elem, logs_elem = elems
        if self.header_error is not None:
            header_elem.error = self.header_error
        else:
            header_elem.result = self.header
        if self.logs_error is not None:
            logs_elem.error = self.logs_error
        else:
            logs_elem.result = self.logs


def finalized_ref(number: int, timestamp: int) -> FinalizedReference:
    """Build a finalized reference with a hash derived from its number."""
    return FinalizedReference(number=number, hash="0x" + f"{number:064x}", timestamp=timestamp)


def make_tracker(finalized_timestamp: int) -> FinalizedHeadTracker:
    """Build a tracker serving a fixed finalized timestamp, without polling."""
    return FinalizedHeadTracker(
        fetch=AsyncMock(),
        initial=finalized_ref(90, finalized_timestamp),
    )


@pytest.fixture
def origin() -> str:
    """Checksummed origin of the reference message."""
    return Web3.to_checksum_address(ORIGIN)


@pytest.fixture
def fake_peer() -> FakePeer:
    """Peer serving the reference block."""
    return FakePeer(header=raw_header(), logs=block_logs())


@pytest.fixture
def registry(fake_peer) -> PeerRegistry:
    """Registry with the reference peer on chain 10."""
    return PeerRegistry({CHAIN_ID: fake_peer})
