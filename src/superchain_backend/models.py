#!/usr/bin/env python3
"""Data models for the superchain message safety backend.

This module provides immutable data classes for the claimed message
identifier, the chain data fetched to corroborate it, and the finalized
reference the safety decision is grounded on.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from hexbytes import HexBytes
from web3 import Web3


def _to_quantity(value: Any, field_name: str) -> int:
    """Parse a JSON-RPC quantity given as an int or a 0x-prefixed hex string."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid {field_name}: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.startswith(("0x", "0X")):
        try:
            return int(value, 16)
        except ValueError:
            raise ValueError(f"Invalid hex quantity for {field_name}: {value!r}") from None
    raise ValueError(f"Invalid {field_name}: {value!r}")


def _to_hash(value: Any, field_name: str) -> str:
    """Normalize a 32-byte hash to a 0x-prefixed lowercase hex string."""
    if value is None:
        raise ValueError(f"Missing {field_name}")
    hash_bytes = HexBytes(value)
    if len(hash_bytes) != 32:
        raise ValueError(f"Invalid {field_name} length: {len(hash_bytes)}")
    return Web3.to_hex(hash_bytes)


class MessageSafetyLabel(IntEnum):
    """Safety level of a cross-chain message.

    Ordered from weakest to strongest guarantee. Values are spaced so that
    intermediate levels (unsafe, cross-unsafe, safe) can be added between
    the existing ones without renumbering.
    """

    INVALID = 0
    FINALIZED = 100

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class MessageIdentifier:
    """Claim that a message was emitted as a specific log on a specific chain.

    Attributes:
        chain_id: Chain the message originates from
        block_number: Block the log was emitted in
        log_index: Position of the log within the block's full log list
        origin: Address that emitted the log (checksummed)
        timestamp: Timestamp of the block, in seconds
    """

    chain_id: int
    block_number: int
    log_index: int
    origin: str
    timestamp: int

    def __post_init__(self) -> None:
        """Validate fields and checksum the origin address."""
        for name in ("chain_id", "block_number", "log_index", "timestamp"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

        if not Web3.is_address(self.origin):
            raise ValueError(f"Invalid origin address: {self.origin!r}")

        checksummed = Web3.to_checksum_address(self.origin)
        if checksummed != self.origin:
            # Use object.__setattr__ since dataclass is frozen
            object.__setattr__(self, "origin", checksummed)

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"MessageIdentifier(chain={self.chain_id}, "
            f"block={self.block_number}, "
            f"log_index={self.log_index}, "
            f"origin={self.origin[:8]}...)"
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MessageIdentifier":
        """Build an identifier from its JSON form.

        Quantities may be plain integers or 0x-prefixed hex strings.

        Raises:
            ValueError: If data is not an object or a field is missing or malformed
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Message identifier must be a JSON object, got {type(data).__name__}")

        try:
            return cls(
                chain_id=_to_quantity(data["chainId"], "chainId"),
                block_number=_to_quantity(data["blockNumber"], "blockNumber"),
                log_index=_to_quantity(data["logIndex"], "logIndex"),
                origin=data["origin"],
                timestamp=_to_quantity(data["timestamp"], "timestamp"),
            )
        except KeyError as e:
            raise ValueError(f"Missing message identifier field: {e.args[0]}") from None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON form, with quantities as hex strings."""
        return {
            "origin": self.origin,
            "blockNumber": hex(self.block_number),
            "logIndex": hex(self.log_index),
            "timestamp": hex(self.timestamp),
            "chainId": hex(self.chain_id),
        }


@dataclass(frozen=True, slots=True)
class FinalizedReference:
    """Latest block the authoritative chain reports as finalized.

    Attributes:
        number: Block height
        hash: Block hash (with 0x prefix)
        timestamp: Block timestamp (Unix timestamp)
    """

    number: int
    hash: str
    timestamp: int

    def __str__(self) -> str:
        return f"FinalizedReference(number={self.number}, hash={self.hash[:10]}..., time={self.timestamp})"

    @classmethod
    def from_block(cls, block: Any) -> "FinalizedReference":
        """Build a reference from a web3 block (or raw JSON-RPC block dict)."""
        return cls(
            number=_to_quantity(block["number"], "number"),
            hash=_to_hash(block["hash"], "hash"),
            timestamp=_to_quantity(block["timestamp"], "timestamp"),
        )


@dataclass(frozen=True, slots=True)
class BlockHeader:
    """Block header as returned by eth_getBlockByNumber without transaction bodies.

    Attributes:
        number: The block number
        hash: The block hash (with 0x prefix)
        parent_hash: Parent block hash (with 0x prefix)
        timestamp: Block timestamp (Unix timestamp)
    """

    number: int
    hash: str
    parent_hash: str
    timestamp: int

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "BlockHeader":
        """Parse a raw JSON-RPC block object.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        try:
            return cls(
                number=_to_quantity(raw["number"], "number"),
                hash=_to_hash(raw["hash"], "hash"),
                parent_hash=_to_hash(raw["parentHash"], "parentHash"),
                timestamp=_to_quantity(raw["timestamp"], "timestamp"),
            )
        except KeyError as e:
            raise ValueError(f"Block header is missing field: {e.args[0]}") from None


@dataclass(frozen=True, slots=True)
class LogEntry:
    """Log entry as returned by eth_getLogs.

    Attributes:
        address: Address of the emitting contract (checksummed)
        topics: Indexed topics, 32 bytes each
        data: Non-indexed data
        block_number: Block the log was emitted in
        log_index: Index of the log within the block
        transaction_hash: Hash of the emitting transaction (with 0x prefix)
    """

    address: str
    topics: tuple[bytes, ...]
    data: bytes
    block_number: int
    log_index: int
    transaction_hash: str

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "LogEntry":
        """Parse a raw JSON-RPC log object.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        try:
            address = raw["address"]
            if not Web3.is_address(address):
                raise ValueError(f"Invalid log address: {address!r}")

            topics = tuple(bytes(HexBytes(topic)) for topic in raw["topics"])
            for topic in topics:
                if len(topic) != 32:
                    raise ValueError(f"Invalid topic length: {len(topic)}")

            return cls(
                address=Web3.to_checksum_address(address),
                topics=topics,
                data=bytes(HexBytes(raw["data"])),
                block_number=_to_quantity(raw["blockNumber"], "blockNumber"),
                log_index=_to_quantity(raw["logIndex"], "logIndex"),
                transaction_hash=_to_hash(raw["transactionHash"], "transactionHash"),
            )
        except KeyError as e:
            raise ValueError(f"Log entry is missing field: {e.args[0]}") from None


def message_payload_bytes(log: LogEntry) -> bytes:
    """Encode a log as a message payload: every topic, then the log data."""
    return b"".join(log.topics) + log.data
