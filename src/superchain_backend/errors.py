"""Exceptions raised by the superchain message safety backend."""

from .models import MessageSafetyLabel


class SuperchainError(Exception):
    """Base class for superchain backend errors."""
    pass


class MessageSafetyError(SuperchainError):
    """A message safety check could not establish any guarantee.

    Every failed check resolves to the INVALID label; the concrete subclass
    tells the caller which step failed.
    """

    label: MessageSafetyLabel = MessageSafetyLabel.INVALID


class PeerNotConfiguredError(MessageSafetyError):
    """No peer connection is configured for the message's chain."""

    def __init__(self, chain_id: int) -> None:
        super().__init__(f"peer with chain id {chain_id} is not configured")
        self.chain_id = chain_id


class RPCBatchError(MessageSafetyError):
    """The batched fetch failed as a whole or in one of its elements."""
    pass


class BlockNotFoundError(RPCBatchError):
    """The requested block does not exist on the peer."""

    def __init__(self, block_number: int) -> None:
        super().__init__(f"block {block_number} does not exist")
        self.block_number = block_number


class MessageIntegrityError(MessageSafetyError):
    """The fetched chain data does not match the claimed message."""
    pass


class LogIndexOutOfRangeError(MessageIntegrityError):
    """The claimed log index is not a valid position in the block's logs."""
    pass


class LogIndexMismatchError(MessageIntegrityError):
    """The log at the claimed position reports a different index."""
    pass


class PayloadMismatchError(MessageIntegrityError):
    """The payload does not match the encoding of the fetched log."""
    pass


class OriginMismatchError(MessageIntegrityError):
    """The fetched log was emitted by a different address."""
    pass


class TimestampMismatchError(MessageIntegrityError):
    """The block timestamp differs from the claimed timestamp."""
    pass


class FinalizedHeadUnavailableError(SuperchainError):
    """The initial finalized head could not be fetched."""
    pass
