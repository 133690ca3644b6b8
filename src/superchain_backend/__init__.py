"""
Superchain message safety backend.

Verifies cross-chain messages against the logs of their origin chain and
labels them with the finality guarantee that currently applies.
"""

from .backend import SuperchainBackend
from .config import BackendConfig
from .models import MessageIdentifier, MessageSafetyLabel

__all__ = ["BackendConfig", "SuperchainBackend", "MessageIdentifier", "MessageSafetyLabel"]
__version__ = "0.1.0"
