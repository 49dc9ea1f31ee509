"""
Chain watcher package.

Polls an EVM chain for new blocks, classifies every transaction and decodes
contract calls against ABIs fetched from an Etherscan-compatible registry.
"""

from .call_decoder import CallDecoder
from .chain_poller import ChainPoller
from .config import WatcherConfig
from .interface_cache import InterfaceCache
from .models import DecodedCall, TransactionRecord, TxKind, UndecodedReason
from .registry_client import InterfaceRegistryClient
from .transaction_classifier import TransactionClassifier

__all__ = [
    "CallDecoder",
    "ChainPoller",
    "DecodedCall",
    "InterfaceCache",
    "InterfaceRegistryClient",
    "TransactionClassifier",
    "TransactionRecord",
    "TxKind",
    "UndecodedReason",
    "WatcherConfig",
]
__version__ = "0.1.0"
