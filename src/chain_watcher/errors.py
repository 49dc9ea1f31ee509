"""Exception hierarchy for the chain watcher.

Every failure that can happen inside a polling cycle maps to one of these
classes so callers can handle it at the smallest unit of work (one
transaction, one fetch, one cycle) without catching bare ``Exception``.

An unverified contract is *not* an error; it is represented by
:class:`~chain_watcher.models.UnverifiedInterface`.
"""


class ChainWatcherError(Exception):
    """Base class for all chain watcher errors."""


class TransportError(ChainWatcherError):
    """The chain node could not be reached or did not answer in time."""


class RegistryFetchError(TransportError):
    """The ABI registry call itself failed (network, HTTP status, bad body)."""


class SenderRecoveryError(ChainWatcherError):
    """The sender could not be recovered from the transaction signature."""


class CallDecodeError(ChainWatcherError):
    """Base class for call data decoding failures."""


class MalformedCallData(CallDecodeError):
    """Call data is too short to contain a 4-byte selector."""


class UnknownSelector(CallDecodeError):
    """No method in the interface matches the call data selector."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"No method matches selector {selector}")
        self.selector = selector


class ArgumentDecodeError(CallDecodeError):
    """Argument bytes do not match the method's parameter types."""
