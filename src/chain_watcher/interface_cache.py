#!/usr/bin/env python3
"""Process-lifetime cache of contract interfaces.

The cache deduplicates registry lookups: every address is fetched at most
once until it resolves (verified or unverified), and concurrent callers for
the same address share a single in-flight fetch.
"""

import asyncio
import logging
from typing import Any, Protocol

from web3 import Web3

from .errors import RegistryFetchError
from .models import InterfaceResolution, Unresolved

# Get logger for this module
logger = logging.getLogger(__name__)


class InterfaceSource(Protocol):
    async def fetch(self, address: str) -> InterfaceResolution: ...


class InterfaceCache:
    """Caches interface resolutions keyed by checksummed contract address.

    Entries are never evicted: published interfaces do not change and
    re-fetching would spend registry rate budget. Registry failures are not
    cached, so the address is retried the next time it is resolved.
    """

    def __init__(self, registry: InterfaceSource) -> None:
        """Initialize the cache.

        Args:
            registry: Source of interfaces, usually an InterfaceRegistryClient
        """
        self.registry = registry

        self._entries: dict[str, InterfaceResolution] = {}
        # One shared future per address currently being fetched
        self._inflight: dict[str, asyncio.Future[InterfaceResolution]] = {}

        # Metrics tracking
        self.hits = 0
        self.misses = 0
        self.fetches = 0
        self.failures = 0

    def lookup(self, address: str) -> Unresolved | InterfaceResolution:
        """Return the stored resolution without contacting the registry."""
        return self._entries.get(Web3.to_checksum_address(address), Unresolved())

    async def resolve(self, address: str) -> InterfaceResolution:
        """Resolve the interface of a contract, fetching it on first use.

        Args:
            address: Contract address

        Returns:
            VerifiedInterface or UnverifiedInterface

        Raises:
            RegistryFetchError: If the registry call failed; nothing is cached
        """
        key = Web3.to_checksum_address(address)

        if (entry := self._entries.get(key)) is not None:
            self.hits += 1
            return entry

        if (pending := self._inflight.get(key)) is not None:
            self.hits += 1
            logger.debug(f"Waiting for in-flight interface fetch of {key}")
            return await asyncio.shield(pending)

        self.misses += 1
        future: asyncio.Future[InterfaceResolution] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            self.fetches += 1
            resolution = await self.registry.fetch(key)
        except RegistryFetchError as e:
            self.failures += 1
            future.set_exception(e)
            # Mark as retrieved so a future without waiters does not warn
            future.exception()
            raise
        except BaseException as e:
            future.set_exception(RegistryFetchError(f"Interface fetch for {key} aborted: {e!r}"))
            future.exception()
            raise
        else:
            self._entries[key] = resolution
            future.set_result(resolution)
            return resolution
        finally:
            del self._inflight[key]

    def __contains__(self, address: str) -> bool:
        return Web3.to_checksum_address(address) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        """Get current cache metrics.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "entries": len(self._entries),
            "inflight": len(self._inflight),
            "hits": self.hits,
            "misses": self.misses,
            "fetches": self.fetches,
            "failures": self.failures,
        }
