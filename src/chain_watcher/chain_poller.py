import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Mapping

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.types import BlockData

from .call_decoder import CallDecoder, selector_of
from .config import WatcherConfig
from .errors import (
    ArgumentDecodeError,
    MalformedCallData,
    RegistryFetchError,
    TransportError,
    UnknownSelector,
)
from .interface_cache import InterfaceCache
from .models import (
    BlockHeader,
    Classification,
    DecodedCall,
    TransactionRecord,
    TxKind,
    UndecodedReason,
    UnverifiedInterface,
    VerifiedInterface,
    to_hex,
)
from .registry_client import InterfaceRegistryClient
from .transaction_classifier import TransactionClassifier
from .utils.signing_encoder import SigningEncoder

# Get logger for this module
logger = logging.getLogger(__name__)

RecordSink = Callable[[TransactionRecord], Awaitable[None] | None]


class ChainPoller:
    """
    Polls a chain node for new blocks and emits one decoded record
    per transaction, in block order.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        classifier: TransactionClassifier,
        cache: InterfaceCache,
        decoder: CallDecoder,
        *,
        request_timeout: float = 30,
        polling_interval: float = 10,
        sink: RecordSink | None = None
    ) -> None:
        """
        Initialize the ChainPoller.

        :param w3: Connected AsyncWeb3 instance
        :param classifier: Transaction classifier
        :param cache: Interface cache backed by the registry client
        :param decoder: Call data decoder
        :param request_timeout: Deadline for header and block fetches in seconds
        :param polling_interval: Seconds to sleep between cycles
        :param sink: Optional callable (sync or async) receiving each record
        """
        self.w3 = w3
        self.classifier = classifier
        self.cache = cache
        self.decoder = decoder
        self.request_timeout = request_timeout
        self.polling_interval = polling_interval
        self.sink = sink

        # State tracking
        self.last_block_number: int | None = None
        self.is_running = False

        # Metrics tracking
        self.blocks_processed = 0
        self.transactions_processed = 0
        self.calls_decoded = 0
        self.fetch_failures = 0
        self.regressions = 0

    @classmethod
    async def connect(cls, config: WatcherConfig, sink: RecordSink | None = None) -> "ChainPoller":
        """
        Connect to the node and wire a poller from configuration.

        :param config: Watcher configuration
        :param sink: Optional callable receiving each record
        :return: Ready-to-run ChainPoller
        :raises ConnectionError: If the node cannot be reached
        """
        logger.debug(f"Connecting to node at {config.node.rpc_url}")
        w3 = AsyncWeb3(AsyncHTTPProvider(config.node.rpc_url))
        if not await w3.is_connected():
            raise ConnectionError(f"Failed to connect to node at {config.node.rpc_url}")

        chain_id = await w3.eth.chain_id
        config = config.with_chain_id(chain_id)
        config.log_config()

        registry = InterfaceRegistryClient(
            config.registry.api_key,
            base_url=config.registry.base_url,
            chain_id=chain_id,
            min_interval=config.registry.min_interval,
            timeout=config.polling.request_timeout
        )
        classifier = TransactionClassifier(w3, chain_id, request_timeout=config.polling.request_timeout)

        logger.info(f"ChainPoller connected (chain: {chain_id})")
        return cls(
            w3,
            classifier,
            InterfaceCache(registry),
            CallDecoder(),
            request_timeout=config.polling.request_timeout,
            polling_interval=config.polling.polling_interval,
            sink=sink
        )

    async def fetch_head(self) -> BlockHeader:
        """
        Fetch the current chain head.

        :raises TransportError: If the node does not answer in time
        """
        try:
            block = await asyncio.wait_for(self.w3.eth.get_block("latest"), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Head fetch timed out after {self.request_timeout}s") from e
        except Exception as e:
            raise TransportError(f"Head fetch failed: {e!r}") from e
        return BlockHeader(number=block["number"], hash=to_hex(block["hash"]))

    async def fetch_block(self, block_hash: str) -> BlockData:
        """
        Fetch a full block, with transaction bodies, by hash.

        :raises TransportError: If the node does not answer in time
        """
        try:
            return await asyncio.wait_for(
                self.w3.eth.get_block(block_hash, full_transactions=True),
                timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Block {block_hash} fetch timed out after {self.request_timeout}s") from e
        except Exception as e:
            raise TransportError(f"Block {block_hash} fetch failed: {e!r}") from e

    async def poll(self) -> list[TransactionRecord]:
        """
        Run one polling cycle.

        The last observed block number only advances once the full block
        has been fetched, so a failed body fetch is retried next cycle.

        :return: Records emitted during this cycle, in block order
        """
        try:
            header = await self.fetch_head()
        except TransportError as e:
            self.fetch_failures += 1
            logger.error(f"Could not fetch chain head: {e}")
            return []

        if self.last_block_number is not None:
            if header.number < self.last_block_number:
                self.regressions += 1
                logger.warning(
                    f"Chain head regressed from {self.last_block_number} to {header.number}, "
                    "waiting for a higher block"
                )
                return []
            if header.number == self.last_block_number:
                logger.debug(f"No new block (head still {header.number})")
                return []

        logger.info(f"New block detected: {header.number} ({header.hash})")
        try:
            block = await self.fetch_block(header.hash)
        except TransportError as e:
            self.fetch_failures += 1
            logger.error(f"Could not fetch block {header.number}: {e}")
            return []

        transactions = block.get("transactions", [])
        logger.info(f"Block {header.number} contains {len(transactions)} transactions")

        records: list[TransactionRecord] = []
        for tx in transactions:
            record = await self.process_transaction(tx, header.number)
            records.append(record)
            await self._emit(record)

        self.last_block_number = header.number
        self.blocks_processed += 1
        if self.blocks_processed % 10 == 0:
            self.log_metrics()
        return records

    async def process_transaction(self, tx: Mapping[str, Any], block_number: int) -> TransactionRecord:
        """
        Classify one transaction and decode it when it is a contract call.

        Never raises: every failure ends up as a field of the record.

        :param tx: Transaction as returned by eth_getBlockByHash with full transactions
        :param block_number: Block the transaction belongs to
        :return: The record for this transaction
        """
        self.transactions_processed += 1
        tx_hash = to_hex(tx.get("hash"))
        call_data = to_hex(tx.get("input", tx.get("data")))
        value_wei = SigningEncoder.to_int(tx.get("value", 0) or 0)

        try:
            classification = await self.classifier.classify(tx)
        except Exception as e:
            logger.error(f"Unexpected error classifying {tx_hash}: {e}", exc_info=True)
            classification = Classification(
                kind=TxKind.UNCLASSIFIED,
                sender=None,
                recipient=tx.get("to"),
                error=str(e)
            )

        decoded: DecodedCall | None = None
        reason: UndecodedReason | None = None
        detail = classification.error
        if classification.kind is TxKind.CALL and classification.recipient:
            decoded, reason, detail = await self._decode_call(classification.recipient, call_data)

        return TransactionRecord(
            block_number=block_number,
            tx_hash=tx_hash,
            sender=classification.sender,
            recipient=classification.recipient,
            value_wei=value_wei,
            kind=classification.kind,
            call_data=call_data,
            decoded=decoded,
            undecoded_reason=reason,
            detail=detail,
            sender_error=classification.sender_error
        )

    async def _decode_call(
        self,
        address: str,
        call_data: str
    ) -> tuple[DecodedCall | None, UndecodedReason | None, str | None]:
        """Resolve the interface of a called contract and decode the call."""
        if call_data in ("0x", ""):
            return None, UndecodedReason.NO_CALL_DATA, None
        logger.debug(f"Contract call to {address}, method ID {selector_of(call_data)}")

        try:
            resolution = await self.cache.resolve(address)
        except RegistryFetchError as e:
            logger.error(f"Interface registry unavailable for {address}: {e}")
            return None, UndecodedReason.REGISTRY_UNAVAILABLE, str(e)

        match resolution:
            case UnverifiedInterface(reason=reason):
                logger.debug(f"Contract {address} is not verified, skipping decode")
                return None, UndecodedReason.UNVERIFIED_INTERFACE, reason
            case VerifiedInterface(interface=interface):
                try:
                    decoded = self.decoder.decode(interface, call_data)
                except MalformedCallData as e:
                    logger.warning(f"Malformed call data to {address}: {e}")
                    return None, UndecodedReason.MALFORMED_CALL_DATA, str(e)
                except UnknownSelector as e:
                    logger.warning(f"Unknown method on {address}: {e}")
                    return None, UndecodedReason.UNKNOWN_SELECTOR, str(e)
                except ArgumentDecodeError as e:
                    logger.warning(f"Could not decode arguments for {address}: {e}")
                    return None, UndecodedReason.ARGUMENT_DECODE_ERROR, str(e)
                self.calls_decoded += 1
                return decoded, None, None
            case _:
                raise TypeError(f"Unexpected interface resolution: {resolution!r}")

    async def _emit(self, record: TransactionRecord) -> None:
        if self.sink is None:
            return
        try:
            result = self.sink(record)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Record sink failed for {record.tx_hash}: {e}", exc_info=True)

    async def run(self) -> None:
        """
        Poll at the configured interval until stopped or cancelled.
        Each cycle runs to completion before the next sleep.
        """
        if self.is_running:
            logger.warning("Polling already running")
            return

        self.is_running = True
        logger.info(f"Starting block polling every {self.polling_interval} seconds")

        while self.is_running:
            try:
                await self.poll()
                await asyncio.sleep(self.polling_interval)
            except asyncio.CancelledError:
                logger.info("Polling cancelled")
                break
            except Exception as e:
                logger.error(f"Error in polling loop: {e}", exc_info=True)
                # Continue polling despite errors
                await asyncio.sleep(self.polling_interval)

        self.is_running = False

    async def stop(self) -> None:
        """Stop the polling loop after the current cycle."""
        logger.info("Stopping block polling")
        self.is_running = False

    async def aclose(self) -> None:
        """Release the registry client and the node connection."""
        registry = getattr(self.cache, "registry", None)
        if isinstance(registry, InterfaceRegistryClient):
            await registry.aclose()
        provider = getattr(self.w3, "provider", None)
        if provider is not None and hasattr(provider, "disconnect"):
            await provider.disconnect()

    def get_status(self) -> dict[str, Any]:
        """
        Get current status of the poller.

        :return: Dictionary with state and counters
        """
        return {
            "is_running": self.is_running,
            "last_block_number": self.last_block_number,
            "blocks_processed": self.blocks_processed,
            "transactions_processed": self.transactions_processed,
            "calls_decoded": self.calls_decoded,
            "fetch_failures": self.fetch_failures,
            "regressions": self.regressions,
            "cache": self.cache.get_stats(),
        }

    def log_metrics(self) -> None:
        """Log current processing metrics."""
        cache_stats = self.cache.get_stats()
        logger.info(
            f"ChainPoller Metrics: "
            f"Blocks={self.blocks_processed}, "
            f"Transactions={self.transactions_processed}, "
            f"Decoded={self.calls_decoded}, "
            f"FetchFailures={self.fetch_failures}, "
            f"Regressions={self.regressions}, "
            f"CachedInterfaces={cache_stats['entries']}, "
            f"RegistryFetches={cache_stats['fetches']}"
        )
