import asyncio
import logging
from typing import Any, Mapping

from eth_keys.exceptions import BadSignature, ValidationError
from web3 import AsyncWeb3, Web3

from .errors import SenderRecoveryError, TransportError
from .models import Classification, TxKind
from .utils.signing_encoder import SigningEncoder

# Get logger for this module
logger = logging.getLogger(__name__)


class TransactionClassifier:
    """
    Classifies transactions as transfers, contract calls or contract creations
    and recovers their sender from the signature.
    """

    def __init__(self, w3: AsyncWeb3, chain_id: int, request_timeout: float = 30) -> None:
        """
        Initialize the TransactionClassifier.

        :param w3: Connected AsyncWeb3 instance used for code lookups
        :param chain_id: Chain ID reported by the node
        :param request_timeout: Deadline for each code lookup in seconds
        """
        self.w3 = w3
        self.chain_id = chain_id
        self.request_timeout = request_timeout

    def recover_sender(self, tx: Mapping[str, Any]) -> str:
        """
        Recover the sender of a transaction from its signature and chain ID.

        :param tx: Transaction as returned by eth_getBlockByHash with full transactions
        :return: Checksummed sender address
        :raises SenderRecoveryError: If the signature is malformed, the chain ID is
            inconsistent, or the recovered sender disagrees with the node
        """
        tx_hash = tx.get("hash")
        try:
            signed_chain_id = SigningEncoder.signature_chain_id(tx)
            if signed_chain_id is not None and signed_chain_id != self.chain_id:
                raise SenderRecoveryError(
                    f"Transaction {tx_hash} signed for chain {signed_chain_id}, node is on chain {self.chain_id}"
                )
            sender = SigningEncoder.recover_sender(tx)
        except SenderRecoveryError:
            raise
        except (KeyError, TypeError, ValueError, BadSignature, ValidationError) as e:
            raise SenderRecoveryError(f"Cannot recover sender of {tx_hash}: {e!r}") from e

        reported = tx.get("from")
        if reported and Web3.to_checksum_address(reported) != sender:
            raise SenderRecoveryError(
                f"Recovered sender {sender} of {tx_hash} does not match node-reported {reported}"
            )
        return sender

    async def is_contract(self, address: str) -> bool:
        """
        Check whether an address holds deployed code.

        :param address: Address to check
        :return: True if the code at the address is non-empty
        :raises TransportError: If the lookup fails or times out
        """
        try:
            code = await asyncio.wait_for(
                self.w3.eth.get_code(Web3.to_checksum_address(address), block_identifier="latest"),
                timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Code lookup for {address} timed out after {self.request_timeout}s") from e
        except Exception as e:
            raise TransportError(f"Code lookup for {address} failed: {e!r}") from e
        return len(code) > 0

    async def classify(self, tx: Mapping[str, Any]) -> Classification:
        """
        Classify one transaction.

        The code lookup is authoritative: a recipient without code is a plain
        transfer even when the transaction carries call data.

        :param tx: Transaction as returned by eth_getBlockByHash with full transactions
        :return: Classification, with sender_error/error set on partial failure
        """
        sender: str | None = None
        sender_error: str | None = None
        try:
            sender = self.recover_sender(tx)
        except SenderRecoveryError as e:
            logger.warning(str(e))
            sender_error = str(e)

        to = tx.get("to")
        if not to:
            return Classification(
                kind=TxKind.CREATION,
                sender=sender,
                recipient=None,
                sender_error=sender_error
            )

        recipient = Web3.to_checksum_address(to)
        try:
            kind = TxKind.CALL if await self.is_contract(recipient) else TxKind.TRANSFER
        except TransportError as e:
            logger.error(str(e))
            return Classification(
                kind=TxKind.UNCLASSIFIED,
                sender=sender,
                recipient=recipient,
                sender_error=sender_error,
                error=str(e)
            )

        return Classification(
            kind=kind,
            sender=sender,
            recipient=recipient,
            sender_error=sender_error
        )
