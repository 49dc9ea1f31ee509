"""
Signing payload encoding for Ethereum transactions.

This module rebuilds the RLP payload a sender signed for each supported
transaction type, so the sender can be recovered from ``v``/``r``/``s``
instead of trusting the node's ``from`` field.
"""

import logging
from typing import Any, Mapping, Union

import rlp
from eth_keys import keys
from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)

LEGACY_TX_TYPE = 0
ACCESS_LIST_TX_TYPE = 1
DYNAMIC_FEE_TX_TYPE = 2
BLOB_TX_TYPE = 3
SET_CODE_TX_TYPE = 4


class SigningEncoder:
    """Utilities for encoding transaction signing payloads."""

    @staticmethod
    def to_bytes_safe(value: Union[HexBytes, bytes, str, None]) -> bytes:
        """
        Safely convert value to bytes, handling HexBytes, bytes, and hex strings.

        None encodes as empty bytes (the ``to`` of a contract creation).
        """
        if value is None:
            return b''
        if isinstance(value, HexBytes):
            return bytes(value)
        elif isinstance(value, bytes):
            return value
        else:
            return Web3.to_bytes(hexstr=value)

    @staticmethod
    def to_int(value: Any) -> int:
        """Convert ints, hex strings and bytes quantities to int."""
        if isinstance(value, int):
            return value
        if isinstance(value, (bytes, bytearray)):
            return int.from_bytes(value, byteorder='big')
        if isinstance(value, str):
            return int(value, 16) if value.startswith('0x') else int(value)
        raise TypeError(f"Cannot convert {type(value).__name__} to int")

    @staticmethod
    def encode_access_list(access_list: list[Mapping[str, Any]] | None) -> list:
        return [
            [
                SigningEncoder.to_bytes_safe(entry['address']),
                [SigningEncoder.to_bytes_safe(key) for key in entry.get('storageKeys', [])],
            ]
            for entry in access_list or []
        ]

    @staticmethod
    def encode_authorization_list(authorizations: list[Mapping[str, Any]] | None) -> list:
        to_int = SigningEncoder.to_int
        return [
            [
                to_int(auth['chainId']),
                SigningEncoder.to_bytes_safe(auth['address']),
                to_int(auth['nonce']),
                to_int(auth['yParity']),
                to_int(auth['r']),
                to_int(auth['s']),
            ]
            for auth in authorizations or []
        ]

    @staticmethod
    def transaction_type(tx: Mapping[str, Any]) -> int:
        return SigningEncoder.to_int(tx.get('type', 0) or 0)

    @staticmethod
    def legacy_chain_id(v: int) -> int | None:
        """
        Chain ID carried in a legacy ``v`` value (EIP-155).

        Returns None for pre-EIP-155 signatures (v of 27 or 28).
        """
        if v in (27, 28):
            return None
        return (v - 35) // 2

    @staticmethod
    def signature_chain_id(tx: Mapping[str, Any]) -> int | None:
        """Chain ID the transaction was signed for, None when unprotected."""
        if SigningEncoder.transaction_type(tx) == LEGACY_TX_TYPE:
            return SigningEncoder.legacy_chain_id(SigningEncoder.to_int(tx['v']))
        return SigningEncoder.to_int(tx['chainId'])

    @staticmethod
    def recovery_id(tx: Mapping[str, Any]) -> int:
        """
        Normalize the signature's v into a 0/1 recovery id.

        Args:
            tx: Transaction fields as returned by the node

        Returns:
            0 or 1
        """
        if SigningEncoder.transaction_type(tx) != LEGACY_TX_TYPE:
            return SigningEncoder.to_int(tx.get('yParity', tx.get('v')))

        v = SigningEncoder.to_int(tx['v'])
        chain_id = SigningEncoder.legacy_chain_id(v)
        if chain_id is None:
            return v - 27
        return v - 35 - 2 * chain_id

    @staticmethod
    def encode_signing_payload(tx: Mapping[str, Any]) -> bytes:
        """
        Encode the payload that was hashed and signed by the sender.

        Handles legacy (with and without EIP-155 replay protection) and
        typed transactions (EIP-2930, EIP-1559, EIP-4844, EIP-7702).

        Args:
            tx: Transaction fields as returned by eth_getBlockByHash

        Returns:
            Signing payload, type-prefixed for typed transactions

        Raises:
            ValueError: If the transaction type is not supported
            KeyError: If a field required by the transaction type is missing
        """
        to_int = SigningEncoder.to_int
        to_bytes = SigningEncoder.to_bytes_safe
        tx_type = SigningEncoder.transaction_type(tx)
        data = to_bytes(tx.get('input', tx.get('data')))

        if tx_type == LEGACY_TX_TYPE:
            fields = [
                to_int(tx['nonce']),
                to_int(tx['gasPrice']),
                to_int(tx['gas']),
                to_bytes(tx.get('to')),
                to_int(tx['value']),
                data,
            ]
            chain_id = SigningEncoder.legacy_chain_id(to_int(tx['v']))
            if chain_id is not None:
                fields.extend([chain_id, 0, 0])
            return rlp.encode(fields)

        if tx_type == ACCESS_LIST_TX_TYPE:
            fields = [
                to_int(tx['chainId']),
                to_int(tx['nonce']),
                to_int(tx['gasPrice']),
                to_int(tx['gas']),
                to_bytes(tx.get('to')),
                to_int(tx['value']),
                data,
                SigningEncoder.encode_access_list(tx.get('accessList')),
            ]
        elif tx_type in (DYNAMIC_FEE_TX_TYPE, BLOB_TX_TYPE, SET_CODE_TX_TYPE):
            fields = [
                to_int(tx['chainId']),
                to_int(tx['nonce']),
                to_int(tx['maxPriorityFeePerGas']),
                to_int(tx['maxFeePerGas']),
                to_int(tx['gas']),
                to_bytes(tx.get('to')),
                to_int(tx['value']),
                data,
                SigningEncoder.encode_access_list(tx.get('accessList')),
            ]
            if tx_type == BLOB_TX_TYPE:
                fields.append(to_int(tx['maxFeePerBlobGas']))
                fields.append([to_bytes(h) for h in tx.get('blobVersionedHashes', [])])
            elif tx_type == SET_CODE_TX_TYPE:
                fields.append(SigningEncoder.encode_authorization_list(tx.get('authorizationList')))
        else:
            raise ValueError(f"Unsupported transaction type: {tx_type}")

        # Typed transactions are prefixed with their type byte (EIP-2718)
        return bytes([tx_type]) + rlp.encode(fields)

    @staticmethod
    def signing_hash(tx: Mapping[str, Any]) -> bytes:
        return bytes(Web3.keccak(SigningEncoder.encode_signing_payload(tx)))

    @staticmethod
    def recover_sender(tx: Mapping[str, Any]) -> str:
        """
        Recover the checksummed sender address from the transaction signature.

        Raises:
            eth_keys.exceptions.ValidationError: If r/s/v are out of range
            eth_keys.exceptions.BadSignature: If no public key can be recovered
        """
        signature = keys.Signature(vrs=(
            SigningEncoder.recovery_id(tx),
            SigningEncoder.to_int(tx['r']),
            SigningEncoder.to_int(tx['s']),
        ))
        public_key = signature.recover_public_key_from_msg_hash(SigningEncoder.signing_hash(tx))
        return public_key.to_checksum_address()
