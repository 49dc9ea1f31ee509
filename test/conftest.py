#!/usr/bin/env python3
"""Shared fixtures for the chain watcher tests."""

import json
from typing import Any

import pytest
from eth_account import Account
from hexbytes import HexBytes

# Well-known development key, never holds funds
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

TOKEN_ADDRESS = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
RECIPIENT_ADDRESS = "0x742D35Cc6634C0532925A3B844bC9e7595f0bEB7"

ERC20_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "transfer",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "approve",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
    },
]


@pytest.fixture
def account():
    """Local signing account."""
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def erc20_abi():
    return ERC20_ABI


@pytest.fixture
def erc20_abi_json():
    return json.dumps(ERC20_ABI)


@pytest.fixture
def sign_tx(account):
    """Factory building signed transactions shaped like eth_getBlockByHash results."""

    def _sign(
        to: str | None = RECIPIENT_ADDRESS,
        value: int = 0,
        data: bytes = b"",
        nonce: int = 0,
        chain_id: int = 1,
        tx_type: int = 2,
        eip155: bool = True,
    ) -> dict[str, Any]:
        if tx_type == 0:
            fields: dict[str, Any] = {
                "nonce": nonce,
                "gasPrice": 1_000_000_000,
                "gas": 100_000,
                "value": value,
                "data": data,
            }
            if eip155:
                fields["chainId"] = chain_id
        else:
            fields = {
                "type": 2,
                "chainId": chain_id,
                "nonce": nonce,
                "maxPriorityFeePerGas": 1_000_000_000,
                "maxFeePerGas": 30_000_000_000,
                "gas": 100_000,
                "value": value,
                "data": data,
                "accessList": [],
            }
        if to is not None:
            fields["to"] = to

        signed = account.sign_transaction(fields)

        tx = {key: val for key, val in fields.items() if key != "data"}
        tx.update({
            "type": tx_type,
            "hash": HexBytes(signed.hash),
            "from": account.address,
            "to": to,
            "input": HexBytes(data),
            "v": signed.v,
            "r": HexBytes(signed.r.to_bytes(32, "big")),
            "s": HexBytes(signed.s.to_bytes(32, "big")),
        })
        if tx_type != 0:
            tx["yParity"] = signed.v
        return tx

    return _sign
