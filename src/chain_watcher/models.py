#!/usr/bin/env python3
"""Data models for the chain watcher.

This module provides immutable data classes for block headers, contract
interfaces, decoded calls and the per-transaction records emitted by the
poller.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from hexbytes import HexBytes
from web3 import Web3


@dataclass(frozen=True, slots=True)
class BlockHeader:
    """Head of the chain as seen by one poll.

    Attributes:
        number: Block number
        hash: 0x-prefixed block hash
    """

    number: int
    hash: str

    def __str__(self) -> str:
        return f"BlockHeader(number={self.number}, hash={self.hash[:10]}...)"


def canonical_type(param: dict[str, Any]) -> str:
    """Collapse an ABI parameter into its canonical type string.

    Tuples are expanded into ``(t1,t2)`` with any array suffix kept, e.g.
    ``tuple[]`` with components ``address, uint256`` becomes
    ``(address,uint256)[]``.
    """
    abi_type: str = param["type"]
    if not abi_type.startswith("tuple"):
        return abi_type
    inner = ",".join(canonical_type(component) for component in param.get("components", []))
    return f"({inner}){abi_type[len('tuple'):]}"


@dataclass(frozen=True, slots=True)
class MethodParameter:
    """A single method input as published in the ABI.

    Attributes:
        name: Parameter name (may be empty)
        type: Declared type string exactly as published
        canonical_type: Type string used for selectors and decoding
    """

    name: str
    type: str
    canonical_type: str


@dataclass(frozen=True, slots=True)
class ContractMethod:
    """A callable contract method with its derived 4-byte selector."""

    name: str
    inputs: tuple[MethodParameter, ...]
    selector: bytes

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.canonical_type for p in self.inputs)})"

    @property
    def selector_hex(self) -> str:
        return "0x" + self.selector.hex()

    @classmethod
    def from_abi_entry(cls, entry: dict[str, Any]) -> "ContractMethod":
        inputs = tuple(
            MethodParameter(
                name=param.get("name", ""),
                type=param["type"],
                canonical_type=canonical_type(param),
            )
            for param in entry.get("inputs", [])
        )
        signature = f"{entry['name']}({','.join(p.canonical_type for p in inputs)})"
        return cls(
            name=entry["name"],
            inputs=inputs,
            selector=bytes(Web3.keccak(text=signature)[:4]),
        )


@dataclass(frozen=True, slots=True)
class ContractInterface:
    """Ordered set of callable methods of one contract.

    Only ``function`` entries of the ABI are kept; events, errors,
    constructor, fallback and receive entries cannot be selected by call data.
    When two methods share a selector the first declared one wins.
    """

    methods: tuple[ContractMethod, ...]

    @classmethod
    def from_abi(cls, abi: list[dict[str, Any]]) -> "ContractInterface":
        if not isinstance(abi, list):
            raise ValueError(f"ABI must be a list of entries, got {type(abi).__name__}")
        methods = tuple(
            ContractMethod.from_abi_entry(entry)
            for entry in abi
            if entry.get("type", "function") == "function"
        )
        return cls(methods=methods)

    @classmethod
    def from_abi_json(cls, text: str) -> "ContractInterface":
        """Parse ABI JSON text as returned by the registry.

        Raises:
            ValueError: If the text is not a valid ABI document
        """
        try:
            abi = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"ABI is not valid JSON: {e}") from e
        try:
            return cls.from_abi(abi)
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed ABI entry: {e!r}") from e

    def find_method(self, selector: bytes) -> "ContractMethod | None":
        for method in self.methods:
            if method.selector == selector:
                return method
        return None

    def __len__(self) -> int:
        return len(self.methods)


@dataclass(frozen=True, slots=True)
class Unresolved:
    """No registry answer has been stored for the address yet."""


@dataclass(frozen=True, slots=True)
class VerifiedInterface:
    """The registry published an interface for the address."""

    interface: ContractInterface


@dataclass(frozen=True, slots=True)
class UnverifiedInterface:
    """The registry has no verified interface for the address.

    This is a terminal state: it is cached and never re-fetched.
    """

    reason: str = "Contract source code not verified"


InterfaceResolution = VerifiedInterface | UnverifiedInterface


def _jsonable(value: Any) -> Any:
    """Convert decoded ABI values into JSON-friendly structures."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) > 2**53:
        return str(value)
    return value


@dataclass(frozen=True, slots=True)
class DecodedArgument:
    name: str
    type: str
    value: Any


@dataclass(frozen=True, slots=True)
class DecodedCall:
    """Result of a successful call data decode.

    Attributes:
        method: Method name
        signature: Canonical signature the selector was derived from
        arguments: Decoded arguments in declaration order
    """

    method: str
    signature: str
    arguments: tuple[DecodedArgument, ...]

    @property
    def pairs(self) -> list[tuple[str, Any]]:
        """Ordered ``(type, value)`` pairs."""
        return [(arg.type, arg.value) for arg in self.arguments]

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "signature": self.signature,
            "arguments": [
                {"name": arg.name, "type": arg.type, "value": _jsonable(arg.value)}
                for arg in self.arguments
            ],
        }


class TxKind(Enum):
    """Classification of a transaction."""
    TRANSFER = "transfer"
    CALL = "call"
    CREATION = "creation"
    UNCLASSIFIED = "unclassified"


class UndecodedReason(Enum):
    """Why a contract call record carries no decoded call."""
    NO_CALL_DATA = "no_call_data"
    UNVERIFIED_INTERFACE = "unverified_interface"
    REGISTRY_UNAVAILABLE = "registry_unavailable"
    MALFORMED_CALL_DATA = "malformed_call_data"
    UNKNOWN_SELECTOR = "unknown_selector"
    ARGUMENT_DECODE_ERROR = "argument_decode_error"


@dataclass(frozen=True, slots=True)
class Classification:
    """Outcome of classifying one transaction.

    Attributes:
        kind: Transfer, call, creation, or unclassified when the code lookup failed
        sender: Recovered sender, None if recovery failed
        recipient: Checksummed recipient, None for contract creation
        sender_error: Why sender recovery failed
        error: Why the code lookup failed
    """

    kind: TxKind
    sender: str | None
    recipient: str | None
    sender_error: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """One emitted record per observed transaction.

    Attributes:
        block_number: Block the transaction was included in
        tx_hash: 0x-prefixed transaction hash
        sender: Recovered sender address
        recipient: Recipient address, None for contract creation
        value_wei: Transferred value in base units
        kind: Transaction classification
        call_data: 0x-prefixed call data
        decoded: Decoded call, only for successfully decoded contract calls
        undecoded_reason: Why a contract call was not decoded
        detail: Human-readable failure detail
        sender_error: Why sender recovery failed
    """

    block_number: int
    tx_hash: str
    sender: str | None
    recipient: str | None
    value_wei: int
    kind: TxKind
    call_data: str = "0x"
    decoded: DecodedCall | None = None
    undecoded_reason: UndecodedReason | None = None
    detail: str | None = None
    sender_error: str | None = None

    @property
    def value_ether(self) -> Decimal:
        return Decimal(Web3.from_wei(self.value_wei, "ether"))

    @property
    def value_display(self) -> str:
        """Value in display units as a plain decimal string, e.g. ``"1.5"``."""
        return f"{self.value_ether.normalize():f}"

    @property
    def is_decoded(self) -> bool:
        return self.decoded is not None

    def __str__(self) -> str:
        recipient = self.recipient or "<contract creation>"
        line = (
            f"[{self.block_number}] {self.tx_hash} {self.kind.value} "
            f"{self.sender or '<unknown sender>'} -> {recipient} "
            f"{self.value_display} ETH"
        )
        if self.decoded is not None:
            args = ", ".join(f"{arg.type} {arg.value!r}" for arg in self.decoded.arguments)
            line += f" {self.decoded.method}({args})"
        elif self.undecoded_reason is not None:
            line += f" undecoded: {self.undecoded_reason.value}"
        return line

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
            "sender": self.sender,
            "recipient": self.recipient,
            "value_wei": str(self.value_wei),
            "value": self.value_display,
            "kind": self.kind.value,
            "call_data": self.call_data,
            "decoded": self.decoded.to_dict() if self.decoded else None,
            "undecoded_reason": self.undecoded_reason.value if self.undecoded_reason else None,
            "detail": self.detail,
            "sender_error": self.sender_error,
        }


def to_hex(value: Any) -> str:
    """Normalize bytes, HexBytes or hex strings to a 0x-prefixed hex string."""
    if value is None:
        return "0x"
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return "0x" + HexBytes(value).hex().removeprefix("0x")
