#!/usr/bin/env python3
"""Call data decoding for contract invocations.

Turns a resolved :class:`ContractInterface` plus raw call data into a
:class:`DecodedCall`, or raises a precise :class:`CallDecodeError`.
"""

import logging
from typing import Union

from eth_abi import decode
from eth_abi.exceptions import DecodingError, ParseError
from hexbytes import HexBytes

from .errors import ArgumentDecodeError, MalformedCallData, UnknownSelector
from .models import ContractInterface, DecodedArgument, DecodedCall

# Get logger for this module
logger = logging.getLogger(__name__)

SELECTOR_SIZE = 4


def selector_of(call_data: Union[bytes, str]) -> str | None:
    """Return the 0x-prefixed selector of call data, None if too short."""
    data = bytes(HexBytes(call_data))
    if len(data) < SELECTOR_SIZE:
        return None
    return "0x" + data[:SELECTOR_SIZE].hex()


class CallDecoder:
    """Decodes selector-prefixed call data against a contract interface."""

    def decode(self, interface: ContractInterface, call_data: Union[bytes, str]) -> DecodedCall:
        """Decode call data into a method name and typed arguments.

        Args:
            interface: Resolved interface of the called contract
            call_data: Raw call data (bytes, HexBytes or hex string)

        Returns:
            DecodedCall preserving parameter order and published types

        Raises:
            MalformedCallData: If call data is shorter than a selector
            UnknownSelector: If no method matches the selector
            ArgumentDecodeError: If the argument bytes do not fit the parameters
        """
        data = bytes(HexBytes(call_data))
        if len(data) < SELECTOR_SIZE:
            raise MalformedCallData(
                f"Call data has {len(data)} bytes, need at least {SELECTOR_SIZE} for a selector"
            )

        selector, payload = data[:SELECTOR_SIZE], data[SELECTOR_SIZE:]
        method = interface.find_method(selector)
        if method is None:
            raise UnknownSelector("0x" + selector.hex())

        types = [param.canonical_type for param in method.inputs]
        try:
            values = decode(types, payload, strict=True)
        except (DecodingError, ParseError, ValueError, OverflowError) as e:
            raise ArgumentDecodeError(f"{method.signature}: {e}") from e

        logger.debug(f"Decoded {method.signature} with {len(values)} arguments")
        return DecodedCall(
            method=method.name,
            signature=method.signature,
            arguments=tuple(
                DecodedArgument(name=param.name, type=param.type, value=value)
                for param, value in zip(method.inputs, values)
            ),
        )
