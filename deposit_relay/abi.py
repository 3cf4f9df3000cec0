"""ABI encode/decode helpers.

Small helpers that mimic Solidity's ``abi.encodeWithSignature()`` and
``abi.encodePacked()`` building blocks used by the envelope codec.
"""

from typing import Any, Sequence

import eth_abi
from eth_typing import HexAddress
from eth_utils import function_signature_to_4byte_selector
from web3 import Web3


#: Ethereum 0x0000000000000000000000000000000000000000 address as a string.
ZERO_ADDRESS_STR = "0x0000000000000000000000000000000000000000"

#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS = HexAddress(ZERO_ADDRESS_STR)


def get_arg_types(function_signature: str) -> list[str]:
    """Extract argument types from a Solidity function signature.

    Example::

        assert get_arg_types("execute(address,bytes)") == ["address", "bytes"]
    """
    selector_text = function_signature[function_signature.find("(") + 1 : function_signature.rfind(")")]
    if not selector_text:
        return []
    return selector_text.split(",")


def encode_with_signature(function_signature: str, args: Sequence) -> bytes:
    """Mimic Solidity's abi.encodeWithSignature() in Python.

    Example:

    .. code-block:: python

            payload = encode_with_signature("execute(address,bytes)", [origin, execution_data])
            assert payload[0:4] == EXECUTE_SELECTOR

    :param function_signature:
        Solidity function signature that can be hashed to a selector.

    :param args:
        Argument values to be encoded.
    """

    assert type(args) in (tuple, list)

    function_selector = function_signature_to_4byte_selector(function_signature)
    encoded_args = eth_abi.encode(get_arg_types(function_signature), args)
    return function_selector + encoded_args


def decode_with_signature(function_signature: str, data: bytes) -> tuple[Any, ...]:
    """Decode calldata produced by :py:func:`encode_with_signature`.

    :raise ValueError:
        If the selector does not belong to the signature.
    """
    selector = function_signature_to_4byte_selector(function_signature)
    if data[0:4] != selector:
        raise ValueError(f"Calldata selector {data[0:4].hex()} does not match {function_signature}")
    return eth_abi.decode(get_arg_types(function_signature), data[4:])


def address_to_bytes(address: HexAddress | str) -> bytes:
    """Raw 20 bytes of an address, as ``abi.encodePacked(address)`` has it."""
    address = Web3.to_checksum_address(address)
    return bytes.fromhex(address[2:])


def bytes_to_address(data: bytes) -> HexAddress:
    """Checksummed address of raw 20 bytes."""
    assert len(data) == 20, f"Address must be 20 bytes, got {len(data)}"
    return HexAddress(Web3.to_checksum_address("0x" + bytes(data).hex()))


def ceil32(length: int) -> int:
    """Round a byte length up to the next ABI word boundary."""
    return length if length % 32 == 0 else length + 32 - length % 32


def is_same_address(a: HexAddress | str, b: HexAddress | str) -> bool:
    """Compare addresses case-insensitively."""
    return a.lower() == b.lower()
