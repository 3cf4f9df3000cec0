"""Bridge envelope codec.

The envelope is the cross-domain call descriptor the origin adapter hands
to the bridge. The bridge treats it as opaque bytes. The handler on the
target chain strips the framing and calls ``execute(origin, execution_data)``
on the target adapter.

Layout (big-endian, packed, no padding)::

    [32 bytes] reserved, always zero
    [2 bytes]  metadata length, 4
    [4 bytes]  selector of execute(address,bytes)
    [1 byte]   0x14
    [20 bytes] target adapter address
    [1 byte]   origin field tag, 0x14 or 0x20 depending on the variant
    [...]      origin adapter address and execution data

Two variants of the origin field exist:

- :py:attr:`EnvelopeVariant.packed` (tag ``0x14``): 20 raw address bytes followed by the
  ABI tail of ``(address, bytes)`` with its leading address word removed, i.e.
  ``[offset 0x40][length][data padded to a word]``. Inserting one padded address word
  after the selector turns this into ``execute(origin, data)`` calldata.
  This is what the deployed handlers consume.

- :py:attr:`EnvelopeVariant.abi_tuple` (tag ``0x20``): full ``abi.encode(address, bytes)``.

A codec is always used with one variant on both sides. Decoding rejects the
tag of the other variant instead of guessing.

Example::

    from deposit_relay.envelope import Envelope, EnvelopeVariant

    envelope = Envelope(
        target_adapter=target.address,
        origin_adapter=origin.address,
        execution_data=payload.encode(),
    )
    data = envelope.encode(EnvelopeVariant.packed)
    assert Envelope.decode(data, EnvelopeVariant.packed) == envelope
"""

import enum
import logging
from dataclasses import dataclass

import eth_abi
from eth_abi.exceptions import DecodingError
from eth_typing import HexAddress
from web3 import Web3

from deposit_relay.abi import (
    ZERO_ADDRESS,
    address_to_bytes,
    bytes_to_address,
    ceil32,
    decode_with_signature,
    encode_with_signature,
)
from deposit_relay.constants import (
    ADDRESS_LENGTH,
    EXECUTE_FUNCTION_SIGNATURE,
    EXECUTE_SELECTOR,
    METADATA_LENGTH_WIDTH,
    RESERVED_LENGTH,
    SELECTOR_LENGTH,
    WORD_LENGTH,
)
from deposit_relay.errors import MalformedEnvelope
from deposit_relay.payload import ExecutionPayload

logger = logging.getLogger(__name__)


#: Length of everything before the origin field tag
HEADER_LENGTH = RESERVED_LENGTH + METADATA_LENGTH_WIDTH + SELECTOR_LENGTH + 1 + ADDRESS_LENGTH

#: Offset word of the ``bytes`` argument in an ``(address, bytes)`` ABI tuple
BYTES_ARGUMENT_OFFSET = 2 * WORD_LENGTH


class EnvelopeVariant(enum.Enum):
    """Encoding of the origin field.

    The enum value is the length tag written before the field.
    """

    #: Raw origin address followed by the ABI tail of ``(address, bytes)``
    packed = ADDRESS_LENGTH

    #: Full ABI tuple ``(address, bytes)``
    abi_tuple = WORD_LENGTH


#: Variant the deployed handlers expect
DEFAULT_ENVELOPE_VARIANT = EnvelopeVariant.packed


@dataclass(slots=True, frozen=True)
class Envelope:
    """Decoded cross-domain call descriptor."""

    #: Target chain adapter the handler calls
    target_adapter: HexAddress

    #: Origin chain adapter that built the envelope
    origin_adapter: HexAddress

    #: ABI encoded :py:class:`ExecutionPayload`
    execution_data: bytes

    #: Selector the handler calls on the target adapter
    selector: bytes = EXECUTE_SELECTOR

    def __post_init__(self):
        # Normalise so that decoded and constructed envelopes compare equal
        object.__setattr__(self, "target_adapter", HexAddress(Web3.to_checksum_address(self.target_adapter)))
        object.__setattr__(self, "origin_adapter", HexAddress(Web3.to_checksum_address(self.origin_adapter)))
        assert len(self.selector) == SELECTOR_LENGTH, f"Selector must be 4 bytes, got {self.selector!r}"

    @property
    def payload(self) -> ExecutionPayload:
        """Decode the carried execution payload.

        :raise ValueError:
            If the execution data is not a valid payload.
        """
        return ExecutionPayload.decode(self.execution_data)

    def encode(self, variant: EnvelopeVariant = DEFAULT_ENVELOPE_VARIANT) -> bytes:
        return encode_envelope(self, variant)

    @classmethod
    def decode(
        cls,
        data: bytes,
        variant: EnvelopeVariant = DEFAULT_ENVELOPE_VARIANT,
        expected_selector: bytes = EXECUTE_SELECTOR,
    ) -> "Envelope":
        return decode_envelope(data, variant, expected_selector)


def encode_envelope(envelope: Envelope, variant: EnvelopeVariant = DEFAULT_ENVELOPE_VARIANT) -> bytes:
    """Pack an envelope.

    :param envelope:
        Call descriptor

    :param variant:
        Encoding of the origin field

    :return:
        Envelope bytes the bridge carries
    """
    header = b"\x00" * RESERVED_LENGTH
    header += len(envelope.selector).to_bytes(METADATA_LENGTH_WIDTH, byteorder="big")
    header += envelope.selector
    header += bytes([ADDRESS_LENGTH])
    header += address_to_bytes(envelope.target_adapter)
    header += bytes([variant.value])

    match variant:
        case EnvelopeVariant.packed:
            # The handler fills in the origin word, the zero address here is a placeholder we cut off
            tail = eth_abi.encode(["address", "bytes"], [ZERO_ADDRESS, envelope.execution_data])[WORD_LENGTH:]
            body = address_to_bytes(envelope.origin_adapter) + tail
        case EnvelopeVariant.abi_tuple:
            body = eth_abi.encode(["address", "bytes"], [envelope.origin_adapter, envelope.execution_data])
        case _:
            raise NotImplementedError(f"Unknown envelope variant: {variant}")

    data = header + body
    logger.debug(
        "Encoded %s envelope to %s from %s, %d bytes",
        variant.name,
        envelope.target_adapter,
        envelope.origin_adapter,
        len(data),
    )
    return data


def _decode_bytes_tail(tail: bytes) -> bytes:
    """Decode ``[offset][length][padded data]`` of a lone ``bytes`` argument after an address word."""
    if len(tail) < 2 * WORD_LENGTH:
        raise MalformedEnvelope(f"Execution data tail too short: {len(tail)} bytes")

    offset = int.from_bytes(tail[0:WORD_LENGTH], byteorder="big")
    if offset != BYTES_ARGUMENT_OFFSET:
        raise MalformedEnvelope(f"Unexpected execution data offset: {offset}")

    length = int.from_bytes(tail[WORD_LENGTH : 2 * WORD_LENGTH], byteorder="big")
    expected = 2 * WORD_LENGTH + ceil32(length)
    if len(tail) != expected:
        raise MalformedEnvelope(f"Execution data length tag {length} does not match the {len(tail) - 2 * WORD_LENGTH} bytes present")

    try:
        # Put back the address word so eth_abi sees a complete (address, bytes) tuple
        _, execution_data = eth_abi.decode(["address", "bytes"], b"\x00" * WORD_LENGTH + tail)
    except DecodingError as e:
        raise MalformedEnvelope(f"Could not decode execution data: {e}") from e

    return execution_data


def decode_envelope(
    data: bytes,
    variant: EnvelopeVariant = DEFAULT_ENVELOPE_VARIANT,
    expected_selector: bytes = EXECUTE_SELECTOR,
) -> Envelope:
    """Unpack an envelope.

    :param data:
        Envelope bytes as delivered by the bridge

    :param variant:
        The only origin field encoding accepted

    :param expected_selector:
        Selector the envelope must carry

    :raise MalformedEnvelope:
        If any part of the framing is wrong
    """
    if len(data) < HEADER_LENGTH + 1:
        raise MalformedEnvelope(f"Envelope too short: {len(data)} bytes")

    cursor = 0
    reserved = data[cursor : cursor + RESERVED_LENGTH]
    cursor += RESERVED_LENGTH
    if any(reserved):
        raise MalformedEnvelope("Reserved field is not zero")

    metadata_length = int.from_bytes(data[cursor : cursor + METADATA_LENGTH_WIDTH], byteorder="big")
    cursor += METADATA_LENGTH_WIDTH
    if metadata_length != SELECTOR_LENGTH:
        raise MalformedEnvelope(f"Metadata length {metadata_length} does not match selector width {SELECTOR_LENGTH}")

    selector = data[cursor : cursor + SELECTOR_LENGTH]
    cursor += SELECTOR_LENGTH
    if selector != expected_selector:
        raise MalformedEnvelope(f"Unexpected function selector 0x{selector.hex()}")

    target_tag = data[cursor]
    cursor += 1
    if target_tag != ADDRESS_LENGTH:
        raise MalformedEnvelope(f"Target adapter length tag {target_tag} is not {ADDRESS_LENGTH}")

    target_adapter = bytes_to_address(data[cursor : cursor + ADDRESS_LENGTH])
    cursor += ADDRESS_LENGTH

    origin_tag = data[cursor]
    cursor += 1
    if origin_tag != variant.value:
        raise MalformedEnvelope(f"Origin field tag {origin_tag} does not match {variant.name} envelope tag {variant.value}")

    body = data[cursor:]

    match variant:
        case EnvelopeVariant.packed:
            if len(body) < ADDRESS_LENGTH:
                raise MalformedEnvelope(f"Origin adapter truncated: {len(body)} bytes")
            origin_adapter = bytes_to_address(body[0:ADDRESS_LENGTH])
            execution_data = _decode_bytes_tail(body[ADDRESS_LENGTH:])
        case EnvelopeVariant.abi_tuple:
            if len(body) < WORD_LENGTH:
                raise MalformedEnvelope(f"Origin adapter word truncated: {len(body)} bytes")
            if any(body[0 : WORD_LENGTH - ADDRESS_LENGTH]):
                raise MalformedEnvelope("Origin adapter word has non-zero padding")
            origin_adapter = bytes_to_address(body[WORD_LENGTH - ADDRESS_LENGTH : WORD_LENGTH])
            execution_data = _decode_bytes_tail(body[WORD_LENGTH:])
        case _:
            raise NotImplementedError(f"Unknown envelope variant: {variant}")

    logger.debug("Decoded %s envelope to %s from %s", variant.name, target_adapter, origin_adapter)

    return Envelope(
        target_adapter=target_adapter,
        origin_adapter=origin_adapter,
        execution_data=execution_data,
        selector=selector,
    )


def to_execute_calldata(envelope: Envelope) -> bytes:
    """Calldata of the ``execute(origin, execution_data)`` call the handler makes.

    For a packed envelope this equals the selector, the origin address padded to
    a word, and the envelope bytes after the origin address.
    """
    return encode_with_signature(EXECUTE_FUNCTION_SIGNATURE, [envelope.origin_adapter, envelope.execution_data])


def decode_execute_calldata(calldata: bytes) -> tuple[HexAddress, bytes]:
    """Decode ``execute(address,bytes)`` calldata.

    :return:
        Tuple (origin adapter, execution data)
    """
    origin_adapter, execution_data = decode_with_signature(EXECUTE_FUNCTION_SIGNATURE, calldata)
    return HexAddress(Web3.to_checksum_address(origin_adapter)), execution_data
