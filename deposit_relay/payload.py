"""Validator deposit execution payload.

The execution payload is the argument list of the deposit contract's
``deposit()`` call, ABI encoded as ``(bytes, bytes, bytes, bytes32)``.
It travels through the bridge untouched inside the envelope.

Withdrawal credentials of an execution layer address have the layout::

    [1 byte prefix 0x01][11 zero bytes][20 byte address]

The relay requires the address part to be the target chain adapter,
so that the validator funds stay recoverable on the target chain.
"""

from dataclasses import dataclass

import eth_abi
from eth_abi.exceptions import DecodingError
from eth_typing import HexAddress

from deposit_relay.abi import address_to_bytes, bytes_to_address, is_same_address
from deposit_relay.constants import (
    ADDRESS_LENGTH,
    ETH1_ADDRESS_WITHDRAWAL_PREFIX,
    EXECUTION_PAYLOAD_TYPES,
    WITHDRAWAL_CREDENTIALS_LENGTH,
)
from deposit_relay.errors import InvalidCredentialsLength, WrongCredentialsAddress


@dataclass(slots=True, frozen=True)
class ExecutionPayload:
    """ETH2 deposit parameters carried by the relay.

    BLS fields are not validated here, the deposit contract and the beacon chain do that.
    """

    #: BLS public key, 48 bytes
    pubkey: bytes

    #: Withdrawal credentials, must be 32 bytes
    withdrawal_credentials: bytes

    #: BLS signature, 96 bytes
    signature: bytes

    #: SSZ hash tree root of the deposit data
    deposit_data_root: bytes

    def encode(self) -> bytes:
        """ABI encode the payload as the deposit contract call arguments."""
        return eth_abi.encode(
            list(EXECUTION_PAYLOAD_TYPES),
            [self.pubkey, self.withdrawal_credentials, self.signature, self.deposit_data_root],
        )

    @classmethod
    def decode(cls, data: bytes) -> "ExecutionPayload":
        """Decode ABI encoded execution data.

        :raise ValueError:
            If the data is not a valid ``(bytes, bytes, bytes, bytes32)`` tuple.
        """
        try:
            pubkey, withdrawal_credentials, signature, deposit_data_root = eth_abi.decode(list(EXECUTION_PAYLOAD_TYPES), data)
        except (DecodingError, OverflowError) as e:
            raise ValueError(f"Could not decode execution payload of {len(data)} bytes") from e
        return cls(
            pubkey=pubkey,
            withdrawal_credentials=withdrawal_credentials,
            signature=signature,
            deposit_data_root=deposit_data_root,
        )

    def as_args(self) -> tuple[bytes, bytes, bytes, bytes]:
        """Arguments for the deposit contract ``deposit()`` call."""
        return self.pubkey, self.withdrawal_credentials, self.signature, self.deposit_data_root


def create_withdrawal_credentials(
    address: HexAddress | str,
    prefix: int = ETH1_ADDRESS_WITHDRAWAL_PREFIX,
) -> bytes:
    """Build execution layer withdrawal credentials pointing to an address.

    :param address:
        Address that will control the validator funds

    :param prefix:
        Credential type byte

    :return:
        32 bytes of withdrawal credentials
    """
    credentials = bytes([prefix]) + b"\x00" * 11 + address_to_bytes(address)
    assert len(credentials) == WITHDRAWAL_CREDENTIALS_LENGTH
    return credentials


def get_credentials_address(credentials: bytes) -> HexAddress:
    """Read the address from the trailing 20 bytes of withdrawal credentials."""
    return bytes_to_address(credentials[-ADDRESS_LENGTH:])


def validate_withdrawal_credentials(
    credentials: bytes,
    expected_address: HexAddress | str,
    reason_prefix: str,
):
    """Check withdrawal credentials point to the expected adapter.

    The length is checked before the address.

    :param reason_prefix:
        Contract name used in the revert reason

    :raise InvalidCredentialsLength:
        Credentials are not 32 bytes

    :raise WrongCredentialsAddress:
        Trailing 20 bytes are not the expected address
    """
    if len(credentials) != WITHDRAWAL_CREDENTIALS_LENGTH:
        raise InvalidCredentialsLength(f"{reason_prefix}: invalid withdrawal_credentials length")

    if not is_same_address(get_credentials_address(credentials), expected_address):
        raise WrongCredentialsAddress(f"{reason_prefix}: wrong withdrawal_credentials address")
