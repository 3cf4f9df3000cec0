"""Deposit relay constants.

Wire format constants of the bridge envelope and the defaults
the adapters are deployed with.

The envelope is the opaque ``bytes`` blob a generic message bridge carries
from the origin chain to the target chain:

1. Origin chain: ``DepositAdapterOrigin.deposit()`` packs the envelope and hands it to the bridge
2. The bridge relayers move the envelope to the destination domain
3. Target chain: the bridge handler strips the framing and calls ``DepositAdapterTarget.execute()``

- `Sygma permissionless generic handler <https://github.com/sygmaprotocol/sygma-solidity>`_
- `Ethereum deposit contract <https://github.com/ethereum/consensus-specs/blob/dev/solidity_deposit_contract/deposit_contract.sol>`_
"""

from decimal import Decimal

from eth_utils import function_signature_to_4byte_selector
from web3 import Web3


#: Solidity signature of the target adapter entry point the handler calls
EXECUTE_FUNCTION_SIGNATURE = "execute(address,bytes)"

#: 4-byte selector of ``execute(address,bytes)``
EXECUTE_SELECTOR: bytes = function_signature_to_4byte_selector(EXECUTE_FUNCTION_SIGNATURE)

#: Solidity signature of the deposit contract entry point
DEPOSIT_FUNCTION_SIGNATURE = "deposit(bytes,bytes,bytes,bytes32)"

#: ABI types of the execution payload, in order
EXECUTION_PAYLOAD_TYPES = ("bytes", "bytes", "bytes", "bytes32")

#: Width of the reserved leading word of the envelope
RESERVED_LENGTH = 32

#: Width of the metadata length field
METADATA_LENGTH_WIDTH = 2

#: Width of a Solidity function selector
SELECTOR_LENGTH = 4

#: Raw EVM address width, also the length tag of address fields
ADDRESS_LENGTH = 20

#: ABI word width, also the length tag of the tuple encoded origin field
WORD_LENGTH = 32

#: BLS public key width
PUBKEY_LENGTH = 48

#: BLS signature width
SIGNATURE_LENGTH = 96

#: Withdrawal credentials width
WITHDRAWAL_CREDENTIALS_LENGTH = 32

#: Prefix byte of execution layer (address) withdrawal credentials
ETH1_ADDRESS_WITHDRAWAL_PREFIX = 0x01

#: Fee an origin adapter charges per deposit until changed by the admin
DEFAULT_DEPOSIT_FEE: int = Web3.to_wei(Decimal("3.2"), "ether")

#: Amount of a full validator deposit
VALIDATOR_DEPOSIT_AMOUNT: int = Web3.to_wei(32, "ether")

#: Smallest deposit the deposit contract accepts
MIN_DEPOSIT_AMOUNT: int = Web3.to_wei(1, "ether")

#: Bridge resource id of the deposit route
DEFAULT_RESOURCE_ID: bytes = bytes.fromhex("0000000000000000000000000000000000000000000000000000000000000500")

#: Bridge domain id of the origin chain
DEFAULT_ORIGIN_DOMAIN_ID = 1

#: Bridge domain id of the target chain
DEFAULT_TARGET_DOMAIN_ID = 2
