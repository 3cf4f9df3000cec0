"""Deposit relay test helpers.

Stand-ins for the external collaborators of the adapters, so that a full
origin chain to target chain deposit can run on two in-process ledgers:

- :py:class:`TestBridge`: origin chain bridge entry point, records relayed envelopes
- :py:class:`TestHandler`: target chain handler, unpacks envelopes and calls ``execute()``
- :py:class:`TestDeposit`: target chain deposit contract
- :py:class:`RejectingReceiver`: a contract that refuses native currency

Example::

    from deposit_relay.ledger import Ledger
    from deposit_relay.testing import deploy_deposit_relay

    relay = deploy_deposit_relay(Ledger(chain_id=1), Ledger(chain_id=2))
    receipt = relay.origin.functions.deposit(relay.config.target_domain_id, execution_data).transact(
        {"from": depositor, "value": value}
    )
    deposit_nonce = receipt.get_events("Deposit")[0].args["deposit_nonce"]
    relay.deliver(deposit_nonce)
"""

import logging
from dataclasses import dataclass

from eth_typing import HexAddress
from web3 import Web3

from deposit_relay.config import DepositRelayConfig
from deposit_relay.constants import DEFAULT_DEPOSIT_FEE, MIN_DEPOSIT_AMOUNT, PUBKEY_LENGTH, SIGNATURE_LENGTH
from deposit_relay.deploy import deploy_contract
from deposit_relay.envelope import DEFAULT_ENVELOPE_VARIANT, Envelope, EnvelopeVariant
from deposit_relay.errors import Reverted
from deposit_relay.ledger import Contract, Ledger, Msg, TxReceipt, external, payable
from deposit_relay.origin import DepositAdapterOrigin
from deposit_relay.payload import ExecutionPayload, create_withdrawal_credentials
from deposit_relay.target import DepositAdapterTarget

logger = logging.getLogger(__name__)


#: Native currency a test handler holds to pay out deliveries
DEFAULT_HANDLER_LIQUIDITY = Web3.to_wei(1_000, "ether")

#: BLS public key of test deposits
TEST_PUBKEY = bytes.fromhex("123456789012345678901234567890123456789012345678901234567890123456789012345678901234567890123456")

#: BLS signature of test deposits
TEST_SIGNATURE = TEST_PUBKEY + TEST_PUBKEY

assert len(TEST_PUBKEY) == PUBKEY_LENGTH
assert len(TEST_SIGNATURE) == SIGNATURE_LENGTH

#: Deposit data root of test deposits, ``formatBytes32String("0x11")``
TEST_DEPOSIT_DATA_ROOT = b"0x11".ljust(32, b"\x00")


def create_test_payload(
    withdrawal_address: HexAddress | str,
    deposit_data_root: bytes = TEST_DEPOSIT_DATA_ROOT,
    withdrawal_credentials: bytes | None = None,
) -> ExecutionPayload:
    """Execution payload with fixed BLS fields.

    :param withdrawal_address:
        Address the withdrawal credentials point to

    :param withdrawal_credentials:
        Use these raw credentials instead, e.g. to test bad lengths
    """
    if withdrawal_credentials is None:
        withdrawal_credentials = create_withdrawal_credentials(withdrawal_address)
    return ExecutionPayload(
        pubkey=TEST_PUBKEY,
        withdrawal_credentials=withdrawal_credentials,
        signature=TEST_SIGNATURE,
        deposit_data_root=deposit_data_root,
    )


class TestBridge(Contract):
    """Origin chain bridge.

    Keeps a relay fee out of every deposit and records the rest
    as the amount to deliver on the destination domain.
    """

    __test__ = False

    reason_prefix = "TestBridge"

    def constructor(self, msg: Msg, relay_fee: int = 0):
        self.storage["relay_fee"] = relay_fee
        self.storage["deposit_nonce"] = 0
        self.storage["deposits"] = {}

    @property
    def relay_fee(self) -> int:
        return self.storage["relay_fee"]

    @property
    def deposit_nonce(self) -> int:
        return self.storage["deposit_nonce"]

    def get_deposit(self, deposit_nonce: int) -> dict:
        return dict(self.storage["deposits"][deposit_nonce])

    @payable
    def relay(self, msg: Msg, destination_domain_id: int, resource_id: bytes, data: bytes, fee_data: bytes) -> int:
        if msg.value < self.relay_fee:
            raise Reverted(f"{self.reason_prefix}: insufficient relay fee")

        deposit_nonce = self.storage["deposit_nonce"] + 1
        self.storage["deposit_nonce"] = deposit_nonce
        self.storage["deposits"][deposit_nonce] = {
            "destination_domain_id": destination_domain_id,
            "resource_id": resource_id,
            "data": data,
            "amount": msg.value - self.relay_fee,
            "user": msg.sender,
        }
        self.emit(
            "Deposit",
            destination_domain_id=destination_domain_id,
            resource_id=resource_id,
            deposit_nonce=deposit_nonce,
            user=msg.sender,
            data=data,
            handler_response=b"",
        )
        return deposit_nonce


class TestHandler(Contract):
    """Target chain handler.

    The only caller the target adapter accepts. Holds bridge liquidity
    and pays the delivered amount to the target adapter before calling it.
    Redelivery of the same deposit is not prevented.
    """

    __test__ = False

    reason_prefix = "TestHandler"

    def constructor(self, msg: Msg, domain_id: int, envelope_variant: EnvelopeVariant = DEFAULT_ENVELOPE_VARIANT):
        self.storage["relayer"] = msg.sender
        self.storage["domain_id"] = domain_id
        self.storage["envelope_variant"] = envelope_variant

    @property
    def domain_id(self) -> int:
        return self.storage["domain_id"]

    @property
    def envelope_variant(self) -> EnvelopeVariant:
        return self.storage["envelope_variant"]

    @external
    def execute_proposal(
        self,
        msg: Msg,
        origin_domain_id: int,
        deposit_nonce: int,
        resource_id: bytes,
        data: bytes,
        amount: int,
    ):
        if msg.sender != self.storage["relayer"]:
            raise Reverted(f"{self.reason_prefix}: sender is not a relayer")

        envelope = Envelope.decode(data, self.envelope_variant)

        logger.info(
            "Executing proposal %d from domain %d: %d wei to %s",
            deposit_nonce,
            origin_domain_id,
            amount,
            envelope.target_adapter,
        )

        self.ledger.send_value(self.address, envelope.target_adapter, amount)
        self.ledger.message_call(
            self.address,
            envelope.target_adapter,
            "execute",
            (envelope.origin_adapter, envelope.execution_data),
        )
        self.emit(
            "ProposalExecution",
            origin_domain_id=origin_domain_id,
            deposit_nonce=deposit_nonce,
            resource_id=resource_id,
        )


class TestDeposit(Contract):
    """Deposit contract stand-in.

    Like the real one it refuses deposits below 1 ether and, unlike the real
    one, also refuses a deposit data root it has already seen.
    """

    __test__ = False

    reason_prefix = "TestDeposit"

    def constructor(self, msg: Msg):
        self.storage["deposit_roots"] = set()
        self.storage["deposit_count"] = 0

    @property
    def deposit_count(self) -> int:
        return self.storage["deposit_count"]

    def receive(self, msg: Msg):
        raise Reverted(f"{self.reason_prefix}: plain transfers not accepted")

    @payable
    def deposit(self, msg: Msg, pubkey: bytes, withdrawal_credentials: bytes, signature: bytes, deposit_data_root: bytes):
        if msg.value < MIN_DEPOSIT_AMOUNT:
            raise Reverted(f"{self.reason_prefix}: deposit value too low")

        if deposit_data_root in self.storage["deposit_roots"]:
            raise Reverted(f"{self.reason_prefix}: deposit data root already used")

        self.storage["deposit_roots"].add(deposit_data_root)
        self.storage["deposit_count"] += 1
        self.emit(
            "Deposit",
            pubkey=pubkey,
            withdrawal_credentials=withdrawal_credentials,
            signature=signature,
            deposit_data_root=deposit_data_root,
            amount=msg.value,
        )


class RejectingReceiver(Contract):
    """Reverts on every incoming transfer."""

    reason_prefix = "RejectingReceiver"

    def receive(self, msg: Msg):
        raise Reverted(f"{self.reason_prefix}: transfers rejected")


def deliver_deposit(
    bridge: TestBridge,
    handler: TestHandler,
    relayer: HexAddress | str,
    deposit_nonce: int,
    origin_domain_id: int,
) -> TxReceipt:
    """Relay one recorded bridge deposit to the target chain.

    :param bridge:
        Origin chain bridge holding the deposit record

    :param handler:
        Target chain handler

    :param relayer:
        Account allowed to submit proposals to the handler

    :param deposit_nonce:
        Nonce from the bridge ``Deposit`` event

    :param origin_domain_id:
        Bridge domain of the origin chain

    :raise ValueError:
        If the deposit is addressed to another domain
    """
    record = bridge.get_deposit(deposit_nonce)
    if record["destination_domain_id"] != handler.domain_id:
        raise ValueError(f"Deposit {deposit_nonce} goes to domain {record['destination_domain_id']}, handler serves {handler.domain_id}")

    logger.info("Delivering deposit %d, %d wei, from chain %d to chain %d", deposit_nonce, record["amount"], bridge.ledger.chain_id, handler.ledger.chain_id)

    return handler.functions.execute_proposal(
        origin_domain_id,
        deposit_nonce,
        record["resource_id"],
        record["data"],
        record["amount"],
    ).transact({"from": relayer})


@dataclass(slots=True)
class DepositRelayDeployment:
    """Adapters and their collaborators on two chains."""

    config: DepositRelayConfig

    origin_ledger: Ledger

    target_ledger: Ledger

    #: Admin of the origin side contracts
    origin_deployer: HexAddress

    #: Admin of the target side contracts and the relayer
    target_deployer: HexAddress

    bridge: TestBridge

    handler: TestHandler

    deposit_contract: TestDeposit

    origin: DepositAdapterOrigin

    target: DepositAdapterTarget

    def deliver(self, deposit_nonce: int) -> TxReceipt:
        """Relay a bridge deposit to the target adapter."""
        return deliver_deposit(
            self.bridge,
            self.handler,
            self.target_deployer,
            deposit_nonce,
            self.config.origin_domain_id,
        )


def deploy_deposit_relay(
    origin_ledger: Ledger,
    target_ledger: Ledger,
    config: DepositRelayConfig | None = None,
    relay_fee: int = 0,
    handler_liquidity: int = DEFAULT_HANDLER_LIQUIDITY,
) -> DepositRelayDeployment:
    """Deploy and wire both adapters with test collaborators.

    - Origin chain: :py:class:`TestBridge`, :py:class:`DepositAdapterOrigin`
    - Target chain: :py:class:`TestHandler`, :py:class:`TestDeposit`, :py:class:`DepositAdapterTarget`
    - The origin adapter targets the target adapter, the target adapter authorises the origin adapter
    - The first account of each ledger deploys and administers its side

    :param config:
        Domains, resource id, fee and envelope variant. Defaults if not given.

    :param relay_fee:
        What the test bridge keeps per deposit, in wei

    :param handler_liquidity:
        Native currency the handler starts with to pay out deliveries
    """
    if config is None:
        config = DepositRelayConfig()

    origin_deployer = origin_ledger.accounts[0]
    target_deployer = target_ledger.accounts[0]

    bridge = deploy_contract(origin_ledger, TestBridge, origin_deployer, relay_fee)
    origin = deploy_contract(
        origin_ledger,
        DepositAdapterOrigin,
        origin_deployer,
        bridge.address,
        config.resource_id,
        config.envelope_variant,
    )

    handler = deploy_contract(target_ledger, TestHandler, target_deployer, config.target_domain_id, config.envelope_variant)
    target_ledger.set_balance(handler.address, handler_liquidity)
    deposit_contract = deploy_contract(target_ledger, TestDeposit, target_deployer)
    target = deploy_contract(target_ledger, DepositAdapterTarget, target_deployer, handler.address, deposit_contract.address)

    origin.functions.change_target_adapter(target.address).transact({"from": origin_deployer})
    target.functions.set_origin_adapter(origin.address, True).transact({"from": target_deployer})

    if config.deposit_fee != DEFAULT_DEPOSIT_FEE:
        origin.functions.change_fee(config.deposit_fee).transact({"from": origin_deployer})

    logger.info(
        "Deposit relay deployed: origin %s on chain %d, target %s on chain %d",
        origin.address,
        origin_ledger.chain_id,
        target.address,
        target_ledger.chain_id,
    )

    return DepositRelayDeployment(
        config=config,
        origin_ledger=origin_ledger,
        target_ledger=target_ledger,
        origin_deployer=origin_deployer,
        target_deployer=target_deployer,
        bridge=bridge,
        handler=handler,
        deposit_contract=deposit_contract,
        origin=origin,
        target=target,
    )
