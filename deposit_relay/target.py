"""Target chain deposit adapter.

The bridge handler calls :py:meth:`DepositAdapterTarget.execute` with the origin
adapter address and the execution payload recovered from the envelope.
The adapter checks who is calling, who claims to have sent the deposit and
where the withdrawal credentials point, then forwards the payload and its whole
native currency balance to the deposit contract.

The bridge delivers the deposit funds as a plain transfer before calling ``execute()``.

The adapter does not remember executed payloads. Replays are rejected by
the deposit contract, which refuses a deposit data root it has already seen.
"""

import logging

from eth_typing import HexAddress
from web3 import Web3

from deposit_relay.abi import is_same_address
from deposit_relay.access import Role, only_role
from deposit_relay.adapter import DepositAdapter
from deposit_relay.errors import (
    DepositForwardingFailed,
    InvalidDepositContract,
    InvalidExecutionData,
    UnauthorizedCaller,
    UnauthorizedOrigin,
)
from deposit_relay.ledger import Msg, external
from deposit_relay.payload import ExecutionPayload, validate_withdrawal_credentials

logger = logging.getLogger(__name__)


class DepositAdapterTarget(DepositAdapter):
    """Accepts relayed deposits from authorised origin adapters."""

    reason_prefix = "DepositTarget"

    def constructor(self, msg: Msg, bridge: HexAddress | str, deposit_contract: HexAddress | str):
        """Bind the adapter to its handler and deposit contract.

        :param bridge:
            Handler contract that is the only allowed caller of ``execute()``

        :param deposit_contract:
            Deposit contract, must have code

        :raise InvalidDepositContract:
            If there is no code at ``deposit_contract``
        """
        if not self.ledger.has_code(deposit_contract):
            raise InvalidDepositContract(f"{self.reason_prefix}: invalid deposit contract")
        self._init_admin(msg)
        self.storage["bridge"] = Web3.to_checksum_address(bridge)
        self.storage["deposit_contract"] = Web3.to_checksum_address(deposit_contract)
        # Lower case addresses
        self.storage["authorized_origins"] = set()

    @property
    def deposit_contract(self) -> HexAddress:
        return self.storage["deposit_contract"]

    @property
    def authorized_origins(self) -> frozenset[HexAddress]:
        return frozenset(Web3.to_checksum_address(a) for a in self.storage["authorized_origins"])

    def is_origin_authorized(self, origin_adapter: HexAddress | str) -> bool:
        return origin_adapter.lower() in self.storage["authorized_origins"]

    @external
    @only_role(Role.admin)
    def set_origin_adapter(self, msg: Msg, origin_adapter: HexAddress | str, authorized: bool):
        """Authorise or deauthorise an origin adapter.

        Idempotent, setting the same state again re-emits the event.
        """
        origin_adapter = Web3.to_checksum_address(origin_adapter)
        if authorized:
            self.storage["authorized_origins"].add(origin_adapter.lower())
        else:
            self.storage["authorized_origins"].discard(origin_adapter.lower())
        logger.info("Target adapter %s origin %s authorized: %s", self.address, origin_adapter, authorized)
        self.emit("DepositAdapterOriginSet", origin_adapter=origin_adapter, authorized=authorized)

    @external
    def execute(self, msg: Msg, origin_adapter: HexAddress | str, execution_data: bytes):
        """Forward a relayed deposit to the deposit contract.

        :param origin_adapter:
            Origin adapter the handler recovered from the envelope

        :param execution_data:
            ABI encoded :py:class:`ExecutionPayload`

        :raise UnauthorizedCaller:
            Caller is not the bridge handler

        :raise UnauthorizedOrigin:
            Origin adapter is not authorised

        :raise DepositForwardingFailed:
            Deposit contract rejected the deposit
        """
        if not is_same_address(msg.sender, self.bridge):
            raise UnauthorizedCaller(f"{self.reason_prefix}: sender must be handler contract")

        if not self.is_origin_authorized(origin_adapter):
            raise UnauthorizedOrigin(f"{self.reason_prefix}: invalid origin depositor")

        try:
            payload = ExecutionPayload.decode(execution_data)
        except ValueError as e:
            raise InvalidExecutionData(f"{self.reason_prefix}: malformed execution data") from e

        validate_withdrawal_credentials(payload.withdrawal_credentials, self.address, self.reason_prefix)

        amount = self.balance
        success, _ = self.ledger.try_call(
            self.address,
            self.deposit_contract,
            "deposit",
            payload.as_args(),
            amount,
        )
        if not success:
            raise DepositForwardingFailed(f"{self.reason_prefix}: deposit failed")

        logger.info(
            "Target adapter %s forwarded %d wei deposit from origin %s to %s",
            self.address,
            amount,
            origin_adapter,
            self.deposit_contract,
        )

        self.emit(
            "DepositRelayed",
            pubkey=payload.pubkey,
            withdrawal_credentials=payload.withdrawal_credentials,
            signature=payload.signature,
            deposit_data_root=payload.deposit_data_root,
        )
