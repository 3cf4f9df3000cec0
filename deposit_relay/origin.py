"""Origin chain deposit adapter.

Accepts validator deposits on the origin chain and relays them through
a generic message bridge to :py:class:`deposit_relay.target.DepositAdapterTarget`.

The depositor attaches the adapter fee plus the amount the bridge carries::

    value = deposit_fee + deposit_amount

The fee stays in the adapter as withdrawable balance, the deposit amount goes
to the bridge together with the envelope.

Example::

    from deposit_relay.payload import ExecutionPayload, create_withdrawal_credentials

    payload = ExecutionPayload(
        pubkey=pubkey,
        withdrawal_credentials=create_withdrawal_credentials(origin.target_adapter),
        signature=signature,
        deposit_data_root=deposit_data_root,
    )
    origin.functions.deposit(destination_domain_id, payload.encode(), b"").transact(
        {"from": depositor, "value": origin.deposit_fee + deposit_amount}
    )
"""

import logging

from eth_typing import HexAddress
from web3 import Web3

from deposit_relay.abi import ZERO_ADDRESS, is_same_address
from deposit_relay.access import Role, only_role
from deposit_relay.adapter import DepositAdapter
from deposit_relay.constants import DEFAULT_DEPOSIT_FEE, WORD_LENGTH
from deposit_relay.envelope import DEFAULT_ENVELOPE_VARIANT, Envelope, EnvelopeVariant
from deposit_relay.errors import FeeUnchanged, IncorrectFee, InvalidExecutionData, TargetAdapterNotSet
from deposit_relay.ledger import Msg, external, payable
from deposit_relay.payload import ExecutionPayload, validate_withdrawal_credentials

logger = logging.getLogger(__name__)


class DepositAdapterOrigin(DepositAdapter):
    """Builds envelopes for one target adapter and hands them to the bridge."""

    reason_prefix = "DepositOrigin"

    def constructor(
        self,
        msg: Msg,
        bridge: HexAddress | str,
        resource_id: bytes,
        envelope_variant: EnvelopeVariant = DEFAULT_ENVELOPE_VARIANT,
    ):
        assert len(resource_id) == WORD_LENGTH, f"Resource id must be 32 bytes, got {len(resource_id)}"
        self._init_admin(msg)
        self.storage["bridge"] = Web3.to_checksum_address(bridge)
        self.storage["resource_id"] = bytes(resource_id)
        self.storage["envelope_variant"] = envelope_variant
        self.storage["target_adapter"] = ZERO_ADDRESS
        self.storage["deposit_fee"] = DEFAULT_DEPOSIT_FEE

    @property
    def resource_id(self) -> bytes:
        return self.storage["resource_id"]

    @property
    def envelope_variant(self) -> EnvelopeVariant:
        return self.storage["envelope_variant"]

    @property
    def target_adapter(self) -> HexAddress:
        return self.storage["target_adapter"]

    @property
    def deposit_fee(self) -> int:
        return self.storage["deposit_fee"]

    @external
    @only_role(Role.admin)
    def change_target_adapter(self, msg: Msg, target_adapter: HexAddress | str):
        """Point deposits to a target adapter.

        Any address is accepted, setting the current one again is not an error.
        """
        target_adapter = Web3.to_checksum_address(target_adapter)
        self.storage["target_adapter"] = target_adapter
        logger.info("Origin adapter %s now targets %s", self.address, target_adapter)
        self.emit("DepositAdapterTargetChanged", target_adapter=target_adapter)

    @external
    @only_role(Role.admin)
    def change_fee(self, msg: Msg, new_fee: int):
        """Set the flat per-deposit fee.

        :raise FeeUnchanged:
            If the fee is already ``new_fee``
        """
        assert new_fee >= 0, f"Negative fee: {new_fee}"
        if new_fee == self.deposit_fee:
            raise FeeUnchanged(f"{self.reason_prefix}: current fee is equal to new fee")
        self.storage["deposit_fee"] = new_fee
        logger.info("Origin adapter %s fee changed to %d wei", self.address, new_fee)
        self.emit("FeeChanged", new_fee=new_fee)

    @payable
    def deposit(
        self,
        msg: Msg,
        destination_domain_id: int,
        execution_data: bytes,
        fee_data: bytes = b"",
        deposit_amount: int | None = None,
    ) -> bytes:
        """Relay a validator deposit to the target chain.

        :param destination_domain_id:
            Bridge domain of the target chain

        :param execution_data:
            ABI encoded :py:class:`ExecutionPayload`

        :param fee_data:
            Extra parameters passed to the bridge untouched

        :param deposit_amount:
            Amount for the bridge. If given, the attached value must be exactly
            the fee plus this amount. If omitted, everything above the fee.

        :raise IncorrectFee:
            Attached value does not match the fee

        :raise InvalidCredentialsLength:
            Withdrawal credentials are not 32 bytes

        :raise WrongCredentialsAddress:
            Withdrawal credentials do not point to the target adapter

        :raise TargetAdapterNotSet:
            Target adapter is still the zero address

        :return:
            The envelope handed to the bridge
        """
        fee = self.deposit_fee
        if deposit_amount is None:
            if msg.value < fee:
                raise IncorrectFee(f"{self.reason_prefix}: incorrect fee supplied")
            deposit_amount = msg.value - fee
        elif deposit_amount < 0 or msg.value != fee + deposit_amount:
            raise IncorrectFee(f"{self.reason_prefix}: incorrect fee supplied")

        try:
            payload = ExecutionPayload.decode(execution_data)
        except ValueError as e:
            raise InvalidExecutionData(f"{self.reason_prefix}: malformed execution data") from e

        target_adapter = self.target_adapter
        validate_withdrawal_credentials(payload.withdrawal_credentials, target_adapter, self.reason_prefix)

        # Only zero address credentials get this far with an unset target
        if is_same_address(target_adapter, ZERO_ADDRESS):
            raise TargetAdapterNotSet(f"{self.reason_prefix}: target adapter is not set")

        envelope = Envelope(
            target_adapter=target_adapter,
            origin_adapter=self.address,
            execution_data=execution_data,
        ).encode(self.envelope_variant)

        self.emit(
            "DepositRelayed",
            pubkey=payload.pubkey,
            withdrawal_credentials=payload.withdrawal_credentials,
            signature=payload.signature,
            deposit_data_root=payload.deposit_data_root,
            destination_domain_id=destination_domain_id,
            envelope=envelope,
        )

        logger.info(
            "Relaying deposit from %s to domain %d, target %s, amount %d wei, fee %d wei",
            msg.sender,
            destination_domain_id,
            target_adapter,
            deposit_amount,
            fee,
        )

        # The fee part of msg.value stays here
        self.ledger.message_call(
            self.address,
            self.bridge,
            "relay",
            (destination_domain_id, self.resource_id, envelope, fee_data),
            deposit_amount,
        )
        return envelope
