"""Shared base of the origin and target deposit adapters."""

import logging

from eth_typing import HexAddress
from web3 import Web3

from deposit_relay.access import AccessControl, Role, only_role
from deposit_relay.errors import InsufficientBalance, InvalidAmount, WithdrawalFailed
from deposit_relay.ledger import Contract, Msg, external

logger = logging.getLogger(__name__)


class DepositAdapter(AccessControl, Contract):
    """Admin owned contract holding a native currency balance.

    The deployer becomes the admin.
    """

    def _init_admin(self, msg: Msg):
        self._grant_role(Role.admin, msg.sender)

    @property
    def bridge(self) -> HexAddress:
        return self.storage["bridge"]

    @external
    @only_role(Role.admin)
    def transfer_admin(self, msg: Msg, new_admin: HexAddress | str):
        """Hand the admin role to another account.

        :raise InvalidAdmin:
            If the new admin is the zero address
        """
        previous = self.transfer_role(Role.admin, new_admin)
        self.emit("AdminTransferred", previous_admin=previous, new_admin=Web3.to_checksum_address(new_admin))

    @external
    @only_role(Role.admin)
    def withdraw(self, msg: Msg, to: HexAddress | str, amount: int):
        """Send accumulated balance out of the adapter.

        :raise InvalidAmount:
            If the amount is negative

        :raise InsufficientBalance:
            If the amount exceeds the adapter balance

        :raise WithdrawalFailed:
            If the recipient rejects the transfer
        """
        to = Web3.to_checksum_address(to)
        if amount < 0:
            raise InvalidAmount(f"{self.reason_prefix}: invalid amount")

        if amount > self.balance:
            raise InsufficientBalance(f"{self.reason_prefix}: not enough balance")

        if not self.ledger.try_send_value(self.address, to, amount):
            raise WithdrawalFailed(f"{self.reason_prefix}: withdrawal failed")

        logger.info("%s %s withdrew %d wei to %s", self.reason_prefix, self.address, amount, to)
        self.emit("Withdrawal", to=to, amount=amount)
