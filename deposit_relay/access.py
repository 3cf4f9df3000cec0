"""Role based access control for the adapters.

Every admin operation checks the caller's role before doing anything else.
There is a single owner per role, no multi-signature policy.
"""

import enum
import functools
import logging
from typing import Callable

from eth_typing import HexAddress
from web3 import Web3

from deposit_relay.abi import ZERO_ADDRESS, is_same_address
from deposit_relay.errors import AdminRequired, InvalidAdmin
from deposit_relay.ledger import Msg

logger = logging.getLogger(__name__)


class Role(enum.Enum):
    """Capabilities a contract account can hold."""

    #: Can change fees, adapters, authorisations and withdraw balance
    admin = "admin"


class AccessControl:
    """Mixin keeping role holders in contract storage.

    Host class must provide ``storage``, ``emit()`` and ``reason_prefix``.
    """

    def _grant_role(self, role: Role, account: HexAddress | str):
        self.storage.setdefault("roles", {})[role.value] = HexAddress(Web3.to_checksum_address(account))

    def get_role_holder(self, role: Role) -> HexAddress | None:
        return self.storage.get("roles", {}).get(role.value)

    def has_role(self, role: Role, account: HexAddress | str) -> bool:
        holder = self.get_role_holder(role)
        return holder is not None and is_same_address(holder, account)

    @property
    def admin(self) -> HexAddress | None:
        return self.get_role_holder(Role.admin)

    def transfer_role(self, role: Role, new_holder: HexAddress | str):
        if is_same_address(new_holder, ZERO_ADDRESS):
            raise InvalidAdmin(f"{self.reason_prefix}: invalid admin address")
        previous = self.get_role_holder(role)
        self._grant_role(role, new_holder)
        logger.info("%s %s role moved from %s to %s", self.reason_prefix, role.name, previous, new_holder)
        return previous


def only_role(role: Role) -> Callable:
    """Decorate an entry point so that only the role holder can call it.

    The wrapped method takes ``msg`` as its first argument.

    :raise AdminRequired:
        If ``msg.sender`` does not hold the role
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(self, msg: Msg, *args, **kwargs):
            if not self.has_role(role, msg.sender):
                raise AdminRequired(f"{self.reason_prefix}: sender doesn't have {role.value} role")
            return func(self, msg, *args, **kwargs)

        return wrapper

    return decorator
