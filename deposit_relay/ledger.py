"""In-process host ledger for the deposit adapters.

The adapters are on-chain programs. This module gives them the execution
environment they rely on:

- Native currency balances and externally owned accounts
- Contract code registry and per-contract storage
- Atomic transactions: any failure rolls back balances, storage and events
- Nested message calls with ``msg.sender`` and ``msg.value``
- Low-level calls that report failure with a flag instead of reverting the caller
- An event log

One :py:class:`Ledger` models one chain. A cross-chain setup uses two ledgers
and a bridge that moves messages between them.

The calling convention follows web3.py:

.. code-block:: python

    ledger = Ledger(chain_id=1)
    deployer = ledger.accounts[0]
    origin = deploy_contract(ledger, DepositAdapterOrigin, deployer, bridge.address, resource_id)
    receipt = origin.functions.change_fee(fee).transact({"from": deployer})
    assert receipt.get_events("FeeChanged")[0].args["new_fee"] == fee
"""

import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, TypeVar

from eth_account import Account
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3

from deposit_relay.abi import address_to_bytes, bytes_to_address
from deposit_relay.errors import InsufficientFunds, NonPayable, Reverted

logger = logging.getLogger(__name__)


#: How much native currency each prefunded test account starts with
DEFAULT_ACCOUNT_BALANCE = Web3.to_wei(10_000, "ether")


@dataclass(slots=True, frozen=True)
class Msg:
    """Call context of an entry point."""

    #: Immediate caller, an account or a contract
    sender: HexAddress

    #: Native currency attached to the call, in wei
    value: int = 0


@dataclass(slots=True, frozen=True)
class Event:
    """Log entry emitted by a contract."""

    #: Emitting contract
    address: HexAddress

    #: Event name
    name: str

    #: Event arguments
    args: dict


@dataclass(slots=True)
class TxReceipt:
    """Result of a successful transaction."""

    tx_hash: HexBytes

    #: Always 1, failed transactions raise instead
    status: int

    sender: HexAddress

    to: HexAddress

    value: int

    #: Events emitted by this transaction, in order
    events: list[Event]

    #: Whatever the entry point returned
    return_value: Any = None

    def get_events(self, name: str, address: HexAddress | str | None = None) -> list[Event]:
        """Filter events of this transaction."""
        return [e for e in self.events if e.name == name and (address is None or e.address.lower() == address.lower())]


@dataclass(slots=True)
class LedgerState:
    """Everything a transaction rollback restores."""

    balances: dict[str, int] = field(default_factory=dict)

    nonces: dict[str, int] = field(default_factory=dict)

    #: Contract address -> contract instance
    code: dict[str, "Contract"] = field(default_factory=dict)

    #: Contract address -> contract storage
    storage: dict[str, dict] = field(default_factory=dict)

    events: list[Event] = field(default_factory=list)

    def copy(self) -> "LedgerState":
        # Contract instances are stateless proxies, storage is the only deep structure
        return LedgerState(
            balances=dict(self.balances),
            nonces=dict(self.nonces),
            code=dict(self.code),
            storage=copy.deepcopy(self.storage),
            events=list(self.events),
        )


def external(func: Callable) -> Callable:
    """Mark a contract method as a non-payable entry point."""
    func.external = True
    func.payable = False
    return func


def payable(func: Callable) -> Callable:
    """Mark a contract method as an entry point that accepts native currency."""
    func.external = True
    func.payable = True
    return func


class ContractFunction:
    """Entry point bound to call arguments.

    Mimics web3.py ``ContractFunction``.
    """

    def __init__(self, contract: "Contract", fn_name: str, args: tuple):
        self.contract = contract
        self.fn_name = fn_name
        self.args = args

    def __repr__(self):
        return f"<{self.contract.__class__.__name__}.{self.fn_name}{self.args!r}>"

    def transact(self, tx: dict) -> TxReceipt:
        """Execute as a transaction and commit.

        :param tx:
            Transaction parameters ``from`` and optional ``value``

        :raise Reverted:
            After rolling back the transaction
        """
        return self.contract.ledger.transact(tx, self.contract.address, self.fn_name, self.args)

    def call(self, tx: dict | None = None) -> Any:
        """Execute without committing and return the result."""
        return self.contract.ledger.call(tx or {}, self.contract.address, self.fn_name, self.args)


class ContractFunctions:
    """Access entry points as ``contract.functions.name(*args)``."""

    def __init__(self, contract: "Contract"):
        self._contract = contract

    def __getattr__(self, name: str) -> Callable[..., ContractFunction]:
        func = getattr(self._contract, name, None)
        if not getattr(func, "external", False):
            raise AttributeError(f"{self._contract.__class__.__name__} has no external function {name}")

        def _bind(*args) -> ContractFunction:
            return ContractFunction(self._contract, name, args)

        return _bind


class Contract:
    """Base class for contracts running on a :py:class:`Ledger`.

    - Subclasses implement ``constructor()`` and entry points marked
      with :py:func:`external` or :py:func:`payable`
    - All persistent state must live in :py:attr:`storage`
    - Plain value transfers are accepted unless :py:meth:`receive` is overridden
    """

    #: Contract name used in revert reasons
    reason_prefix = "Contract"

    def __init__(self, ledger: "Ledger", address: HexAddress):
        self.ledger = ledger
        self.address = address
        self.functions = ContractFunctions(self)

    def __repr__(self):
        return f"<{self.__class__.__name__} at {self.address} on chain {self.ledger.chain_id}>"

    def constructor(self, msg: Msg, *args):
        pass

    def receive(self, msg: Msg):
        pass

    @property
    def storage(self) -> dict:
        return self.ledger.state.storage[self.address]

    @property
    def balance(self) -> int:
        return self.ledger.get_balance(self.address)

    def emit(self, name: str, **args):
        self.ledger.emit(self.address, name, args)


ContractType = TypeVar("ContractType", bound=Contract)


class Ledger:
    """One chain worth of accounts, contracts and events."""

    def __init__(
        self,
        chain_id: int = 1,
        prefunded_accounts: int = 10,
        initial_balance: int = DEFAULT_ACCOUNT_BALANCE,
    ):
        """Create a chain.

        :param chain_id:
            Chain id, used in transaction hashes and logging

        :param prefunded_accounts:
            How many accounts to put in :py:attr:`accounts`

        :param initial_balance:
            Starting balance of each prefunded account, in wei
        """
        self.chain_id = chain_id
        self.state = LedgerState()
        self.accounts: list[HexAddress] = [self.create_account(initial_balance) for _ in range(prefunded_accounts)]

    def __repr__(self):
        return f"<Ledger chain {self.chain_id}, {len(self.state.code)} contracts>"

    def create_account(self, balance: int = 0) -> HexAddress:
        """Create a fresh externally owned account."""
        address = HexAddress(Account.create().address)
        self.state.balances[address] = balance
        return address

    def get_balance(self, address: HexAddress | str) -> int:
        return self.state.balances.get(Web3.to_checksum_address(address), 0)

    def set_balance(self, address: HexAddress | str, amount: int):
        """Overwrite a balance, like ``anvil_setBalance``."""
        assert amount >= 0
        self.state.balances[Web3.to_checksum_address(address)] = amount

    def get_balance_eth(self, address: HexAddress | str) -> Decimal:
        return Web3.from_wei(self.get_balance(address), "ether")

    def has_code(self, address: HexAddress | str) -> bool:
        return Web3.to_checksum_address(address) in self.state.code

    def get_contract(self, address: HexAddress | str) -> Contract:
        """Get the contract deployed at an address.

        :raise Reverted:
            If there is no code at the address
        """
        contract = self.state.code.get(Web3.to_checksum_address(address))
        if contract is None:
            raise Reverted(f"Call to non-contract address {address}")
        return contract

    def get_events(self, address: HexAddress | str | None = None, name: str | None = None) -> list[Event]:
        """Read the committed event log."""
        return [
            e
            for e in self.state.events
            if (address is None or e.address.lower() == address.lower()) and (name is None or e.name == name)
        ]

    def emit(self, address: HexAddress, name: str, args: dict):
        event = Event(address=address, name=name, args=args)
        self.state.events.append(event)

    def _next_nonce(self, address: HexAddress) -> int:
        nonce = self.state.nonces.get(address, 0)
        self.state.nonces[address] = nonce + 1
        return nonce

    def _move_value(self, sender: HexAddress, to: HexAddress, amount: int):
        assert amount >= 0, f"Negative value transfer: {amount}"
        if amount == 0:
            return
        balance = self.get_balance(sender)
        if balance < amount:
            raise InsufficientFunds(f"Insufficient funds: {sender} has {balance}, needs {amount}")
        self.state.balances[sender] = balance - amount
        self.state.balances[to] = self.get_balance(to) + amount

    def create_contract(
        self,
        contract_class: type[ContractType],
        deployer: HexAddress | str,
        constructor_args: tuple = (),
        value: int = 0,
    ) -> ContractType:
        """Deploy a contract atomically.

        The address is derived from the deployer and its nonce.
        If the constructor fails there is no code at the address.

        :raise Reverted:
            If the constructor reverts
        """
        deployer = HexAddress(Web3.to_checksum_address(deployer))
        nonce = self._next_nonce(deployer)
        address = bytes_to_address(Web3.keccak(address_to_bytes(deployer) + nonce.to_bytes(32, "big"))[-20:])
        assert address not in self.state.code, f"Address collision at {address}"

        contract = contract_class(self, address)
        snapshot = self.state.copy()
        try:
            self.state.code[address] = contract
            self.state.storage[address] = {}
            self._move_value(deployer, address, value)
            contract.constructor(Msg(sender=deployer, value=value), *constructor_args)
        except Exception as e:
            self.state = snapshot
            logger.info("Deployment of %s by %s reverted: %s", contract_class.__name__, deployer, e)
            raise

        logger.info("Deployed %s at %s on chain %d", contract_class.__name__, address, self.chain_id)
        return contract

    def transact(self, tx: dict, to: HexAddress | str, fn_name: str, args: tuple = ()) -> TxReceipt:
        """Run an entry point as a transaction.

        :param tx:
            ``from`` and optional ``value`` in wei

        :raise Reverted:
            After rolling back all state changes of the transaction
        """
        sender = HexAddress(Web3.to_checksum_address(tx["from"]))
        to = HexAddress(Web3.to_checksum_address(to))
        value = tx.get("value", 0)

        # Like on a real chain, a reverted transaction still consumes the nonce
        nonce = self._next_nonce(sender)
        tx_hash = HexBytes(Web3.keccak(address_to_bytes(sender) + nonce.to_bytes(32, "big") + self.chain_id.to_bytes(32, "big")))

        snapshot = self.state.copy()
        first_event = len(self.state.events)
        try:
            return_value = self.message_call(sender, to, fn_name, args, value)
        except Exception as e:
            self.state = snapshot
            logger.info("Transaction %s calling %s() on %s reverted: %s", tx_hash.hex(), fn_name, to, e)
            raise

        return TxReceipt(
            tx_hash=tx_hash,
            status=1,
            sender=sender,
            to=to,
            value=value,
            events=self.state.events[first_event:],
            return_value=return_value,
        )

    def send_transaction(self, tx: dict) -> TxReceipt:
        """Plain value transfer transaction, like ``web3.eth.send_transaction``.

        :param tx:
            ``from``, ``to`` and ``value`` in wei
        """
        sender = HexAddress(Web3.to_checksum_address(tx["from"]))
        to = HexAddress(Web3.to_checksum_address(tx["to"]))
        value = tx.get("value", 0)

        nonce = self._next_nonce(sender)
        tx_hash = HexBytes(Web3.keccak(address_to_bytes(sender) + nonce.to_bytes(32, "big") + self.chain_id.to_bytes(32, "big")))

        snapshot = self.state.copy()
        first_event = len(self.state.events)
        try:
            self.send_value(sender, to, value)
        except Exception as e:
            self.state = snapshot
            logger.info("Transfer %s of %d wei to %s reverted: %s", tx_hash.hex(), value, to, e)
            raise

        return TxReceipt(
            tx_hash=tx_hash,
            status=1,
            sender=sender,
            to=to,
            value=value,
            events=self.state.events[first_event:],
        )

    def call(self, tx: dict, to: HexAddress | str, fn_name: str, args: tuple = ()) -> Any:
        """Run an entry point and throw away its state changes."""
        sender = tx.get("from") or self.accounts[0]
        snapshot = self.state.copy()
        try:
            return self.message_call(
                HexAddress(Web3.to_checksum_address(sender)),
                HexAddress(Web3.to_checksum_address(to)),
                fn_name,
                args,
                tx.get("value", 0),
            )
        finally:
            self.state = snapshot

    def message_call(
        self,
        sender: HexAddress,
        to: HexAddress,
        fn_name: str,
        args: tuple = (),
        value: int = 0,
    ) -> Any:
        """Call a contract entry point, failure propagates to the caller.

        :raise Reverted:
            If the callee reverts
        """
        contract = self.get_contract(to)
        func = getattr(contract, fn_name, None)
        if not getattr(func, "external", False):
            raise Reverted(f"{contract.reason_prefix}: no external function {fn_name}")

        if value and not func.payable:
            raise NonPayable(f"{contract.reason_prefix}: function is not payable")

        self._move_value(sender, contract.address, value)
        logger.debug("Call %s.%s() from %s, value %d", contract.__class__.__name__, fn_name, sender, value)
        return func(Msg(sender=sender, value=value), *args)

    def send_value(self, sender: HexAddress, to: HexAddress | str, amount: int):
        """Plain native currency transfer.

        Contracts get their ``receive()`` hook called and may reject.
        """
        to = HexAddress(Web3.to_checksum_address(to))
        self._move_value(sender, to, amount)
        contract = self.state.code.get(to)
        if contract is not None:
            contract.receive(Msg(sender=sender, value=amount))

    def try_call(
        self,
        sender: HexAddress,
        to: HexAddress,
        fn_name: str,
        args: tuple = (),
        value: int = 0,
    ) -> tuple[bool, Any]:
        """Low-level call.

        A reverting callee has its effects rolled back and the caller continues.

        :return:
            Tuple (success, return value)
        """
        snapshot = self.state.copy()
        try:
            return True, self.message_call(sender, to, fn_name, args, value)
        except Reverted as e:
            self.state = snapshot
            logger.info("Low-level call %s() from %s to %s failed: %s", fn_name, sender, to, e.reason)
            return False, None

    def try_send_value(self, sender: HexAddress, to: HexAddress | str, amount: int) -> bool:
        """Low-level value transfer, ``to.call{value: amount}("")``.

        :return:
            True if the recipient accepted the transfer
        """
        snapshot = self.state.copy()
        try:
            self.send_value(sender, to, amount)
            return True
        except Reverted as e:
            self.state = snapshot
            logger.info("Value transfer of %d from %s to %s failed: %s", amount, sender, to, e.reason)
            return False
