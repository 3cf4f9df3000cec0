"""Shared fixtures for deposit relay tests."""

from decimal import Decimal

import pytest
from eth_typing import HexAddress
from web3 import Web3

from deposit_relay.constants import DEFAULT_RESOURCE_ID
from deposit_relay.deploy import deploy_contract
from deposit_relay.ledger import Ledger
from deposit_relay.origin import DepositAdapterOrigin
from deposit_relay.target import DepositAdapterTarget
from deposit_relay.testing import DepositRelayDeployment, TestBridge, TestDeposit, deploy_deposit_relay

#: Target adapter address used when the origin adapter is tested alone
REMOTE_TARGET_ADAPTER = HexAddress(Web3.to_checksum_address("0x4Bcb6F81acedCCF5606EE7A392FD024b6C9192B2"))

#: Origin adapter address used when the target adapter is tested alone
REMOTE_ORIGIN_ADAPTER = HexAddress(Web3.to_checksum_address("0xff50ed3d0ec03aC01D4C79aAd74928BFF48a7b2b"))


@pytest.fixture()
def remote_target_adapter() -> HexAddress:
    """Target adapter address on a chain we do not run."""
    return REMOTE_TARGET_ADAPTER


@pytest.fixture()
def remote_origin_adapter() -> HexAddress:
    """Origin adapter address on a chain we do not run."""
    return REMOTE_ORIGIN_ADAPTER


@pytest.fixture()
def origin_ledger() -> Ledger:
    """Origin chain."""
    return Ledger(chain_id=1)


@pytest.fixture()
def target_ledger() -> Ledger:
    """Target chain."""
    return Ledger(chain_id=2)


@pytest.fixture()
def deployer(origin_ledger) -> HexAddress:
    """Deploys and administers the origin side."""
    return origin_ledger.accounts[0]


@pytest.fixture()
def user(origin_ledger) -> HexAddress:
    """Depositor without admin rights."""
    return origin_ledger.accounts[1]


@pytest.fixture()
def bridge(origin_ledger, deployer) -> TestBridge:
    """Origin chain bridge without relay fee."""
    return deploy_contract(origin_ledger, TestBridge, deployer)


@pytest.fixture()
def origin(origin_ledger, deployer, bridge) -> DepositAdapterOrigin:
    """Origin adapter pointing to a remote target adapter."""
    origin = deploy_contract(origin_ledger, DepositAdapterOrigin, deployer, bridge.address, DEFAULT_RESOURCE_ID)
    origin.functions.change_target_adapter(REMOTE_TARGET_ADAPTER).transact({"from": deployer})
    return origin


@pytest.fixture()
def target_deployer(target_ledger) -> HexAddress:
    """Deploys and administers the target side."""
    return target_ledger.accounts[0]


@pytest.fixture()
def handler(target_ledger) -> HexAddress:
    """Bridge handler, a plain account so tests can call execute() directly."""
    return target_ledger.accounts[2]


@pytest.fixture()
def deposit_contract(target_ledger, target_deployer) -> TestDeposit:
    """Deposit contract on the target chain."""
    return deploy_contract(target_ledger, TestDeposit, target_deployer)


@pytest.fixture()
def target(target_ledger, target_deployer, handler, deposit_contract) -> DepositAdapterTarget:
    """Target adapter accepting deposits from the remote origin adapter."""
    target = deploy_contract(target_ledger, DepositAdapterTarget, target_deployer, handler, deposit_contract.address)
    target.functions.set_origin_adapter(REMOTE_ORIGIN_ADAPTER, True).transact({"from": target_deployer})
    return target


@pytest.fixture()
def relay(origin_ledger, target_ledger) -> DepositRelayDeployment:
    """Both adapters wired together, the bridge keeps 1.2 ETH per deposit."""
    return deploy_deposit_relay(
        origin_ledger,
        target_ledger,
        relay_fee=Web3.to_wei(Decimal("1.2"), "ether"),
    )
