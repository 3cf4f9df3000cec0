"""Origin chain deposit adapter."""

from decimal import Decimal

import pytest
from web3 import Web3

from deposit_relay.abi import ZERO_ADDRESS
from deposit_relay.access import Role
from deposit_relay.constants import DEFAULT_DEPOSIT_FEE, DEFAULT_RESOURCE_ID
from deposit_relay.deploy import deploy_contract
from deposit_relay.envelope import Envelope, EnvelopeVariant
from deposit_relay.errors import (
    AdminRequired,
    FeeUnchanged,
    IncorrectFee,
    InsufficientBalance,
    InvalidAdmin,
    InvalidAmount,
    InvalidCredentialsLength,
    InvalidExecutionData,
    TargetAdapterNotSet,
    WithdrawalFailed,
    WrongCredentialsAddress,
)
from deposit_relay.ledger import DEFAULT_ACCOUNT_BALANCE
from deposit_relay.origin import DepositAdapterOrigin
from deposit_relay.testing import RejectingReceiver, TestDeposit, create_test_payload

DESTINATION_DOMAIN_ID = 2


@pytest.fixture()
def execution_data(remote_target_adapter) -> bytes:
    """Deposit payload with credentials for the remote target adapter."""
    return create_test_payload(remote_target_adapter).encode()


def test_origin_constructor(origin, deployer, bridge, remote_target_adapter):
    """Fresh adapter state."""
    assert origin.admin == deployer
    assert origin.bridge == bridge.address
    assert origin.resource_id == DEFAULT_RESOURCE_ID
    assert origin.deposit_fee == DEFAULT_DEPOSIT_FEE == Web3.to_wei(Decimal("3.2"), "ether")
    assert origin.envelope_variant == EnvelopeVariant.packed
    assert origin.target_adapter == remote_target_adapter


def test_change_fee(origin, deployer):
    """Admin can change the fee."""
    new_fee = Web3.to_wei(1, "ether")
    receipt = origin.functions.change_fee(new_fee).transact({"from": deployer})
    assert origin.deposit_fee == new_fee
    assert receipt.get_events("FeeChanged")[0].args == {"new_fee": new_fee}


def test_change_fee_to_zero(origin, deployer):
    origin.functions.change_fee(0).transact({"from": deployer})
    assert origin.deposit_fee == 0


def test_change_fee_unchanged(origin, deployer):
    """Setting the current fee again is an error."""
    with pytest.raises(FeeUnchanged, match="DepositOrigin: current fee is equal to new fee"):
        origin.functions.change_fee(DEFAULT_DEPOSIT_FEE).transact({"from": deployer})


def test_change_fee_not_admin(origin, user):
    with pytest.raises(AdminRequired, match="DepositOrigin: sender doesn't have admin role"):
        origin.functions.change_fee(Web3.to_wei(1, "ether")).transact({"from": user})
    assert origin.deposit_fee == DEFAULT_DEPOSIT_FEE


def test_change_target_adapter(origin, deployer, remote_target_adapter, origin_ledger):
    """Any address is accepted, also the current one."""
    receipt = origin.functions.change_target_adapter(remote_target_adapter).transact({"from": deployer})
    assert receipt.get_events("DepositAdapterTargetChanged")[0].args == {"target_adapter": remote_target_adapter}

    other = origin_ledger.create_account()
    origin.functions.change_target_adapter(other).transact({"from": deployer})
    assert origin.target_adapter == other


def test_change_target_adapter_not_admin(origin, user, remote_target_adapter):
    with pytest.raises(AdminRequired):
        origin.functions.change_target_adapter(user).transact({"from": user})
    assert origin.target_adapter == remote_target_adapter


def test_deposit(origin, origin_ledger, bridge, user, execution_data, remote_target_adapter):
    """Deposit keeps the fee and hands the envelope and the rest to the bridge."""
    value = Web3.to_wei(4, "ether")
    receipt = origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": value})

    expected_envelope = Envelope(
        target_adapter=remote_target_adapter,
        origin_adapter=origin.address,
        execution_data=execution_data,
    ).encode()

    assert receipt.return_value == expected_envelope

    bridge_event = receipt.get_events("Deposit", bridge.address)[0]
    assert bridge_event.args == {
        "destination_domain_id": DESTINATION_DOMAIN_ID,
        "resource_id": DEFAULT_RESOURCE_ID,
        "deposit_nonce": 1,
        "user": origin.address,
        "data": expected_envelope,
        "handler_response": b"",
    }

    payload = create_test_payload(remote_target_adapter)
    relayed = receipt.get_events("DepositRelayed", origin.address)[0]
    assert relayed.args["pubkey"] == payload.pubkey
    assert relayed.args["withdrawal_credentials"] == payload.withdrawal_credentials
    assert relayed.args["signature"] == payload.signature
    assert relayed.args["deposit_data_root"] == payload.deposit_data_root
    assert relayed.args["destination_domain_id"] == DESTINATION_DOMAIN_ID
    assert relayed.args["envelope"] == expected_envelope

    assert origin.balance == DEFAULT_DEPOSIT_FEE
    assert bridge.balance == value - DEFAULT_DEPOSIT_FEE
    assert bridge.get_deposit(1)["amount"] == value - DEFAULT_DEPOSIT_FEE
    assert origin_ledger.get_balance(user) == DEFAULT_ACCOUNT_BALANCE - value


def test_deposit_fee_data_passed_through(origin, bridge, user, execution_data):
    """Fee data does not affect the envelope."""
    receipt = origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data, b"\x01\x02").transact(
        {"from": user, "value": DEFAULT_DEPOSIT_FEE}
    )
    assert receipt.get_events("Deposit", bridge.address)[0].args["data"] == receipt.return_value
    assert bridge.balance == 0


def test_deposit_explicit_amount(origin, bridge, user, execution_data):
    """With an explicit amount the attached value must be the fee plus the amount."""
    amount = Web3.to_wei(32, "ether")
    origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data, b"", amount).transact(
        {"from": user, "value": DEFAULT_DEPOSIT_FEE + amount}
    )
    assert bridge.balance == amount
    assert origin.balance == DEFAULT_DEPOSIT_FEE

    with pytest.raises(IncorrectFee):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data, b"", amount).transact(
            {"from": user, "value": DEFAULT_DEPOSIT_FEE + amount + 1}
        )


def test_deposit_incorrect_fee(origin, origin_ledger, bridge, user, execution_data):
    """Not enough value for the fee, nothing happens."""
    with pytest.raises(IncorrectFee, match="DepositOrigin: incorrect fee supplied"):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact(
            {"from": user, "value": Web3.to_wei(3, "ether")}
        )
    assert bridge.deposit_nonce == 0
    assert origin.balance == 0
    assert origin_ledger.get_balance(user) == DEFAULT_ACCOUNT_BALANCE
    assert origin_ledger.get_events(bridge.address) == []


@pytest.mark.parametrize("length", [0, 31, 33])
def test_deposit_invalid_credentials_length(origin, user, remote_target_adapter, length):
    credentials = b"\x01" + b"\x00" * (length - 1) if length else b""
    execution_data = create_test_payload(remote_target_adapter, withdrawal_credentials=credentials).encode()
    with pytest.raises(InvalidCredentialsLength, match="DepositOrigin: invalid withdrawal_credentials length"):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})


def test_deposit_wrong_credentials_address(origin, user):
    """Credentials must point to the target adapter."""
    execution_data = create_test_payload(user).encode()
    with pytest.raises(WrongCredentialsAddress, match="DepositOrigin: wrong withdrawal_credentials address"):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})


def test_deposit_malformed_execution_data(origin, user):
    with pytest.raises(InvalidExecutionData):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, b"\x01\x02").transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})


def test_deposit_target_not_set(origin_ledger, deployer, bridge, user, execution_data):
    """Deposits wait until the admin points the adapter somewhere."""
    origin = deploy_contract(origin_ledger, DepositAdapterOrigin, deployer, bridge.address, DEFAULT_RESOURCE_ID)
    assert origin.target_adapter == ZERO_ADDRESS

    # Credentials pointing anywhere do not match the unset target
    with pytest.raises(WrongCredentialsAddress):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})

    zero_credentials_data = create_test_payload(ZERO_ADDRESS).encode()
    with pytest.raises(TargetAdapterNotSet, match="DepositOrigin: target adapter is not set"):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, zero_credentials_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})
    assert bridge.deposit_nonce == 0


def test_deposit_target_not_set_bad_credentials_length(origin_ledger, deployer, bridge, user, remote_target_adapter):
    """Credential length is checked whatever the target adapter is."""
    origin = deploy_contract(origin_ledger, DepositAdapterOrigin, deployer, bridge.address, DEFAULT_RESOURCE_ID)
    execution_data = create_test_payload(remote_target_adapter, withdrawal_credentials=b"\x01" * 5).encode()
    with pytest.raises(InvalidCredentialsLength):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})


def test_change_target_adapter_to_zero_address(origin, deployer, user, execution_data):
    """Target can be unset again, deposits then stop."""
    receipt = origin.functions.change_target_adapter(ZERO_ADDRESS).transact({"from": deployer})
    assert receipt.get_events("DepositAdapterTargetChanged")[0].args == {"target_adapter": ZERO_ADDRESS}
    assert origin.target_adapter == ZERO_ADDRESS

    with pytest.raises(WrongCredentialsAddress):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})


def test_deposit_negative_amount(origin, bridge, user, execution_data):
    """A negative explicit amount cannot be balanced by the attached value."""
    with pytest.raises(IncorrectFee, match="DepositOrigin: incorrect fee supplied"):
        origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data, b"", -1).transact(
            {"from": user, "value": DEFAULT_DEPOSIT_FEE - 1}
        )
    assert bridge.deposit_nonce == 0


def test_deposit_abi_tuple_envelope(origin_ledger, deployer, bridge, user, remote_target_adapter, execution_data):
    """Adapter deployed for ABI tuple envelopes emits them."""
    origin = deploy_contract(
        origin_ledger,
        DepositAdapterOrigin,
        deployer,
        bridge.address,
        DEFAULT_RESOURCE_ID,
        EnvelopeVariant.abi_tuple,
    )
    origin.functions.change_target_adapter(remote_target_adapter).transact({"from": deployer})
    receipt = origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})
    envelope = Envelope.decode(receipt.return_value, EnvelopeVariant.abi_tuple)
    assert envelope.origin_adapter == origin.address
    assert envelope.target_adapter == remote_target_adapter


def test_withdraw(origin, origin_ledger, deployer, user, execution_data):
    """Admin takes out accumulated fees."""
    origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})
    recipient = origin_ledger.create_account()

    amount = Web3.to_wei(1, "ether")
    receipt = origin.functions.withdraw(recipient, amount).transact({"from": deployer})
    assert receipt.get_events("Withdrawal")[0].args == {"to": recipient, "amount": amount}
    assert origin_ledger.get_balance(recipient) == amount
    assert origin.balance == DEFAULT_DEPOSIT_FEE - amount


def test_withdraw_not_admin(origin, user):
    with pytest.raises(AdminRequired):
        origin.functions.withdraw(user, 0).transact({"from": user})


def test_withdraw_not_enough_balance(origin, deployer):
    with pytest.raises(InsufficientBalance, match="DepositOrigin: not enough balance"):
        origin.functions.withdraw(deployer, Web3.to_wei(40, "ether")).transact({"from": deployer})


def test_withdraw_negative_amount(origin, deployer):
    with pytest.raises(InvalidAmount, match="DepositOrigin: invalid amount"):
        origin.functions.withdraw(deployer, -1).transact({"from": deployer})


@pytest.mark.parametrize("receiver_class", [RejectingReceiver, TestDeposit])
def test_withdraw_rejected(origin, origin_ledger, deployer, user, execution_data, receiver_class):
    """Recipient refusing the transfer fails the withdrawal."""
    origin.functions.deposit(DESTINATION_DOMAIN_ID, execution_data).transact({"from": user, "value": DEFAULT_DEPOSIT_FEE})
    receiver = deploy_contract(origin_ledger, receiver_class, deployer)
    with pytest.raises(WithdrawalFailed, match="DepositOrigin: withdrawal failed"):
        origin.functions.withdraw(receiver.address, Web3.to_wei(1, "ether")).transact({"from": deployer})
    assert origin.balance == DEFAULT_DEPOSIT_FEE
    assert receiver.balance == 0


def test_transfer_admin(origin, deployer, user):
    """New admin takes over, old admin is out."""
    receipt = origin.functions.transfer_admin(user).transact({"from": deployer})
    assert receipt.get_events("AdminTransferred")[0].args == {"previous_admin": deployer, "new_admin": user}
    assert origin.admin == user
    assert origin.has_role(Role.admin, user)
    assert not origin.has_role(Role.admin, deployer)

    origin.functions.change_fee(0).transact({"from": user})
    with pytest.raises(AdminRequired):
        origin.functions.change_fee(1).transact({"from": deployer})


def test_transfer_admin_zero_address(origin, deployer):
    with pytest.raises(InvalidAdmin):
        origin.functions.transfer_admin(ZERO_ADDRESS).transact({"from": deployer})
    assert origin.admin == deployer
