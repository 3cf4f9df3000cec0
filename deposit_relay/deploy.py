"""Deploy contracts on a host ledger."""

from eth_typing import HexAddress

from deposit_relay.ledger import ContractType, Ledger


def deploy_contract(
    ledger: Ledger,
    contract: type[ContractType],
    deployer: HexAddress | str,
    *constructor_args,
    value: int = 0,
) -> ContractType:
    """Deploys a new contract.

    A generic helper function to deploy any contract.

    Example:

    .. code-block:: python

        deposit_contract = deploy_contract(ledger, TestDeposit, deployer)
        target = deploy_contract(ledger, DepositAdapterTarget, deployer, handler.address, deposit_contract.address)
        print(f"Deployed target adapter at {target.address}")

    :param ledger:
        Chain to deploy on

    :param contract:
        Contract class

    :param deployer:
        Deployer account, becomes ``msg.sender`` of the constructor

    :param constructor_args:
        Other arguments to pass to the contract's constructor

    :param value:
        Native currency sent along with the deployment

    :raise Reverted:
        If the constructor reverts. Nothing is deployed.

    :return:
        Contract instance
    """
    return ledger.create_contract(contract, deployer, constructor_args, value=value)
