"""Revert errors raised by the deposit adapters and the host ledger.

Every failure aborts the current transaction and rolls back its state.
The revert reason strings are stable, they are what the deployed
contracts return and what off-chain tooling matches on.

Error categories:

- :py:class:`AuthorizationError`: the caller lacks the required role or identity
- :py:class:`ValidationError`: malformed or inconsistent input data
- :py:class:`ConfigurationError`: malformed or redundant admin configuration
- :py:class:`ResourceError`: a downstream transfer or call failed
"""


class Reverted(Exception):
    """Transaction reverted.

    The first argument is the revert reason.
    """

    @property
    def reason(self) -> str:
        return self.args[0] if self.args else ""


class AuthorizationError(Reverted):
    """Caller lacks the required role or identity."""


class ValidationError(Reverted):
    """Input data is malformed or semantically inconsistent."""


class ConfigurationError(Reverted):
    """Admin configuration is malformed or redundant."""


class ResourceError(Reverted):
    """Downstream transfer or call failed."""


class AdminRequired(AuthorizationError):
    """Sender does not hold the admin role."""


class UnauthorizedCaller(AuthorizationError):
    """Only the bridge handler may call ``execute()``."""


class UnauthorizedOrigin(AuthorizationError):
    """Claimed origin adapter is not in the authorised set."""


class IncorrectFee(ValidationError):
    """Attached value does not match the deposit fee."""


class InvalidCredentialsLength(ValidationError):
    """Withdrawal credentials are not exactly 32 bytes."""


class WrongCredentialsAddress(ValidationError):
    """Withdrawal credentials point to another address than the expected adapter."""


class InvalidExecutionData(ValidationError):
    """Execution payload bytes cannot be decoded."""


class MalformedEnvelope(ValidationError):
    """Envelope bytes do not follow the wire format."""


class NonPayable(ValidationError):
    """Value was attached to a non-payable entry point."""


class InvalidAmount(ValidationError):
    """Amount is negative."""


class InvalidDepositContract(ConfigurationError):
    """Deposit contract address has no code."""


class FeeUnchanged(ConfigurationError):
    """New fee equals the current fee."""


class TargetAdapterNotSet(ConfigurationError):
    """Origin adapter does not know where to send deposits yet."""


class InvalidAdmin(ConfigurationError):
    """Admin cannot be handed to the zero address."""


class InsufficientBalance(ResourceError):
    """Withdrawal exceeds the contract balance."""


class WithdrawalFailed(ResourceError):
    """Recipient rejected the withdrawal transfer."""


class DepositForwardingFailed(ResourceError):
    """Deposit contract rejected the forwarded deposit."""


class InsufficientFunds(ResourceError):
    """Sender cannot cover a value transfer."""
