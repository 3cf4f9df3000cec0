"""Deposit relay configuration.

Read from environment variables, falling back to the defaults in
:py:mod:`deposit_relay.constants`:

- ``DEPOSIT_RELAY_RESOURCE_ID``: bridge resource id, 32 bytes hex
- ``DEPOSIT_RELAY_ORIGIN_DOMAIN_ID``: bridge domain id of the origin chain
- ``DEPOSIT_RELAY_TARGET_DOMAIN_ID``: bridge domain id of the target chain
- ``DEPOSIT_RELAY_FEE``: origin adapter fee in ether, e.g. ``3.2``
- ``DEPOSIT_RELAY_ENVELOPE_VARIANT``: ``packed`` or ``abi_tuple``

Example:

.. code-block:: shell

    export DEPOSIT_RELAY_FEE=0.5
    export DEPOSIT_RELAY_TARGET_DOMAIN_ID=5
    pytest tests/test_end_to_end.py
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from web3 import Web3

from deposit_relay.constants import (
    DEFAULT_DEPOSIT_FEE,
    DEFAULT_ORIGIN_DOMAIN_ID,
    DEFAULT_RESOURCE_ID,
    DEFAULT_TARGET_DOMAIN_ID,
    WORD_LENGTH,
)
from deposit_relay.envelope import DEFAULT_ENVELOPE_VARIANT, EnvelopeVariant

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DepositRelayConfig:
    """How a pair of adapters is wired to the bridge."""

    #: Bridge resource id of the deposit route
    resource_id: bytes = DEFAULT_RESOURCE_ID

    #: Bridge domain id of the origin chain
    origin_domain_id: int = DEFAULT_ORIGIN_DOMAIN_ID

    #: Bridge domain id of the target chain
    target_domain_id: int = DEFAULT_TARGET_DOMAIN_ID

    #: Origin adapter fee per deposit, in wei
    deposit_fee: int = DEFAULT_DEPOSIT_FEE

    #: Envelope wire format both ends use
    envelope_variant: EnvelopeVariant = DEFAULT_ENVELOPE_VARIANT

    def __post_init__(self):
        assert len(self.resource_id) == WORD_LENGTH, f"Resource id must be 32 bytes, got {len(self.resource_id)}"
        assert self.deposit_fee >= 0, f"Negative deposit fee: {self.deposit_fee}"

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "DepositRelayConfig":
        """Read the configuration from environment variables.

        :param environ:
            Use this mapping instead of ``os.environ``

        :raise ValueError:
            If a variable is set but cannot be parsed
        """
        if environ is None:
            environ = os.environ

        config = cls()

        resource_id = environ.get("DEPOSIT_RELAY_RESOURCE_ID")
        if resource_id:
            try:
                config.resource_id = bytes.fromhex(resource_id.removeprefix("0x"))
            except ValueError as e:
                raise ValueError(f"DEPOSIT_RELAY_RESOURCE_ID is not hex: {resource_id}") from e
            if len(config.resource_id) != WORD_LENGTH:
                raise ValueError(f"DEPOSIT_RELAY_RESOURCE_ID must be 32 bytes, got {len(config.resource_id)}")

        for env_var, attr in (
            ("DEPOSIT_RELAY_ORIGIN_DOMAIN_ID", "origin_domain_id"),
            ("DEPOSIT_RELAY_TARGET_DOMAIN_ID", "target_domain_id"),
        ):
            value = environ.get(env_var)
            if value:
                try:
                    setattr(config, attr, int(value))
                except ValueError as e:
                    raise ValueError(f"{env_var} is not an integer: {value}") from e

        fee = environ.get("DEPOSIT_RELAY_FEE")
        if fee:
            try:
                fee_decimal = Decimal(fee)
            except InvalidOperation as e:
                raise ValueError(f"DEPOSIT_RELAY_FEE is not a number: {fee}") from e
            if not fee_decimal.is_finite():
                raise ValueError(f"DEPOSIT_RELAY_FEE is not a finite number: {fee}")
            if fee_decimal < 0:
                raise ValueError(f"DEPOSIT_RELAY_FEE cannot be negative: {fee}")
            config.deposit_fee = Web3.to_wei(fee_decimal, "ether")

        variant = environ.get("DEPOSIT_RELAY_ENVELOPE_VARIANT")
        if variant:
            try:
                config.envelope_variant = EnvelopeVariant[variant]
            except KeyError as e:
                raise ValueError(f"DEPOSIT_RELAY_ENVELOPE_VARIANT must be one of {[v.name for v in EnvelopeVariant]}, got {variant}") from e

        logger.info(
            "Deposit relay config: domains %d -> %d, fee %d wei, %s envelopes",
            config.origin_domain_id,
            config.target_domain_id,
            config.deposit_fee,
            config.envelope_variant.name,
        )
        return config
