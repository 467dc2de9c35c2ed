"""
Validation of time-locked multisig funding sources.

A locked source address is a multisig lock whose 28-byte args are a
20-byte multisig config hash followed by an 8-byte little-endian since
value. Only absolute, epoch-denominated time locks are accepted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from cellwallet.chain.address import Address
from cellwallet.chain.multisig import MultisigConfig
from cellwallet.chain.since import Since, SinceFormatError, SinceMetric
from cellwallet.constants import LOCK_ARG_SIZE, LOCKED_ARG_SIZE
from cellwallet.errors import (
    ConfigurationMismatchError,
    InputValidationError,
    LockedSourceError,
    SinceViolation,
)

ERR_PREFIX = "Invalid from-locked-address's args"


def parse_locked_args(args: bytes) -> tuple[bytes, Since]:
    """
    Split locked args into (multisig hash, since).

    Raises:
        LockedSourceError: On any of the four since violations
    """
    if len(args) != LOCKED_ARG_SIZE:
        raise LockedSourceError(SinceViolation.INVALID_LENGTH, f"{ERR_PREFIX}: invalid {len(args)}")

    try:
        since = Since.from_le_bytes(args[LOCK_ARG_SIZE:])
    except SinceFormatError as e:
        raise LockedSourceError(
            SinceViolation.INVALID_FLAGS, f"{ERR_PREFIX}: invalid since flags"
        ) from e

    if not since.is_absolute:
        raise LockedSourceError(
            SinceViolation.NOT_ABSOLUTE, f"{ERR_PREFIX}: only support absolute since value"
        )
    if since.metric != SinceMetric.EPOCH_NUMBER_WITH_FRACTION:
        raise LockedSourceError(
            SinceViolation.NOT_EPOCH, f"{ERR_PREFIX}: only support epoch since value"
        )
    return args[:LOCK_ARG_SIZE], since


@dataclass(frozen=True)
class LockedSource:
    address: Address
    multisig_hash: bytes
    since: Since

    @property
    def lock_hash(self) -> bytes:
        return self.address.lock_hash


def validate_locked_address(address: Address) -> LockedSource:
    if not address.is_multisig():
        raise InputValidationError(f"from-locked-address is not a multisig address: {address}")
    multisig_hash, since = parse_locked_args(address.args)
    logger.debug(f"Locked source {address} unlocks at epoch {since.epoch()}")
    return LockedSource(address=address, multisig_hash=multisig_hash, since=since)


def bind_locked_source(source: LockedSource, lock_args: Iterable[bytes]) -> MultisigConfig:
    """
    Find the single-key multisig config (threshold 1, first-n 0) that the
    locked source was created from.

    Args:
        source: Validated locked source
        lock_args: Candidate signing lock args, primary key first

    Raises:
        ConfigurationMismatchError: If no candidate key matches
    """
    for lock_arg in lock_args:
        config = MultisigConfig(pubkey_hashes=(lock_arg,), require_first_n=0, threshold=1)
        if config.hash160() == source.multisig_hash:
            return config

    raise ConfigurationMismatchError(
        "from-locked-address is not created from the key or derived keys"
    )
