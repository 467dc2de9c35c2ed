"""
Wallet error hierarchy.

Every failure surfaced to a caller is a WalletError subclass with a
user-facing message.
"""

from __future__ import annotations

from enum import Enum


class WalletError(Exception):
    """Base class for all wallet errors."""

    pass


class InputValidationError(WalletError):
    """Malformed address, amount, key or descriptor."""

    pass


class SinceViolation(str, Enum):
    INVALID_LENGTH = "invalid_length"
    INVALID_FLAGS = "invalid_flags"
    NOT_ABSOLUTE = "not_absolute"
    NOT_EPOCH = "not_epoch"


class LockedSourceError(InputValidationError):
    """A locked funding address failed validation."""

    def __init__(self, violation: SinceViolation, message: str):
        super().__init__(message)
        self.violation = violation


class InsufficientFundsError(WalletError):
    pass


class FeeExceedsCeilingError(WalletError):
    pass


class ConfigurationMismatchError(WalletError):
    """Key material does not match the requested funding source."""

    pass


class KeyStoreError(WalletError):
    pass


class WrongPasswordError(KeyStoreError):
    pass


class AccountNotFoundError(KeyStoreError):
    pass


class DerivationError(KeyStoreError):
    pass


class TransportError(WalletError):
    """RPC fetch or broadcast failure."""

    pass


class ConsistencyError(WalletError):
    """The node reported a transaction hash that differs from ours."""

    pass
