"""
Key store interface and a password-gated mnemonic key store.

Accounts are identified by the lock arg (blake160 of the public key) of
their master key. Derived keys live on two branches:

- receiving: m/44'/309'/0'/0/{index}
- change:    m/44'/309'/0'/1/{index}
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from loguru import logger

from cellwallet.constants import CHANGE_BRANCH, KEY_DERIVATION_ROOT, RECEIVING_BRANCH
from cellwallet.errors import AccountNotFoundError, DerivationError, WrongPasswordError
from cellwallet.wallet.bip32 import HDKey, mnemonic_to_seed

PASSWORD_KDF_ITERATIONS = 10_000


def derivation_path(branch: int, index: int) -> str:
    return f"{KEY_DERIVATION_ROOT}/{branch}/{index}"


@dataclass
class DerivedKeySet:
    """(path, lock_arg) pairs of the receiving and change branches."""

    external: list[tuple[str, bytes]] = field(default_factory=list)
    change: list[tuple[str, bytes]] = field(default_factory=list)

    def path_map(self) -> dict[bytes, str]:
        return {lock_arg: path for path, lock_arg in self.external + self.change}

    def lock_args(self) -> list[bytes]:
        return [lock_arg for _, lock_arg in self.external + self.change]


class KeyStore(ABC):
    """Holds key material and signs on behalf of accounts."""

    @abstractmethod
    def derive_keys(
        self,
        account: bytes,
        password: str,
        external: range,
        change: range,
    ) -> DerivedKeySet:
        """Derive receiving and change lock args for the given index ranges"""

    @abstractmethod
    def sign_recoverable(self, account: bytes, path: str, digest: bytes, password: str) -> bytes:
        """Sign ``digest`` with the key at ``path`` ("" for the account key itself)"""


@dataclass
class _Account:
    master: HDKey
    salt: bytes
    verifier: bytes


class MnemonicKeyStore(KeyStore):
    """
    Key store whose accounts are imported from BIP39 mnemonics.

    Key material stays in memory; every operation re-checks the password
    the account was imported with.
    """

    def __init__(self) -> None:
        self._accounts: dict[bytes, _Account] = {}

    @staticmethod
    def _password_verifier(password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt, PASSWORD_KDF_ITERATIONS
        )

    def import_mnemonic(self, mnemonic: str, password: str) -> bytes:
        """Import an account, returning its lock arg."""
        master = HDKey.from_seed(mnemonic_to_seed(mnemonic))
        salt = secrets.token_bytes(16)
        account = master.lock_arg()
        self._accounts[account] = _Account(master, salt, self._password_verifier(password, salt))
        logger.info(f"Imported account 0x{account.hex()}")
        return account

    def _unlock(self, account: bytes, password: str) -> HDKey:
        entry = self._accounts.get(account)
        if entry is None:
            raise AccountNotFoundError(f"Account not found: 0x{account.hex()}")
        if not hmac.compare_digest(entry.verifier, self._password_verifier(password, entry.salt)):
            raise WrongPasswordError(f"Wrong password for account 0x{account.hex()}")
        return entry.master

    def derive_keys(
        self,
        account: bytes,
        password: str,
        external: range,
        change: range,
    ) -> DerivedKeySet:
        master = self._unlock(account, password)
        try:
            return DerivedKeySet(
                external=_derive_branch(master, RECEIVING_BRANCH, external),
                change=_derive_branch(master, CHANGE_BRANCH, change),
            )
        except ValueError as e:
            raise DerivationError(f"Key derivation failed: {e}") from e

    def sign_recoverable(self, account: bytes, path: str, digest: bytes, password: str) -> bytes:
        master = self._unlock(account, password)
        try:
            key = master.derive(path) if path and path != "m" else master
        except ValueError as e:
            raise DerivationError(f"Key derivation failed for {path}: {e}") from e
        return key.sign_recoverable(digest)


def _derive_branch(master: HDKey, branch: int, indexes: range) -> list[tuple[str, bytes]]:
    if not indexes:
        return []
    branch_key = master.derive(f"{KEY_DERIVATION_ROOT}/{branch}")
    return [
        (derivation_path(branch, i), branch_key.derive(f"m/{i}").lock_arg()) for i in indexes
    ]
