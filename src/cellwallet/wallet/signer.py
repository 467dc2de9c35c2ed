"""
Routing of signing requests to the right key.

A signing request names a set of candidate lock args (any of which may
authorize the signature) and a digest. Resolution is a pure function
returning a SigningAuthority; the actual signing is behind a narrow
SigningCapability.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from enum import Enum

from coincurve import PrivateKey
from loguru import logger

from cellwallet.constants import SIGNATURE_SIZE, ZERO_DIGEST, ZERO_SIGNATURE
from cellwallet.errors import ConfigurationMismatchError
from cellwallet.wallet.keystore import KeyStore


class AuthorityKind(str, Enum):
    PRIMARY_KEY = "primary_key"
    DERIVED_KEY = "derived_key"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class SigningAuthority:
    kind: AuthorityKind
    path: str = ""


PRIMARY_KEY = SigningAuthority(AuthorityKind.PRIMARY_KEY)
UNAVAILABLE = SigningAuthority(AuthorityKind.UNAVAILABLE)


def resolve_authority(
    candidates: Collection[bytes],
    primary: bytes,
    path_map: Mapping[bytes, str],
) -> SigningAuthority:
    """Pick the key that can sign for one of ``candidates``."""
    if primary in candidates:
        return PRIMARY_KEY

    matches = sorted(lock_arg for lock_arg in candidates if lock_arg in path_map)
    if not matches:
        return UNAVAILABLE
    if len(matches) > 1:
        logger.debug(f"{len(matches)} derived keys match signing request, using the first")
    return SigningAuthority(AuthorityKind.DERIVED_KEY, path_map[matches[0]])


class SigningCapability(ABC):
    @abstractmethod
    def sign(self, path: str, digest: bytes) -> bytes:
        """Return a 65-byte recoverable signature of ``digest``"""


class PrivateKeyCapability(SigningCapability):
    """Signs with a single raw private key; it has no derived keys."""

    def __init__(self, private_key: PrivateKey):
        self.private_key = private_key

    def sign(self, path: str, digest: bytes) -> bytes:
        if path:
            raise ConfigurationMismatchError(f"Raw private key can not sign for path {path}")
        return self.private_key.sign_recoverable(digest, hasher=None)


class KeyStoreCapability(SigningCapability):
    """Signs through the key store with the account password."""

    def __init__(self, key_store: KeyStore, account: bytes, password: str):
        self.key_store = key_store
        self.account = account
        self.password = password

    def sign(self, path: str, digest: bytes) -> bytes:
        return self.key_store.sign_recoverable(self.account, path, digest, self.password)


class SignerBridge:
    """
    Signing function handed to transaction assembly.

    Returns None when no known key matches the candidates, so the caller
    can try another authority.
    """

    def __init__(
        self,
        capability: SigningCapability,
        primary: bytes,
        path_map: Mapping[bytes, str] | None = None,
    ):
        self.capability = capability
        self.primary = primary
        self.path_map = dict(path_map or {})

    def resolve(self, candidates: Collection[bytes]) -> SigningAuthority:
        return resolve_authority(candidates, self.primary, self.path_map)

    def __call__(self, candidates: Collection[bytes], digest: bytes) -> bytes | None:
        if digest == ZERO_DIGEST:
            return ZERO_SIGNATURE

        authority = self.resolve(candidates)
        if authority.kind == AuthorityKind.UNAVAILABLE:
            return None

        signature = self.capability.sign(authority.path, digest)
        if len(signature) != SIGNATURE_SIZE:
            raise ValueError(f"Unexpected signature length: {len(signature)}")
        return signature
