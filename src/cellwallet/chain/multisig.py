"""
Multisig lock configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from cellwallet.chain.hashing import blake160
from cellwallet.constants import LOCK_ARG_SIZE, SIGNATURE_SIZE


class MultisigConfigError(ValueError):
    pass


@dataclass(frozen=True)
class MultisigConfig:
    """
    A threshold-of-n signing policy over sighash public-key hashes.

    The first ``require_first_n`` keys must always sign.
    """

    pubkey_hashes: tuple[bytes, ...]
    require_first_n: int
    threshold: int

    def __post_init__(self) -> None:
        if not self.pubkey_hashes or len(self.pubkey_hashes) > 255:
            raise MultisigConfigError(f"Invalid key count: {len(self.pubkey_hashes)}")
        if len(set(self.pubkey_hashes)) != len(self.pubkey_hashes):
            raise MultisigConfigError("Duplicated public key hash in multisig config")
        for pubkey_hash in self.pubkey_hashes:
            if len(pubkey_hash) != LOCK_ARG_SIZE:
                raise MultisigConfigError(f"Invalid public key hash length: {len(pubkey_hash)}")
        if not 0 < self.threshold <= len(self.pubkey_hashes):
            raise MultisigConfigError(
                f"Invalid threshold {self.threshold} for {len(self.pubkey_hashes)} keys"
            )
        if self.require_first_n > self.threshold:
            raise MultisigConfigError(
                f"require_first_n ({self.require_first_n}) exceeds threshold ({self.threshold})"
            )

    def to_witness_data(self) -> bytes:
        header = bytes([0, self.require_first_n, self.threshold, len(self.pubkey_hashes)])
        return header + b"".join(self.pubkey_hashes)

    def hash160(self) -> bytes:
        return blake160(self.to_witness_data())

    def placeholder_witness(self) -> bytes:
        """Witness lock with zeroed signatures, used to size the signing message."""
        return self.to_witness_data() + b"\x00" * (SIGNATURE_SIZE * self.threshold)
