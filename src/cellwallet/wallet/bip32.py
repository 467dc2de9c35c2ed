"""
BIP32 HD key derivation.
Keys are identified on chain by blake160 of the compressed public key.
"""

from __future__ import annotations

import hashlib
import hmac

from coincurve import PrivateKey, PublicKey

from cellwallet.chain.hashing import blake160

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

HARDENED_OFFSET = 0x80000000


class HDKey:
    """
    Hierarchical Deterministic Key.
    Implements BIP32 private derivation.
    """

    def __init__(self, private_key: PrivateKey, chain_code: bytes, depth: int = 0):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth

    @property
    def private_key(self) -> PrivateKey:
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        return cls(PrivateKey(hmac_result[:32]), hmac_result[32:], depth=0)

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/44'/309'/0'/0/0")
        ' indicates hardened derivation
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        key = self
        for part in path.split("/")[1:]:
            if not part:
                continue

            hardened = part.endswith("'") or part.endswith("h")
            index = int(part.rstrip("'h"))
            if index >= HARDENED_OFFSET:
                raise ValueError(f"Path index out of range: {part}")
            if hardened:
                index += HARDENED_OFFSET

            key = key._derive_child(index)

        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        if index >= HARDENED_OFFSET:
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self.get_public_key_bytes() + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        offset_int = int.from_bytes(hmac_result[:32], "big")
        parent_key_int = int.from_bytes(self._private_key.secret, "big")

        child_key_int = (parent_key_int + offset_int) % SECP256K1_N
        if offset_int >= SECP256K1_N or child_key_int == 0:
            raise ValueError("Invalid child key")

        child_private_key = PrivateKey(child_key_int.to_bytes(32, "big"))
        return HDKey(child_private_key, hmac_result[32:], depth=self.depth + 1)

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        return self._public_key.format(compressed=compressed)

    def lock_arg(self) -> bytes:
        """blake160 of the compressed public key"""
        return pubkey_lock_arg(self.get_public_key_bytes())

    def sign_recoverable(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest, returning a 65-byte recoverable signature."""
        return self._private_key.sign_recoverable(digest, hasher=None)


def pubkey_lock_arg(pubkey_bytes: bytes) -> bytes:
    return blake160(pubkey_bytes)


def privkey_lock_arg(private_key: PrivateKey) -> bytes:
    return pubkey_lock_arg(private_key.public_key.format(compressed=True))


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Convert BIP39 mnemonic to seed.
    """
    from hashlib import pbkdf2_hmac

    mnemonic_bytes = mnemonic.encode("utf-8")
    salt = ("mnemonic" + passphrase).encode("utf-8")

    return pbkdf2_hmac("sha512", mnemonic_bytes, salt, 2048, dklen=64)
