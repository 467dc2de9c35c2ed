"""
BLAKE2b hashing as used by the chain.
"""

from __future__ import annotations

import hashlib

CKB_HASH_PERSONALIZATION = b"ckb-default-hash"


def new_blake2b():
    """Return a streaming hasher with the chain's personalization."""
    return hashlib.blake2b(digest_size=32, person=CKB_HASH_PERSONALIZATION)


def ckb_hash(data: bytes) -> bytes:
    """BLAKE2b-256 with ckb-default-hash personalization."""
    hasher = new_blake2b()
    hasher.update(data)
    return hasher.digest()


def blake160(data: bytes) -> bytes:
    """First 20 bytes of ckb_hash(data)."""
    return ckb_hash(data)[:20]
