"""
Chain and wallet constants.

Capacities are expressed in shannons (1 CKB = 10^8 shannons).
"""

from __future__ import annotations

ONE_CKB = 100_000_000  # shannons

# Smallest cell a secp256k1 sighash lock can live in:
# 8 (capacity) + 32 (code_hash) + 1 (hash_type) + 20 (args) bytes
MIN_SECP_CELL_CAPACITY = 61 * ONE_CKB

# Fee ceiling for a single transfer
MAX_TX_FEE = ONE_CKB

# Type hashes of the system scripts deployed in genesis
SIGHASH_TYPE_HASH = bytes.fromhex(
    "9bd7e06f3ecf4be0f2fcd2188b23f1b9fcc88e5d4b65a8637b17723bbda3cce8"
)
MULTISIG_TYPE_HASH = bytes.fromhex(
    "5c5069eb0857efc65e1bca0c07df34c31663b3622fd3876c876320fc9634e2a8"
)
DAO_TYPE_HASH = bytes.fromhex(
    "82d76d1b75fe2fd9a27dfbaa65a039221a380d76c926f378d3f81cf3e7e13f2e"
)

# Cellbase outputs can be spent 4 epochs after they were created
CELLBASE_MATURITY_EPOCHS = 4

# HD derivation: m/44'/309'/0'/{branch}/{index}
KEY_DERIVATION_ROOT = "m/44'/309'/0'"
RECEIVING_BRANCH = 0
CHANGE_BRANCH = 1

# Upper bound when searching for a derived change address
DERIVE_CHANGE_ADDRESS_MAX_LEN = 10_000
DEFAULT_RECEIVING_ADDRESS_LENGTH = 1_000
DEFAULT_CHANGE_ADDRESS_LENGTH = 1_000

HASH_SIZE = 32
SIGNATURE_SIZE = 65
ZERO_DIGEST = b"\x00" * HASH_SIZE
ZERO_SIGNATURE = b"\x00" * SIGNATURE_SIZE

LOCK_ARG_SIZE = 20
LOCKED_ARG_SIZE = 28
