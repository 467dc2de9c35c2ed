"""
Node backend implementations.

Available backends:
- CkbRpcBackend: Full node via JSON-RPC
"""

from cellwallet.backends.base import EpochInfo, LiveCell, NodeBackend
from cellwallet.backends.ckb_rpc import CkbRpcBackend

__all__ = [
    "CkbRpcBackend",
    "EpochInfo",
    "LiveCell",
    "NodeBackend",
]
