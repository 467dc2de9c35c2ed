"""
System script locations read from the genesis block.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cellwallet.chain.types import CellDep, DepType, OutPoint, from_hex


@dataclass(frozen=True)
class GenesisInfo:
    """
    Dep groups of the system lock scripts.

    The second genesis transaction carries the dep group cells:
    output 0 for the sighash lock, output 1 for the multisig lock.
    """

    genesis_hash: bytes
    sighash_dep: CellDep
    multisig_dep: CellDep

    @classmethod
    def from_block(cls, block: dict[str, Any]) -> GenesisInfo:
        transactions = block.get("transactions", [])
        if len(transactions) < 2:
            raise ValueError("Genesis block must contain at least 2 transactions")

        dep_group_tx = from_hex(transactions[1]["hash"])
        return cls(
            genesis_hash=from_hex(block["header"]["hash"]),
            sighash_dep=CellDep(OutPoint(dep_group_tx, 0), DepType.DEP_GROUP),
            multisig_dep=CellDep(OutPoint(dep_group_tx, 1), DepType.DEP_GROUP),
        )
