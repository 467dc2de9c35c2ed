"""
Base node backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from cellwallet.chain.address import NetworkType
from cellwallet.chain.genesis import GenesisInfo
from cellwallet.chain.maturity import calc_max_mature_number
from cellwallet.chain.since import EpochNumberWithFraction
from cellwallet.chain.types import CellOutput, OutPoint, Transaction
from cellwallet.constants import CELLBASE_MATURITY_EPOCHS
from cellwallet.errors import TransportError


@dataclass
class LiveCell:
    output: CellOutput
    data: bytes | None = None


@dataclass
class EpochInfo:
    number: int
    start_number: int
    length: int


class NodeBackend(ABC):
    """
    Abstract node backend.
    Supplies blocks, live cell bodies and transaction broadcast.
    """

    @abstractmethod
    async def get_block_by_number(self, number: int) -> dict[str, Any] | None:
        """Get a block (JSON form) by number"""

    @abstractmethod
    async def get_live_cell(self, out_point: OutPoint, with_data: bool) -> LiveCell | None:
        """Get a live cell body. Returns None if the cell is unknown or spent."""

    @abstractmethod
    async def send_transaction(self, tx: Transaction) -> bytes:
        """Broadcast transaction, returns the hash computed by the node"""

    @abstractmethod
    async def get_tip_epoch(self) -> EpochNumberWithFraction:
        """Get the epoch of the current tip header"""

    @abstractmethod
    async def get_epoch_by_number(self, number: int) -> EpochInfo | None:
        """Get epoch boundaries by epoch number"""

    @abstractmethod
    async def get_network_type(self) -> NetworkType:
        """Get the network the node runs on"""

    async def get_genesis_info(self) -> GenesisInfo:
        block = await self.get_block_by_number(0)
        if block is None:
            raise TransportError("Node returned no genesis block")
        return GenesisInfo.from_block(block)

    async def get_max_mature_number(self) -> int:
        """
        Highest block number whose cellbase cells are mature at the tip.
        """
        tip_epoch = await self.get_tip_epoch()
        if tip_epoch.number < CELLBASE_MATURITY_EPOCHS:
            # No cellbase live cell is mature
            return 0

        epoch = await self.get_epoch_by_number(tip_epoch.number - CELLBASE_MATURITY_EPOCHS)
        if epoch is None:
            raise TransportError(
                f"Can not get epoch {tip_epoch.number - CELLBASE_MATURITY_EPOCHS} from node"
            )
        return calc_max_mature_number(tip_epoch, (epoch.start_number, epoch.length))

    async def close(self) -> None:
        """Close backend connection"""
        pass
