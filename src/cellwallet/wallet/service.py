"""
Read-only wallet queries: balances, live cell listings and index stats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from cellwallet.backends.base import NodeBackend
from cellwallet.chain.address import Address, NetworkType
from cellwallet.chain.capacity import format_capacity
from cellwallet.constants import DEFAULT_CHANGE_ADDRESS_LENGTH, DEFAULT_RECEIVING_ADDRESS_LENGTH
from cellwallet.index.base import CellIndex, LiveCellInfo, SearchKey
from cellwallet.index.policies import (
    CapacityAggregator,
    RankedHolder,
    TopNRanker,
    WindowedLister,
    cell_is_mature,
)
from cellwallet.wallet.derivation import AddressDerivationExpander
from cellwallet.wallet.keystore import KeyStore


@dataclass
class CapacitySummary:
    total: int = 0
    immature: int = 0
    dao: int = 0

    def to_json(self) -> dict[str, Any]:
        result: dict[str, Any] = {"total": format_capacity(self.total)}
        if self.immature > 0:
            result["immature"] = format_capacity(self.immature)
        if self.dao > 0:
            result["dao"] = format_capacity(self.dao)
            result["free"] = format_capacity(self.total - self.dao)
        return result


@dataclass
class LiveCellsPage:
    """
    One window of live cells.

    ``total_count`` and ``total_capacity`` are None in fast mode, where
    the scan stops at the window boundary, and are left out of the JSON.
    """

    cells: list[tuple[LiveCellInfo, bool]] = field(default_factory=list)
    current_count: int = 0
    current_capacity: int = 0
    total_count: int | None = None
    total_capacity: int | None = None

    def to_json(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "live_cells": [
                {**info.to_json(), "mature": mature, "capacity": format_capacity(info.capacity)}
                for info, mature in self.cells
            ],
            "current_count": self.current_count,
            "current_capacity": format_capacity(self.current_capacity),
        }
        if self.total_count is not None and self.total_capacity is not None:
            result["total_count"] = self.total_count
            result["total_capacity"] = format_capacity(self.total_capacity)
        return result


class WalletService:
    """
    Answers balance and listing queries against the cell index.

    The node is only consulted for the maturity boundary.
    """

    def __init__(self, backend: NodeBackend, index: CellIndex, network: NetworkType):
        self.backend = backend
        self.index = index
        self.network = network

    async def get_capacity(self, lock_hashes: list[bytes]) -> CapacitySummary:
        max_mature_number = await self.backend.get_max_mature_number()
        aggregator = CapacityAggregator(max_mature_number)
        for lock_hash in lock_hashes:
            self.index.scan(SearchKey.lock(lock_hash), aggregator)

        logger.debug(
            f"Capacity of {len(lock_hashes)} lock hash(es): total={aggregator.total} "
            f"immature={aggregator.immature} dao={aggregator.dao}"
        )
        return CapacitySummary(
            total=aggregator.total, immature=aggregator.immature, dao=aggregator.dao
        )

    async def get_live_cells(
        self,
        key: SearchKey,
        limit: int,
        from_number: int | None = None,
        to_number: int | None = None,
        fast_mode: bool = False,
    ) -> LiveCellsPage:
        lister = WindowedLister(
            limit=limit,
            to_number=to_number if to_number is not None else 2**64 - 1,
            fast_mode=fast_mode,
        )
        cells = self.index.scan(key, lister, from_number)
        max_mature_number = await self.backend.get_max_mature_number()

        return LiveCellsPage(
            cells=[(info, cell_is_mature(info, max_mature_number)) for info in cells],
            current_count=lister.current_count,
            current_capacity=lister.current_capacity,
            total_count=None if fast_mode else lister.total_count,
            total_capacity=None if fast_mode else lister.total_capacity,
        )

    def top_capacity(self, n: int) -> list[RankedHolder]:
        return TopNRanker(self.index, self.network).rank(n)

    def db_metrics(self) -> dict[str, int]:
        return self.index.get_metrics()

    def derived_lock_hashes(
        self,
        key_store: KeyStore,
        account: bytes,
        password: str,
        receiving_count: int = DEFAULT_RECEIVING_ADDRESS_LENGTH,
        change_count: int = DEFAULT_CHANGE_ADDRESS_LENGTH,
    ) -> list[bytes]:
        """Lock hashes of the account key followed by its derived keys."""
        expander = AddressDerivationExpander(key_store, account, password)
        key_set = expander.expand(receiving_count, change_count)
        return [
            Address.from_lock_arg(self.network, lock_arg).lock_hash
            for lock_arg in [account, *key_set.lock_args()]
        ]
