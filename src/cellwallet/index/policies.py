"""
Scan policies built on the live cell stream.

- FundingSelector: greedy, scan-order selection of plain mature cells
- CapacityAggregator: balance totals over every visited cell
- WindowedLister: paginated listing with unbounded or fast totals
- TopNRanker: holders with the largest aggregate capacity
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from cellwallet.chain.address import Address, NetworkType
from cellwallet.chain.maturity import is_mature
from cellwallet.chain.types import to_hex
from cellwallet.constants import DAO_TYPE_HASH
from cellwallet.index.base import CellIndex, LiveCellInfo
from cellwallet.index.stream import CONTINUE, ScanDecision


def cell_is_mature(info: LiveCellInfo, max_mature_number: int) -> bool:
    return is_mature(info.number, info.tx_index, max_mature_number)


class FundingSelector:
    """
    Collects plain, mature cells in scan order until ``target`` is met.

    No attempt is made to minimize the input count or the change: the
    first prefix of eligible cells reaching the target is taken. The same
    selector is reused across several lock hashes so the accumulated
    capacity carries over between scans.
    """

    def __init__(self, target: int, max_mature_number: int):
        self.target = target
        self.max_mature_number = max_mature_number
        self.capacity = 0
        self.cells: list[LiveCellInfo] = []

    @property
    def satisfied(self) -> bool:
        return self.capacity >= self.target

    def __call__(self, index: int, info: LiveCellInfo) -> ScanDecision:
        if self.satisfied:
            return ScanDecision(stop=True, collect=False)

        if info.is_plain() and cell_is_mature(info, self.max_mature_number):
            self.capacity += info.capacity
            self.cells.append(info)
            logger.debug(
                f"Selected cell {info.out_point()} ({info.capacity} shannons), "
                f"total {self.capacity}/{self.target}"
            )
            return ScanDecision(stop=self.satisfied, collect=True)

        return CONTINUE


@dataclass
class CapacityAggregator:
    """Sums capacity over every visited cell; never stops early."""

    max_mature_number: int
    total: int = 0
    immature: int = 0
    dao: int = 0

    def __call__(self, index: int, info: LiveCellInfo) -> ScanDecision:
        if not cell_is_mature(info, self.max_mature_number):
            self.immature += info.capacity
        if info.type_hashes is not None and info.type_hashes[0] == DAO_TYPE_HASH:
            self.dao += info.capacity
        self.total += info.capacity
        return CONTINUE


@dataclass
class WindowedLister:
    """
    Lists at most ``limit`` cells up to block ``to_number``.

    Totals cover the whole scan unless ``fast_mode`` is set, in which
    case the scan halts at the window boundary and the totals equal the
    window counters.
    """

    limit: int
    to_number: int
    fast_mode: bool = False
    total_count: int = 0
    total_capacity: int = 0
    current_count: int = 0
    current_capacity: int = 0

    def __call__(self, index: int, info: LiveCellInfo) -> ScanDecision:
        stop = index >= self.limit or info.number > self.to_number
        if stop and self.fast_mode:
            return ScanDecision(stop=True, collect=False)

        self.total_count += 1
        self.total_capacity += info.capacity
        if not stop:
            self.current_count += 1
            self.current_capacity += info.capacity
        return ScanDecision(stop=False, collect=not stop)


@dataclass
class RankedHolder:
    lock_hash: bytes
    address: str | None
    capacity: int

    def to_json(self) -> dict[str, object]:
        return {
            "lock_hash": to_hex(self.lock_hash),
            "address": self.address,
            "capacity": self.capacity,
        }


@dataclass
class TopNRanker:
    """Ranks lock hashes by the aggregates the index maintains."""

    index: CellIndex
    network: NetworkType

    def rank(self, n: int) -> list[RankedHolder]:
        return [
            RankedHolder(
                lock_hash=item.lock_hash,
                address=(
                    Address(self.network, item.lock_script).encode()
                    if item.lock_script is not None
                    else None
                ),
                capacity=item.capacity,
            )
            for item in self.index.get_top_n(n)
        ]
