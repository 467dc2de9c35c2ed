"""
Index collaborator interface and live cell records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cellwallet.chain.types import OutPoint, Script, from_hex, to_hex
from cellwallet.index.stream import ScanPolicy, live_cell_stream


@dataclass(frozen=True)
class LiveCellInfo:
    """
    One unspent cell as recorded by the index.

    ``type_hashes`` is the (code_hash, script_hash) pair of the type
    script, if the cell has one.
    """

    tx_hash: bytes
    output_index: int
    tx_index: int
    number: int
    lock_hash: bytes
    capacity: int
    data_bytes: int = 0
    type_hashes: tuple[bytes, bytes] | None = None

    def __post_init__(self) -> None:
        if self.capacity < 0:
            raise ValueError(f"Negative capacity: {self.capacity}")

    def out_point(self) -> OutPoint:
        return OutPoint(self.tx_hash, self.output_index)

    def is_plain(self) -> bool:
        """A cell with neither data nor type script can fund a transfer."""
        return self.data_bytes == 0 and self.type_hashes is None

    def to_json(self) -> dict[str, Any]:
        return {
            "tx_hash": to_hex(self.tx_hash),
            "output_index": self.output_index,
            "tx_index": self.tx_index,
            "number": self.number,
            "lock_hash": to_hex(self.lock_hash),
            "capacity": self.capacity,
            "data_bytes": self.data_bytes,
            "type_hashes": (
                [to_hex(h) for h in self.type_hashes] if self.type_hashes is not None else None
            ),
        }


class SearchKind(str, Enum):
    LOCK = "lock"
    TYPE = "type"
    CODE = "code"


@dataclass(frozen=True)
class SearchKey:
    kind: SearchKind
    hash: bytes

    @classmethod
    def lock(cls, lock_hash: bytes) -> SearchKey:
        return cls(SearchKind.LOCK, lock_hash)

    def __str__(self) -> str:
        return f"{self.kind.value}:{to_hex(self.hash)}"


@dataclass(frozen=True)
class LockCapacity:
    lock_hash: bytes
    lock_script: Script | None
    capacity: int


class CellIndex(ABC):
    """
    Read-only view over the unspent cell index.

    Records are produced in ascending (block number, tx index, output
    index) order.
    """

    @abstractmethod
    def iter_cells(self, key: SearchKey, from_number: int | None = None) -> Iterator[LiveCellInfo]:
        """Lazily iterate live cells matching ``key``, starting at ``from_number``"""

    @abstractmethod
    def get_top_n(self, n: int) -> list[LockCapacity]:
        """Lock hashes owning the most capacity, largest first"""

    @abstractmethod
    def get_metrics(self) -> dict[str, int]:
        """Diagnostic counters of the index database"""

    def scan(
        self,
        key: SearchKey,
        policy: ScanPolicy[LiveCellInfo],
        from_number: int | None = None,
    ) -> list[LiveCellInfo]:
        return list(live_cell_stream(self.iter_cells(key, from_number), policy))


def parse_live_cell_json(data: dict[str, Any]) -> LiveCellInfo:
    """Build a record from the form produced by ``LiveCellInfo.to_json``."""
    type_hashes = data.get("type_hashes")
    return LiveCellInfo(
        tx_hash=from_hex(data["tx_hash"]),
        output_index=int(data["output_index"]),
        tx_index=int(data["tx_index"]),
        number=int(data["number"]),
        lock_hash=from_hex(data["lock_hash"]),
        capacity=int(data["capacity"]),
        data_bytes=int(data.get("data_bytes", 0)),
        type_hashes=(from_hex(type_hashes[0]), from_hex(type_hashes[1])) if type_hashes else None,
    )
