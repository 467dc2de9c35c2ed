"""
Live cell index access.

Available indexes:
- MemoryCellIndex: In-memory index loaded from a JSON snapshot
"""

from cellwallet.index.base import CellIndex, LiveCellInfo, LockCapacity, SearchKey, SearchKind
from cellwallet.index.memory import MemoryCellIndex
from cellwallet.index.stream import ScanDecision, live_cell_stream

__all__ = [
    "CellIndex",
    "LiveCellInfo",
    "LockCapacity",
    "MemoryCellIndex",
    "ScanDecision",
    "SearchKey",
    "SearchKind",
    "live_cell_stream",
]
