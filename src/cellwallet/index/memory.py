"""
In-memory cell index, loadable from a JSON snapshot.

Snapshot format::

    {
      "cells": [<LiveCellInfo.to_json()>, ...],
      "lock_scripts": [{"code_hash": ..., "hash_type": ..., "args": ...}, ...]
    }

``lock_scripts`` is optional and only used to resolve top holders to
addresses.
"""

from __future__ import annotations

import json
from collections import defaultdict
from collections.abc import Iterable, Iterator
from pathlib import Path

from loguru import logger

from cellwallet.chain.types import Script
from cellwallet.errors import InputValidationError
from cellwallet.index.base import (
    CellIndex,
    LiveCellInfo,
    LockCapacity,
    SearchKey,
    SearchKind,
    parse_live_cell_json,
)


def _sort_key(info: LiveCellInfo) -> tuple[int, int, int]:
    return (info.number, info.tx_index, info.output_index)


class MemoryCellIndex(CellIndex):
    def __init__(
        self,
        cells: Iterable[LiveCellInfo] = (),
        lock_scripts: Iterable[Script] = (),
    ):
        self._cells: list[LiveCellInfo] = sorted(cells, key=_sort_key)
        self._lock_scripts: dict[bytes, Script] = {
            script.calc_script_hash(): script for script in lock_scripts
        }

    @classmethod
    def from_file(cls, path: Path) -> MemoryCellIndex:
        try:
            data = json.loads(path.read_text())
            cells = [parse_live_cell_json(item) for item in data.get("cells", [])]
            scripts = [Script.from_json(item) for item in data.get("lock_scripts", [])]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InputValidationError(f"Invalid index snapshot {path}: {e}") from e
        logger.debug(f"Loaded {len(cells)} live cells from {path}")
        return cls(cells, scripts)

    def _matches(self, info: LiveCellInfo, key: SearchKey) -> bool:
        if key.kind == SearchKind.LOCK:
            return info.lock_hash == key.hash
        if info.type_hashes is None:
            return False
        code_hash, script_hash = info.type_hashes
        if key.kind == SearchKind.TYPE:
            return script_hash == key.hash
        return code_hash == key.hash

    def iter_cells(self, key: SearchKey, from_number: int | None = None) -> Iterator[LiveCellInfo]:
        start = from_number or 0
        for info in self._cells:
            if info.number >= start and self._matches(info, key):
                yield info

    def get_top_n(self, n: int) -> list[LockCapacity]:
        totals: dict[bytes, int] = defaultdict(int)
        for info in self._cells:
            totals[info.lock_hash] += info.capacity

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:n]
        return [
            LockCapacity(lock_hash, self._lock_scripts.get(lock_hash), capacity)
            for lock_hash, capacity in ranked
        ]

    def get_metrics(self) -> dict[str, int]:
        return {
            "live_cells": len(self._cells),
            "locks": len({info.lock_hash for info in self._cells}),
            "types": len({info.type_hashes for info in self._cells if info.type_hashes}),
            "total_capacity": sum(info.capacity for info in self._cells),
            "tip_number": max((info.number for info in self._cells), default=0),
        }
