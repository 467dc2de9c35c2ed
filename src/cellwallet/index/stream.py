"""
Live cell stream: a lazy scan over index records driven by a policy.

For every visited record the policy returns a ScanDecision. The stream
yields the record when ``collect`` is set and halts when ``stop`` is set,
without pulling further records from the source.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import NamedTuple, Protocol, TypeVar

T = TypeVar("T")
T_contra = TypeVar("T_contra", contravariant=True)


class ScanDecision(NamedTuple):
    stop: bool
    collect: bool


CONTINUE = ScanDecision(stop=False, collect=False)


class ScanPolicy(Protocol[T_contra]):
    def __call__(self, index: int, record: T_contra) -> ScanDecision: ...


def live_cell_stream(records: Iterable[T], policy: ScanPolicy[T]) -> Iterator[T]:
    """
    Scan ``records`` in order, letting ``policy`` see every record.

    The ordinal passed to the policy starts at 0 and advances on every
    visited record, collected or not. Policies keep their own state, so
    running the same policy over several streams accumulates across them.
    """
    for index, record in enumerate(records):
        decision = policy(index, record)
        if decision.collect:
            yield record
        if decision.stop:
            return
