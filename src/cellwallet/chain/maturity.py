"""
Cellbase maturity rules.
"""

from __future__ import annotations

import math

from cellwallet.chain.since import EpochNumberWithFraction
from cellwallet.constants import CELLBASE_MATURITY_EPOCHS


def calc_max_mature_number(
    tip_epoch: EpochNumberWithFraction,
    max_mature_epoch: tuple[int, int] | None,
    cellbase_maturity: int = CELLBASE_MATURITY_EPOCHS,
) -> int:
    """
    Highest block number whose cellbase outputs are spendable at the tip.

    Args:
        tip_epoch: Epoch of the current tip header
        max_mature_epoch: (start_number, length) of epoch ``tip - maturity``
        cellbase_maturity: Maturity in whole epochs

    Returns:
        Block number cutoff, 0 if nothing is mature yet
    """
    tip = tip_epoch.to_rational()
    if tip < cellbase_maturity or max_mature_epoch is None:
        return 0

    start_number, length = max_mature_epoch
    epoch_delta = tip - cellbase_maturity
    fraction = epoch_delta - math.floor(epoch_delta)
    index = math.floor(fraction * length)
    return start_number + max(index - 1, 0)


def is_mature(block_number: int, tx_index: int, max_mature_number: int) -> bool:
    # Only cellbase outputs (tx_index 0) outside genesis are subject to maturity
    return tx_index > 0 or block_number == 0 or block_number <= max_mature_number
