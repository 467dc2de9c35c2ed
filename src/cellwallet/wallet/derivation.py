"""
Expansion of an HD account into candidate lock args.
"""

from __future__ import annotations

from loguru import logger

from cellwallet.constants import DERIVE_CHANGE_ADDRESS_MAX_LEN
from cellwallet.errors import ConfigurationMismatchError
from cellwallet.wallet.keystore import DerivedKeySet, KeyStore

# Change keys derived per key store call during an anchored search
DERIVE_BATCH_SIZE = 100


class AddressDerivationExpander:
    """
    Derives the receiving and change lock args of one account.

    Results are never persisted; an expander lives for one funding or
    balance operation.
    """

    def __init__(
        self,
        key_store: KeyStore,
        account: bytes,
        password: str,
        max_search_depth: int = DERIVE_CHANGE_ADDRESS_MAX_LEN,
    ):
        self.key_store = key_store
        self.account = account
        self.password = password
        self.max_search_depth = max_search_depth

    def expand(self, receiving_count: int, change_count: int) -> DerivedKeySet:
        """Derive receiving indices [0, receiving_count) and change [0, change_count)."""
        logger.debug(
            f"Deriving {receiving_count} receiving and {change_count} change keys "
            f"for 0x{self.account.hex()}"
        )
        return self.key_store.derive_keys(
            self.account, self.password, range(receiving_count), range(change_count)
        )

    def expand_to_change(self, receiving_count: int, change_last: bytes) -> DerivedKeySet:
        """
        Derive receiving indices [0, receiving_count) and change keys from
        index 0 up to and including the one whose lock arg is ``change_last``.

        Raises:
            ConfigurationMismatchError: If ``change_last`` is not found within the search depth
        """
        key_set = self.key_store.derive_keys(
            self.account, self.password, range(receiving_count), range(0)
        )

        start = 0
        while start < self.max_search_depth:
            end = min(start + DERIVE_BATCH_SIZE, self.max_search_depth)
            batch = self.key_store.derive_keys(
                self.account, self.password, range(0), range(start, end)
            )
            for path, lock_arg in batch.change:
                key_set.change.append((path, lock_arg))
                if lock_arg == change_last:
                    logger.debug(f"Found change address at {path}")
                    return key_set
            start = end

        raise ConfigurationMismatchError(
            f"Change address 0x{change_last.hex()} not found in the first "
            f"{self.max_search_depth} derived change keys"
        )
