"""
cellwallet - Funding selection and transaction assembly for a cell-model wallet

Provides live cell selection, HD account expansion, time-locked multisig
sources and signed transfer submission.
"""

__version__ = "0.1.0"

from cellwallet.config import Settings, TransferLimits, get_settings
from cellwallet.errors import (
    ConfigurationMismatchError,
    ConsistencyError,
    FeeExceedsCeilingError,
    InputValidationError,
    InsufficientFundsError,
    KeyStoreError,
    LockedSourceError,
    TransportError,
    WalletError,
)

__all__ = [
    "ConfigurationMismatchError",
    "ConsistencyError",
    "FeeExceedsCeilingError",
    "InputValidationError",
    "InsufficientFundsError",
    "KeyStoreError",
    "LockedSourceError",
    "Settings",
    "TransferLimits",
    "TransportError",
    "WalletError",
    "get_settings",
]
