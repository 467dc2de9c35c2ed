"""
Wallet operations: key stores, signing, transfers and balance queries.
"""

from cellwallet.wallet.keystore import KeyStore, MnemonicKeyStore
from cellwallet.wallet.service import WalletService
from cellwallet.wallet.signer import SignerBridge
from cellwallet.wallet.transfer import TransferArgs, TransferOrchestrator, TransferState

__all__ = [
    "KeyStore",
    "MnemonicKeyStore",
    "SignerBridge",
    "TransferArgs",
    "TransferOrchestrator",
    "TransferState",
    "WalletService",
]
