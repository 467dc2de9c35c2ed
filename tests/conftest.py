"""
Shared fixtures: an in-memory node backend and a small live cell set.
"""

from __future__ import annotations

from typing import Any

import pytest
from coincurve import PrivateKey

from cellwallet.backends.base import EpochInfo, LiveCell, NodeBackend
from cellwallet.chain.address import Address, NetworkType
from cellwallet.chain.genesis import GenesisInfo
from cellwallet.chain.hashing import ckb_hash
from cellwallet.chain.since import EpochNumberWithFraction
from cellwallet.chain.types import CellOutput, OutPoint, Script, Transaction, to_hex
from cellwallet.constants import ONE_CKB
from cellwallet.index.base import LiveCellInfo
from cellwallet.index.memory import MemoryCellIndex
from cellwallet.wallet.bip32 import privkey_lock_arg

GENESIS_HASH = b"\x11" * 32
DEP_GROUP_TX_HASH = b"\x33" * 32

GENESIS_BLOCK: dict[str, Any] = {
    "header": {"hash": to_hex(GENESIS_HASH)},
    "transactions": [{"hash": to_hex(b"\x22" * 32)}, {"hash": to_hex(DEP_GROUP_TX_HASH)}],
}

# Tip at epoch 10 with the mature epoch (6) starting at block 6000:
# cellbase cells up to block 6000 are mature.
MAX_MATURE_NUMBER = 6000


class FakeBackend(NodeBackend):
    """Node backend serving cells from a dict and recording broadcasts."""

    def __init__(self, network: NetworkType = NetworkType.TESTNET):
        self.network = network
        self.cells: dict[OutPoint, CellOutput] = {}
        self.sent: list[Transaction] = []
        self.calls: list[str] = []
        self.returned_hash: bytes | None = None
        self.tip_epoch = EpochNumberWithFraction(10, 0, 1000)
        self.epochs = {6: EpochInfo(number=6, start_number=MAX_MATURE_NUMBER, length=1000)}

    async def get_block_by_number(self, number: int) -> dict[str, Any] | None:
        self.calls.append("get_block_by_number")
        return GENESIS_BLOCK if number == 0 else None

    async def get_live_cell(self, out_point: OutPoint, with_data: bool) -> LiveCell | None:
        self.calls.append("get_live_cell")
        output = self.cells.get(out_point)
        return LiveCell(output=output) if output is not None else None

    async def send_transaction(self, tx: Transaction) -> bytes:
        self.calls.append("send_transaction")
        self.sent.append(tx)
        return self.returned_hash if self.returned_hash is not None else tx.hash()

    async def get_tip_epoch(self) -> EpochNumberWithFraction:
        self.calls.append("get_tip_epoch")
        return self.tip_epoch

    async def get_epoch_by_number(self, number: int) -> EpochInfo | None:
        self.calls.append("get_epoch_by_number")
        return self.epochs.get(number)

    async def get_network_type(self) -> NetworkType:
        return self.network


class FakeChain:
    """Keeps the index records and the backend cell bodies in sync."""

    def __init__(self) -> None:
        self.backend = FakeBackend()
        self.records: list[LiveCellInfo] = []
        self.lock_scripts: list[Script] = []

    def add_cell(
        self,
        lock: Script,
        capacity_ckb: int,
        number: int | None = None,
        tx_index: int = 1,
        data_bytes: int = 0,
        type_hashes: tuple[bytes, bytes] | None = None,
    ) -> LiveCellInfo:
        info = LiveCellInfo(
            tx_hash=ckb_hash(len(self.records).to_bytes(4, "little")),
            output_index=0,
            tx_index=tx_index,
            number=number if number is not None else 100 + len(self.records),
            lock_hash=lock.calc_script_hash(),
            capacity=capacity_ckb * ONE_CKB,
            data_bytes=data_bytes,
            type_hashes=type_hashes,
        )
        self.records.append(info)
        self.backend.cells[info.out_point()] = CellOutput(capacity=info.capacity, lock=lock)
        if lock not in self.lock_scripts:
            self.lock_scripts.append(lock)
        return info

    def index(self) -> MemoryCellIndex:
        return MemoryCellIndex(self.records, self.lock_scripts)


@pytest.fixture
def sample_mnemonic() -> str:
    """Test mnemonic (not for production use!)."""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def backend(chain: FakeChain) -> FakeBackend:
    return chain.backend


@pytest.fixture
def privkey() -> PrivateKey:
    return PrivateKey(bytes.fromhex("01" * 32))


@pytest.fixture
def sender(privkey: PrivateKey) -> Address:
    return Address.from_lock_arg(NetworkType.TESTNET, privkey_lock_arg(privkey))


@pytest.fixture
def receiver() -> Address:
    return Address.from_lock_arg(NetworkType.TESTNET, b"\x42" * 20)


@pytest.fixture
def genesis_info() -> GenesisInfo:
    return GenesisInfo.from_block(GENESIS_BLOCK)
