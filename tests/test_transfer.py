"""
Tests for the transfer orchestrator.
"""

import pytest
from coincurve import PrivateKey

from cellwallet.chain.address import Address, NetworkType
from cellwallet.chain.multisig import MultisigConfig
from cellwallet.chain.since import EpochNumberWithFraction, Since, SinceMetric
from cellwallet.chain.types import CellOutput, Script, ScriptHashType, WitnessArgs, to_hex
from cellwallet.config import TransferLimits
from cellwallet.constants import MULTISIG_TYPE_HASH, ONE_CKB
from cellwallet.errors import (
    ConfigurationMismatchError,
    ConsistencyError,
    FeeExceedsCeilingError,
    InputValidationError,
    InsufficientFundsError,
    LockedSourceError,
    SinceViolation,
    TransportError,
)
from cellwallet.wallet.bip32 import privkey_lock_arg
from cellwallet.wallet.keystore import MnemonicKeyStore
from cellwallet.wallet.transfer import (
    FundingIdentities,
    TransferArgs,
    TransferOrchestrator,
    TransferState,
    check_capacity,
    is_valid_destination,
)

PASSWORD = "hunter2"


def make_orchestrator(chain, limits=None, key_store=None) -> TransferOrchestrator:
    return TransferOrchestrator(
        chain.backend, chain.index(), NetworkType.TESTNET, key_store=key_store, limits=limits
    )


def privkey_args(privkey: PrivateKey, receiver: Address, capacity: str, tx_fee: str, **kwargs):
    return TransferArgs(
        to_address=receiver.encode(),
        capacity=capacity,
        tx_fee=tx_fee,
        privkey=privkey.secret.hex(),
        **kwargs,
    )


def locked_address(lock_arg: bytes, since: Since) -> Address:
    config = MultisigConfig(pubkey_hashes=(lock_arg,), require_first_n=0, threshold=1)
    args = config.hash160() + since.encode().to_bytes(8, "little")
    return Address(NetworkType.TESTNET, Script(MULTISIG_TYPE_HASH, ScriptHashType.TYPE, args))


def epoch_since(number: int, relative: bool = False) -> Since:
    epoch = EpochNumberWithFraction(number, 0, 1)
    return Since(relative, SinceMetric.EPOCH_NUMBER_WITH_FRACTION, epoch.full_value())


class TestBalancing:
    """Selection and change handling with a 100 CKB floor."""

    @pytest.fixture
    def funded(self, chain, sender):
        return [chain.add_cell(sender.script, ckb) for ckb in (600, 500, 10000)]

    @pytest.mark.asyncio
    async def test_change_below_floor_over_ceiling_is_rejected(
        self, chain, funded, privkey, receiver
    ):
        limits = TransferLimits(fee_ceiling=50 * ONE_CKB, min_cell_capacity=100 * ONE_CKB)
        orchestrator = make_orchestrator(chain, limits)

        with pytest.raises(FeeExceedsCeilingError, match="please change to-capacity"):
            await orchestrator.transfer(privkey_args(privkey, receiver, "1000", "10"))

        assert orchestrator.state == TransferState.FAILED
        assert "to-capacity" in orchestrator.failure_reason
        assert chain.backend.sent == []

    @pytest.mark.asyncio
    async def test_small_change_is_folded_into_fee(self, chain, funded, privkey, receiver):
        limits = TransferLimits(fee_ceiling=100 * ONE_CKB, min_cell_capacity=100 * ONE_CKB)
        orchestrator = make_orchestrator(chain, limits)

        tx = await orchestrator.transfer(privkey_args(privkey, receiver, "1000", "10"))

        assert orchestrator.state == TransferState.SUBMITTED
        assert [i.previous_output for i in tx.inputs] == [c.out_point() for c in funded[:2]]
        assert tx.outputs == [CellOutput(1000 * ONE_CKB, receiver.script)]
        assert chain.backend.sent == [tx]

    @pytest.mark.asyncio
    async def test_change_output(self, chain, funded, privkey, sender, receiver):
        limits = TransferLimits(fee_ceiling=50 * ONE_CKB, min_cell_capacity=100 * ONE_CKB)
        tx = await make_orchestrator(chain, limits).transfer(
            privkey_args(privkey, receiver, "100", "10")
        )

        assert [i.previous_output for i in tx.inputs] == [funded[0].out_point()]
        assert tx.outputs == [
            CellOutput(100 * ONE_CKB, receiver.script),
            CellOutput(490 * ONE_CKB, sender.script),
        ]
        assert tx.outputs_data == [b"", b""]

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, chain, funded, privkey, sender, receiver):
        orchestrator = make_orchestrator(chain)
        with pytest.raises(InsufficientFundsError, match="Capacity\\(mature\\) not enough") as exc:
            await orchestrator.transfer(privkey_args(privkey, receiver, "20000", "1"))

        assert str(sender) in str(exc.value)
        assert "11100.0 (CKB)" in str(exc.value)
        assert orchestrator.state == TransferState.FAILED


class TestTransferFlow:
    @pytest.mark.asyncio
    async def test_skips_unspendable_cells(self, chain, privkey, sender, receiver):
        chain.add_cell(sender.script, 1000, data_bytes=10)
        chain.add_cell(sender.script, 1000, number=7000, tx_index=0)
        chain.add_cell(sender.script, 1000, type_hashes=(b"\x01" * 32, b"\x02" * 32))
        plain = [chain.add_cell(sender.script, 600), chain.add_cell(sender.script, 500)]

        tx = await make_orchestrator(chain).transfer(privkey_args(privkey, receiver, "1000", "1"))

        assert [i.previous_output for i in tx.inputs] == [c.out_point() for c in plain]
        assert tx.outputs[1] == CellOutput(99 * ONE_CKB, sender.script)

    @pytest.mark.asyncio
    async def test_signed_witness_and_data(self, chain, privkey, sender, receiver, genesis_info):
        chain.add_cell(sender.script, 600)
        tx = await make_orchestrator(chain).transfer(
            privkey_args(privkey, receiver, "200", "0.001", to_data=b"\x01\x02")
        )

        assert tx.outputs_data == [b"\x01\x02", b""]
        assert tx.cell_deps == [genesis_info.sighash_dep]
        witness = WitnessArgs.deserialize(tx.witnesses[0])
        assert witness.lock is not None and len(witness.lock) == 65
        assert witness.lock != b"\x00" * 65

    @pytest.mark.asyncio
    async def test_hash_mismatch(self, chain, privkey, sender, receiver):
        chain.add_cell(sender.script, 600)
        chain.backend.returned_hash = b"\xff" * 32
        orchestrator = make_orchestrator(chain)

        with pytest.raises(ConsistencyError):
            await orchestrator.transfer(privkey_args(privkey, receiver, "100", "1"))
        assert orchestrator.state == TransferState.FAILED
        assert len(chain.backend.sent) == 1

    @pytest.mark.asyncio
    async def test_spent_cell(self, chain, privkey, sender, receiver):
        info = chain.add_cell(sender.script, 600)
        del chain.backend.cells[info.out_point()]

        with pytest.raises(TransportError, match="not live"):
            await make_orchestrator(chain).transfer(privkey_args(privkey, receiver, "100", "1"))
        assert chain.backend.sent == []

    @pytest.mark.asyncio
    async def test_fee_over_ceiling(self, chain, privkey, sender, receiver):
        chain.add_cell(sender.script, 600)
        with pytest.raises(FeeExceedsCeilingError, match="can not be more than 1.0 \\(CKB\\)"):
            await make_orchestrator(chain).transfer(privkey_args(privkey, receiver, "100", "2"))

    @pytest.mark.asyncio
    async def test_live_cell_cache(self, chain, sender):
        info = chain.add_cell(sender.script, 600)
        orchestrator = make_orchestrator(chain)

        first = await orchestrator.get_live_cell(info.out_point(), with_data=False)
        second = await orchestrator.get_live_cell(info.out_point(), with_data=False)

        assert first is second
        assert chain.backend.calls.count("get_live_cell") == 1


class TestValidation:
    @pytest.mark.asyncio
    async def test_key_and_account_are_exclusive(self, chain, privkey, receiver):
        args = privkey_args(privkey, receiver, "100", "1", from_account="0x" + "01" * 20)
        with pytest.raises(InputValidationError, match="Exactly one"):
            await make_orchestrator(chain).transfer(args)
        # Validation never reaches the node
        assert chain.backend.calls == []

    @pytest.mark.asyncio
    async def test_no_key_at_all(self, chain, receiver):
        args = TransferArgs(to_address=receiver.encode(), capacity="100", tx_fee="1")
        with pytest.raises(InputValidationError, match="Exactly one"):
            await make_orchestrator(chain).transfer(args)

    @pytest.mark.asyncio
    async def test_derive_change_needs_account(self, chain, privkey, receiver):
        args = privkey_args(
            privkey, receiver, "100", "1", derive_change_address=receiver.encode()
        )
        with pytest.raises(InputValidationError, match="derive-change-address"):
            await make_orchestrator(chain).transfer(args)

    @pytest.mark.asyncio
    async def test_account_needs_password(self, chain, receiver):
        args = TransferArgs(
            to_address=receiver.encode(),
            capacity="100",
            tx_fee="1",
            from_account="0x" + "01" * 20,
        )
        with pytest.raises(InputValidationError, match="Password"):
            await make_orchestrator(chain, key_store=MnemonicKeyStore()).transfer(args)

    @pytest.mark.asyncio
    async def test_invalid_private_key(self, chain, receiver):
        args = TransferArgs(to_address=receiver.encode(), capacity="100", tx_fee="1", privkey="zz")
        with pytest.raises(InputValidationError, match="private key"):
            await make_orchestrator(chain).transfer(args)

    @pytest.mark.asyncio
    async def test_invalid_capacity_text(self, chain, privkey, receiver):
        with pytest.raises(InputValidationError, match="Invalid capacity"):
            await make_orchestrator(chain).transfer(privkey_args(privkey, receiver, "lots", "1"))

    @pytest.mark.asyncio
    async def test_capacity_below_floor(self, chain, privkey, receiver):
        with pytest.raises(InputValidationError, match="can not less than"):
            await make_orchestrator(chain).transfer(privkey_args(privkey, receiver, "60", "1"))
        assert chain.backend.calls == []

    @pytest.mark.asyncio
    async def test_destination_on_other_network(self, chain, privkey):
        mainnet = Address.from_lock_arg(NetworkType.MAINNET, b"\x01" * 20)
        with pytest.raises(InputValidationError, match="network mismatch"):
            await make_orchestrator(chain).transfer(privkey_args(privkey, mainnet, "100", "1"))

    @pytest.mark.asyncio
    async def test_destination_shape(self, chain, privkey):
        data_lock = Address(NetworkType.TESTNET, Script(b"\x05" * 32, ScriptHashType.DATA, b""))
        with pytest.raises(InputValidationError, match="Invalid to-address"):
            await make_orchestrator(chain).transfer(privkey_args(privkey, data_lock, "100", "1"))

    def test_check_capacity_data(self):
        check_capacity(71 * ONE_CKB, 10, 61 * ONE_CKB)
        with pytest.raises(InputValidationError, match="hold 10 bytes"):
            check_capacity(70 * ONE_CKB, 10, 61 * ONE_CKB)

    @pytest.mark.parametrize(
        "code_hash,args,valid",
        [
            (MULTISIG_TYPE_HASH, b"\x01" * 20, True),
            (MULTISIG_TYPE_HASH, b"\x01" * 28, True),
            (MULTISIG_TYPE_HASH, b"\x01" * 24, False),
            (b"\x05" * 32, b"\x01" * 20, False),
        ],
    )
    def test_is_valid_destination(self, code_hash, args, valid):
        address = Address(NetworkType.TESTNET, Script(code_hash, ScriptHashType.TYPE, args))
        assert is_valid_destination(address) is valid


class TestLockedSource:
    @pytest.mark.asyncio
    async def test_spends_locked_cell_first(
        self, chain, privkey, sender, receiver, genesis_info
    ):
        since = epoch_since(200)
        locked = locked_address(privkey_lock_arg(privkey), since)
        chain.add_cell(sender.script, 2000)
        locked_cell = chain.add_cell(locked.script, 1000)

        tx = await make_orchestrator(chain).transfer(
            privkey_args(
                privkey, receiver, "500", "1", from_locked_address=locked.encode()
            )
        )

        assert [i.previous_output for i in tx.inputs] == [locked_cell.out_point()]
        assert tx.inputs[0].since == since.encode()
        assert tx.cell_deps == [genesis_info.multisig_dep]
        # Change goes back to the signing key, not the locked address
        assert tx.outputs[1] == CellOutput(499 * ONE_CKB, sender.script)
        witness_lock = WitnessArgs.deserialize(tx.witnesses[0]).lock
        assert len(witness_lock) == 4 + 20 + 65

    @pytest.mark.asyncio
    async def test_foreign_locked_address(self, chain, privkey, receiver):
        locked = locked_address(b"\x77" * 20, epoch_since(200))
        orchestrator = make_orchestrator(chain)

        with pytest.raises(ConfigurationMismatchError, match="not created from the key"):
            await orchestrator.transfer(
                privkey_args(privkey, receiver, "500", "1", from_locked_address=locked.encode())
            )
        assert orchestrator.state == TransferState.FAILED

    @pytest.mark.asyncio
    async def test_relative_since_rejected(self, chain, privkey, receiver):
        locked = locked_address(privkey_lock_arg(privkey), epoch_since(200, relative=True))
        with pytest.raises(LockedSourceError) as exc:
            await make_orchestrator(chain).transfer(
                privkey_args(privkey, receiver, "500", "1", from_locked_address=locked.encode())
            )
        assert exc.value.violation == SinceViolation.NOT_ABSOLUTE
        assert chain.backend.calls == []


class TestHDAccount:
    @pytest.fixture
    def account(self, sample_mnemonic):
        key_store = MnemonicKeyStore()
        account = key_store.import_mnemonic(sample_mnemonic, PASSWORD)
        key_set = key_store.derive_keys(account, PASSWORD, range(3), range(3))
        return key_store, account, key_set

    def _script(self, lock_arg: bytes) -> Script:
        return Address.from_lock_arg(NetworkType.TESTNET, lock_arg).script

    @pytest.mark.asyncio
    async def test_funds_from_derived_keys(self, chain, account, receiver):
        key_store, account_arg, key_set = account
        receiving_cell = chain.add_cell(self._script(key_set.external[1][1]), 600)
        change_cell = chain.add_cell(self._script(key_set.change[2][1]), 500)
        change_address = Address.from_lock_arg(NetworkType.TESTNET, key_set.change[2][1])

        args = TransferArgs(
            to_address=receiver.encode(),
            capacity="1000",
            tx_fee="1",
            from_account=to_hex(account_arg),
            password=PASSWORD,
            derive_receiving_address_length=3,
            derive_change_address=change_address.encode(),
        )
        tx = await make_orchestrator(chain, key_store=key_store).transfer(args)

        assert [i.previous_output for i in tx.inputs] == [
            receiving_cell.out_point(),
            change_cell.out_point(),
        ]
        assert tx.outputs[1] == CellOutput(99 * ONE_CKB, change_address.script)
        # Two lock groups, each signed in its first witness
        assert all(len(WitnessArgs.deserialize(w).lock) == 65 for w in tx.witnesses)

    @pytest.mark.asyncio
    async def test_account_key_without_derivation(self, chain, account, receiver):
        key_store, account_arg, _ = account
        chain.add_cell(self._script(account_arg), 600)

        args = TransferArgs(
            to_address=receiver.encode(),
            capacity="100",
            tx_fee="1",
            from_account=to_hex(account_arg),
            password=PASSWORD,
        )
        tx = await make_orchestrator(chain, key_store=key_store).transfer(args)
        assert tx.outputs[1] == CellOutput(499 * ONE_CKB, self._script(account_arg))

    @pytest.mark.asyncio
    async def test_unknown_change_address(self, chain, account, receiver):
        key_store, account_arg, _ = account
        limits = TransferLimits(derive_change_max_len=5)
        args = TransferArgs(
            to_address=receiver.encode(),
            capacity="100",
            tx_fee="1",
            from_account=to_hex(account_arg),
            password=PASSWORD,
            derive_receiving_address_length=1,
            derive_change_address=receiver.encode(),
        )
        with pytest.raises(ConfigurationMismatchError, match="not found"):
            await make_orchestrator(chain, limits, key_store).transfer(args)

    def test_account_signer_needs_key_store(self, chain, account, receiver):
        key_store, account_arg, _ = account
        args = TransferArgs(
            to_address=receiver.encode(),
            capacity="100",
            tx_fee="1",
            from_account=to_hex(account_arg),
            password=PASSWORD,
        )
        request = make_orchestrator(chain, key_store=key_store).validate(args)
        identities = FundingIdentities([], self._script(account_arg))

        with pytest.raises(ConfigurationMismatchError, match="key store"):
            make_orchestrator(chain).build_signer(request, identities)
