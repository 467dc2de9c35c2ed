"""
Pending transaction assembly and signing.

Inputs are grouped by lock script. Each group needs one signature over
a digest that commits to the transaction hash and the group's witnesses;
the signature goes into the lock field of the group's first witness.
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from dataclasses import dataclass, field

from loguru import logger

from cellwallet.chain.genesis import GenesisInfo
from cellwallet.chain.hashing import new_blake2b
from cellwallet.chain.molecule import pack_u64
from cellwallet.chain.multisig import MultisigConfig
from cellwallet.chain.types import (
    CellDep,
    CellInput,
    CellOutput,
    OutPoint,
    Script,
    ScriptHashType,
    Transaction,
    WitnessArgs,
)
from cellwallet.constants import (
    LOCK_ARG_SIZE,
    LOCKED_ARG_SIZE,
    MULTISIG_TYPE_HASH,
    SIGHASH_TYPE_HASH,
    SIGNATURE_SIZE,
)
from cellwallet.errors import ConfigurationMismatchError

SignerFn = Callable[[Collection[bytes], bytes], bytes | None]


class TransactionFinalizedError(RuntimeError):
    pass


def is_sighash_lock(lock: Script) -> bool:
    return (
        lock.hash_type == ScriptHashType.TYPE
        and lock.code_hash == SIGHASH_TYPE_HASH
        and len(lock.args) == LOCK_ARG_SIZE
    )


def is_multisig_lock(lock: Script) -> bool:
    return (
        lock.hash_type == ScriptHashType.TYPE
        and lock.code_hash == MULTISIG_TYPE_HASH
        and len(lock.args) in (LOCK_ARG_SIZE, LOCKED_ARG_SIZE)
    )


@dataclass
class SigningRequest:
    lock: Script
    candidates: frozenset[bytes]
    digest: bytes


@dataclass
class PendingTransaction:
    """
    Accumulates inputs, outputs and multisig configs.

    Grows monotonically until ``build_tx`` finalizes it.
    """

    genesis_info: GenesisInfo
    inputs: list[CellInput] = field(default_factory=list)
    input_locks: list[Script] = field(default_factory=list)
    outputs: list[CellOutput] = field(default_factory=list)
    outputs_data: list[bytes] = field(default_factory=list)
    multisig_configs: dict[bytes, MultisigConfig] = field(default_factory=dict)
    signatures: dict[Script, list[bytes]] = field(default_factory=dict)
    finalized: bool = False

    def _check_mutable(self) -> None:
        if self.finalized:
            raise TransactionFinalizedError("Transaction is already finalized")

    def add_multisig_config(self, config: MultisigConfig) -> None:
        self._check_mutable()
        self.multisig_configs[config.hash160()] = config

    def add_input(self, out_point: OutPoint, output: CellOutput, skip_check: bool = False) -> None:
        """
        Add the live cell at ``out_point`` as an input.

        Multisig cells with 28-byte args inherit their since from the args.
        """
        self._check_mutable()
        lock = output.lock
        since = 0

        if is_multisig_lock(lock):
            if not skip_check and lock.args[:LOCK_ARG_SIZE] not in self.multisig_configs:
                raise ConfigurationMismatchError(
                    f"No multisig config registered for input {out_point}"
                )
            if len(lock.args) == LOCKED_ARG_SIZE:
                since = int.from_bytes(lock.args[LOCK_ARG_SIZE:], "little")
        elif not is_sighash_lock(lock) and not skip_check:
            raise ConfigurationMismatchError(
                f"Input {out_point} is locked by an unsupported lock script"
            )

        self.inputs.append(CellInput(previous_output=out_point, since=since))
        self.input_locks.append(lock)

    def add_output(self, output: CellOutput, data: bytes = b"") -> None:
        self._check_mutable()
        self.outputs.append(output)
        self.outputs_data.append(data)

    def cell_deps(self) -> list[CellDep]:
        deps = []
        if any(is_sighash_lock(lock) for lock in self.input_locks):
            deps.append(self.genesis_info.sighash_dep)
        if any(is_multisig_lock(lock) for lock in self.input_locks):
            deps.append(self.genesis_info.multisig_dep)
        return deps

    def lock_groups(self) -> dict[Script, list[int]]:
        groups: dict[Script, list[int]] = {}
        for i, lock in enumerate(self.input_locks):
            groups.setdefault(lock, []).append(i)
        return groups

    def _multisig_config_for(self, lock: Script) -> MultisigConfig:
        config = self.multisig_configs.get(lock.args[:LOCK_ARG_SIZE])
        if config is None:
            raise ConfigurationMismatchError(
                f"No multisig config registered for lock args 0x{lock.args.hex()}"
            )
        return config

    def _placeholder_lock(self, lock: Script) -> bytes:
        if is_multisig_lock(lock):
            return self._multisig_config_for(lock).placeholder_witness()
        return b"\x00" * SIGNATURE_SIZE

    def _candidates(self, lock: Script) -> frozenset[bytes]:
        if is_multisig_lock(lock):
            return frozenset(self._multisig_config_for(lock).pubkey_hashes)
        return frozenset([lock.args])

    def build_unsigned(self) -> Transaction:
        return Transaction(
            cell_deps=self.cell_deps(),
            inputs=list(self.inputs),
            outputs=list(self.outputs),
            outputs_data=list(self.outputs_data),
            witnesses=[b"" for _ in self.inputs],
        )

    def signing_requests(self) -> list[SigningRequest]:
        tx_hash = self.build_unsigned().hash()
        requests = []
        for lock, indexes in self.lock_groups().items():
            hasher = new_blake2b()
            hasher.update(tx_hash)

            first_witness = WitnessArgs(lock=self._placeholder_lock(lock)).serialize()
            hasher.update(pack_u64(len(first_witness)))
            hasher.update(first_witness)
            # Remaining witnesses of the group are empty
            for _ in indexes[1:]:
                hasher.update(pack_u64(0))

            requests.append(SigningRequest(lock, self._candidates(lock), hasher.digest()))
        return requests

    def sign_inputs(self, signer: SignerFn) -> list[tuple[Script, bytes]]:
        """
        Ask ``signer`` for one signature per lock group.

        Raises:
            ConfigurationMismatchError: If no key can sign for a group
        """
        signatures = []
        for request in self.signing_requests():
            signature = signer(request.candidates, request.digest)
            if signature is None:
                raise ConfigurationMismatchError(
                    f"No key available to sign inputs locked by args 0x{request.lock.args.hex()}"
                )
            signatures.append((request.lock, signature))
        logger.debug(f"Signed {len(signatures)} lock group(s)")
        return signatures

    def add_signature(self, lock: Script, signature: bytes) -> None:
        self._check_mutable()
        if len(signature) != SIGNATURE_SIZE:
            raise ValueError(f"Invalid signature length: {len(signature)}")
        group = self.signatures.setdefault(lock, [])
        if signature not in group:
            group.append(signature)

    def _witness_lock(self, lock: Script) -> bytes:
        signatures = self.signatures.get(lock, [])
        if is_multisig_lock(lock):
            config = self._multisig_config_for(lock)
            if len(signatures) < config.threshold:
                raise ConfigurationMismatchError(
                    f"Multisig lock 0x{lock.args.hex()} has {len(signatures)} of "
                    f"{config.threshold} required signatures"
                )
            return config.to_witness_data() + b"".join(signatures[: config.threshold])

        if not signatures:
            raise ConfigurationMismatchError(f"Missing signature for lock args 0x{lock.args.hex()}")
        return signatures[0]

    def build_tx(self) -> Transaction:
        """Place signatures into witnesses and finalize."""
        tx = self.build_unsigned()
        for lock, indexes in self.lock_groups().items():
            tx.witnesses[indexes[0]] = WitnessArgs(lock=self._witness_lock(lock)).serialize()
        self.finalized = True
        return tx
