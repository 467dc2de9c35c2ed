"""
Transfer orchestration: select funds, assemble, sign and submit.

States:
    VALIDATING -> RESOLVING_IDENTITIES -> SEARCHING_FUNDS -> BALANCING
    -> SIGNING_INPUTS -> FINALIZING -> SUBMITTED
with FAILED reachable from every state. Nothing leaves the process
before FINALIZING broadcasts the signed transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from coincurve import PrivateKey
from loguru import logger

from cellwallet.backends.base import LiveCell, NodeBackend
from cellwallet.chain.address import Address, AddressError, NetworkType
from cellwallet.chain.capacity import CapacityParseError, format_capacity, parse_capacity
from cellwallet.chain.types import CellOutput, OutPoint, Script, Transaction, from_hex, to_hex
from cellwallet.config import TransferLimits
from cellwallet.constants import (
    DEFAULT_RECEIVING_ADDRESS_LENGTH,
    LOCK_ARG_SIZE,
    LOCKED_ARG_SIZE,
    ONE_CKB,
)
from cellwallet.errors import (
    ConfigurationMismatchError,
    ConsistencyError,
    FeeExceedsCeilingError,
    InputValidationError,
    InsufficientFundsError,
    TransportError,
)
from cellwallet.index.base import CellIndex, SearchKey
from cellwallet.index.policies import FundingSelector
from cellwallet.wallet.bip32 import privkey_lock_arg
from cellwallet.wallet.derivation import AddressDerivationExpander
from cellwallet.wallet.keystore import KeyStore
from cellwallet.wallet.locked import LockedSource, bind_locked_source, validate_locked_address
from cellwallet.wallet.signer import (
    KeyStoreCapability,
    PrivateKeyCapability,
    SignerBridge,
)
from cellwallet.wallet.tx_helper import PendingTransaction


class TransferState(str, Enum):
    VALIDATING = "validating"
    RESOLVING_IDENTITIES = "resolving_identities"
    SEARCHING_FUNDS = "searching_funds"
    BALANCING = "balancing"
    SIGNING_INPUTS = "signing_inputs"
    FINALIZING = "finalizing"
    SUBMITTED = "submitted"
    FAILED = "failed"


@dataclass
class TransferArgs:
    """Transfer request as given by the user (amounts in CKB text)."""

    to_address: str
    capacity: str
    tx_fee: str
    privkey: str | None = None
    from_account: str | None = None
    from_locked_address: str | None = None
    password: str | None = None
    derive_receiving_address_length: int = DEFAULT_RECEIVING_ADDRESS_LENGTH
    derive_change_address: str | None = None
    to_data: bytes = b""


@dataclass
class ValidatedTransfer:
    from_lock_arg: bytes
    to_address: Address
    to_capacity: int
    tx_fee: int
    to_data: bytes
    receiving_address_length: int
    privkey: PrivateKey | None = None
    password: str = ""
    change_address: Address | None = None
    locked_source: LockedSource | None = None


@dataclass
class FundingIdentities:
    """Lock hashes to search, in order, plus what signing needs later."""

    lock_hashes: list[bytes]
    change_lock: Script
    path_map: dict[bytes, str] = field(default_factory=dict)


def check_capacity(capacity: int, data_len: int, min_cell_capacity: int) -> None:
    if capacity < min_cell_capacity:
        raise InputValidationError(f"Capacity can not less than {min_cell_capacity} shannons")
    if capacity < min_cell_capacity + data_len * ONE_CKB:
        raise InputValidationError(f"Capacity can not hold {data_len} bytes of data")


def parse_lock_arg(text: str, network: NetworkType) -> bytes:
    """Accept a 20-byte hex lock arg or a sighash address."""
    try:
        lock_arg = from_hex(text)
        if len(lock_arg) == LOCK_ARG_SIZE:
            return lock_arg
    except ValueError:
        pass

    try:
        address = Address.parse(text, network)
    except AddressError as e:
        raise InputValidationError(f"Invalid account {text!r}: {e}") from e
    if not address.is_sighash():
        raise InputValidationError(f"Account address must be a single key address: {text}")
    return address.args


def is_valid_destination(address: Address) -> bool:
    if address.is_sighash():
        return True
    return address.is_multisig() and len(address.args) in (LOCK_ARG_SIZE, LOCKED_ARG_SIZE)


class TransferOrchestrator:
    """
    Runs one transfer at a time.

    Owns the funding selector state and the live cell cache of a run, so
    concurrent transfers from the same identity must use separate
    orchestrators.
    """

    def __init__(
        self,
        backend: NodeBackend,
        index: CellIndex,
        network: NetworkType,
        key_store: KeyStore | None = None,
        limits: TransferLimits | None = None,
    ):
        self.backend = backend
        self.index = index
        self.network = network
        self.key_store = key_store
        self.limits = limits or TransferLimits()

        self.state = TransferState.VALIDATING
        self.failure_reason: str | None = None
        self._cell_cache: dict[tuple[OutPoint, bool], LiveCell] = {}

    def _enter(self, state: TransferState) -> None:
        self.state = state
        logger.info(f"Transfer state: {state.value}")

    async def transfer(self, args: TransferArgs, skip_check: bool = False) -> Transaction:
        """
        Build, sign and broadcast a transfer.

        Returns:
            The broadcast transaction

        Raises:
            WalletError: Any failure; ``state`` is left at FAILED
        """
        self._cell_cache = {}
        self.failure_reason = None
        try:
            self._enter(TransferState.VALIDATING)
            request = self.validate(args)

            self._enter(TransferState.RESOLVING_IDENTITIES)
            genesis_info = await self.backend.get_genesis_info()
            helper = PendingTransaction(genesis_info)
            identities = self.resolve_identities(request, helper)

            self._enter(TransferState.SEARCHING_FUNDS)
            selector = await self.search_funds(request, identities)

            self._enter(TransferState.BALANCING)
            await self.balance(request, identities, selector, helper, skip_check)

            self._enter(TransferState.SIGNING_INPUTS)
            signer = self.build_signer(request, identities)
            for lock, signature in helper.sign_inputs(signer):
                helper.add_signature(lock, signature)

            self._enter(TransferState.FINALIZING)
            tx = await self.finalize(helper)

            self._enter(TransferState.SUBMITTED)
            return tx
        except Exception as e:
            failed_in = self.state
            self.state = TransferState.FAILED
            self.failure_reason = str(e)
            logger.error(f"Transfer failed while {failed_in.value}: {e}")
            raise

    def validate(self, args: TransferArgs) -> ValidatedTransfer:
        if (args.privkey is None) == (args.from_account is None):
            raise InputValidationError("Exactly one of privkey or from-account is required")
        if args.privkey is not None and args.derive_change_address is not None:
            raise InputValidationError("derive-change-address can not be used with privkey")
        if args.derive_receiving_address_length < 0:
            raise InputValidationError("derive-receiving-address-length must not be negative")

        privkey = None
        password = ""
        if args.privkey is not None:
            try:
                privkey = PrivateKey(from_hex(args.privkey.strip()))
            except ValueError as e:
                raise InputValidationError(f"Invalid private key: {e}") from e
            from_lock_arg = privkey_lock_arg(privkey)
        else:
            from_lock_arg = parse_lock_arg(args.from_account or "", self.network)
            if args.password is None:
                raise InputValidationError("Password is required for from-account")
            if self.key_store is None:
                raise InputValidationError("A key store is required for from-account")
            password = args.password

        locked_source = None
        if args.from_locked_address is not None:
            locked_source = validate_locked_address(self._parse_address(args.from_locked_address))

        change_address = None
        if args.derive_change_address is not None:
            change_address = self._parse_address(args.derive_change_address)
            if not change_address.is_sighash():
                raise InputValidationError(
                    f"derive-change-address must be a single key address: {change_address}"
                )

        to_address = self._parse_address(args.to_address)
        if not is_valid_destination(to_address):
            raise InputValidationError(f"Invalid to-address: {to_address}")

        try:
            to_capacity = parse_capacity(args.capacity)
            tx_fee = parse_capacity(args.tx_fee)
        except CapacityParseError as e:
            raise InputValidationError(str(e)) from e
        check_capacity(to_capacity, len(args.to_data), self.limits.min_cell_capacity)

        return ValidatedTransfer(
            from_lock_arg=from_lock_arg,
            to_address=to_address,
            to_capacity=to_capacity,
            tx_fee=tx_fee,
            to_data=args.to_data,
            receiving_address_length=args.derive_receiving_address_length,
            privkey=privkey,
            password=password,
            change_address=change_address,
            locked_source=locked_source,
        )

    def _parse_address(self, text: str) -> Address:
        try:
            return Address.parse(text, self.network)
        except AddressError as e:
            raise InputValidationError(f"Invalid address {text!r}: {e}") from e

    def resolve_identities(
        self, request: ValidatedTransfer, helper: PendingTransaction
    ) -> FundingIdentities:
        from_address = Address.from_lock_arg(self.network, request.from_lock_arg)
        identities = FundingIdentities(
            lock_hashes=[from_address.lock_hash], change_lock=from_address.script
        )

        if request.change_address is not None and self.key_store is not None:
            expander = AddressDerivationExpander(
                self.key_store,
                request.from_lock_arg,
                request.password,
                max_search_depth=self.limits.derive_change_max_len,
            )
            key_set = expander.expand_to_change(
                request.receiving_address_length, request.change_address.args
            )
            identities.path_map = key_set.path_map()
            for lock_arg in key_set.lock_args():
                identities.lock_hashes.append(
                    Address.from_lock_arg(self.network, lock_arg).lock_hash
                )
            identities.change_lock = request.change_address.script
            logger.info(f"Searching {len(identities.lock_hashes)} derived lock hashes")

        if request.locked_source is not None:
            config = bind_locked_source(
                request.locked_source, [request.from_lock_arg, *identities.path_map]
            )
            helper.add_multisig_config(config)
            identities.lock_hashes.insert(0, request.locked_source.lock_hash)

        return identities

    async def search_funds(
        self, request: ValidatedTransfer, identities: FundingIdentities
    ) -> FundingSelector:
        max_mature_number = await self.backend.get_max_mature_number()
        selector = FundingSelector(request.to_capacity + request.tx_fee, max_mature_number)

        for lock_hash in identities.lock_hashes:
            if selector.satisfied:
                break
            self.index.scan(SearchKey.lock(lock_hash), selector)

        logger.info(
            f"Selected {len(selector.cells)} cells, {format_capacity(selector.capacity)}"
        )
        if not selector.satisfied:
            from_address = Address.from_lock_arg(self.network, request.from_lock_arg)
            raise InsufficientFundsError(
                f"Capacity(mature) not enough: {from_address} => "
                f"{format_capacity(selector.capacity)}"
            )
        return selector

    async def balance(
        self,
        request: ValidatedTransfer,
        identities: FundingIdentities,
        selector: FundingSelector,
        helper: PendingTransaction,
        skip_check: bool,
    ) -> None:
        fee_ceiling = self.limits.fee_ceiling
        if request.tx_fee > fee_ceiling:
            raise FeeExceedsCeilingError(
                f"Transaction fee can not be more than {format_capacity(fee_ceiling)}"
            )

        rest_capacity = selector.capacity - request.to_capacity - request.tx_fee
        below_floor = rest_capacity < self.limits.min_cell_capacity
        if below_floor and request.tx_fee + rest_capacity > fee_ceiling:
            raise FeeExceedsCeilingError(
                f"Transaction fee can not be more than {format_capacity(fee_ceiling)}, "
                "please change to-capacity value to adjust"
            )

        for info in selector.cells:
            cell = await self.get_live_cell(info.out_point(), with_data=False)
            helper.add_input(info.out_point(), cell.output, skip_check)

        helper.add_output(
            CellOutput(capacity=request.to_capacity, lock=request.to_address.script),
            request.to_data,
        )
        if rest_capacity >= self.limits.min_cell_capacity:
            helper.add_output(CellOutput(capacity=rest_capacity, lock=identities.change_lock))
        elif rest_capacity > 0:
            logger.info(f"Change {format_capacity(rest_capacity)} is added to the fee")

    async def get_live_cell(self, out_point: OutPoint, with_data: bool) -> LiveCell:
        key = (out_point, with_data)
        if key not in self._cell_cache:
            cell = await self.backend.get_live_cell(out_point, with_data)
            if cell is None:
                raise TransportError(f"Cell {out_point} is not live anymore")
            self._cell_cache[key] = cell
        return self._cell_cache[key]

    def build_signer(
        self, request: ValidatedTransfer, identities: FundingIdentities
    ) -> SignerBridge:
        if request.privkey is not None:
            return SignerBridge(PrivateKeyCapability(request.privkey), request.from_lock_arg)

        if self.key_store is None:
            raise ConfigurationMismatchError("A key store is required to sign for an account")
        capability = KeyStoreCapability(self.key_store, request.from_lock_arg, request.password)
        return SignerBridge(capability, request.from_lock_arg, identities.path_map)

    async def finalize(self, helper: PendingTransaction) -> Transaction:
        tx = helper.build_tx()
        tx_hash = tx.hash()
        logger.info(f"Sending transaction {to_hex(tx_hash)}")

        try:
            sent_hash = await self.backend.send_transaction(tx)
        except TransportError as e:
            raise TransportError(f"Send transaction error: {e}") from e

        if sent_hash != tx_hash:
            raise ConsistencyError(
                f"Node returned transaction hash {to_hex(sent_hash)}, expected {to_hex(tx_hash)}"
            )
        return tx
