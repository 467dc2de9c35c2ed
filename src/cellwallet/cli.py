"""
Cell wallet CLI - transfer capacity and inspect balances.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import typer
from coincurve import PublicKey
from loguru import logger

from cellwallet.backends.base import NodeBackend
from cellwallet.backends.ckb_rpc import CkbRpcBackend
from cellwallet.chain.address import Address, AddressError, NetworkType
from cellwallet.chain.types import from_hex, to_hex
from cellwallet.config import Settings, get_settings
from cellwallet.constants import (
    DEFAULT_CHANGE_ADDRESS_LENGTH,
    DEFAULT_RECEIVING_ADDRESS_LENGTH,
    HASH_SIZE,
)
from cellwallet.errors import InputValidationError, WalletError
from cellwallet.index.base import CellIndex, SearchKey, SearchKind
from cellwallet.index.memory import MemoryCellIndex
from cellwallet.index.policies import TopNRanker
from cellwallet.wallet.bip32 import pubkey_lock_arg
from cellwallet.wallet.keystore import MnemonicKeyStore
from cellwallet.wallet.service import WalletService
from cellwallet.wallet.transfer import TransferArgs, TransferOrchestrator

app = typer.Typer(
    name="cellwallet",
    help="Cell wallet: transfers and balance queries",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def load_index(index_snapshot: Path | None, settings: Settings) -> CellIndex:
    path = index_snapshot or settings.index_snapshot
    if path is None:
        raise InputValidationError(
            "Index snapshot required. Use --index-snapshot or CELLWALLET_INDEX_SNAPSHOT"
        )
    if not path.exists():
        raise InputValidationError(f"Index snapshot not found: {path}")
    return MemoryCellIndex.from_file(path)


def create_backend(rpc_url: str | None, settings: Settings) -> CkbRpcBackend:
    return CkbRpcBackend(rpc_url=rpc_url or settings.rpc_url, timeout=settings.rpc_timeout)


def read_secret_file(path: Path, what: str) -> str:
    if not path.exists():
        raise InputValidationError(f"{what} file not found: {path}")
    return path.read_text().strip()


def parse_script_hash(text: str, what: str) -> bytes:
    try:
        value = from_hex(text)
    except ValueError as e:
        raise InputValidationError(f"Invalid {what} {text!r}: {e}") from e
    if len(value) != HASH_SIZE:
        raise InputValidationError(f"Invalid {what} length: {len(value)}")
    return value


def resolve_lock_hash(
    network: NetworkType,
    lock_hash: str | None,
    address: str | None,
    pubkey: str | None,
    lock_arg: str | None,
) -> bytes:
    """Turn exactly one of the identity options into a lock hash."""
    given = [value for value in (lock_hash, address, pubkey, lock_arg) if value is not None]
    if len(given) != 1:
        raise InputValidationError(
            "Exactly one of --lock-hash, --address, --pubkey or --lock-arg is required"
        )

    try:
        if lock_hash is not None:
            value = from_hex(lock_hash)
            if len(value) != HASH_SIZE:
                raise InputValidationError(f"Invalid lock hash length: {len(value)}")
            return value
        if address is not None:
            return Address.parse(address, network).lock_hash
        if pubkey is not None:
            arg = pubkey_lock_arg(PublicKey(from_hex(pubkey)).format(compressed=True))
            return Address.from_lock_arg(network, arg).lock_hash
        return Address.from_lock_arg(network, from_hex(lock_arg or "")).lock_hash
    except (AddressError, ValueError) as e:
        raise InputValidationError(f"Invalid identity: {e}") from e


def run(coro: Any) -> Any:
    """Run a command coroutine, turning wallet errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except WalletError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e


async def _with_backend(backend: NodeBackend, coro: Any) -> Any:
    try:
        return await coro
    finally:
        await backend.close()


@app.command()
def transfer(
    to_address: str = typer.Option(..., "--to-address", help="Target address"),
    capacity: str = typer.Option(..., "--capacity", help="Amount to send in CKB, e.g. 61.5"),
    tx_fee: str = typer.Option(..., "--tx-fee", help="Transaction fee in CKB"),
    privkey_path: Path | None = typer.Option(
        None, "--privkey-path", help="File holding a hex private key"
    ),
    from_account: str | None = typer.Option(
        None, "--from-account", help="Account lock arg or address (defaults to the mnemonic's)"
    ),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Mnemonic of the account key store"
    ),
    from_locked_address: str | None = typer.Option(
        None, "--from-locked-address", help="Time-locked multisig address to spend from"
    ),
    to_data: str | None = typer.Option(None, "--to-data", help="Hex data of the target cell"),
    to_data_path: Path | None = typer.Option(
        None, "--to-data-path", help="File whose bytes become the target cell data"
    ),
    derive_receiving_address_length: int = typer.Option(
        DEFAULT_RECEIVING_ADDRESS_LENGTH, "--derive-receiving-address-length"
    ),
    derive_change_address: str | None = typer.Option(
        None, "--derive-change-address", help="Last HD change address, enables HD funding"
    ),
    skip_check: bool = typer.Option(False, "--skip-check", help="Accept any input lock script"),
    index_snapshot: Path | None = typer.Option(None, "--index-snapshot", "-i"),
    rpc_url: str | None = typer.Option(None, "--rpc-url"),
    debug: bool = typer.Option(False, "--debug", help="Print the whole transaction"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Transfer capacity to an address."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    if to_data is not None and to_data_path is not None:
        logger.error("Use only one of --to-data and --to-data-path")
        raise typer.Exit(1)

    try:
        data = b""
        if to_data is not None:
            data = from_hex(to_data)
        elif to_data_path is not None:
            data = to_data_path.read_bytes()

        privkey = read_secret_file(privkey_path, "Private key") if privkey_path else None

        key_store = None
        password = None
        if mnemonic_file is not None:
            mnemonic = read_secret_file(mnemonic_file, "Mnemonic")
            password = typer.prompt("Password", hide_input=True)
            key_store = MnemonicKeyStore()
            account = key_store.import_mnemonic(mnemonic, password)
            if from_account is None:
                from_account = to_hex(account)

        index = load_index(index_snapshot, settings)
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        raise typer.Exit(1) from e
    except WalletError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e

    args = TransferArgs(
        to_address=to_address,
        capacity=capacity,
        tx_fee=tx_fee,
        privkey=privkey,
        from_account=from_account,
        from_locked_address=from_locked_address,
        password=password,
        derive_receiving_address_length=derive_receiving_address_length,
        derive_change_address=derive_change_address,
        to_data=data,
    )

    async def _transfer() -> None:
        backend = create_backend(rpc_url, settings)

        async def _run() -> None:
            network = await backend.get_network_type()
            orchestrator = TransferOrchestrator(
                backend, index, network, key_store, settings.transfer_limits()
            )
            tx = await orchestrator.transfer(args, skip_check=skip_check)
            if debug:
                print_json(tx.to_json())
            else:
                print(to_hex(tx.hash()))

        await _with_backend(backend, _run())

    run(_transfer())


@app.command("get-capacity")
def get_capacity(
    lock_hash: str | None = typer.Option(None, "--lock-hash"),
    address: str | None = typer.Option(None, "--address"),
    pubkey: str | None = typer.Option(None, "--pubkey"),
    lock_arg: str | None = typer.Option(None, "--lock-arg"),
    derived: bool = typer.Option(
        False, "--derived", help="Include derived keys of the mnemonic account"
    ),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    derive_receiving_address_length: int = typer.Option(
        DEFAULT_RECEIVING_ADDRESS_LENGTH, "--derive-receiving-address-length"
    ),
    derive_change_address_length: int = typer.Option(
        DEFAULT_CHANGE_ADDRESS_LENGTH, "--derive-change-address-length"
    ),
    index_snapshot: Path | None = typer.Option(None, "--index-snapshot", "-i"),
    rpc_url: str | None = typer.Option(None, "--rpc-url"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show the capacity owned by a lock (or an HD account)."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    async def _get_capacity() -> None:
        index = load_index(index_snapshot, settings)
        backend = create_backend(rpc_url, settings)

        async def _run() -> None:
            network = await backend.get_network_type()
            service = WalletService(backend, index, network)

            if derived:
                if mnemonic_file is None:
                    raise InputValidationError("--derived requires --mnemonic-file")
                password = typer.prompt("Password", hide_input=True)
                key_store = MnemonicKeyStore()
                account = key_store.import_mnemonic(
                    read_secret_file(mnemonic_file, "Mnemonic"), password
                )
                lock_hashes = service.derived_lock_hashes(
                    key_store,
                    account,
                    password,
                    derive_receiving_address_length,
                    derive_change_address_length,
                )
            else:
                lock_hashes = [resolve_lock_hash(network, lock_hash, address, pubkey, lock_arg)]

            summary = await service.get_capacity(lock_hashes)
            print_json(summary.to_json())

        await _with_backend(backend, _run())

    run(_get_capacity())


@app.command("get-live-cells")
def get_live_cells(
    lock_hash: str | None = typer.Option(None, "--lock-hash"),
    type_hash: str | None = typer.Option(None, "--type-hash"),
    code_hash: str | None = typer.Option(None, "--code-hash"),
    address: str | None = typer.Option(None, "--address"),
    limit: int = typer.Option(15, "--limit", min=1),
    from_number: int | None = typer.Option(None, "--from"),
    to_number: int | None = typer.Option(None, "--to"),
    fast_mode: bool = typer.Option(False, "--fast-mode", help="Stop at the window boundary"),
    index_snapshot: Path | None = typer.Option(None, "--index-snapshot", "-i"),
    rpc_url: str | None = typer.Option(None, "--rpc-url"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """List live cells of a lock, type or code hash."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    async def _get_live_cells() -> None:
        index = load_index(index_snapshot, settings)
        backend = create_backend(rpc_url, settings)

        async def _run() -> None:
            network = await backend.get_network_type()
            if lock_hash is not None or address is not None:
                key = SearchKey.lock(resolve_lock_hash(network, lock_hash, address, None, None))
            elif type_hash is not None:
                key = SearchKey(SearchKind.TYPE, parse_script_hash(type_hash, "type hash"))
            elif code_hash is not None:
                key = SearchKey(SearchKind.CODE, parse_script_hash(code_hash, "code hash"))
            else:
                raise InputValidationError(
                    "lock-hash or type-hash or code-hash or address is required"
                )

            service = WalletService(backend, index, network)
            page = await service.get_live_cells(key, limit, from_number, to_number, fast_mode)
            print_json(page.to_json())

        await _with_backend(backend, _run())

    run(_get_live_cells())


@app.command("top-capacity")
def top_capacity(
    number: int = typer.Option(10, "--number", "-n", min=1, help="How many holders to show"),
    network: NetworkType = typer.Option(NetworkType.MAINNET, "--network"),
    index_snapshot: Path | None = typer.Option(None, "--index-snapshot", "-i"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show the lock hashes owning the most capacity."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    try:
        index = load_index(index_snapshot, settings)
    except WalletError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e

    holders = TopNRanker(index, network).rank(number)
    print_json([holder.to_json() for holder in holders])


@app.command("db-metrics", hidden=True)
def db_metrics(
    index_snapshot: Path | None = typer.Option(None, "--index-snapshot", "-i"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show index database metrics."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    try:
        index = load_index(index_snapshot, settings)
    except WalletError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e
    print_json(index.get_metrics())


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
