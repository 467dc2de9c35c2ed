"""
JSON-RPC node backend.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from cellwallet.backends.base import EpochInfo, LiveCell, NodeBackend
from cellwallet.chain.address import NetworkType
from cellwallet.chain.since import EpochNumberWithFraction
from cellwallet.chain.types import (
    CellOutput,
    OutPoint,
    Transaction,
    from_hex,
    parse_hex_int,
)
from cellwallet.errors import TransportError

# Timeout for regular RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0


class CkbRpcBackend(NodeBackend):
    """
    Node backend talking to a node's JSON-RPC endpoint.
    """

    def __init__(
        self, rpc_url: str = "http://127.0.0.1:8114", timeout: float = DEFAULT_RPC_TIMEOUT
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def _rpc_call(self, method: str, params: list | None = None) -> Any:
        """
        Make an RPC call to the node.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPC result

        Raises:
            TransportError: On RPC errors and connection/timeout errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise TransportError(f"RPC call timed out: {method}") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise TransportError(f"RPC call failed: {method}: {e}") from e

        if "error" in data and data["error"]:
            error_info = data["error"]
            error_code = error_info.get("code", "unknown")
            error_msg = error_info.get("message", str(error_info))
            raise TransportError(f"RPC error {error_code}: {error_msg}")

        return data.get("result")

    async def get_block_by_number(self, number: int) -> dict[str, Any] | None:
        return await self._rpc_call("get_block_by_number", [hex(number)])

    async def get_live_cell(self, out_point: OutPoint, with_data: bool) -> LiveCell | None:
        result = await self._rpc_call("get_live_cell", [out_point.to_json(), with_data])
        if not result or result.get("status") != "live":
            logger.debug(f"Cell {out_point} status: {result and result.get('status')}")
            return None

        cell = result["cell"]
        data = None
        if with_data and cell.get("data"):
            data = from_hex(cell["data"]["content"])
        return LiveCell(output=CellOutput.from_json(cell["output"]), data=data)

    async def send_transaction(self, tx: Transaction) -> bytes:
        result = await self._rpc_call("send_transaction", [tx.to_json(), "passthrough"])
        return from_hex(result)

    async def get_tip_epoch(self) -> EpochNumberWithFraction:
        header = await self._rpc_call("get_tip_header")
        return EpochNumberWithFraction.from_full_value(parse_hex_int(header["epoch"]))

    async def get_epoch_by_number(self, number: int) -> EpochInfo | None:
        result = await self._rpc_call("get_epoch_by_number", [hex(number)])
        if result is None:
            return None
        return EpochInfo(
            number=parse_hex_int(result["number"]),
            start_number=parse_hex_int(result["start_number"]),
            length=parse_hex_int(result["length"]),
        )

    async def get_network_type(self) -> NetworkType:
        info = await self._rpc_call("get_blockchain_info")
        return NetworkType.MAINNET if info.get("chain") == "ckb" else NetworkType.TESTNET

    async def close(self) -> None:
        await self.client.aclose()
