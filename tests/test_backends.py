"""
Tests for the JSON-RPC node backend (mocked transport).
"""

import json

import httpx
import pytest

from cellwallet.backends.ckb_rpc import CkbRpcBackend
from cellwallet.chain.address import NetworkType
from cellwallet.chain.since import EpochNumberWithFraction
from cellwallet.chain.types import OutPoint, Transaction, to_hex
from cellwallet.errors import TransportError

LOCK_JSON = {
    "code_hash": "0x9bd7e06f3ecf4be0f2fcd2188b23f1b9fcc88e5d4b65a8637b17723bbda3cce8",
    "hash_type": "type",
    "args": "0x" + "01" * 20,
}


def make_backend(results: dict, requests: list | None = None) -> CkbRpcBackend:
    """Backend whose RPC calls are answered from ``results`` by method name."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if requests is not None:
            requests.append(payload)
        result = results[payload["method"]]
        if isinstance(result, Exception):
            raise result
        if isinstance(result, dict) and "error" in result:
            return httpx.Response(200, json={"id": payload["id"], "error": result["error"]})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    backend = CkbRpcBackend(rpc_url="http://node:8114/")
    backend.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return backend


class TestCkbRpcBackend:
    def test_init(self):
        backend = CkbRpcBackend(rpc_url="http://127.0.0.1:8114/")
        assert backend.rpc_url == "http://127.0.0.1:8114"

    @pytest.mark.asyncio
    async def test_get_live_cell(self):
        requests: list = []
        backend = make_backend(
            {
                "get_live_cell": {
                    "status": "live",
                    "cell": {
                        "output": {"capacity": "0x174876e800", "lock": LOCK_JSON, "type": None},
                        "data": {"content": "0xabcd", "hash": "0x" + "00" * 32},
                    },
                }
            },
            requests,
        )
        try:
            cell = await backend.get_live_cell(OutPoint(b"\x01" * 32, 2), with_data=True)
        finally:
            await backend.close()

        assert cell is not None
        assert cell.output.capacity == 100_000_000_000
        assert cell.output.lock.args == b"\x01" * 20
        assert cell.data == b"\xab\xcd"
        assert requests[0]["params"] == [{"tx_hash": to_hex(b"\x01" * 32), "index": "0x2"}, True]

    @pytest.mark.asyncio
    async def test_dead_cell(self):
        backend = make_backend({"get_live_cell": {"status": "dead", "cell": None}})
        try:
            assert await backend.get_live_cell(OutPoint(b"\x01" * 32, 0), with_data=False) is None
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_send_transaction(self):
        requests: list = []
        backend = make_backend({"send_transaction": "0x" + "ee" * 32}, requests)
        try:
            tx_hash = await backend.send_transaction(Transaction())
        finally:
            await backend.close()

        assert tx_hash == b"\xee" * 32
        assert requests[0]["params"][1] == "passthrough"
        assert requests[0]["params"][0]["version"] == "0x0"

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        backend = make_backend(
            {"send_transaction": {"error": {"code": -301, "message": "TransactionFailedToResolve"}}}
        )
        try:
            with pytest.raises(TransportError, match="-301"):
                await backend.send_transaction(Transaction())
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        backend = make_backend({"get_tip_header": httpx.ConnectError("refused")})
        try:
            with pytest.raises(TransportError, match="get_tip_header"):
                await backend.get_tip_epoch()
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_network_detection(self):
        for chain, expected in (("ckb", NetworkType.MAINNET), ("ckb_testnet", NetworkType.TESTNET)):
            backend = make_backend({"get_blockchain_info": {"chain": chain}})
            try:
                assert await backend.get_network_type() == expected
            finally:
                await backend.close()

    @pytest.mark.asyncio
    async def test_max_mature_number(self):
        tip = EpochNumberWithFraction(10, 500, 1000)
        backend = make_backend(
            {
                "get_tip_header": {"epoch": hex(tip.full_value())},
                "get_epoch_by_number": {
                    "number": "0x6",
                    "start_number": hex(6000),
                    "length": hex(1000),
                },
            }
        )
        try:
            assert await backend.get_max_mature_number() == 6499
        finally:
            await backend.close()

    @pytest.mark.asyncio
    async def test_genesis_info(self):
        backend = make_backend(
            {
                "get_block_by_number": {
                    "header": {"hash": "0x" + "11" * 32},
                    "transactions": [{"hash": "0x" + "22" * 32}, {"hash": "0x" + "33" * 32}],
                }
            }
        )
        try:
            info = await backend.get_genesis_info()
        finally:
            await backend.close()
        assert info.multisig_dep.out_point == OutPoint(b"\x33" * 32, 1)


class TestNodeBackendDefaults:
    @pytest.mark.asyncio
    async def test_young_chain_has_no_mature_cellbase(self, backend):
        backend.tip_epoch = EpochNumberWithFraction(2, 0, 1000)
        assert await backend.get_max_mature_number() == 0

    @pytest.mark.asyncio
    async def test_missing_epoch(self, backend):
        backend.epochs = {}
        with pytest.raises(TransportError, match="Can not get epoch 6"):
            await backend.get_max_mature_number()
