"""
Cell, script and transaction types with their molecule serialization
and JSON-RPC representation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from cellwallet.chain.hashing import ckb_hash
from cellwallet.chain.molecule import (
    pack_u32,
    pack_u64,
    serialize_bytes,
    serialize_dynvec,
    serialize_fixvec,
    serialize_option,
    serialize_table,
    table_fields,
    unpack_u32,
)


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def from_hex(value: str) -> bytes:
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)


def hex_u64(value: int) -> str:
    return hex(value)


def parse_hex_int(value: str | int) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


class ScriptHashType(IntEnum):
    DATA = 0
    TYPE = 1
    DATA1 = 2

    @classmethod
    def from_json(cls, value: str) -> ScriptHashType:
        try:
            return cls[value.upper()]
        except KeyError as e:
            raise ValueError(f"Unknown script hash type: {value}") from e

    def to_json(self) -> str:
        return self.name.lower()


class DepType(IntEnum):
    CODE = 0
    DEP_GROUP = 1

    def to_json(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Script:
    code_hash: bytes
    hash_type: ScriptHashType
    args: bytes = b""

    def serialize(self) -> bytes:
        return serialize_table(
            [self.code_hash, bytes([self.hash_type]), serialize_bytes(self.args)]
        )

    def calc_script_hash(self) -> bytes:
        """The lock identity of cells owned by this script."""
        return ckb_hash(self.serialize())

    def to_json(self) -> dict[str, str]:
        return {
            "code_hash": to_hex(self.code_hash),
            "hash_type": self.hash_type.to_json(),
            "args": to_hex(self.args),
        }

    @classmethod
    def from_json(cls, data: dict[str, str]) -> Script:
        return cls(
            code_hash=from_hex(data["code_hash"]),
            hash_type=ScriptHashType.from_json(data["hash_type"]),
            args=from_hex(data["args"]),
        )


@dataclass(frozen=True)
class OutPoint:
    tx_hash: bytes
    index: int

    def serialize(self) -> bytes:
        return self.tx_hash + pack_u32(self.index)

    def to_json(self) -> dict[str, str]:
        return {"tx_hash": to_hex(self.tx_hash), "index": hex(self.index)}

    @classmethod
    def from_json(cls, data: dict[str, str]) -> OutPoint:
        return cls(tx_hash=from_hex(data["tx_hash"]), index=parse_hex_int(data["index"]))

    def __str__(self) -> str:
        return f"{to_hex(self.tx_hash)}:{self.index}"


@dataclass(frozen=True)
class CellOutput:
    capacity: int
    lock: Script
    type_: Script | None = None

    def serialize(self) -> bytes:
        type_bytes = self.type_.serialize() if self.type_ is not None else None
        return serialize_table(
            [pack_u64(self.capacity), self.lock.serialize(), serialize_option(type_bytes)]
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "capacity": hex_u64(self.capacity),
            "lock": self.lock.to_json(),
            "type": self.type_.to_json() if self.type_ is not None else None,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> CellOutput:
        type_json = data.get("type")
        return cls(
            capacity=parse_hex_int(data["capacity"]),
            lock=Script.from_json(data["lock"]),
            type_=Script.from_json(type_json) if type_json else None,
        )


@dataclass(frozen=True)
class CellInput:
    previous_output: OutPoint
    since: int = 0

    def serialize(self) -> bytes:
        return pack_u64(self.since) + self.previous_output.serialize()

    def to_json(self) -> dict[str, Any]:
        return {"previous_output": self.previous_output.to_json(), "since": hex_u64(self.since)}


@dataclass(frozen=True)
class CellDep:
    out_point: OutPoint
    dep_type: DepType = DepType.DEP_GROUP

    def serialize(self) -> bytes:
        return self.out_point.serialize() + bytes([self.dep_type])

    def to_json(self) -> dict[str, Any]:
        return {"out_point": self.out_point.to_json(), "dep_type": self.dep_type.to_json()}


@dataclass
class WitnessArgs:
    lock: bytes | None = None
    input_type: bytes | None = None
    output_type: bytes | None = None

    def serialize(self) -> bytes:
        return serialize_table(
            [
                serialize_option(serialize_bytes(self.lock) if self.lock is not None else None),
                serialize_option(
                    serialize_bytes(self.input_type) if self.input_type is not None else None
                ),
                serialize_option(
                    serialize_bytes(self.output_type) if self.output_type is not None else None
                ),
            ]
        )

    @classmethod
    def deserialize(cls, data: bytes) -> WitnessArgs:
        fields = table_fields(data)
        if len(fields) != 3:
            raise ValueError(f"WitnessArgs expects 3 fields, got {len(fields)}")

        def _opt_bytes(raw: bytes) -> bytes | None:
            if not raw:
                return None
            size = unpack_u32(raw, 0)
            return raw[4 : 4 + size]

        return cls(*(_opt_bytes(f) for f in fields))


@dataclass
class Transaction:
    """A (possibly unsigned) transaction."""

    version: int = 0
    cell_deps: list[CellDep] = field(default_factory=list)
    header_deps: list[bytes] = field(default_factory=list)
    inputs: list[CellInput] = field(default_factory=list)
    outputs: list[CellOutput] = field(default_factory=list)
    outputs_data: list[bytes] = field(default_factory=list)
    witnesses: list[bytes] = field(default_factory=list)

    def serialize_raw(self) -> bytes:
        return serialize_table(
            [
                pack_u32(self.version),
                serialize_fixvec([dep.serialize() for dep in self.cell_deps]),
                serialize_fixvec(self.header_deps),
                serialize_fixvec([inp.serialize() for inp in self.inputs]),
                serialize_dynvec([out.serialize() for out in self.outputs]),
                serialize_dynvec([serialize_bytes(d) for d in self.outputs_data]),
            ]
        )

    def serialize(self) -> bytes:
        return serialize_table(
            [self.serialize_raw(), serialize_dynvec([serialize_bytes(w) for w in self.witnesses])]
        )

    def hash(self) -> bytes:
        """Transaction hash (witnesses excluded)."""
        return ckb_hash(self.serialize_raw())

    def to_json(self) -> dict[str, Any]:
        return {
            "version": hex(self.version),
            "cell_deps": [dep.to_json() for dep in self.cell_deps],
            "header_deps": [to_hex(h) for h in self.header_deps],
            "inputs": [inp.to_json() for inp in self.inputs],
            "outputs": [out.to_json() for out in self.outputs],
            "outputs_data": [to_hex(d) for d in self.outputs_data],
            "witnesses": [to_hex(w) for w in self.witnesses],
        }
