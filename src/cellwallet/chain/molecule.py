"""
Molecule serialization helpers.

Only the primitives needed to serialize transactions are implemented:
fixed integers, byte vectors, fixvec/dynvec, tables and options.
"""

from __future__ import annotations

import struct
from collections.abc import Sequence


def pack_u32(value: int) -> bytes:
    return struct.pack("<I", value)


def pack_u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def unpack_u32(data: bytes, offset: int = 0) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def serialize_bytes(data: bytes) -> bytes:
    """Bytes is a fixvec<byte>: item count followed by the items."""
    return pack_u32(len(data)) + data


def serialize_fixvec(items: Sequence[bytes]) -> bytes:
    """Fixvec of fixed-size items (structs, Byte32)."""
    return pack_u32(len(items)) + b"".join(items)


def _serialize_offsets(fields: Sequence[bytes]) -> bytes:
    header_size = 4 + 4 * len(fields)
    total_size = header_size + sum(len(f) for f in fields)

    result = pack_u32(total_size)
    offset = header_size
    for field in fields:
        result += pack_u32(offset)
        offset += len(field)
    return result + b"".join(fields)


def serialize_dynvec(items: Sequence[bytes]) -> bytes:
    """Dynvec of variable-size items (tables, Bytes)."""
    if not items:
        return pack_u32(4)
    return _serialize_offsets(items)


def serialize_table(fields: Sequence[bytes]) -> bytes:
    return _serialize_offsets(fields)


def serialize_option(item: bytes | None) -> bytes:
    return b"" if item is None else item


def table_fields(data: bytes) -> list[bytes]:
    """Split a serialized table into its raw field slices."""
    total_size = unpack_u32(data, 0)
    if total_size != len(data):
        raise ValueError(f"Table size mismatch: header {total_size}, actual {len(data)}")
    if total_size == 4:
        return []

    first_offset = unpack_u32(data, 4)
    count = first_offset // 4 - 1
    offsets = [unpack_u32(data, 4 + 4 * i) for i in range(count)] + [total_size]
    return [data[offsets[i] : offsets[i + 1]] for i in range(count)]
