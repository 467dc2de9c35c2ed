"""
Address encoding and decoding (bech32 / bech32m payloads).

Payload formats:
- 0x00: full format, bech32m: code_hash | hash_type | args
- 0x01: short format, bech32: code_hash_index | args (20 bytes)
- 0x02 / 0x04: deprecated full format (data / type), bech32: code_hash | args
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cellwallet.chain.types import Script, ScriptHashType
from cellwallet.constants import LOCK_ARG_SIZE, MULTISIG_TYPE_HASH, SIGHASH_TYPE_HASH

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3

FULL_FORMAT = 0x00
SHORT_FORMAT = 0x01
FULL_DATA_FORMAT = 0x02
FULL_TYPE_FORMAT = 0x04

SHORT_CODE_HASHES = {
    0x00: SIGHASH_TYPE_HASH,
    0x01: MULTISIG_TYPE_HASH,
}


class AddressError(ValueError):
    pass


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"

    @property
    def hrp(self) -> str:
        return "ckb" if self == NetworkType.MAINNET else "ckt"

    @classmethod
    def from_hrp(cls, hrp: str) -> NetworkType:
        if hrp == "ckb":
            return cls.MAINNET
        if hrp == "ckt":
            return cls.TESTNET
        raise AddressError(f"Unknown address prefix: {hrp}")


def bech32_polymod(values: list[int]) -> int:
    """Bech32 checksum polymod"""
    gen = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= gen[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    """Expand HRP for bech32"""
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_create_checksum(hrp: str, data: list[int], const: int) -> list[int]:
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ const
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(hrp: str, data: list[int], const: int = BECH32_CONST) -> str:
    combined = data + bech32_create_checksum(hrp, data, const)
    return hrp + "1" + "".join([CHARSET[d] for d in combined])


def bech32_decode(text: str) -> tuple[str, list[int], int]:
    """
    Decode a bech32 or bech32m string.

    Unlike BIP173 there is no 90 character limit: full-format addresses
    are longer than that.

    Returns:
        (hrp, data without checksum, checksum constant)
    """
    if text.lower() != text and text.upper() != text:
        raise AddressError("Mixed case address")
    text = text.lower()

    pos = text.rfind("1")
    if pos < 1 or pos + 7 > len(text):
        raise AddressError("Invalid address separator position")
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise AddressError("Invalid character in address")

    hrp = text[:pos]
    try:
        data = [CHARSET.index(c) for c in text[pos + 1 :]]
    except ValueError as e:
        raise AddressError("Invalid bech32 character in address") from e

    const = bech32_polymod(bech32_hrp_expand(hrp) + data)
    if const not in (BECH32_CONST, BECH32M_CONST):
        raise AddressError("Invalid address checksum")
    return hrp, data[:-6], const


def convertbits(data: bytes | list[int], frombits: int, tobits: int, pad: bool = True) -> list[int]:
    """Convert between bit groups"""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise AddressError("Invalid bits")

    return ret


@dataclass(frozen=True)
class Address:
    network: NetworkType
    script: Script

    @classmethod
    def from_lock_arg(cls, network: NetworkType, lock_arg: bytes) -> Address:
        """Sighash (single key) address for a public-key hash."""
        if len(lock_arg) != LOCK_ARG_SIZE:
            raise AddressError(f"Invalid lock arg length: {len(lock_arg)}")
        return cls(network, Script(SIGHASH_TYPE_HASH, ScriptHashType.TYPE, lock_arg))

    @classmethod
    def parse(cls, text: str, network: NetworkType | None = None) -> Address:
        hrp, data, const = bech32_decode(text)
        address_network = NetworkType.from_hrp(hrp)
        if network is not None and address_network != network:
            raise AddressError(
                f"Address network mismatch: expected {network.value}, got {address_network.value}"
            )
        payload = bytes(convertbits(data, 5, 8, pad=False))
        if not payload:
            raise AddressError("Empty address payload")
        return cls(address_network, _parse_payload(payload, const))

    @property
    def lock_hash(self) -> bytes:
        return self.script.calc_script_hash()

    @property
    def args(self) -> bytes:
        return self.script.args

    def is_sighash(self) -> bool:
        return (
            self.script.hash_type == ScriptHashType.TYPE
            and self.script.code_hash == SIGHASH_TYPE_HASH
            and len(self.script.args) == LOCK_ARG_SIZE
        )

    def is_multisig(self) -> bool:
        return (
            self.script.hash_type == ScriptHashType.TYPE
            and self.script.code_hash == MULTISIG_TYPE_HASH
        )

    def encode(self) -> str:
        payload = (
            bytes([FULL_FORMAT])
            + self.script.code_hash
            + bytes([self.script.hash_type])
            + self.script.args
        )
        return bech32_encode(self.network.hrp, convertbits(payload, 8, 5), BECH32M_CONST)

    def __str__(self) -> str:
        return self.encode()


def _parse_payload(payload: bytes, const: int) -> Script:
    format_type = payload[0]

    if format_type == FULL_FORMAT:
        if const != BECH32M_CONST:
            raise AddressError("Full format address must use bech32m")
        if len(payload) < 34:
            raise AddressError(f"Full format payload too short: {len(payload)}")
        try:
            hash_type = ScriptHashType(payload[33])
        except ValueError as e:
            raise AddressError(f"Invalid script hash type: {payload[33]}") from e
        return Script(payload[1:33], hash_type, payload[34:])

    if const != BECH32_CONST:
        raise AddressError("Short and deprecated address formats must use bech32")

    if format_type == SHORT_FORMAT:
        if len(payload) != 2 + LOCK_ARG_SIZE:
            raise AddressError(f"Short format payload length invalid: {len(payload)}")
        code_hash = SHORT_CODE_HASHES.get(payload[1])
        if code_hash is None:
            raise AddressError(f"Unsupported short format code hash index: {payload[1]}")
        return Script(code_hash, ScriptHashType.TYPE, payload[2:])

    if format_type in (FULL_DATA_FORMAT, FULL_TYPE_FORMAT):
        if len(payload) < 33:
            raise AddressError(f"Full format payload too short: {len(payload)}")
        hash_type = ScriptHashType.DATA if format_type == FULL_DATA_FORMAT else ScriptHashType.TYPE
        return Script(payload[1:33], hash_type, payload[33:])

    raise AddressError(f"Unknown address format type: {format_type:#04x}")
