"""
Since (time-lock) field decoding.

Layout of the 8-byte little-endian value:
- bit 63: relative flag (0 = absolute)
- bits 62..61: metric (00 block number, 01 epoch with fraction, 10 timestamp)
- bits 60..56: reserved, must be zero
- bits 55..0: metric value
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from fractions import Fraction

RELATIVE_FLAG = 1 << 63
METRIC_TYPE_FLAG_MASK = 0x6000_0000_0000_0000
REMAIN_FLAGS_BITS = 0x1F00_0000_0000_0000
VALUE_MASK = 0x00FF_FFFF_FFFF_FFFF


class SinceMetric(IntEnum):
    BLOCK_NUMBER = 0
    EPOCH_NUMBER_WITH_FRACTION = 1
    TIMESTAMP = 2


class SinceFormatError(ValueError):
    pass


@dataclass(frozen=True)
class Since:
    relative: bool
    metric: SinceMetric
    value: int

    @classmethod
    def decode(cls, raw: int) -> Since:
        """Decode a raw since value, rejecting malformed flag bits."""
        if raw & REMAIN_FLAGS_BITS:
            raise SinceFormatError(f"reserved since flag bits set: {raw:#018x}")
        metric_bits = (raw & METRIC_TYPE_FLAG_MASK) >> 61
        if metric_bits == 3:
            raise SinceFormatError(f"invalid since metric flag: {raw:#018x}")
        return cls(
            relative=bool(raw & RELATIVE_FLAG),
            metric=SinceMetric(metric_bits),
            value=raw & VALUE_MASK,
        )

    @classmethod
    def from_le_bytes(cls, data: bytes) -> Since:
        if len(data) != 8:
            raise SinceFormatError(f"since must be 8 bytes, got {len(data)}")
        return cls.decode(int.from_bytes(data, "little"))

    def encode(self) -> int:
        raw = (int(self.metric) << 61) | (self.value & VALUE_MASK)
        if self.relative:
            raw |= RELATIVE_FLAG
        return raw

    @property
    def is_absolute(self) -> bool:
        return not self.relative

    def epoch(self) -> EpochNumberWithFraction:
        if self.metric != SinceMetric.EPOCH_NUMBER_WITH_FRACTION:
            raise SinceFormatError(f"since metric is {self.metric.name}, not an epoch")
        return EpochNumberWithFraction.from_full_value(self.value)


@dataclass(frozen=True)
class EpochNumberWithFraction:
    number: int
    index: int
    length: int

    @classmethod
    def from_full_value(cls, value: int) -> EpochNumberWithFraction:
        return cls(
            number=value & 0xFFFFFF,
            index=(value >> 24) & 0xFFFF,
            length=(value >> 40) & 0xFFFF,
        )

    def full_value(self) -> int:
        return (self.length << 40) | (self.index << 24) | self.number

    def to_rational(self) -> Fraction:
        if self.length == 0:
            return Fraction(self.number)
        return self.number + Fraction(self.index, self.length)

    def __str__(self) -> str:
        return f"{self.number}({self.index}/{self.length})"
