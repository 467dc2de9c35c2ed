"""
Human-readable capacity parsing and formatting.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from cellwallet.constants import ONE_CKB

MAX_DECIMALS = 8
MAX_CAPACITY = 2**64 - 1


class CapacityParseError(ValueError):
    pass


def parse_capacity(text: str) -> int:
    """Parse a CKB amount such as ``"100.5"`` into shannons."""
    text = text.strip()
    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise CapacityParseError(f"Invalid capacity: {text!r}") from e

    if not amount.is_finite() or amount < 0:
        raise CapacityParseError(f"Invalid capacity: {text!r}")
    exponent = amount.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -MAX_DECIMALS:
        raise CapacityParseError(f"Capacity has more than {MAX_DECIMALS} decimals: {text!r}")

    shannons = int(amount * ONE_CKB)
    if shannons > MAX_CAPACITY:
        raise CapacityParseError(f"Capacity overflow: {text!r}")
    return shannons


def format_capacity(shannons: int) -> str:
    """Format shannons as ``"123.456 (CKB)"``."""
    whole, frac = divmod(shannons, ONE_CKB)
    frac_str = f"{frac:08d}".rstrip("0") or "0"
    return f"{whole}.{frac_str} (CKB)"
