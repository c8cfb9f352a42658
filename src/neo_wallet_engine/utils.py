"""
Utility functions for address checks and amount handling.
"""

from typing import Any, Optional
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging

import base58

logger = logging.getLogger(__name__)

NEO_ADDRESS_VERSION = 0x17


def is_valid_neo_address(address: str) -> bool:
    """Check if a string is a valid NEO address (base58check, version 0x17)."""
    if not address or not isinstance(address, str):
        return False

    if len(address) != 34 or not address.startswith("A"):
        return False

    try:
        decoded = base58.b58decode_check(address)
    except ValueError:
        return False

    return len(decoded) == 21 and decoded[0] == NEO_ADDRESS_VERSION


def normalize_hash(tx_hash: Optional[str]) -> str:
    """Normalize a transaction hash to lowercase without 0x prefix."""
    if not tx_hash:
        return ""

    tx_hash = tx_hash.lower()
    if tx_hash.startswith("0x"):
        tx_hash = tx_hash[2:]

    return tx_hash


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Convert an API value to Decimal, going through str to keep precision."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        logger.warning(f"Error converting {value!r} to decimal: {e}")
        return default


def round2(value: Decimal) -> Decimal:
    """Round to two decimal places, half up."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def fixed8_from_hex(hex_str: str, decimals: int = 8) -> Decimal:
    """Decode a little-endian hex integer returned by a NEP5 contract."""
    if not hex_str:
        return Decimal("0")
    raw = int.from_bytes(bytes.fromhex(hex_str), byteorder="little", signed=True)
    return Decimal(raw).scaleb(-decimals)


def string_from_hex(hex_str: str) -> str:
    """Decode a hex encoded ByteArray stack item to text."""
    try:
        return bytes.fromhex(hex_str).decode("utf-8", "replace")
    except (ValueError, TypeError):
        return ""


def format_number(number: Optional[Decimal], decimals: int = 2) -> str:
    """Format a number with thousands suffixes."""
    if number is None:
        return "N/A"
    try:
        if number == 0:
            return "0"

        num = float(number)

        if abs(num) >= 1_000_000_000:
            return f"{num / 1_000_000_000:.{decimals}f}B"
        elif abs(num) >= 1_000_000:
            return f"{num / 1_000_000:.{decimals}f}M"
        elif abs(num) >= 1_000:
            return f"{num / 1_000:.{decimals}f}K"
        else:
            return f"{num:.{decimals}f}"
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Error formatting number {number}: {e}")
        return str(number)


def shorten(value: Optional[str], head: int = 6, tail: int = 4) -> str:
    """Truncate an address or hash for display."""
    if not value:
        return "-"
    if len(value) <= head + tail + 3:
        return value
    return f"{value[:head]}...{value[-tail:]}"


def address_to_script_hash(address: str) -> str:
    """Big-endian script hash hex of a NEO address, as contract parameters expect."""
    decoded = base58.b58decode_check(address)
    return decoded[1:21][::-1].hex()
