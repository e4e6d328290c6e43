"""
Utility helpers.
"""

from __future__ import annotations

import re
import time
from typing import Optional

from hyperliquid.utils import constants

from hlexchange.core.errors import InvalidIntent

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")

API_BASES = {
    "mainnet": constants.MAINNET_API_URL,
    "testnet": constants.TESTNET_API_URL,
}


def now_ms() -> int:
    return int(time.time() * 1000)


def is_hex(value: str, n_bytes: int | None = None) -> bool:
    if not isinstance(value, str) or not _HEX_RE.match(value):
        return False
    if n_bytes is None:
        return True
    return len(value) == 2 + 2 * n_bytes


def strip_hex(value: str) -> str:
    """
    Lowercase a hex scalar and drop leading zero nibbles ("0x00ab" -> "0xab").

    Used for signature scalars, which the venue expects in minimal form.
    """
    lower = value.lower()
    stripped = re.sub(r"^0x0+", "0x", lower)
    return stripped if stripped != "0x" else "0x0"


def normalize_address(value: str, field: str = "address") -> str:
    """Validate a 20-byte hex address and return it lowercased."""
    if not is_hex(value, 20):
        raise InvalidIntent(f"{field} must be a 20-byte hex address, got {value!r}", field=field)
    return value.lower()


def normalize_cloid(value: str) -> str:
    """Validate a 16-byte client order id and return it lowercased."""
    if not is_hex(value, 16):
        raise InvalidIntent(f"client_id must be 0x followed by 32 hex characters, got {value!r}", field="client_id")
    return value.lower()


def address_to_bytes(address: str) -> bytes:
    return bytes.fromhex(normalize_address(address, "vault_address")[2:])


def infer_environment(base_url: Optional[str]) -> str:
    if base_url and "testnet" in base_url:
        return "testnet"
    return "mainnet"
