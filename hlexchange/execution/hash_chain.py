"""
HashChain: the 32-byte "connection id" an L1 action is signed over.

Preimage layout:

    msgpack(action)
    nonce                      8 bytes, big-endian
    vault marker               0x01 + 20 address bytes, or 0x00
    expiry (only if given)     0x00 + expiry 8 bytes, big-endian

The expiry marker is the constant 0x00, not a presence flag.
"""

from __future__ import annotations

from typing import Optional

import msgpack
from eth_utils import keccak

from hlexchange.core.errors import InvalidIntent
from hlexchange.core.utils import address_to_bytes
from hlexchange.execution.actions import Action

_U64_MAX = 2**64 - 1

VAULT_PRESENT = b"\x01"
VAULT_ABSENT = b"\x00"
EXPIRY_MARKER = b"\x00"


def u64_be(value: int, field: str = "nonce") -> bytes:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U64_MAX:
        raise InvalidIntent(f"{field} must be an unsigned 64-bit integer, got {value!r}", field=field)
    return value.to_bytes(8, "big")


def encode_action(action: Action) -> bytes:
    """Canonical msgpack bytes. Dict keys are emitted in insertion order."""
    return msgpack.packb(action, use_bin_type=True)


def preimage(
    action: Action,
    nonce: int,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> bytes:
    data = encode_action(action)
    data += u64_be(nonce, "nonce")
    if vault_address:
        data += VAULT_PRESENT + address_to_bytes(vault_address)
    else:
        data += VAULT_ABSENT
    if expires_after is not None:
        data += EXPIRY_MARKER + u64_be(expires_after, "expires_after")
    return data


def action_hash(
    action: Action,
    nonce: int,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> bytes:
    """Keccak-256 of the preimage."""
    return keccak(preimage(action, nonce, vault_address, expires_after))
