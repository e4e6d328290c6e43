"""
JSON helpers backed by orjson.

Used for request bodies sent to the venue and for structured log payloads.
orjson preserves dict insertion order, so action field order survives
serialization.

Usage:
    from hlexchange.core.json_utils import dumps, dumps_bytes, loads

    log.info(dumps({"event": "submit", "nonce": 1700000000000}))
"""

from __future__ import annotations

from typing import Any

import orjson


def _default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def dumps(obj: Any) -> str:
    """Encode to a compact JSON string."""
    return orjson.dumps(obj, default=_default).decode("utf-8")


def dumps_bytes(obj: Any) -> bytes:
    """Encode to compact JSON bytes (request bodies)."""
    return orjson.dumps(obj, default=_default)


def loads(s: str | bytes) -> Any:
    return orjson.loads(s)
