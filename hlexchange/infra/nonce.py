"""
Account-level nonce allocation.

Nonces are millisecond timestamps by convention. Two submissions from the
same signer inside one millisecond would collide, so the manager hands out
max(now_ms, last + 1) per account. This only coordinates callers sharing a
NonceManager; separate processes signing with the same key must still
coordinate themselves.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, Dict, Optional

from hlexchange.core.utils import now_ms


class NonceManager:
    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or now_ms
        # account -> last nonce issued
        self._last: Dict[str, int] = {}
        self._mutex = threading.Lock()
        # account -> asyncio.Lock, for callers that want to serialize submissions
        self._locks: Dict[str, asyncio.Lock] = {}
        self._guard = asyncio.Lock()

    def next_nonce(self, account: str) -> int:
        """Return a nonce strictly greater than any previously issued for account."""
        key = account.lower()
        with self._mutex:
            candidate = self._clock()
            last = self._last.get(key)
            if last is not None and candidate <= last:
                candidate = last + 1
            self._last[key] = candidate
            return candidate

    def observe(self, account: str, nonce: int) -> None:
        """Record a caller-chosen nonce so later allocations stay above it."""
        key = account.lower()
        with self._mutex:
            if nonce > self._last.get(key, -1):
                self._last[key] = nonce

    async def get_lock(self, account: str) -> asyncio.Lock:
        """Return a shared asyncio.Lock for the given account."""
        async with self._guard:
            key = account.lower()
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock
