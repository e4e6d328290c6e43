"""
UniverseCache: symbol -> protocol asset index, with a time-bounded cache.

Universes are cached per (environment, base_url, market). Each entry is an
immutable UniverseSnapshot that is swapped in whole on refresh, so a reader
sees either the old or the new universe, never a partial one. Concurrent
resolutions of a stale key share one fetch via a per-key asyncio.Lock.

Perp asset index = position in the "meta" universe.
Spot asset index = 10000 + the pair's index in the "spotMeta" universe.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from hlexchange.core.errors import Stage, TransportError, UnknownAsset
from hlexchange.infra.logging_cfg import log_event
from hlexchange.market_data.meta_loader import PERP, SPOT

log = logging.getLogger("hlexchange")

DEFAULT_TTL_SEC = 5 * 60
SPOT_ASSET_OFFSET = 10_000

CacheKey = Tuple[str, str, str]


class UniverseLoader(Protocol):
    async def load(self, base_url: str, market: str = PERP) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class UniverseSnapshot:
    """One fetched universe. Never mutated after construction."""
    fetched_at: float
    names: Tuple[str, ...]
    asset_ids: Tuple[int, ...]
    _lookup: Dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(cls, fetched_at: float, names: List[str], asset_ids: List[int]) -> "UniverseSnapshot":
        lookup: Dict[str, int] = {}
        for name, asset_id in zip(names, asset_ids):
            # first occurrence wins, like a linear scan would
            lookup.setdefault(name.upper(), asset_id)
        return cls(fetched_at, tuple(names), tuple(asset_ids), lookup)

    def index_of(self, name: str) -> Optional[int]:
        return self._lookup.get(name.upper())


def parse_universe(meta: Any, market: str, fetched_at: float) -> UniverseSnapshot:
    """Validate a meta/spotMeta response and turn it into a snapshot."""
    universe = meta.get("universe") if isinstance(meta, dict) else None
    if not isinstance(universe, list):
        raise TransportError(
            "Unable to load Hyperliquid metadata: response has no universe list",
            body=meta,
            stage=Stage.BUILT,
        )

    names: List[str] = []
    asset_ids: List[int] = []
    for pos, entry in enumerate(universe):
        name = entry.get("name") if isinstance(entry, dict) else None
        if not isinstance(name, str):
            raise TransportError(
                f"Unable to load Hyperliquid metadata: universe entry {pos} has no name",
                body=meta,
                stage=Stage.BUILT,
            )
        names.append(name)
        if market == SPOT:
            asset_ids.append(SPOT_ASSET_OFFSET + int(entry.get("index", pos)))
        else:
            asset_ids.append(pos)
    return UniverseSnapshot.build(fetched_at, names, asset_ids)


def symbol_key(symbol: str, market: str = PERP) -> str:
    """
    Normalize a user symbol to the universe name it should match.

    Perps: "btc-usd" -> "BTC" (base component only).
    Spot: "purr-usdc" -> "PURR/USDC"; "@107" stays as is.
    """
    raw = symbol.strip()
    if market == SPOT:
        return raw.replace("-", "/").upper()
    return raw.split("-")[0].strip().upper()


class UniverseCache:
    def __init__(
        self,
        loader: UniverseLoader,
        ttl_sec: float = DEFAULT_TTL_SEC,
        clock: Optional[Callable[[], float]] = None,
        on_fetch: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._loader = loader
        self.ttl_sec = ttl_sec
        self._clock = clock or time.monotonic
        self._on_fetch = on_fetch
        self._snapshots: Dict[CacheKey, UniverseSnapshot] = {}
        self._locks: Dict[CacheKey, asyncio.Lock] = {}

    @staticmethod
    def _key(environment: str, base_url: str, market: str) -> CacheKey:
        return (environment, base_url.rstrip("/"), market)

    def _fresh(self, snap: Optional[UniverseSnapshot]) -> bool:
        return snap is not None and (self._clock() - snap.fetched_at) < self.ttl_sec

    def peek(self, environment: str, base_url: str, market: str = PERP) -> Optional[UniverseSnapshot]:
        """Current snapshot for a key, fresh or not, without fetching."""
        return self._snapshots.get(self._key(environment, base_url, market))

    def invalidate(self, environment: Optional[str] = None, base_url: Optional[str] = None) -> None:
        """Drop cached universes so the next resolution refetches."""
        for key in list(self._snapshots):
            if environment is not None and key[0] != environment:
                continue
            if base_url is not None and key[1] != base_url.rstrip("/"):
                continue
            self._snapshots.pop(key, None)

    async def universe(self, environment: str, base_url: str, market: str = PERP) -> UniverseSnapshot:
        key = self._key(environment, base_url, market)
        snap = self._snapshots.get(key)
        if self._fresh(snap):
            return snap

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # another task may have refreshed while we waited
            snap = self._snapshots.get(key)
            if self._fresh(snap):
                return snap

            if self._on_fetch:
                self._on_fetch(market)
            try:
                meta = await self._loader.load(key[1], market)
                snap = parse_universe(meta, market, self._clock())
            except TransportError as exc:
                log_event(
                    log, "meta_fetch_error", level=logging.WARNING,
                    environment=environment, url=key[1], market=market, err=exc.message,
                )
                raise
            self._snapshots[key] = snap
            log_event(
                log, "universe_refreshed", level=logging.DEBUG,
                environment=environment, url=key[1], market=market, assets=len(snap.names),
            )
            return snap

    async def resolve(self, symbol: str, environment: str, base_url: str, market: str = PERP) -> int:
        """Resolve a symbol to its asset index; raises UnknownAsset if absent."""
        snap = await self.universe(environment, base_url, market)
        index = snap.index_of(symbol_key(symbol, market))
        if index is None:
            raise UnknownAsset(symbol)
        return index
