"""
MetaLoader: fetches raw universe metadata for a venue endpoint.

One InfoClient per base URL, all sharing a single httpx.AsyncClient so
several endpoints (mainnet, testnet, a proxy) reuse one connection pool.

Usage:
    loader = MetaLoader(timeout=10.0)
    meta = await loader.load("https://api.hyperliquid.xyz", "perp")
    # meta["universe"] -> [{"name": "BTC", ...}, ...]
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from hlexchange.infra.async_info import InfoClient

PERP = "perp"
SPOT = "spot"


class MetaLoader:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0) -> None:
        if client is not None:
            self._client = client
            self._owns_client = False
        else:
            self._client = httpx.AsyncClient(http2=True, timeout=timeout)
            self._owns_client = True
        self._infos: Dict[str, InfoClient] = {}

    def info_for(self, base_url: str) -> InfoClient:
        key = base_url.rstrip("/")
        info = self._infos.get(key)
        if info is None:
            info = InfoClient(key, client=self._client)
            self._infos[key] = info
        return info

    async def load(self, base_url: str, market: str = PERP) -> Dict[str, Any]:
        info = self.info_for(base_url)
        if market == SPOT:
            return await info.spot_meta()
        return await info.meta()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
