"""
Minimal async HTTP client for Hyperliquid info endpoints.

All reads are POST {base}/info with a JSON body selecting the query type.
HTTP failures and unparsable bodies surface as TransportError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from hlexchange.core.errors import Stage, TransportError
from hlexchange.infra.logging_cfg import log_event

log = logging.getLogger("hlexchange")


class InfoClient:
    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip("/")
        # A shared client passed in is not closed by close(); otherwise we own it.
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url, http2=True, timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def meta(self, dex: Optional[str] = None) -> Dict[str, Any]:
        """Perp universe: {"universe": [{"name": "BTC", "szDecimals": 5, ...}, ...]}"""
        payload: Dict[str, Any] = {"type": "meta"}
        if dex:
            payload["dex"] = dex
        return await self._post_info(payload)

    async def spot_meta(self) -> Dict[str, Any]:
        """Spot universe: {"universe": [{"name": "PURR/USDC", "index": 0, ...}], "tokens": [...]}"""
        return await self._post_info({"type": "spotMeta"})

    async def clearinghouse_state(self, user: str, dex: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": "clearinghouseState", "user": user}
        if dex:
            payload["dex"] = dex
        return await self._post_info(payload)

    async def spot_clearinghouse_state(self, user: str) -> Dict[str, Any]:
        return await self._post_info({"type": "spotClearinghouseState", "user": user})

    async def _post_info(self, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/info"
        try:
            resp = await self.client.post(url, json=payload)
        except httpx.HTTPError as exc:
            log_event(log, "transport_error", level=logging.WARNING, url=url, query=payload["type"], err=str(exc))
            raise TransportError(f"Info request {payload['type']} failed: {exc}", stage=Stage.BUILT) from exc

        if resp.status_code >= 400:
            raise TransportError(
                f"Info request {payload['type']} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
                stage=Stage.BUILT,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"Info request {payload['type']} returned a non-JSON body",
                status_code=resp.status_code,
                body=resp.text,
                stage=Stage.BUILT,
            ) from exc
