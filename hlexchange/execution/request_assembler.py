"""
RequestAssembler: transport body for /exchange and the POST that sends it.

Only transport-level failures are handled here (connection errors,
timeouts). Interpreting the venue's answer is ResponseValidator's job.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from hlexchange.core.errors import Stage, TransportError
from hlexchange.core.json_utils import dumps_bytes
from hlexchange.core.utils import normalize_address
from hlexchange.execution.actions import Action, Signature, SignedRequest
from hlexchange.infra.logging_cfg import log_event

log = logging.getLogger("hlexchange")

JSON_HEADERS = {"content-type": "application/json"}


def build_body(
    action: Action,
    nonce: int,
    signature: Signature,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "action": action,
        "nonce": nonce,
        "signature": signature.to_dict(),
    }
    if vault_address:
        body["vaultAddress"] = normalize_address(vault_address, "vault_address")
    if expires_after is not None:
        body["expiresAfter"] = expires_after
    return body


def body_from_request(req: SignedRequest) -> Dict[str, Any]:
    return build_body(req.action, req.nonce, req.signature, req.vault_address, req.expires_after)


class RequestAssembler:
    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client

    @property
    def exchange_url(self) -> str:
        return f"{self.base_url}/exchange"

    async def submit(self, body: Dict[str, Any]) -> httpx.Response:
        url = self.exchange_url
        try:
            return await self.client.post(url, content=dumps_bytes(body), headers=JSON_HEADERS)
        except httpx.HTTPError as exc:
            log_event(
                log, "transport_error", level=logging.WARNING,
                url=url, nonce=body.get("nonce"), err=str(exc),
            )
            raise TransportError(f"Failed to submit Hyperliquid action: {exc}", stage=Stage.SUBMITTED) from exc
