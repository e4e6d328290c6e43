"""
Pytest configuration and fixtures.
Adds the repo root to sys.path so tests can import hlexchange uninstalled.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest
from eth_account import Account

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from hlexchange.core.json_utils import loads  # noqa: E402

TEST_KEY = "0x" + "4c" * 32
TESTNET_URL = "https://api.hyperliquid-testnet.xyz"

PERP_META = {"universe": [{"name": "ETH"}, {"name": "SOL"}, {"name": "ARB"}, {"name": "BTC"}]}
SPOT_META = {
    "universe": [
        {"name": "PURR/USDC", "index": 0},
        {"name": "@107", "index": 107},
    ],
    "tokens": [],
}


@pytest.fixture
def wallet():
    return Account.from_key(TEST_KEY)


class FakeVenue:
    """
    In-process stand-in for the /info and /exchange endpoints.

    Records every request; /exchange answers with `exchange_response`.
    """

    def __init__(self, exchange_response: Any = None, status_code: int = 200) -> None:
        self.perp_meta: Dict[str, Any] = PERP_META
        self.spot_meta: Dict[str, Any] = SPOT_META
        self.exchange_response = exchange_response or {"status": "ok", "response": {"type": "default"}}
        self.status_code = status_code
        self.info_requests: List[Dict[str, Any]] = []
        self.exchange_requests: List[httpx.Request] = []
        self.asset_positions: List[Dict[str, Any]] = []

    @property
    def exchange_bodies(self) -> List[Dict[str, Any]]:
        return [loads(r.content) for r in self.exchange_requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/info"):
            payload = loads(request.content)
            self.info_requests.append(payload)
            if payload["type"] == "meta":
                return httpx.Response(200, json=self.perp_meta)
            if payload["type"] == "spotMeta":
                return httpx.Response(200, json=self.spot_meta)
            return httpx.Response(200, json={"user": payload.get("user"), "assetPositions": self.asset_positions})
        self.exchange_requests.append(request)
        return httpx.Response(self.status_code, json=self.exchange_response)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def venue() -> FakeVenue:
    return FakeVenue()


def order_ok(*statuses: Any) -> Dict[str, Any]:
    return {"status": "ok", "response": {"type": "order", "data": {"statuses": list(statuses)}}}


def make_clock(start: float = 1000.0) -> Callable[[], float]:
    """Settable fake clock: clock.now = ... to move time."""
    def clock() -> float:
        return clock.now

    clock.now = start
    return clock
