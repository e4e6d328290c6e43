"""
Typed intents, signatures and outcomes for the action pipeline.

Intents are what callers hand in (human symbols, decimal-like values).
Wire actions are plain insertion-ordered dicts produced by action_encoder;
their key order is part of the signed payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from hlexchange.core.decimal_codec import DecimalLike

Side = Literal["buy", "sell"]
TimeInForce = Literal["Gtc", "Ioc", "Alo", "FrontendMarket", "LiquidationMarket"]
Grouping = Literal["na", "normalTpsl", "positionTpsl"]
TpSl = Literal["tp", "sl"]

TIME_IN_FORCE = ("Gtc", "Ioc", "Alo", "FrontendMarket", "LiquidationMarket")
GROUPINGS = ("na", "normalTpsl", "positionTpsl")
DEFAULT_TIF: TimeInForce = "Ioc"

# Wire actions are ordered dicts; order matters for the hash.
Action = Dict[str, Any]


@dataclass(frozen=True)
class TriggerSpec:
    trigger_px: DecimalLike
    tpsl: TpSl
    is_market: bool = False


@dataclass(frozen=True)
class OrderIntent:
    symbol: str
    side: Side
    price: DecimalLike
    size: DecimalLike
    tif: Optional[TimeInForce] = None
    reduce_only: bool = False
    client_id: Optional[str] = None
    trigger: Optional[TriggerSpec] = None

    @property
    def is_buy(self) -> bool:
        return self.side == "buy"


@dataclass(frozen=True)
class BuilderFee:
    """Fee share for a third-party order-flow originator. fee is in tenths of a basis point."""
    address: str
    fee: int


@dataclass(frozen=True)
class Signature:
    r: str
    s: str
    v: int

    def to_dict(self) -> Dict[str, Any]:
        return {"r": self.r, "s": self.s, "v": self.v}


@dataclass(frozen=True)
class SignedRequest:
    action: Action
    nonce: int
    signature: Signature
    vault_address: Optional[str] = None
    expires_after: Optional[int] = None


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Resting:
    oid: int
    cloid: Optional[str] = None


@dataclass(frozen=True)
class Filled:
    total_sz: str
    avg_px: str
    oid: int
    cloid: Optional[str] = None


@dataclass(frozen=True)
class OrderError:
    message: str


@dataclass(frozen=True)
class Acknowledged:
    """Bare string status: "success" for cancels, "waitingForTrigger" / "waitingForFill" for triggers."""
    status: str


OrderOutcome = Union[Resting, Filled, OrderError, Acknowledged]


@dataclass
class ExchangeResult:
    """Validated venue response for one submitted action."""
    response_type: str
    statuses: List[OrderOutcome] = field(default_factory=list)
    raw: Any = None
    nonce: Optional[int] = None

    @property
    def oids(self) -> List[int]:
        return [s.oid for s in self.statuses if isinstance(s, (Resting, Filled))]

    @property
    def cloids(self) -> List[str]:
        return [s.cloid for s in self.statuses if isinstance(s, (Resting, Filled)) and s.cloid]
