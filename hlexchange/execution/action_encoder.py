"""
ActionEncoder: builds canonical wire actions from typed intents.

Every builder returns a plain dict whose insertion order is the protocol's
field order. The dict is msgpack-encoded for hashing and JSON-encoded for
transport, so the order must never vary for a given action kind. Optional
fields are left out entirely instead of being sent as null.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Sequence, Tuple

from hlexchange.core.decimal_codec import DecimalLike, to_api_decimal
from hlexchange.core.errors import EmptyOrderBatch, InvalidIntent, NonFiniteValue
from hlexchange.core.utils import normalize_address, normalize_cloid
from hlexchange.execution.actions import (
    DEFAULT_TIF,
    GROUPINGS,
    TIME_IN_FORCE,
    Action,
    BuilderFee,
    OrderIntent,
)

# Chain id (hex) user-signed actions declare they were signed against.
SIGNATURE_CHAIN_ID = "0x66eee"

MICRO_USD = Decimal(10) ** 6


def hyperliquid_chain(is_mainnet: bool) -> str:
    return "Mainnet" if is_mainnet else "Testnet"


def _order_type(intent: OrderIntent) -> Dict[str, Any]:
    """Exactly one of limit / trigger."""
    if intent.trigger is not None:
        trig = intent.trigger
        if trig.tpsl not in ("tp", "sl"):
            raise InvalidIntent(f"trigger.tpsl must be 'tp' or 'sl', got {trig.tpsl!r}", field="trigger.tpsl")
        return {
            "trigger": {
                "isMarket": bool(trig.is_market),
                "triggerPx": to_api_decimal(trig.trigger_px),
                "tpsl": trig.tpsl,
            }
        }
    tif = intent.tif or DEFAULT_TIF
    if tif not in TIME_IN_FORCE:
        raise InvalidIntent(f"Unsupported time in force {tif!r}", field="tif")
    return {"limit": {"tif": tif}}


def encode_order(intent: OrderIntent, asset: int) -> Dict[str, Any]:
    """One order record: a, b, p, s, r, t and c only when a client id is set."""
    if intent.side not in ("buy", "sell"):
        raise InvalidIntent(f"side must be 'buy' or 'sell', got {intent.side!r}", field="side")

    record: Dict[str, Any] = {
        "a": asset,
        "b": intent.is_buy,
        "p": to_api_decimal(intent.price),
        "s": to_api_decimal(intent.size),
        "r": bool(intent.reduce_only),
        "t": _order_type(intent),
    }
    if intent.client_id:
        record["c"] = normalize_cloid(intent.client_id)
    return record


def encode_builder(builder: BuilderFee) -> Dict[str, Any]:
    if isinstance(builder.fee, bool) or not isinstance(builder.fee, int) or builder.fee < 0:
        raise InvalidIntent(f"builder fee must be a non-negative integer, got {builder.fee!r}", field="builder.fee")
    return {"b": normalize_address(builder.address, "builder.address"), "f": builder.fee}


def encode_order_action(
    intents: Sequence[OrderIntent],
    asset_indices: Sequence[int],
    grouping: str = "na",
    builder: Optional[BuilderFee] = None,
) -> Action:
    if not intents:
        raise EmptyOrderBatch()
    if len(intents) != len(asset_indices):
        raise InvalidIntent(
            f"Got {len(intents)} orders but {len(asset_indices)} asset indices", field="asset_indices"
        )
    if grouping not in GROUPINGS:
        raise InvalidIntent(f"Unsupported grouping {grouping!r}", field="grouping")

    action: Action = {
        "type": "order",
        "orders": [encode_order(intent, asset) for intent, asset in zip(intents, asset_indices)],
        "grouping": grouping,
    }
    if builder is not None:
        action["builder"] = encode_builder(builder)
    return action


def encode_cancel_action(cancels: Sequence[Tuple[int, int]]) -> Action:
    """cancels: (asset, oid) pairs."""
    if not cancels:
        raise InvalidIntent("At least one cancel is required.", field="cancels")
    return {
        "type": "cancel",
        "cancels": [{"a": asset, "o": int(oid)} for asset, oid in cancels],
    }


def encode_cancel_by_cloid_action(cancels: Sequence[Tuple[int, str]]) -> Action:
    """cancels: (asset, cloid) pairs."""
    if not cancels:
        raise InvalidIntent("At least one cancel is required.", field="cancels")
    return {
        "type": "cancelByCloid",
        "cancels": [{"asset": asset, "cloid": normalize_cloid(cloid)} for asset, cloid in cancels],
    }


def encode_update_leverage(asset: int, leverage: int, is_cross: bool = True) -> Action:
    if isinstance(leverage, bool) or not isinstance(leverage, int) or leverage < 1:
        raise InvalidIntent(f"leverage must be a positive integer, got {leverage!r}", field="leverage")
    return {
        "type": "updateLeverage",
        "asset": asset,
        "isCross": bool(is_cross),
        "leverage": leverage,
    }


def to_micro_usd(usd: DecimalLike) -> int:
    """Dollar amount -> integer micro-USD (the unit subAccountTransfer expects)."""
    try:
        amount = Decimal(to_api_decimal(usd))
        if not amount.is_finite():
            raise NonFiniteValue(usd)
        micro = amount * MICRO_USD
    except InvalidOperation as exc:
        raise InvalidIntent(f"usd must be a decimal amount, got {usd!r}", field="usd") from exc
    if micro != micro.to_integral_value() or micro <= 0:
        raise InvalidIntent(f"usd must be positive with at most 6 decimals, got {usd!r}", field="usd")
    return int(micro)


def encode_sub_account_transfer(sub_account_user: str, is_deposit: bool, usd: DecimalLike) -> Action:
    return {
        "type": "subAccountTransfer",
        "subAccountUser": normalize_address(sub_account_user, "sub_account_user"),
        "isDeposit": bool(is_deposit),
        "usd": to_micro_usd(usd),
    }


# ---------------------------------------------------------------------------
# User-signed actions. These are signed as EIP-712 structs, so the chain
# fields are part of the action itself.
# ---------------------------------------------------------------------------


def encode_withdraw(destination: str, amount: DecimalLike, time_ms: int, is_mainnet: bool) -> Action:
    return {
        "type": "withdraw3",
        "hyperliquidChain": hyperliquid_chain(is_mainnet),
        "signatureChainId": SIGNATURE_CHAIN_ID,
        "destination": normalize_address(destination, "destination"),
        "amount": to_api_decimal(amount),
        "time": time_ms,
    }


def encode_usd_class_transfer(amount: DecimalLike, to_perp: bool, nonce: int, is_mainnet: bool) -> Action:
    return {
        "type": "usdClassTransfer",
        "hyperliquidChain": hyperliquid_chain(is_mainnet),
        "signatureChainId": SIGNATURE_CHAIN_ID,
        "amount": to_api_decimal(amount),
        "toPerp": bool(to_perp),
        "nonce": nonce,
    }


def encode_send_asset(
    destination: str,
    source_dex: str,
    destination_dex: str,
    token: str,
    amount: DecimalLike,
    nonce: int,
    is_mainnet: bool,
    from_sub_account: str = "",
) -> Action:
    if not token:
        raise InvalidIntent("token is required", field="token")
    return {
        "type": "sendAsset",
        "hyperliquidChain": hyperliquid_chain(is_mainnet),
        "signatureChainId": SIGNATURE_CHAIN_ID,
        "destination": normalize_address(destination, "destination"),
        "sourceDex": source_dex,
        "destinationDex": destination_dex,
        "token": token,
        "amount": to_api_decimal(amount),
        "fromSubAccount": normalize_address(from_sub_account, "from_sub_account") if from_sub_account else "",
        "nonce": nonce,
    }


def action_kind(action: Action) -> str:
    return str(action.get("type", "unknown"))
