"""
Signer: typed-data signatures over actions via an external wallet.

The wallet is any object exposing ``sign_typed_data(full_message=...)``.
eth_account's LocalAccount satisfies this directly; remote signers (KMS,
custody APIs) may implement it as a coroutine. The returned value may be
raw bytes, a hex string, or an object with a ``.signature`` attribute
(eth_account's SignedMessage); it must decode to 65 bytes r | s | v.

Two signing paths:
- L1 actions: an "Agent" struct over the HashChain connection id, in the
  fixed "Exchange" domain (chain id 1337).
- User-signed actions (withdraw, usd class transfer, send asset): the
  action itself as a "HyperliquidTransaction:*" struct in the
  "HyperliquidSignTransaction" domain.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, List, Optional

from hlexchange.core.errors import HyperliquidError, MalformedSignature, SignerError, SigningUnavailable, Stage
from hlexchange.core.utils import strip_hex
from hlexchange.execution.actions import Action, Signature
from hlexchange.execution.hash_chain import action_hash

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

EIP712_DOMAIN_TYPES = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

L1_DOMAIN = {
    "name": "Exchange",
    "version": "1",
    "chainId": 1337,
    "verifyingContract": ZERO_ADDRESS,
}

AGENT_TYPES = [
    {"name": "source", "type": "string"},
    {"name": "connectionId", "type": "bytes32"},
]

USER_SIGNED_CHAIN_ID = 0x66EEE

WITHDRAW_SIGN_TYPES = [
    {"name": "hyperliquidChain", "type": "string"},
    {"name": "destination", "type": "string"},
    {"name": "amount", "type": "string"},
    {"name": "time", "type": "uint64"},
]

USD_CLASS_TRANSFER_SIGN_TYPES = [
    {"name": "hyperliquidChain", "type": "string"},
    {"name": "amount", "type": "string"},
    {"name": "toPerp", "type": "bool"},
    {"name": "nonce", "type": "uint64"},
]

SEND_ASSET_SIGN_TYPES = [
    {"name": "hyperliquidChain", "type": "string"},
    {"name": "destination", "type": "string"},
    {"name": "sourceDex", "type": "string"},
    {"name": "destinationDex", "type": "string"},
    {"name": "token", "type": "string"},
    {"name": "amount", "type": "string"},
    {"name": "fromSubAccount", "type": "string"},
    {"name": "nonce", "type": "uint64"},
]

# action type -> (primary type, struct fields)
USER_SIGNED_ACTIONS: Dict[str, tuple] = {
    "withdraw3": ("HyperliquidTransaction:Withdraw", WITHDRAW_SIGN_TYPES),
    "usdClassTransfer": ("HyperliquidTransaction:UsdClassTransfer", USD_CLASS_TRANSFER_SIGN_TYPES),
    "sendAsset": ("HyperliquidTransaction:SendAsset", SEND_ASSET_SIGN_TYPES),
}


def source_tag(is_mainnet: bool) -> str:
    return "a" if is_mainnet else "b"


def l1_typed_data(connection_id: bytes, is_mainnet: bool) -> Dict[str, Any]:
    return {
        "domain": dict(L1_DOMAIN),
        "types": {
            "Agent": AGENT_TYPES,
            "EIP712Domain": EIP712_DOMAIN_TYPES,
        },
        "primaryType": "Agent",
        "message": {"source": source_tag(is_mainnet), "connectionId": connection_id},
    }


def user_signed_typed_data(action: Action, sign_types: List[Dict[str, str]], primary_type: str) -> Dict[str, Any]:
    return {
        "domain": {
            "name": "HyperliquidSignTransaction",
            "version": "1",
            "chainId": USER_SIGNED_CHAIN_ID,
            "verifyingContract": ZERO_ADDRESS,
        },
        "types": {
            primary_type: sign_types,
            "EIP712Domain": EIP712_DOMAIN_TYPES,
        },
        "primaryType": primary_type,
        "message": action,
    }


def normalize_v(v: int) -> int:
    """Map any recovery byte onto {27, 28}."""
    if v < 27:
        v += 27
    if v in (27, 28):
        return v
    return 27 if v % 2 else 28


def split_signature(raw: Any) -> Signature:
    """Split a 65-byte signature into (r, s, v) with v normalized."""
    value = getattr(raw, "signature", raw)
    if isinstance(value, str):
        text = value[2:] if value[:2].lower() == "0x" else value
        try:
            value = bytes.fromhex(text)
        except ValueError as exc:
            raise MalformedSignature(raw=raw) from exc
    if not isinstance(value, (bytes, bytearray)):
        raise MalformedSignature(f"Unsupported signature type {type(value).__name__}", raw=raw)
    if len(value) != 65:
        raise MalformedSignature(f"Signature must be 65 bytes, got {len(value)}", raw=raw)

    r = strip_hex("0x" + bytes(value[:32]).hex())
    s = strip_hex("0x" + bytes(value[32:64]).hex())
    return Signature(r=r, s=s, v=normalize_v(value[64]))


class Signer:
    def __init__(self, wallet: Any) -> None:
        sign = getattr(wallet, "sign_typed_data", None) if wallet is not None else None
        if not callable(sign):
            raise SigningUnavailable()
        self.wallet = wallet

    @property
    def address(self) -> Optional[str]:
        return getattr(self.wallet, "address", None)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> Signature:
        try:
            raw = self.wallet.sign_typed_data(full_message=typed_data)
            if inspect.isawaitable(raw):
                raw = await raw
        except HyperliquidError:
            raise
        except Exception as exc:
            raise SignerError(f"Wallet failed to sign: {exc}", stage=Stage.HASHED) from exc
        return split_signature(raw)

    async def sign_l1_action(
        self,
        action: Action,
        nonce: int,
        is_mainnet: bool,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> Signature:
        connection_id = action_hash(action, nonce, vault_address, expires_after)
        return await self.sign_connection_id(connection_id, is_mainnet)

    async def sign_connection_id(self, connection_id: bytes, is_mainnet: bool) -> Signature:
        if len(connection_id) != 32:
            raise SignerError(f"connection id must be 32 bytes, got {len(connection_id)}", stage=Stage.HASHED)
        return await self.sign_typed_data(l1_typed_data(connection_id, is_mainnet))

    async def sign_user_action(self, action: Action) -> Signature:
        kind = action.get("type")
        entry = USER_SIGNED_ACTIONS.get(kind)
        if entry is None:
            raise SignerError(f"Action type {kind!r} is not a user-signed action", stage=Stage.ENCODED)
        primary_type, sign_types = entry
        return await self.sign_typed_data(user_signed_typed_data(action, sign_types, primary_type))
