"""
ExchangeClient: unified entry point for signed exchange actions.

Every L1 action runs the same pipeline:

    resolve symbols (UniverseCache) -> encode (action_encoder)
    -> hash (hash_chain) -> sign (Signer) -> assemble + POST (RequestAssembler)
    -> validate (response_validator)

User-signed actions (withdraw, usd class transfer, send asset) skip the
hash chain and are signed as EIP-712 structs directly.

Each stage is logged as a structured event, and every failure is logged once
here, counted, and re-raised as its typed HyperliquidError. Failures carry the
stage they happened in; `preflight` is True when nothing reached the venue.

Usage:
    async with ExchangeClient(wallet, ExchangeClientConfig(environment="testnet")) as ex:
        result = await ex.place_orders([OrderIntent("BTC-USD", "buy", "100000", "0.0001", tif="Gtc")])
        print(result.oids)
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import httpx

from hlexchange.core.decimal_codec import DecimalLike, to_api_decimal
from hlexchange.core.errors import (
    ApiError,
    ErrorKind,
    HyperliquidError,
    InvalidIntent,
    NonFiniteValue,
    SigningUnavailable,
    Stage,
    TransportError,
)
from hlexchange.core.utils import API_BASES, infer_environment, now_ms
from hlexchange.execution.action_encoder import (
    action_kind,
    encode_cancel_action,
    encode_cancel_by_cloid_action,
    encode_order_action,
    encode_send_asset,
    encode_sub_account_transfer,
    encode_update_leverage,
    encode_usd_class_transfer,
    encode_withdraw,
)
from hlexchange.execution.actions import DEFAULT_TIF, Action, BuilderFee, ExchangeResult, OrderIntent, SignedRequest
from hlexchange.execution.hash_chain import action_hash, u64_be
from hlexchange.execution.request_assembler import RequestAssembler, body_from_request
from hlexchange.execution.response_validator import validate
from hlexchange.execution.signer import Signer
from hlexchange.infra.async_info import InfoClient
from hlexchange.infra.logging_cfg import log_event
from hlexchange.infra.nonce import NonceManager
from hlexchange.market_data.meta_loader import PERP, MetaLoader
from hlexchange.market_data.universe_cache import DEFAULT_TTL_SEC, UniverseCache, symbol_key
from hlexchange.monitoring.metrics_rich import ExchangeMetrics

log = logging.getLogger("hlexchange")


@dataclass
class SubmitResult:
    """Outcome of try_place_orders: either a result or the typed error."""
    success: bool
    result: Optional[ExchangeResult] = None
    error: Optional[HyperliquidError] = None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def stage(self) -> Stage:
        if self.error is not None:
            return self.error.stage
        return Stage.CONFIRMED

    @property
    def preflight(self) -> bool:
        return self.error is not None and self.error.preflight


@dataclass
class ExchangeClientConfig:
    """Configuration for ExchangeClient."""
    environment: Optional[str] = None  # inferred from base_url when unset
    base_url: Optional[str] = None  # defaults to the environment's public API
    http_timeout: float = 10.0
    meta_ttl_sec: float = DEFAULT_TTL_SEC

    # Defaults applied to L1 actions when the call does not override them
    vault_address: Optional[str] = None
    expires_after_ms: int = 0  # 0 = no expiry
    default_tif: str = DEFAULT_TIF

    # Hold a per-account lock from nonce allocation until the response arrives
    serialize_submissions: bool = False

    # Address used for nonce bookkeeping and info reads; defaults to the signer's
    account: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Any) -> "ExchangeClientConfig":
        """Build from a config.Settings (or anything with the same attributes)."""
        return cls(
            environment=settings.environment,
            base_url=settings.base_url,
            http_timeout=settings.http_timeout,
            meta_ttl_sec=settings.meta_ttl_sec,
            vault_address=settings.vault_address,
            expires_after_ms=settings.expires_after_ms,
            default_tif=settings.default_tif,
            serialize_submissions=settings.serialize_submissions,
            account=settings.user_address,
        )


class ExchangeClient:
    """
    Signs and submits exchange actions for one account on one endpoint.

    Collaborators can be injected (tests, shared caches across clients);
    anything not passed is created and owned by this client.
    """

    def __init__(
        self,
        wallet: Any = None,
        config: Optional[ExchangeClientConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        universe: Optional[UniverseCache] = None,
        nonces: Optional[NonceManager] = None,
        metrics: Optional[ExchangeMetrics] = None,
    ) -> None:
        """
        Args:
            wallet: Object exposing sign_typed_data(full_message=...), e.g. an
                eth_account LocalAccount. None allows info reads only.
            config: Endpoint and default settings
            client: Shared httpx.AsyncClient (not closed by close())
            universe: Shared UniverseCache
            nonces: Shared NonceManager
            metrics: Prometheus metrics holder
        """
        self.config = config or ExchangeClientConfig()
        base_url = self.config.base_url
        self.environment = self.config.environment or infer_environment(base_url)
        self.base_url = (base_url or API_BASES[self.environment]).rstrip("/")

        self.signer = Signer(wallet) if wallet is not None else None
        self.metrics = metrics or ExchangeMetrics()

        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(http2=True, timeout=self.config.http_timeout)
            self._owns_client = True

        self.universe = universe or UniverseCache(
            MetaLoader(self.client),
            ttl_sec=self.config.meta_ttl_sec,
            on_fetch=self.metrics.record_meta_fetch,
        )
        self.nonces = nonces or NonceManager()
        self.info = InfoClient(self.base_url, client=self.client)
        self.assembler = RequestAssembler(self.base_url, self.client)

    @property
    def is_mainnet(self) -> bool:
        return self.environment == "mainnet"

    @property
    def account(self) -> Optional[str]:
        if self.config.account:
            return self.config.account
        if self.signer is not None:
            return self.signer.address
        return None

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "ExchangeClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ========== Asset Resolution ==========

    async def resolve_asset(self, symbol: str, market: str = PERP) -> int:
        return await self.universe.resolve(symbol, self.environment, self.base_url, market)

    def invalidate_universe(self) -> None:
        """Force the next resolution to refetch metadata (e.g. after a listing)."""
        self.universe.invalidate(self.environment, self.base_url)

    # ========== Orders ==========

    async def place_orders(
        self,
        orders: Sequence[OrderIntent],
        grouping: str = "na",
        builder: Optional[BuilderFee] = None,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
        nonce: Optional[int] = None,
        market: str = PERP,
    ) -> ExchangeResult:
        """
        Place a batch of orders as one signed action.

        Raises:
            EmptyOrderBatch, InvalidIntent, NonFiniteValue: intent rejected locally
            UnknownAsset: a symbol is not in the venue's universe
            SignerError: wallet missing or returned a bad signature
            TransportError: network failure or unparsable response
            ApiError: venue rejected the action or at least one order
        """
        async def build() -> Action:
            intents = [self._with_default_tif(o) for o in orders]
            assets = [await self.resolve_asset(o.symbol, market) for o in intents]
            return encode_order_action(intents, assets, grouping=grouping, builder=builder)

        return await self._run_l1("order", build, nonce, vault_address, expires_after)

    async def try_place_orders(self, orders: Sequence[OrderIntent], **kwargs: Any) -> SubmitResult:
        """place_orders without raising: the error comes back in the result."""
        try:
            result = await self.place_orders(orders, **kwargs)
        except HyperliquidError as exc:
            return SubmitResult(success=False, error=exc)
        return SubmitResult(success=True, result=result)

    async def close_position(
        self,
        symbol: str,
        size: Optional[DecimalLike] = None,
        price: DecimalLike = "0",
        user: Optional[str] = None,
    ) -> ExchangeResult:
        """
        Close an open perp position with a reduce-only FrontendMarket order.

        The side is the opposite of the current position. Without an explicit
        size the whole position is closed.

        Raises:
            InvalidIntent: no open position for symbol, or size is not positive
        """
        try:
            state = await self.clearinghouse_state(user)
            szi = position_size(state, symbol)
            if szi == 0:
                raise InvalidIntent(f"No open position to close for {symbol}", field="symbol")
            if size is None:
                close_size = to_api_decimal(abs(szi))
            else:
                close_size = to_api_decimal(size)
                if _as_decimal(close_size) <= 0:
                    raise InvalidIntent(f"size must be positive, got {size!r}", field="size")
        except HyperliquidError as exc:
            self._record_failure("order", exc)
            raise

        side = "sell" if szi > 0 else "buy"
        log_event(log, "position_close", symbol=symbol, position=str(szi), side=side, size=close_size)
        intent = OrderIntent(symbol, side, price, close_size, tif="FrontendMarket", reduce_only=True)
        return await self.place_orders([intent])

    async def cancel(
        self,
        symbol: str,
        oid: int,
        vault_address: Optional[str] = None,
        nonce: Optional[int] = None,
        market: str = PERP,
    ) -> ExchangeResult:
        async def build() -> Action:
            asset = await self.resolve_asset(symbol, market)
            return encode_cancel_action([(asset, oid)])

        return await self._run_l1("cancel", build, nonce, vault_address, None)

    async def cancel_by_cloid(
        self,
        symbol: str,
        cloid: str,
        vault_address: Optional[str] = None,
        nonce: Optional[int] = None,
        market: str = PERP,
    ) -> ExchangeResult:
        async def build() -> Action:
            asset = await self.resolve_asset(symbol, market)
            return encode_cancel_by_cloid_action([(asset, cloid)])

        return await self._run_l1("cancelByCloid", build, nonce, vault_address, None)

    # ========== Account Actions ==========

    async def update_leverage(
        self,
        symbol: str,
        leverage: int,
        is_cross: bool = True,
        vault_address: Optional[str] = None,
        nonce: Optional[int] = None,
    ) -> ExchangeResult:
        async def build() -> Action:
            asset = await self.resolve_asset(symbol, PERP)
            return encode_update_leverage(asset, leverage, is_cross)

        return await self._run_l1("updateLeverage", build, nonce, vault_address, None)

    async def sub_account_transfer(
        self,
        sub_account_user: str,
        is_deposit: bool,
        usd: DecimalLike,
        nonce: Optional[int] = None,
    ) -> ExchangeResult:
        """Move USD between the master account and a sub-account (usd in dollars)."""
        async def build() -> Action:
            return encode_sub_account_transfer(sub_account_user, is_deposit, usd)

        # sub-account transfers are always signed by the master, never a vault
        return await self._run_l1("subAccountTransfer", build, nonce, "", None)

    async def usd_class_transfer(
        self,
        amount: DecimalLike,
        to_perp: bool,
        nonce: Optional[int] = None,
    ) -> ExchangeResult:
        def build(n: int) -> Action:
            return encode_usd_class_transfer(amount, to_perp, n, self.is_mainnet)

        return await self._run_user_signed("usdClassTransfer", build, nonce)

    async def send_asset(
        self,
        destination: str,
        source_dex: str,
        destination_dex: str,
        token: str,
        amount: DecimalLike,
        from_sub_account: str = "",
        nonce: Optional[int] = None,
    ) -> ExchangeResult:
        def build(n: int) -> Action:
            return encode_send_asset(
                destination, source_dex, destination_dex, token, amount, n, self.is_mainnet,
                from_sub_account=from_sub_account,
            )

        return await self._run_user_signed("sendAsset", build, nonce)

    async def withdraw(
        self,
        destination: str,
        amount: DecimalLike,
        nonce: Optional[int] = None,
    ) -> ExchangeResult:
        """Withdraw USDC to an address on the bridge chain."""
        def build(n: int) -> Action:
            return encode_withdraw(destination, amount, n, self.is_mainnet)

        return await self._run_user_signed("withdraw3", build, nonce)

    # ========== Info Reads ==========

    async def clearinghouse_state(self, user: Optional[str] = None) -> Dict[str, Any]:
        return await self.info.clearinghouse_state(self._require_user(user))

    async def spot_clearinghouse_state(self, user: Optional[str] = None) -> Dict[str, Any]:
        return await self.info.spot_clearinghouse_state(self._require_user(user))

    def _require_user(self, user: Optional[str]) -> str:
        user = user or self.account
        if not user:
            raise SigningUnavailable("No account address configured for info reads.")
        return user

    # ========== Pipeline ==========

    def _with_default_tif(self, intent: OrderIntent) -> OrderIntent:
        if intent.trigger is None and intent.tif is None:
            return replace(intent, tif=self.config.default_tif)
        return intent

    def _require_signer(self) -> Signer:
        if self.signer is None:
            raise SigningUnavailable()
        return self.signer

    def _nonce_account(self, signer: Signer) -> str:
        return signer.address or self.account or "default"

    def _allocate_nonce(self, account: str, nonce: Optional[int]) -> int:
        if nonce is None:
            return self.nonces.next_nonce(account)
        u64_be(nonce, "nonce")
        self.nonces.observe(account, nonce)
        return nonce

    @asynccontextmanager
    async def _account_guard(self, account: str) -> AsyncIterator[None]:
        if not self.config.serialize_submissions:
            yield
            return
        lock: asyncio.Lock = await self.nonces.get_lock(account)
        async with lock:
            yield

    async def _run_l1(
        self,
        action_type: str,
        build: Any,
        nonce: Optional[int],
        vault_address: Optional[str],
        expires_after: Optional[int],
    ) -> ExchangeResult:
        # "" means explicitly no vault; None falls back to the configured one
        vault = self.config.vault_address if vault_address is None else (vault_address or None)
        try:
            signer = self._require_signer()
            action = await build()
            log_event(log, "action_encoded", level=logging.DEBUG, action_type=action_kind(action))

            account = self._nonce_account(signer)
            async with self._account_guard(account):
                n = self._allocate_nonce(account, nonce)
                expires = self._expires_after(expires_after)
                connection_id = action_hash(action, n, vault, expires)
                log_event(
                    log, "action_hashed", level=logging.DEBUG,
                    action_type=action_type, nonce=n, connection_id="0x" + connection_id.hex(),
                    vault_address=vault, expires_after=expires,
                )
                signature = await signer.sign_connection_id(connection_id, self.is_mainnet)
                log_event(log, "action_signed", level=logging.DEBUG, action_type=action_type, nonce=n, v=signature.v)
                req = SignedRequest(action, n, signature, vault_address=vault, expires_after=expires)
                return await self._post(action_type, body_from_request(req))
        except HyperliquidError as exc:
            self._record_failure(action_type, exc)
            raise

    async def _run_user_signed(self, action_type: str, build: Any, nonce: Optional[int]) -> ExchangeResult:
        try:
            signer = self._require_signer()
            account = self._nonce_account(signer)
            async with self._account_guard(account):
                n = self._allocate_nonce(account, nonce)
                action = build(n)
                log_event(log, "action_encoded", level=logging.DEBUG, action_type=action_type, nonce=n)
                signature = await signer.sign_user_action(action)
                log_event(log, "action_signed", level=logging.DEBUG, action_type=action_type, nonce=n, v=signature.v)
                return await self._post(action_type, body_from_request(SignedRequest(action, n, signature)))
        except HyperliquidError as exc:
            self._record_failure(action_type, exc)
            raise

    def _expires_after(self, expires_after: Optional[int]) -> Optional[int]:
        if expires_after is not None:
            return expires_after
        if self.config.expires_after_ms > 0:
            return now_ms() + self.config.expires_after_ms
        return None

    async def _post(self, action_type: str, body: Dict[str, Any]) -> ExchangeResult:
        self.metrics.actions_submitted.labels(action_type=action_type, environment=self.environment).inc()
        log_event(log, "action_submitted", action_type=action_type, nonce=body["nonce"], url=self.assembler.exchange_url)

        start = time.perf_counter()
        response = await self.assembler.submit(body)
        self.metrics.submit_latency_ms.labels(action_type=action_type).observe((time.perf_counter() - start) * 1000.0)

        result = validate(response)
        result.nonce = body["nonce"]
        self.metrics.actions_confirmed.labels(action_type=action_type, environment=self.environment).inc()
        log_event(
            log, "action_confirmed",
            action_type=action_type, nonce=body["nonce"], response_type=result.response_type,
            oids=result.oids,
        )
        return result

    def _record_failure(self, action_type: str, exc: HyperliquidError) -> None:
        if exc.preflight:
            self.metrics.preflight_failures.labels(kind=exc.kind.value).inc()
        elif isinstance(exc, ApiError):
            self.metrics.orders_rejected.labels(action_type=action_type, reason=_reason(exc.message)).inc()
        elif isinstance(exc, TransportError):
            self.metrics.transport_errors.labels(endpoint="exchange").inc()

        log_event(
            log, "action_failed", level=logging.WARNING,
            action_type=action_type, kind=exc.kind.value, stage=exc.stage.value,
            preflight=exc.preflight, err=exc.message,
        )


def _as_decimal(text: str) -> Decimal:
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise InvalidIntent(f"size must be a decimal amount, got {text!r}", field="size") from exc
    if not value.is_finite():
        raise NonFiniteValue(text)
    return value


def position_size(state: Dict[str, Any], symbol: str) -> Decimal:
    """Signed size (szi) of the perp position for symbol; 0 when flat or absent."""
    target = symbol_key(symbol, PERP)
    if not isinstance(state, dict):
        return Decimal(0)
    for entry in state.get("assetPositions") or []:
        if not isinstance(entry, dict):
            continue
        pos = entry.get("position", entry)
        if str(pos.get("coin", "")).upper() != target:
            continue
        try:
            szi = Decimal(str(pos.get("szi")))
        except InvalidOperation:
            return Decimal(0)
        return szi if szi.is_finite() else Decimal(0)
    return Decimal(0)


# Rejection messages -> metric label. First match wins; anything else is "other".
REJECT_REASONS = (
    ("margin", "insufficient_margin"),
    ("tick size", "tick_size"),
    ("minimum value", "min_notional"),
    ("reduce only", "reduce_only"),
    ("post only", "post_only"),
    ("could not immediately match", "ioc_no_match"),
    ("nonce", "nonce"),
    ("does not exist", "unknown_user"),
    ("price", "bad_price"),
    ("leverage", "leverage"),
    ("rate limit", "rate_limited"),
)


def _reason(message: str) -> str:
    """Fixed-vocabulary label for a venue rejection message."""
    text = message.lower()
    for needle, label in REJECT_REASONS:
        if needle in text:
            return label
    return "other"
