"""
Tests for ExchangeClient - the end-to-end signing and submission pipeline.

Tests cover:
- Golden /exchange body for an order
- Pre-flight failures never reaching the venue
- Venue rejections and transport failures
- Vault, expiry and nonce handling
- User-signed transfer actions
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from conftest import TESTNET_URL, FakeVenue, order_ok
from eth_utils import keccak
from hyperliquid.utils.signing import sign_l1_action as sdk_sign_l1_action
from hyperliquid.utils.signing import sign_withdraw_from_bridge_action

from hlexchange.core.errors import (
    ApiError,
    EmptyOrderBatch,
    ErrorKind,
    InvalidIntent,
    NonFiniteValue,
    SigningUnavailable,
    Stage,
    TransportError,
    UnknownAsset,
)
from hlexchange.execution.actions import OrderIntent, Resting
from hlexchange.execution.execution_gateway import ExchangeClient, ExchangeClientConfig, _reason
from hlexchange.execution.hash_chain import action_hash, preimage
from hlexchange.monitoring.metrics_rich import ExchangeMetrics

NONCE = 1700000000000
VAULT = "0x" + "cd" * 20
DEST = "0x" + "12" * 20

# msgpack(action) | nonce u64 BE | no-vault marker, for the BTC buy below
GOLDEN_PREIMAGE = bytes.fromhex(
    "83"
    "a474797065" "a56f72646572"
    "a66f7264657273" "91" "86"
    "a161" "03"
    "a162" "c3"
    "a170" "a6313030303030"
    "a173" "a6302e30303031"
    "a172" "c2"
    "a174" "81" "a56c696d6974" "81" "a3746966" "a3477463"
    "a867726f7570696e67" "a26e61"
    "0000018bcfe56800"
    "00"
)
# r = 0x11.., s = 0x000f22.., v = 1
GOLDEN_SIGNATURE = bytes.fromhex("11" * 32 + "000f" + "22" * 30 + "01")
GOLDEN_BODY = (
    b'{"action":{"type":"order","orders":[{"a":3,"b":true,"p":"100000","s":"0.0001","r":false,'
    b'"t":{"limit":{"tif":"Gtc"}}}],"grouping":"na"},"nonce":1700000000000,'
    b'"signature":{"r":"0x' + b"11" * 32 + b'","s":"0xf' + b"22" * 30 + b'","v":28}}'
)


def btc_buy(**kwargs) -> OrderIntent:
    return OrderIntent(symbol="BTC-USD", side="buy", price="100000", size="0.0001", tif="Gtc", **kwargs)


def make_exchange(wallet, venue: FakeVenue, **cfg) -> ExchangeClient:
    config = ExchangeClientConfig(environment="testnet", base_url=TESTNET_URL, **cfg)
    return ExchangeClient(wallet, config, client=venue.client(), metrics=ExchangeMetrics())


def sample(exchange: ExchangeClient, name: str, **labels) -> float:
    return exchange.metrics.registry.get_sample_value(name, labels) or 0.0


@pytest.fixture
def exchange(wallet, venue):
    return make_exchange(wallet, venue)


class TestPlaceOrders:
    """Order submission happy paths."""

    @pytest.mark.asyncio
    async def test_golden_order_body(self, venue):
        """The exact bytes posted for a single BTC limit buy, with a fixed wallet signature."""
        wallet = MagicMock()
        wallet.address = "0x" + "ab" * 20
        wallet.sign_typed_data.return_value = GOLDEN_SIGNATURE
        exchange = make_exchange(wallet, venue)

        await exchange.place_orders([btc_buy()], nonce=NONCE)

        assert venue.exchange_requests[0].content == GOLDEN_BODY
        typed = wallet.sign_typed_data.call_args.kwargs["full_message"]
        assert typed["message"] == {"source": "b", "connectionId": keccak(GOLDEN_PREIMAGE)}

    def test_golden_connection_id(self):
        action = {
            "type": "order",
            "orders": [{"a": 3, "b": True, "p": "100000", "s": "0.0001", "r": False, "t": {"limit": {"tif": "Gtc"}}}],
            "grouping": "na",
        }
        assert preimage(action, NONCE) == GOLDEN_PREIMAGE
        assert action_hash(action, NONCE) == keccak(GOLDEN_PREIMAGE)

    @pytest.mark.asyncio
    async def test_order_signature_matches_reference(self, exchange, venue, wallet):
        await exchange.place_orders([btc_buy()], nonce=NONCE)
        body = venue.exchange_bodies[0]
        assert body["signature"] == sdk_sign_l1_action(wallet, body["action"], None, NONCE, None, False)

    @pytest.mark.asyncio
    async def test_result_carries_outcomes(self, wallet):
        venue = FakeVenue(order_ok({"resting": {"oid": 77}}))
        exchange = make_exchange(wallet, venue)
        result = await exchange.place_orders([btc_buy()], nonce=NONCE)
        assert result.statuses == [Resting(oid=77)]
        assert result.oids == [77]
        assert result.nonce == NONCE
        assert sample(exchange, "hl_actions_confirmed_total", action_type="order", environment="testnet") == 1.0

    @pytest.mark.asyncio
    async def test_universe_fetched_once(self, exchange, venue):
        await exchange.place_orders([btc_buy()])
        await exchange.place_orders([btc_buy(), OrderIntent("ETH-USD", "sell", "3000", "1")])
        meta_queries = [q for q in venue.info_requests if q["type"] == "meta"]
        assert len(meta_queries) == 1
        assert [o["a"] for o in venue.exchange_bodies[1]["action"]["orders"]] == [3, 0]

    @pytest.mark.asyncio
    async def test_spot_market_uses_offset_index(self, exchange, venue):
        await exchange.place_orders([OrderIntent("PURR-USDC", "buy", "0.1", "10")], market="spot")
        assert venue.exchange_bodies[0]["action"]["orders"][0]["a"] == 10000

    @pytest.mark.asyncio
    async def test_default_tif_from_config(self, wallet, venue):
        exchange = make_exchange(wallet, venue, default_tif="Alo")
        await exchange.place_orders([OrderIntent("BTC", "buy", "1", "1")])
        assert venue.exchange_bodies[0]["action"]["orders"][0]["t"] == {"limit": {"tif": "Alo"}}

    @pytest.mark.asyncio
    async def test_nonces_strictly_increase(self, exchange, venue):
        await asyncio.gather(*(exchange.place_orders([btc_buy()]) for _ in range(5)))
        nonces = [b["nonce"] for b in venue.exchange_bodies]
        assert len(set(nonces)) == 5

    @pytest.mark.asyncio
    async def test_serialized_submissions(self, wallet, venue):
        exchange = make_exchange(wallet, venue, serialize_submissions=True)
        await asyncio.gather(*(exchange.place_orders([btc_buy()]) for _ in range(3)))
        nonces = [b["nonce"] for b in venue.exchange_bodies]
        assert nonces == sorted(nonces)
        assert len(set(nonces)) == 3

    @pytest.mark.asyncio
    async def test_caller_nonce_raises_floor(self, exchange, venue):
        far_future = NONCE * 10
        await exchange.place_orders([btc_buy()], nonce=far_future)
        await exchange.place_orders([btc_buy()])
        assert venue.exchange_bodies[1]["nonce"] == far_future + 1


class TestVaultAndExpiry:
    @pytest.mark.asyncio
    async def test_configured_vault_and_expiry(self, wallet, venue):
        exchange = make_exchange(wallet, venue, vault_address=VAULT, expires_after_ms=60_000)
        await exchange.place_orders([btc_buy()], nonce=NONCE)
        body = venue.exchange_bodies[0]
        assert list(body) == ["action", "nonce", "signature", "vaultAddress", "expiresAfter"]
        assert body["vaultAddress"] == VAULT
        assert body["expiresAfter"] > NONCE

    @pytest.mark.asyncio
    async def test_call_overrides(self, wallet, venue):
        exchange = make_exchange(wallet, venue, vault_address=VAULT)
        await exchange.place_orders([btc_buy()], nonce=NONCE, vault_address="", expires_after=NONCE + 5)
        body = venue.exchange_bodies[0]
        assert "vaultAddress" not in body
        assert body["expiresAfter"] == NONCE + 5

    @pytest.mark.asyncio
    async def test_vault_signature_matches_reference(self, wallet, venue):
        exchange = make_exchange(wallet, venue)
        await exchange.cancel("ETH", 91, vault_address=VAULT, nonce=NONCE)
        body = venue.exchange_bodies[0]
        action = {"type": "cancel", "cancels": [{"a": 0, "o": 91}]}
        assert body["action"] == action
        assert body["signature"] == sdk_sign_l1_action(wallet, action, VAULT, NONCE, None, False)

    @pytest.mark.asyncio
    async def test_sub_account_transfer_ignores_vault(self, wallet, venue):
        exchange = make_exchange(wallet, venue, vault_address=VAULT)
        await exchange.sub_account_transfer(DEST, True, "10")
        body = venue.exchange_bodies[0]
        assert "vaultAddress" not in body
        assert body["action"]["usd"] == 10_000_000


class TestFailures:
    """Typed errors, stages and what reaches the venue."""

    @pytest.mark.asyncio
    async def test_unknown_symbol_never_signs_or_submits(self, venue):
        wallet = MagicMock()
        exchange = make_exchange(wallet, venue)
        with pytest.raises(UnknownAsset) as exc_info:
            await exchange.place_orders([OrderIntent("ZZZ-USD", "buy", "1", "1")])
        assert exc_info.value.preflight
        assert exc_info.value.stage == Stage.BUILT
        wallet.sign_typed_data.assert_not_called()
        assert venue.exchange_requests == []
        assert sample(exchange, "hl_preflight_failures_total", kind="unknown_asset") == 1.0

    @pytest.mark.asyncio
    async def test_empty_batch(self, exchange, venue):
        with pytest.raises(EmptyOrderBatch):
            await exchange.place_orders([])
        assert venue.exchange_requests == []

    @pytest.mark.asyncio
    async def test_out_of_range_nonce_rejected(self, exchange, venue):
        with pytest.raises(InvalidIntent):
            await exchange.place_orders([btc_buy()], nonce=2**64)
        assert venue.exchange_requests == []
        await exchange.place_orders([btc_buy()])
        assert venue.exchange_bodies[0]["nonce"] < 2**64

    @pytest.mark.asyncio
    async def test_no_wallet(self, venue):
        exchange = make_exchange(None, venue)
        with pytest.raises(SigningUnavailable):
            await exchange.place_orders([btc_buy()])
        assert venue.exchange_requests == []

    @pytest.mark.asyncio
    async def test_order_rejection(self, wallet):
        data = order_ok({"error": "Insufficient margin"})
        venue = FakeVenue(data)
        exchange = make_exchange(wallet, venue)
        with pytest.raises(ApiError) as exc_info:
            await exchange.place_orders([btc_buy()])
        assert exc_info.value.message == "Insufficient margin"
        assert exc_info.value.response == data
        assert not exc_info.value.preflight
        assert sample(exchange, "hl_orders_rejected_total", action_type="order", reason="insufficient_margin") == 1.0

    @pytest.mark.asyncio
    async def test_http_failure(self, wallet):
        venue = FakeVenue({"oops": True}, status_code=502)
        exchange = make_exchange(wallet, venue)
        with pytest.raises(TransportError) as exc_info:
            await exchange.place_orders([btc_buy()])
        assert exc_info.value.status_code == 502
        assert not exc_info.value.preflight
        assert sample(exchange, "hl_transport_errors_total", endpoint="exchange") == 1.0

    @pytest.mark.asyncio
    async def test_try_place_orders(self, wallet):
        exchange = make_exchange(wallet, FakeVenue(order_ok({"error": "Tick size"})))
        failed = await exchange.try_place_orders([btc_buy()])
        assert not failed.success
        assert failed.kind == ErrorKind.API
        assert failed.stage == Stage.REJECTED
        assert not failed.preflight

        empty = await exchange.try_place_orders([])
        assert empty.kind == ErrorKind.VALIDATION
        assert empty.preflight

    @pytest.mark.asyncio
    async def test_try_place_orders_success(self, exchange):
        ok = await exchange.try_place_orders([btc_buy()])
        assert ok.success
        assert ok.error is None
        assert ok.stage == Stage.CONFIRMED


class TestUserSignedActions:
    @pytest.mark.asyncio
    async def test_withdraw(self, exchange, venue, wallet):
        await exchange.withdraw(DEST, "25", nonce=NONCE)
        body = venue.exchange_bodies[0]
        assert list(body) == ["action", "nonce", "signature"]
        action = body["action"]
        assert action["type"] == "withdraw3"
        assert action["time"] == NONCE
        assert action["hyperliquidChain"] == "Testnet"
        assert body["signature"] == sign_withdraw_from_bridge_action(wallet, dict(action), False)

    @pytest.mark.asyncio
    async def test_usd_class_transfer_nonce_matches_body(self, exchange, venue):
        await exchange.usd_class_transfer("10", to_perp=False)
        body = venue.exchange_bodies[0]
        assert body["action"]["nonce"] == body["nonce"]
        assert body["action"]["toPerp"] is False

    @pytest.mark.asyncio
    async def test_send_asset(self, exchange, venue):
        await exchange.send_asset(DEST, "", "spot", "USDC", "1.5", nonce=NONCE)
        action = venue.exchange_bodies[0]["action"]
        assert action["type"] == "sendAsset"
        assert action["destinationDex"] == "spot"
        assert action["amount"] == "1.5"
        assert action["nonce"] == NONCE

    @pytest.mark.asyncio
    async def test_user_signed_ignores_configured_vault(self, wallet, venue):
        exchange = make_exchange(wallet, venue, vault_address=VAULT, expires_after_ms=1000)
        await exchange.withdraw(DEST, "1")
        assert list(venue.exchange_bodies[0]) == ["action", "nonce", "signature"]


class TestOtherActions:
    @pytest.mark.asyncio
    async def test_cancel_by_cloid(self, exchange, venue):
        cloid = "0x" + "ef" * 16
        await exchange.cancel_by_cloid("BTC-USD", cloid)
        assert venue.exchange_bodies[0]["action"] == {"type": "cancelByCloid", "cancels": [{"asset": 3, "cloid": cloid}]}

    @pytest.mark.asyncio
    async def test_update_leverage(self, exchange, venue):
        await exchange.update_leverage("SOL-USD", 5, is_cross=False)
        assert venue.exchange_bodies[0]["action"] == {
            "type": "updateLeverage", "asset": 1, "isCross": False, "leverage": 5,
        }

    @pytest.mark.asyncio
    async def test_clearinghouse_state_for_configured_account(self, venue):
        exchange = make_exchange(None, venue, account=DEST)
        state = await exchange.clearinghouse_state()
        assert state["user"] == DEST
        assert venue.info_requests[-1] == {"type": "clearinghouseState", "user": DEST}


class TestConfig:
    def test_environment_inferred_from_url(self, venue):
        exchange = ExchangeClient(None, ExchangeClientConfig(base_url=TESTNET_URL), client=venue.client())
        assert exchange.environment == "testnet"
        assert not exchange.is_mainnet

    def test_base_url_from_environment(self, venue):
        exchange = ExchangeClient(None, ExchangeClientConfig(environment="mainnet"), client=venue.client())
        assert exchange.base_url == "https://api.hyperliquid.xyz"
        assert exchange.is_mainnet


def eth_position(szi: str) -> dict:
    return {"type": "oneWay", "position": {"coin": "ETH", "szi": szi, "entryPx": "3000.0"}}


class TestClosePosition:
    @pytest.mark.asyncio
    async def test_close_long(self, exchange, venue, wallet):
        venue.asset_positions = [{"type": "oneWay", "position": {"coin": "BTC", "szi": "0.1"}}, eth_position("1.25")]
        await exchange.close_position("ETH-USD")
        assert venue.info_requests[0] == {"type": "clearinghouseState", "user": wallet.address}
        order = venue.exchange_bodies[0]["action"]["orders"][0]
        assert order == {"a": 0, "b": False, "p": "0", "s": "1.25", "r": True, "t": {"limit": {"tif": "FrontendMarket"}}}

    @pytest.mark.asyncio
    async def test_close_short(self, exchange, venue):
        venue.asset_positions = [eth_position("-0.5")]
        await exchange.close_position("ETH")
        order = venue.exchange_bodies[0]["action"]["orders"][0]
        assert order["b"] is True
        assert order["s"] == "0.5"
        assert order["r"] is True

    @pytest.mark.asyncio
    async def test_explicit_size(self, exchange, venue):
        venue.asset_positions = [eth_position("-0.5")]
        await exchange.close_position("ETH", size="0.2", price="3100")
        order = venue.exchange_bodies[0]["action"]["orders"][0]
        assert (order["b"], order["s"], order["p"]) == (True, "0.2", "3100")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("positions", [[], [eth_position("0.0")], [{"position": {"coin": "SOL", "szi": "3"}}]])
    async def test_no_position(self, exchange, venue, positions):
        venue.asset_positions = positions
        with pytest.raises(InvalidIntent) as exc_info:
            await exchange.close_position("ETH")
        assert exc_info.value.preflight
        assert venue.exchange_requests == []
        assert sample(exchange, "hl_preflight_failures_total", kind="validation") == 1.0

    @pytest.mark.asyncio
    async def test_non_positive_size(self, exchange, venue):
        venue.asset_positions = [eth_position("1")]
        with pytest.raises(InvalidIntent):
            await exchange.close_position("ETH", size="-1")
        assert venue.exchange_requests == []


class TestMetricLabels:
    @pytest.mark.parametrize("message,label", [
        ("Insufficient margin to place order. asset=3", "insufficient_margin"),
        ("Order has invalid price.", "bad_price"),
        ("Price must be divisible by tick size. asset=0", "tick_size"),
        ("Order must have minimum value of $10. asset=3", "min_notional"),
        ("Post only order would have immediately matched, bbo was 99.5@100. asset=3", "post_only"),
        ("User or API Wallet 0xabc does not exist.", "unknown_user"),
        ("something new from the venue 0x1234", "other"),
    ])
    def test_rejection_reason_vocabulary(self, message, label):
        assert _reason(message) == label

    @pytest.mark.asyncio
    async def test_distinct_messages_share_label(self, wallet):
        venue = FakeVenue(order_ok({"error": "Insufficient margin to place order. asset=3"}))
        exchange = make_exchange(wallet, venue)
        for _ in range(2):
            with pytest.raises(ApiError):
                await exchange.place_orders([btc_buy()])
        venue.exchange_response = order_ok({"error": "Insufficient margin to place order. asset=0"})
        with pytest.raises(ApiError):
            await exchange.place_orders([btc_buy()])
        assert sample(exchange, "hl_orders_rejected_total", action_type="order", reason="insufficient_margin") == 3.0

    @pytest.mark.asyncio
    async def test_non_finite_transfer_is_counted(self, exchange, venue):
        with pytest.raises(NonFiniteValue):
            await exchange.sub_account_transfer(DEST, True, "Infinity")
        assert venue.exchange_requests == []
        assert sample(exchange, "hl_preflight_failures_total", kind="validation") == 1.0
