"""
Command-line entry point.

    python -m hlexchange.main order BTC-USD buy 100000 0.0001 --tif Gtc
    python -m hlexchange.main cancel BTC-USD 123456
    python -m hlexchange.main leverage ETH-USD 5 --isolated
    python -m hlexchange.main close ETH-USD --size 0.5
    python -m hlexchange.main withdraw 0xabc... 25
    python -m hlexchange.main usd-class 10 --to-spot
    python -m hlexchange.main send-asset 0xabc... "" spot USDC 1
    python -m hlexchange.main sub-transfer 0xabc... 10 --withdraw
    python -m hlexchange.main status

Settings come from the environment (HL_*), see hlexchange.config. withdraw,
usd-class and send-asset are always signed with HL_PRIVATE_KEY (the master),
never with an agent key.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, List, Optional

from hlexchange.config.config import Settings
from hlexchange.core.errors import ErrorKind, HyperliquidError, Stage
from hlexchange.core.json_utils import dumps
from hlexchange.execution.actions import ExchangeResult, OrderIntent, TriggerSpec
from hlexchange.execution.execution_gateway import ExchangeClient, ExchangeClientConfig
from hlexchange.infra.logging_cfg import build_logger, log_event
from hlexchange.monitoring.metrics_rich import ExchangeMetrics

# Commands the venue only accepts when signed by the master account
USER_SIGNED_COMMANDS = {"withdraw", "usd-class", "send-asset"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hlexchange", description="Sign and submit Hyperliquid exchange actions.")
    sub = parser.add_subparsers(dest="command", required=True)

    order = sub.add_parser("order", help="place a limit or trigger order")
    order.add_argument("symbol")
    order.add_argument("side", choices=["buy", "sell"])
    order.add_argument("price")
    order.add_argument("size")
    order.add_argument("--tif", default=None)
    order.add_argument("--reduce-only", action="store_true")
    order.add_argument("--cloid", default=None)
    order.add_argument("--trigger-px", default=None)
    order.add_argument("--tpsl", choices=["tp", "sl"], default="sl")
    order.add_argument("--trigger-limit", action="store_true", help="trigger fills as a limit, not market")
    order.add_argument("--spot", action="store_true")
    order.add_argument("--nonce", type=int, default=None)

    cancel = sub.add_parser("cancel", help="cancel by order id or client order id")
    cancel.add_argument("symbol")
    cancel.add_argument("oid", help="numeric oid, or a 0x cloid")
    cancel.add_argument("--spot", action="store_true")

    close = sub.add_parser("close", help="close a perp position with a reduce-only market order")
    close.add_argument("symbol")
    close.add_argument("--size", default=None, help="defaults to the whole position")
    close.add_argument("--price", default="0")

    lev = sub.add_parser("leverage", help="update leverage for a perp")
    lev.add_argument("symbol")
    lev.add_argument("leverage", type=int)
    lev.add_argument("--isolated", action="store_true")

    wd = sub.add_parser("withdraw", help="withdraw USDC to an address")
    wd.add_argument("destination")
    wd.add_argument("amount")

    usd = sub.add_parser("usd-class", help="move USDC between spot and perp")
    usd.add_argument("amount")
    usd.add_argument("--to-spot", action="store_true")

    send = sub.add_parser("send-asset", help="send a token across dexes or accounts")
    send.add_argument("destination")
    send.add_argument("source_dex")
    send.add_argument("destination_dex")
    send.add_argument("token")
    send.add_argument("amount")
    send.add_argument("--from-sub-account", default="")

    st = sub.add_parser("sub-transfer", help="move USD to or from a sub-account")
    st.add_argument("sub_account_user")
    st.add_argument("usd")
    st.add_argument("--withdraw", action="store_true", help="sub-account -> master")

    status = sub.add_parser("status", help="print clearinghouse state")
    status.add_argument("--user", default=None)
    status.add_argument("--spot", action="store_true")

    return parser


async def dispatch(args: argparse.Namespace, ex: ExchangeClient) -> Any:
    cmd = args.command
    market = "spot" if getattr(args, "spot", False) else "perp"

    if cmd == "order":
        trigger = None
        if args.trigger_px is not None:
            trigger = TriggerSpec(args.trigger_px, args.tpsl, is_market=not args.trigger_limit)
        intent = OrderIntent(
            symbol=args.symbol,
            side=args.side,
            price=args.price,
            size=args.size,
            tif=args.tif,
            reduce_only=args.reduce_only,
            client_id=args.cloid,
            trigger=trigger,
        )
        return await ex.place_orders([intent], nonce=args.nonce, market=market)
    if cmd == "cancel":
        if args.oid.startswith("0x"):
            return await ex.cancel_by_cloid(args.symbol, args.oid, market=market)
        return await ex.cancel(args.symbol, int(args.oid), market=market)
    if cmd == "close":
        return await ex.close_position(args.symbol, size=args.size, price=args.price)
    if cmd == "leverage":
        return await ex.update_leverage(args.symbol, args.leverage, is_cross=not args.isolated)
    if cmd == "withdraw":
        return await ex.withdraw(args.destination, args.amount)
    if cmd == "usd-class":
        return await ex.usd_class_transfer(args.amount, to_perp=not args.to_spot)
    if cmd == "send-asset":
        return await ex.send_asset(
            args.destination, args.source_dex, args.destination_dex, args.token, args.amount,
            from_sub_account=args.from_sub_account,
        )
    if cmd == "sub-transfer":
        return await ex.sub_account_transfer(args.sub_account_user, not args.withdraw, args.usd)
    if cmd == "status":
        if args.spot:
            return await ex.spot_clearinghouse_state(args.user)
        return await ex.clearinghouse_state(args.user)
    raise ValueError(f"unknown command {cmd!r}")


def render(result: Any) -> str:
    if isinstance(result, ExchangeResult):
        return dumps({
            "type": result.response_type,
            "nonce": result.nonce,
            "oids": result.oids,
            "response": result.raw,
        })
    return dumps(result)


def failure(kind: str, stage: str, error: str) -> str:
    return dumps({"ok": False, "kind": kind, "stage": stage, "error": error})


def resolve_wallet(args: argparse.Namespace, cfg: Settings) -> Any:
    """Pick the signing wallet for a command; status needs only an address."""
    if args.command == "status":
        args.user = args.user or cfg.resolve_account()
        return None
    if args.command in USER_SIGNED_COMMANDS:
        return cfg.resolve_user_signer()
    return cfg.resolve_signer()


async def run(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = Settings.load()
    log = build_logger("hlexchange", level=cfg.log_level, file_path=cfg.log_file)

    metrics = ExchangeMetrics()
    if cfg.metrics_port:
        metrics.serve(cfg.metrics_port)

    try:
        wallet = resolve_wallet(args, cfg)
    except RuntimeError as exc:
        print(failure(ErrorKind.SIGNER.value, Stage.BUILT.value, str(exc)))
        return 1

    async with ExchangeClient(wallet, ExchangeClientConfig.from_settings(cfg), metrics=metrics) as ex:
        try:
            result = await dispatch(args, ex)
        except HyperliquidError as exc:
            # already logged by the client; print a machine-readable failure
            print(failure(exc.kind.value, exc.stage.value, exc.message))
            return 1
    print(render(result))
    log_event(log, "cli_done", command=args.command)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(run(argv))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
