"""nftmarket CLI — inspect a marketplace event log and run settlement math.

Usage:
    python -m nftmarket.cli status
    python -m nftmarket.cli listings --mode auction
    python -m nftmarket.cli fee-split --amount 20 --rate 5
    python -m nftmarket.cli verify-log --events data/events.jsonl
    python -m nftmarket.cli demo --events /tmp/demo.jsonl
    python -m nftmarket.cli check-invariants

The CLI has no live custody or payment backend. Listing state is
recovered by replaying the event log.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from nftmarket import __version__
from nftmarket.config import DEFAULT_CONFIG_PATH, MarketConfig
from nftmarket.models.listing import SaleMode
from nftmarket.monitoring.logging import configure_logging
from nftmarket.persistence.event_log import EventLog
from nftmarket.persistence.replay import rebuild_registry
from nftmarket.service import MarketplaceService
from nftmarket.settlement.fees import compute_split
from nftmarket.settlement.vault import InMemoryVault


DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"
DEFAULT_EVENTS = DEFAULT_DATA / "events.jsonl"


def _load_config(config_path: Path) -> MarketConfig:
    """Environment (and .env) overrides the params file."""
    return MarketConfig.from_env(fallback=MarketConfig.from_file(config_path))


def cmd_status(args: argparse.Namespace) -> int:
    config = _load_config(args.config)
    log = EventLog(storage_path=args.events)
    replay = rebuild_registry(log.events())
    registry = replay.registry
    status = {
        "version": __version__,
        "fee_rate": replay.fee_rate if replay.fee_rate is not None else config.fee_rate,
        "administrator": config.administrator,
        "events": log.count,
        "listings": {
            "total": len(registry),
            "direct": len(registry.items(SaleMode.DIRECT)),
            "auction": len(registry.items(SaleMode.AUCTION)),
        },
        "settled_volume": replay.settled_volume,
        "fees_collected": replay.fees_collected,
    }
    print(json.dumps(status, indent=2))
    return 0


def cmd_listings(args: argparse.Namespace) -> int:
    log = EventLog(storage_path=args.events)
    registry = rebuild_registry(log.events()).registry
    mode = SaleMode(args.mode) if args.mode else None
    rows = [
        {"key": str(key), **listing.to_dict()}
        for key, listing in registry.items(mode)
    ]
    print(json.dumps(rows, indent=2))
    return 0


def cmd_fee_split(args: argparse.Namespace) -> int:
    rate = args.rate if args.rate is not None else _load_config(args.config).fee_rate
    try:
        split = compute_split(args.amount, rate)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps({
        "amount": split.gross,
        "fee_rate": split.fee_rate,
        "fee_amount": split.fee_amount,
        "seller_amount": split.seller_amount,
    }, indent=2))
    return 0


def cmd_verify_log(args: argparse.Namespace) -> int:
    """Check hashes, event ids and replayability of a persisted log."""
    if not args.events.exists():
        print(f"Failed: event log not found: {args.events}", file=sys.stderr)
        return 1
    try:
        log = EventLog(storage_path=args.events)
        replay = rebuild_registry(log.events())
    except (ValueError, KeyError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(
        f"OK: {replay.events_applied} events verified, "
        f"{len(replay.registry)} active listings"
    )
    return 0


def cmd_demo(args: argparse.Namespace) -> int:
    """Run a two-bid auction against an in-memory vault."""
    config = _load_config(args.config)
    vault = InMemoryVault()
    vault.mint("demo", "1", "seller")
    vault.set_approval("seller", "demo")
    vault.deposit("alice", 100)
    vault.deposit("bob", 100)

    service = MarketplaceService(vault, config, event_log=EventLog(storage_path=args.events))
    t0 = datetime.now(timezone.utc)
    steps = [
        service.start_auction("seller", "demo", "1", 10, 100, now=t0),
        service.place_bid("alice", "demo", "1", 15, now=t0 + timedelta(seconds=10)),
        service.place_bid("bob", "demo", "1", 20, now=t0 + timedelta(seconds=20)),
        service.end_auction("bob", "demo", "1", now=t0 + timedelta(seconds=100)),
    ]
    for result in steps:
        if not result.success:
            print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
            return 1

    print(json.dumps({
        "settlement": steps[-1].data,
        "owner": vault.owner_of("demo", "1"),
        "balances": {
            p: vault.balance_of(p)
            for p in ("seller", "alice", "bob", config.administrator)
        },
    }, indent=2))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run configuration and event-log invariant checks."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(config_path=args.config, events_path=args.events)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nftmarket",
        description="nftmarket — escrowed listing and auction engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to market params JSON (default: config/market_params.json)",
    )
    parser.add_argument(
        "--events",
        type=Path,
        default=DEFAULT_EVENTS,
        help="Path to the JSONL event log (default: data/events.jsonl)",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show marketplace status recovered from the log")

    # listings
    p_list = sub.add_parser("listings", help="Show active listings")
    p_list.add_argument("--mode", choices=[m.value for m in SaleMode], help="Filter by sale mode")

    # fee-split
    p_split = sub.add_parser("fee-split", help="Compute the fee/seller split of an amount")
    p_split.add_argument("--amount", type=int, required=True, help="Sale amount (base units)")
    p_split.add_argument("--rate", type=int, help="Fee rate percent (default: configured rate)")

    # verify-log
    sub.add_parser("verify-log", help="Verify event log integrity and replay")

    # demo
    sub.add_parser("demo", help="Run a sample auction and append its events")

    # check-invariants
    sub.add_parser("check-invariants", help="Run configuration and log invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(level=args.log_level, json_output=args.json_logs)

    commands = {
        "status": cmd_status,
        "listings": cmd_listings,
        "fee-split": cmd_fee_split,
        "verify-log": cmd_verify_log,
        "demo": cmd_demo,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
