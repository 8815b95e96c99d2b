#!/usr/bin/env python3
"""Marketplace invariant checks against the params file and the event log.

Reads the JSON artifacts directly, independent of the nftmarket package,
so a log produced by any build can be audited:

- fee rate is an integer percentage in [0, 100], administrator is set
- within each auction, bids strictly increase and arrive before end_time
- every settled auction pays out exactly its last accepted bid
- every settlement splits exactly: fee_amount + seller_amount == amount
- no event touches a key that the previous events left in the wrong state
"""

import json
from datetime import datetime, timezone
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
PARAMS_PATH = ROOT / "config" / "market_params.json"
EVENTS_PATH = ROOT / "data" / "events.jsonl"


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_events(path: Path) -> list[dict]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as handle:
        return [json.loads(line) for line in handle if line.strip()]


def parse_utc(text: str) -> datetime:
    """Parse an event timestamp or ISO end time as an aware UTC datetime."""
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def check_params(params: dict, errors: list[str]) -> None:
    rate = params.get("fee_rate_percent")
    if not isinstance(rate, int) or isinstance(rate, bool):
        errors.append(f"fee_rate_percent must be an integer, got {rate!r}")
    elif not 0 <= rate <= 100:
        errors.append(f"fee_rate_percent must be within [0, 100], got {rate}")
    if not params.get("administrator"):
        errors.append("administrator must be a non-empty principal")


def check_split(label: str, payload: dict, amount: int, errors: list[str]) -> None:
    fee = payload.get("fee_amount", 0)
    proceeds = payload.get("seller_amount", 0)
    if amount and fee + proceeds != amount:
        errors.append(
            f"{label}: fee_amount ({fee}) + seller_amount ({proceeds}) != amount ({amount})"
        )
    if fee < 0 or proceeds < 0:
        errors.append(f"{label}: negative settlement component")


def check_events(events: list[dict], errors: list[str]) -> None:
    # key -> {"mode": ..., "end_time": ..., "bid": ..., "bidder": ...}
    state: dict[tuple[str, str], dict] = {}

    for event in events:
        kind = event["event_kind"]
        payload = event["payload"]
        label = event["event_id"]
        if kind == "fee_rate_changed":
            continue

        key = (payload["collection"], payload["item"])
        current = state.get(key)

        if kind in ("auction_started", "item_listed"):
            if current is not None:
                errors.append(f"{label}: {kind} on already listed key {key}")
            state[key] = {
                "mode": "auction" if kind == "auction_started" else "direct",
                "end_time": payload.get("end_time"),
                "bid": 0,
                "bidder": None,
            }
        elif kind == "new_bid":
            if current is None or current["mode"] != "auction":
                errors.append(f"{label}: bid on key {key} that is not in auction")
                continue
            if payload["amount"] <= current["bid"]:
                errors.append(
                    f"{label}: bid {payload['amount']} does not exceed {current['bid']}"
                )
            if parse_utc(event["timestamp_utc"]) >= parse_utc(current["end_time"]):
                errors.append(f"{label}: bid accepted after auction end")
            current["bid"] = payload["amount"]
            current["bidder"] = payload["bidder"]
        elif kind == "auction_ended":
            if current is None or current["mode"] != "auction":
                errors.append(f"{label}: auction_ended on key {key} that is not in auction")
                continue
            if payload["amount"] != current["bid"] or payload["winner"] != current["bidder"]:
                errors.append(
                    f"{label}: settled {payload['winner']}/{payload['amount']} but "
                    f"last bid was {current['bidder']}/{current['bid']}"
                )
            check_split(label, payload, payload["amount"], errors)
            del state[key]
        elif kind == "item_sold":
            if current is None or current["mode"] != "direct":
                errors.append(f"{label}: item_sold on key {key} that is not listed")
                continue
            check_split(label, payload, payload["price"], errors)
            del state[key]
        elif kind in ("item_unlisted", "price_updated"):
            if current is None or current["mode"] != "direct":
                errors.append(f"{label}: {kind} on key {key} that is not listed")
                continue
            if kind == "item_unlisted":
                del state[key]
        else:
            errors.append(f"{label}: unknown event kind {kind}")


def check(config_path: Path = PARAMS_PATH, events_path: Path = EVENTS_PATH) -> int:
    errors: list[str] = []

    check_params(load_json(config_path), errors)
    check_events(load_events(events_path), errors)

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
