"""Registry reconstruction from the append-only event log.

Every accepted operation appends exactly one event whose payload carries
enough to reapply it, so the listing registry can be rebuilt at any time
by folding the log in order. Used for recovery and by the CLI, which
inspects a persisted log without live custody or payment backends.

Replay is fail-closed: an event that does not apply cleanly to the
state built so far raises ValueError with the offending event id.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, Optional

from nftmarket.market.registry import ListingRegistry
from nftmarket.models.listing import Listing, ListingKey
from nftmarket.persistence.event_log import EventKind, EventRecord
from nftmarket.settlement.escrow import EscrowBook


@dataclass
class ReplayResult:
    """State recovered from a log."""
    registry: ListingRegistry
    escrow_book: EscrowBook
    fee_rate: Optional[int]
    events_applied: int
    settled_volume: int
    fees_collected: int


def rebuild_registry(
    events: Iterable[EventRecord],
    registry: Optional[ListingRegistry] = None,
) -> ReplayResult:
    """Fold ``events`` into a registry and return the recovered state.

    escrow_book holds the leading bid of every open auction, ready to be
    passed to AuctionHouse alongside the registry.

    fee_rate is the most recent rate change seen, or None if the log
    never recorded one.
    """
    registry = registry if registry is not None else ListingRegistry()
    result = ReplayResult(
        registry=registry,
        escrow_book=EscrowBook.from_listings(registry.items()),
        fee_rate=None,
        events_applied=0,
        settled_volume=0,
        fees_collected=0,
    )

    for event in events:
        try:
            _apply(event, result)
        except (KeyError, ValueError) as e:
            raise ValueError(
                f"Replay failed at {event.event_id} ({event.event_kind.value}): {e}"
            ) from e
        result.events_applied += 1

    return result


def _apply(event: EventRecord, result: ReplayResult) -> None:
    payload = event.payload
    kind = event.event_kind
    registry = result.registry

    if kind == EventKind.FEE_RATE_CHANGED:
        result.fee_rate = payload["fee_rate"]
        return

    key = ListingKey(payload["collection"], payload["item"])

    if kind == EventKind.AUCTION_STARTED:
        registry.create(key, Listing(
            seller=payload["seller"],
            price=payload["start_price"],
            is_active=False,
            auction_end_time=datetime.fromisoformat(payload["end_time"]),
        ))
    elif kind == EventKind.NEW_BID:
        listing = registry.require(key)
        at = _parse_utc(event.timestamp_utc)
        if listing.highest_bidder is not None:
            result.escrow_book.refund(key, now=at)
        result.escrow_book.hold(
            key,
            payload["bidder"],
            payload["amount"],
            escrow_id=f"escrow_{event.event_id}",
            now=at,
        )
        registry.replace(key, replace(
            listing,
            highest_bidder=payload["bidder"],
            highest_bid=payload["amount"],
        ))
    elif kind == EventKind.AUCTION_ENDED:
        listing = registry.delete(key)
        if listing.highest_bidder is not None:
            result.escrow_book.settle(key, now=_parse_utc(event.timestamp_utc))
        result.settled_volume += payload["amount"]
        result.fees_collected += payload.get("fee_amount", 0)
    elif kind == EventKind.ITEM_LISTED:
        registry.create(key, Listing(
            seller=payload["seller"],
            price=payload["price"],
            is_active=True,
        ))
    elif kind == EventKind.PRICE_UPDATED:
        listing = registry.require(key)
        registry.replace(key, replace(listing, price=payload["price"]))
    elif kind == EventKind.ITEM_UNLISTED:
        registry.delete(key)
    elif kind == EventKind.ITEM_SOLD:
        registry.delete(key)
        result.settled_volume += payload["price"]
        result.fees_collected += payload.get("fee_amount", 0)


def _parse_utc(text: str) -> datetime:
    return datetime.strptime(text, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
