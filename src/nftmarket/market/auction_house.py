"""Auction house — the listing/auction state machine with escrow and settlement.

Each operation follows the same transaction shape:

1. Validate preconditions against the current listing (raise
   PreconditionViolation before anything moves).
2. Build the replacement listing (pure, nothing is visible yet).
3. Inside ``vault.atomic()``: perform the custody/payment effects in
   order, then append the event. Any failure undoes every effect of
   the block and propagates to the caller.
4. Commit: swap the new listing into the registry and update the
   escrow book. Step 1 checked the book against the listing, so this
   step cannot fail once effects are in place.

The registry is therefore never touched unless every effect and the
audit event have succeeded.

Settlement order at auction end (each step requires the previous):
    item → winner, fee computed, fee → administrator,
    proceeds → seller, listing deleted.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from nftmarket.config import MarketConfig
from nftmarket.errors import EscrowMismatch, PreconditionViolation, Unauthorized
from nftmarket.market.listing_state_machine import ListingStateMachine, MarketOperation
from nftmarket.market.registry import ListingRegistry
from nftmarket.models.listing import Listing, ListingKey, SaleMode
from nftmarket.models.settlement import FeeSplit, Settlement
from nftmarket.monitoring.logging import get_logger
from nftmarket.persistence.event_log import EventKind, EventLog, EventRecord
from nftmarket.settlement.escrow import EscrowBook
from nftmarket.settlement.fees import compute_split
from nftmarket.settlement.vault import Vault

logger = get_logger(__name__)


class AuctionHouse:
    """Owns the listing registry and every mutation of it.

    Usage:
        house = AuctionHouse(vault, MarketConfig(fee_rate=5, administrator="admin"))
        house.start_auction("alice", "punks", "7", 10, timedelta(seconds=100))
        house.place_bid("bob", "punks", "7", 15)
        settlement = house.end_auction("anyone", "punks", "7")

    All methods accept an optional ``now`` so callers control the clock.
    """

    def __init__(
        self,
        vault: Vault,
        config: MarketConfig,
        event_log: Optional[EventLog] = None,
        registry: Optional[ListingRegistry] = None,
        escrow_book: Optional[EscrowBook] = None,
    ) -> None:
        self._vault = vault
        self._config = config
        self._event_log = event_log if event_log is not None else EventLog()
        self._registry = registry if registry is not None else ListingRegistry()
        if escrow_book is None:
            escrow_book = EscrowBook.from_listings(self._registry.items())
        else:
            _require_escrow_matches(self._registry, escrow_book)
        self._escrow = escrow_book
        # Initialize counter from persisted log to avoid ID collision on restart
        self._event_counter = self._event_log.count

    @property
    def config(self) -> MarketConfig:
        return self._config

    @property
    def registry(self) -> ListingRegistry:
        return self._registry

    @property
    def escrow_book(self) -> EscrowBook:
        return self._escrow

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def get_listing(self, collection: str, item: str) -> Optional[Listing]:
        return self._registry.get(ListingKey(collection, item))

    def listings(self, mode: Optional[SaleMode] = None) -> list[tuple[ListingKey, Listing]]:
        return self._registry.items(mode)

    # ------------------------------------------------------------------
    # Auctions
    # ------------------------------------------------------------------

    def start_auction(
        self,
        caller: str,
        collection: str,
        item: str,
        start_price: int,
        duration: timedelta,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Take custody of an item and open an auction on it."""
        key = ListingKey(collection, item)
        now = _utc(now)

        if duration <= timedelta(0):
            raise PreconditionViolation(
                f"Auction duration must be positive, got {duration}"
            )
        if start_price < 0:
            raise PreconditionViolation(
                f"Starting price must be non-negative, got {start_price}"
            )
        self._check(key, MarketOperation.START_AUCTION)

        listing = Listing(
            seller=caller,
            price=start_price,
            is_active=False,
            auction_end_time=now + duration,
        )

        with self._vault.atomic():
            self._vault.transfer(collection, item, caller, self._vault.account)
            self._emit(EventKind.AUCTION_STARTED, caller, now, {
                "seller": caller,
                "collection": collection,
                "item": item,
                "start_price": start_price,
                "end_time": listing.auction_end_time.isoformat(),
            })

        self._registry.create(key, listing)
        logger.info(
            "auction_started",
            key=str(key),
            seller=caller,
            start_price=start_price,
            end_time=listing.auction_end_time.isoformat(),
        )
        return listing

    def place_bid(
        self,
        caller: str,
        collection: str,
        item: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Escrow ``amount`` from caller and make it the leading bid.

        The previous leader is refunded in the same atomic unit: if the
        refund fails, the new bid is rejected and nothing changes.
        """
        key = ListingKey(collection, item)
        now = _utc(now)

        listing = self._registry.require(key)
        self._check(key, MarketOperation.PLACE_BID, listing)
        if now >= listing.auction_end_time:
            raise PreconditionViolation(
                f"Auction for {key} ended at {listing.auction_end_time.isoformat()}"
            )
        if caller == listing.seller:
            raise PreconditionViolation(f"Seller cannot bid on own auction: {key}")
        if amount < listing.price:
            raise PreconditionViolation(
                f"Bid {amount} is below the starting price {listing.price}"
            )
        if amount <= listing.highest_bid:
            raise PreconditionViolation(
                f"Bid {amount} must exceed the current highest bid {listing.highest_bid}"
            )
        self._require_escrow_in_step(key, listing)

        previous_bidder = listing.highest_bidder
        previous_bid = listing.highest_bid
        updated = replace(listing, highest_bidder=caller, highest_bid=amount)

        with self._vault.atomic():
            self._vault.collect(caller, amount)
            if previous_bidder is not None:
                self._vault.payout(previous_bidder, previous_bid)
            self._emit(EventKind.NEW_BID, caller, now, {
                "bidder": caller,
                "collection": collection,
                "item": item,
                "amount": amount,
            })

        self._registry.replace(key, updated)
        if previous_bidder is not None:
            self._escrow.refund(key, now=now)
        self._escrow.hold(key, caller, amount, now=now)

        logger.info(
            "bid_accepted",
            key=str(key),
            bidder=caller,
            amount=amount,
            refunded_bidder=previous_bidder,
            refunded_amount=previous_bid,
        )
        return updated

    def end_auction(
        self,
        caller: str,
        collection: str,
        item: str,
        now: Optional[datetime] = None,
    ) -> Settlement:
        """Settle an expired auction. Anyone may trigger settlement.

        With a winner: item to winner, fee to administrator, remainder
        to seller. Without bids: item back to seller, no payouts.
        """
        key = ListingKey(collection, item)
        now = _utc(now)

        listing = self._registry.require(key)
        self._check(key, MarketOperation.END_AUCTION, listing)
        if now < listing.auction_end_time:
            raise PreconditionViolation(
                f"Auction for {key} has not ended "
                f"(ends {listing.auction_end_time.isoformat()})"
            )
        self._require_escrow_in_step(key, listing)

        winner = listing.highest_bidder
        split: Optional[FeeSplit] = None

        with self._vault.atomic():
            if winner is not None:
                self._vault.transfer(collection, item, self._vault.account, winner)
                split = compute_split(listing.highest_bid, self._config.fee_rate)
                self._pay(self._config.administrator, split.fee_amount)
                self._pay(listing.seller, split.seller_amount)
            else:
                self._vault.transfer(collection, item, self._vault.account, listing.seller)
            self._emit(EventKind.AUCTION_ENDED, caller, now, {
                "seller": listing.seller,
                "winner": winner,
                "collection": collection,
                "item": item,
                "amount": listing.highest_bid,
                **_split_fields(split),
            })

        self._registry.delete(key)
        if winner is not None:
            self._escrow.settle(key, now=now)

        logger.info(
            "auction_ended",
            key=str(key),
            seller=listing.seller,
            winner=winner,
            amount=listing.highest_bid,
            fee=split.fee_amount if split else 0,
        )
        return Settlement(
            key=key,
            seller=listing.seller,
            recipient=winner,
            amount=listing.highest_bid,
            split=split,
        )

    # ------------------------------------------------------------------
    # Direct sale
    # ------------------------------------------------------------------

    def list_item(
        self,
        caller: str,
        collection: str,
        item: str,
        price: int,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Take custody of an item and offer it at a fixed price."""
        key = ListingKey(collection, item)
        now = _utc(now)

        if price <= 0:
            raise PreconditionViolation(f"Listing price must be positive, got {price}")
        self._check(key, MarketOperation.LIST_ITEM)

        listing = Listing(seller=caller, price=price, is_active=True)

        with self._vault.atomic():
            self._vault.transfer(collection, item, caller, self._vault.account)
            self._emit(EventKind.ITEM_LISTED, caller, now, {
                "seller": caller,
                "collection": collection,
                "item": item,
                "price": price,
            })

        self._registry.create(key, listing)
        logger.info("item_listed", key=str(key), seller=caller, price=price)
        return listing

    def update_price(
        self,
        caller: str,
        collection: str,
        item: str,
        price: int,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Change the price of a direct-sale listing. Seller only."""
        key = ListingKey(collection, item)
        now = _utc(now)

        listing = self._registry.require(key)
        self._check(key, MarketOperation.UPDATE_PRICE, listing)
        self._require_seller(caller, key, listing)
        if price <= 0:
            raise PreconditionViolation(f"Listing price must be positive, got {price}")

        updated = replace(listing, price=price)

        with self._vault.atomic():
            self._emit(EventKind.PRICE_UPDATED, caller, now, {
                "seller": caller,
                "collection": collection,
                "item": item,
                "old_price": listing.price,
                "price": price,
            })

        self._registry.replace(key, updated)
        logger.info("price_updated", key=str(key), old_price=listing.price, price=price)
        return updated

    def unlist_item(
        self,
        caller: str,
        collection: str,
        item: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Withdraw a direct-sale listing and return the item. Seller only."""
        key = ListingKey(collection, item)
        now = _utc(now)

        listing = self._registry.require(key)
        self._check(key, MarketOperation.UNLIST_ITEM, listing)
        self._require_seller(caller, key, listing)

        with self._vault.atomic():
            self._vault.transfer(collection, item, self._vault.account, listing.seller)
            self._emit(EventKind.ITEM_UNLISTED, caller, now, {
                "seller": listing.seller,
                "collection": collection,
                "item": item,
            })

        self._registry.delete(key)
        logger.info("item_unlisted", key=str(key), seller=listing.seller)
        return listing

    def buy_item(
        self,
        caller: str,
        collection: str,
        item: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> Settlement:
        """Buy a direct-sale listing for exactly its price."""
        key = ListingKey(collection, item)
        now = _utc(now)

        listing = self._registry.require(key)
        self._check(key, MarketOperation.BUY_ITEM, listing)
        if caller == listing.seller:
            raise PreconditionViolation(f"Seller cannot buy own listing: {key}")
        if amount != listing.price:
            raise PreconditionViolation(
                f"Payment {amount} does not match the listing price {listing.price}"
            )

        with self._vault.atomic():
            self._vault.collect(caller, amount)
            self._vault.transfer(collection, item, self._vault.account, caller)
            split = compute_split(amount, self._config.fee_rate)
            self._pay(self._config.administrator, split.fee_amount)
            self._pay(listing.seller, split.seller_amount)
            self._emit(EventKind.ITEM_SOLD, caller, now, {
                "seller": listing.seller,
                "buyer": caller,
                "collection": collection,
                "item": item,
                "price": amount,
                **_split_fields(split),
            })

        self._registry.delete(key)
        logger.info(
            "item_sold",
            key=str(key),
            seller=listing.seller,
            buyer=caller,
            price=amount,
            fee=split.fee_amount,
        )
        return Settlement(
            key=key,
            seller=listing.seller,
            recipient=caller,
            amount=amount,
            split=split,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_fee_rate(
        self,
        caller: str,
        fee_rate: int,
        now: Optional[datetime] = None,
    ) -> MarketConfig:
        """Change the fee rate applied to future settlements. Administrator only."""
        now = _utc(now)
        try:
            updated = self._config.with_fee_rate(caller, fee_rate)
        except Unauthorized:
            raise
        except ValueError as e:
            raise PreconditionViolation(str(e)) from e

        with self._vault.atomic():
            self._emit(EventKind.FEE_RATE_CHANGED, caller, now, {
                "administrator": caller,
                "old_fee_rate": self._config.fee_rate,
                "fee_rate": fee_rate,
            })

        logger.info(
            "fee_rate_changed",
            old_fee_rate=self._config.fee_rate,
            fee_rate=fee_rate,
        )
        self._config = updated
        return updated

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check(
        self,
        key: ListingKey,
        operation: MarketOperation,
        listing: Optional[Listing] = None,
    ) -> None:
        if listing is None:
            listing = self._registry.get(key)
        errors = ListingStateMachine.validate(listing, operation)
        if errors:
            raise PreconditionViolation(f"{key}: {errors[0]}")

    def _require_escrow_in_step(self, key: ListingKey, listing: Listing) -> None:
        """Refuse to touch funds whose escrow record disagrees with the listing.

        Checked before any effect so the post-commit book update cannot fail.
        """
        if not self._escrow.expects(key, listing.highest_bidder, listing.highest_bid):
            held = self._escrow.held_for(key)
            raise EscrowMismatch(
                f"{key}: listing records bid {listing.highest_bid} by "
                f"{listing.highest_bidder}, escrow book holds "
                f"{held.amount if held else 0} by {held.bidder if held else None}"
            )

    @staticmethod
    def _require_seller(caller: str, key: ListingKey, listing: Listing) -> None:
        if caller != listing.seller:
            raise Unauthorized(f"Only the seller may modify {key} (caller: {caller})")

    def _pay(self, recipient: str, amount: int) -> None:
        if amount > 0:
            self._vault.payout(recipient, amount)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _emit(
        self,
        kind: EventKind,
        actor_id: str,
        now: datetime,
        payload: dict[str, Any],
    ) -> EventRecord:
        event = EventRecord.create(
            event_id=self._next_event_id(),
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp_utc=now,
        )
        self._event_log.append(event)
        return event


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None or now.utcoffset() is None:
        raise PreconditionViolation(f"Timestamp must be timezone-aware, got {now.isoformat()}")
    return now.astimezone(timezone.utc)


def _require_escrow_matches(registry: ListingRegistry, book: EscrowBook) -> None:
    """Raise ValueError unless ``book`` holds exactly the registry's leading bids."""
    expected = set()
    for key, listing in registry.items(SaleMode.AUCTION):
        if not book.expects(key, listing.highest_bidder, listing.highest_bid):
            raise ValueError(f"Escrow book does not match the listing for {key}")
        if listing.highest_bidder is not None:
            expected.add(key)
    stray = [str(k) for k in book.held_keys() if k not in expected]
    if stray:
        raise ValueError(f"Escrow book holds funds for unlisted keys: {', '.join(stray)}")


def _split_fields(split: Optional[FeeSplit]) -> dict[str, int]:
    if split is None:
        return {"fee_amount": 0, "seller_amount": 0}
    return {"fee_amount": split.fee_amount, "seller_amount": split.seller_amount}
