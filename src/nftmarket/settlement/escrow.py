"""Escrow book — tracks every bid escrow the marketplace holds.

The book is a pure bookkeeping layer. Funds move through the vault;
the book records what each movement meant so the exactly-once rule can
be checked at any time:

    held + refunded + settled == total ever escrowed
    at most one HELD escrow per listing key

The book is written only after the vault effects of an operation have
succeeded, so it never records a movement that did not happen.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from nftmarket.models.listing import Listing, ListingKey
from nftmarket.models.settlement import BidEscrow, EscrowState


class EscrowBook:
    """In-memory record of bid escrows.

    Usage:
        book = EscrowBook()
        record = book.hold(key, "alice", 15)
        book.refund(key)                 # alice outbid
        record = book.hold(key, "bob", 20)
        book.settle(key)                 # bob won
    """

    def __init__(self) -> None:
        self._escrows: Dict[str, BidEscrow] = {}
        self._held: Dict[ListingKey, str] = {}

    def hold(
        self,
        key: ListingKey,
        bidder: str,
        amount: int,
        escrow_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BidEscrow:
        """Record funds newly held for ``bidder`` on ``key``.

        Raises ValueError if the amount is not positive or another escrow
        is still held for the same key.
        """
        if amount <= 0:
            raise ValueError("Escrow amount must be positive")
        if key in self._held:
            raise ValueError(
                f"Escrow already held for {key}: {self._held[key]} "
                "must be refunded or settled first"
            )
        if now is None:
            now = datetime.now(timezone.utc)
        if escrow_id is None:
            escrow_id = f"escrow_{uuid4().hex[:12]}"
        if escrow_id in self._escrows:
            raise ValueError(f"Escrow ID already exists: {escrow_id}")

        record = BidEscrow(
            escrow_id=escrow_id,
            key=key,
            bidder=bidder,
            amount=amount,
            held_utc=now,
        )
        self._escrows[escrow_id] = record
        self._held[key] = escrow_id
        return record

    def refund(self, key: ListingKey, now: Optional[datetime] = None) -> BidEscrow:
        """Mark the held escrow for ``key`` as returned to its bidder."""
        return self._close(key, EscrowState.REFUNDED, now)

    def settle(self, key: ListingKey, now: Optional[datetime] = None) -> BidEscrow:
        """Mark the held escrow for ``key`` as paid out in settlement."""
        return self._close(key, EscrowState.SETTLED, now)

    def held_for(self, key: ListingKey) -> Optional[BidEscrow]:
        escrow_id = self._held.get(key)
        return self._escrows[escrow_id] if escrow_id else None

    def records(self, key: Optional[ListingKey] = None) -> List[BidEscrow]:
        """Return escrow records in creation order, optionally for one key."""
        if key is None:
            return list(self._escrows.values())
        return [r for r in self._escrows.values() if r.key == key]

    def total(self, state: Optional[EscrowState] = None) -> int:
        return sum(
            r.amount for r in self._escrows.values()
            if state is None or r.state == state
        )

    @property
    def held_total(self) -> int:
        return self.total(EscrowState.HELD)

    def _close(
        self,
        key: ListingKey,
        target: EscrowState,
        now: Optional[datetime],
    ) -> BidEscrow:
        escrow_id = self._held.get(key)
        if escrow_id is None:
            raise ValueError(f"No escrow held for {key}")
        if now is None:
            now = datetime.now(timezone.utc)
        record = self._escrows[escrow_id]
        record.transition_to(target)
        record.closed_utc = now
        del self._held[key]
        return record

    def expects(self, key: ListingKey, bidder: Optional[str], amount: int) -> bool:
        """True if the escrow held for ``key`` is exactly (bidder, amount).

        ``bidder=None`` expects nothing to be held.
        """
        record = self.held_for(key)
        if bidder is None:
            return record is None
        return (
            record is not None
            and record.bidder == bidder
            and record.amount == amount
        )

    def held_keys(self) -> List[ListingKey]:
        return sorted(self._held)

    @classmethod
    def from_listings(
        cls,
        listings: Iterable[Tuple[ListingKey, Listing]],
        now: Optional[datetime] = None,
    ) -> EscrowBook:
        """Derive a book holding each listing's current highest bid."""
        book = cls()
        for key, listing in listings:
            if listing.highest_bidder is not None:
                book.hold(key, listing.highest_bidder, listing.highest_bid, now=now)
        return book
