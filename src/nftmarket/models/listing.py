"""Listing models — the per-item sale record and its key.

One Listing exists per (collection, item) key at most. The record is
either a direct-sale listing (is_active=True) or an auction
(is_active=False); the boolean selects which interpretation applies.

Listing lifecycle:
    NOT_LISTED → LISTED → NOT_LISTED           (direct sale)
    NOT_LISTED → IN_AUCTION → NOT_LISTED       (auction)

Amounts are integers in the smallest currency unit so fee splitting
stays exact.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


class SaleMode(str, enum.Enum):
    """Which sale terms a listing is under."""
    DIRECT = "direct"
    AUCTION = "auction"


class ListingState(str, enum.Enum):
    """Per-key lifecycle state. NOT_LISTED means no record exists."""
    NOT_LISTED = "not_listed"
    LISTED = "listed"
    IN_AUCTION = "in_auction"


@dataclass(frozen=True, order=True)
class ListingKey:
    """Composite registry key: asset collection and item identifier."""
    collection: str
    item: str

    def __str__(self) -> str:
        return f"{self.collection}/{self.item}"

    @classmethod
    def parse(cls, text: str) -> ListingKey:
        collection, sep, item = text.rpartition("/")
        if not sep or not collection or not item:
            raise ValueError(f"Listing key must be 'collection/item', got: {text!r}")
        return cls(collection, item)


@dataclass(frozen=True)
class Listing:
    """Sale terms for one item.

    Immutable: operations build a replacement record and the registry
    swaps it in only once every external effect has succeeded.
    """
    seller: str
    price: int
    is_active: bool
    auction_end_time: Optional[datetime] = None
    highest_bidder: Optional[str] = None
    highest_bid: int = 0

    def __post_init__(self) -> None:
        if self.price < 0:
            raise ValueError(f"Listing price must be non-negative, got {self.price}")
        if self.highest_bid < 0:
            raise ValueError(f"Highest bid must be non-negative, got {self.highest_bid}")
        if (self.highest_bidder is None) != (self.highest_bid == 0):
            raise ValueError(
                "highest_bid must be 0 exactly when there is no highest_bidder "
                f"(bidder={self.highest_bidder!r}, bid={self.highest_bid})"
            )
        if self.is_active and self.auction_end_time is not None:
            raise ValueError("A direct-sale listing cannot carry an auction end time")
        if not self.is_active and self.auction_end_time is None:
            raise ValueError("An auction listing requires an auction end time")
        if self.is_active and self.highest_bidder is not None:
            raise ValueError("A direct-sale listing cannot carry bids")

    @property
    def mode(self) -> SaleMode:
        return SaleMode.DIRECT if self.is_active else SaleMode.AUCTION

    @property
    def state(self) -> ListingState:
        return ListingState.LISTED if self.is_active else ListingState.IN_AUCTION

    @property
    def has_bid(self) -> bool:
        return self.highest_bidder is not None

    def is_open_for_bids(self, now: datetime) -> bool:
        """True while an auction still accepts bids at ``now``."""
        return (
            not self.is_active
            and self.auction_end_time is not None
            and now < self.auction_end_time
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "seller": self.seller,
            "price": self.price,
            "is_active": self.is_active,
            "mode": self.mode.value,
            "auction_end_time": (
                self.auction_end_time.isoformat() if self.auction_end_time else None
            ),
            "highest_bidder": self.highest_bidder,
            "highest_bid": self.highest_bid,
        }
