"""Listing registry — at most one Listing per (collection, item) key.

The registry is a plain keyed store. It enforces the one-record-per-key
rule and nothing else; transition rules live in the state machine and
the auction house. Records are immutable, so replacing one is a single
dictionary assignment and a reader never sees a half-updated listing.
"""

from __future__ import annotations

from typing import Iterator, Optional

from nftmarket.errors import PreconditionViolation
from nftmarket.models.listing import Listing, ListingKey, SaleMode


class ListingRegistry:
    """In-memory map of listing key → Listing.

    Usage:
        registry = ListingRegistry()
        registry.create(key, listing)
        listing = registry.require(key)
        registry.replace(key, updated)
        registry.delete(key)
    """

    def __init__(self) -> None:
        self._listings: dict[ListingKey, Listing] = {}

    def get(self, key: ListingKey) -> Optional[Listing]:
        return self._listings.get(key)

    def require(self, key: ListingKey) -> Listing:
        """Return the listing for ``key`` or raise PreconditionViolation."""
        listing = self._listings.get(key)
        if listing is None:
            raise PreconditionViolation(f"Listing not found: {key}")
        return listing

    def create(self, key: ListingKey, listing: Listing) -> None:
        if key in self._listings:
            raise PreconditionViolation(f"Listing already exists: {key}")
        self._listings[key] = listing

    def replace(self, key: ListingKey, listing: Listing) -> None:
        if key not in self._listings:
            raise PreconditionViolation(f"Listing not found: {key}")
        self._listings[key] = listing

    def delete(self, key: ListingKey) -> Listing:
        listing = self._listings.pop(key, None)
        if listing is None:
            raise PreconditionViolation(f"Listing not found: {key}")
        return listing

    def items(self, mode: Optional[SaleMode] = None) -> list[tuple[ListingKey, Listing]]:
        """Return (key, listing) pairs sorted by key, optionally by mode."""
        return sorted(
            (k, v) for k, v in self._listings.items()
            if mode is None or v.mode == mode
        )

    def __contains__(self, key: object) -> bool:
        return key in self._listings

    def __iter__(self) -> Iterator[ListingKey]:
        return iter(sorted(self._listings))

    def __len__(self) -> int:
        return len(self._listings)
