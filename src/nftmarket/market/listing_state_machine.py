"""Listing state machine — enforces valid per-key lifecycle transitions.

Listing lifecycle:
    NOT_LISTED --start_auction--> IN_AUCTION --end_auction--> NOT_LISTED
    IN_AUCTION --place_bid--> IN_AUCTION
    NOT_LISTED --list_item--> LISTED --unlist_item | buy_item--> NOT_LISTED
    LISTED --update_price--> LISTED

State semantics:
- NOT_LISTED: no record exists; the item is outside the marketplace.
- LISTED: held in custody under direct-sale terms.
- IN_AUCTION: held in custody under auction terms; bids escrowed.

LISTED and IN_AUCTION block each other: an item under one set of terms
must return to NOT_LISTED before it can take the other.

Fail-closed: operations not in the table are rejected. There are no
implicit transitions.
"""

from __future__ import annotations

import enum
from typing import Optional

from nftmarket.models.listing import Listing, ListingState


class MarketOperation(str, enum.Enum):
    """Operations that read or mutate a listing."""
    START_AUCTION = "start_auction"
    PLACE_BID = "place_bid"
    END_AUCTION = "end_auction"
    LIST_ITEM = "list_item"
    UPDATE_PRICE = "update_price"
    UNLIST_ITEM = "unlist_item"
    BUY_ITEM = "buy_item"


# Valid transitions: {from_state: {operation: to_state}}
_TRANSITIONS: dict[ListingState, dict[MarketOperation, ListingState]] = {
    ListingState.NOT_LISTED: {
        MarketOperation.START_AUCTION: ListingState.IN_AUCTION,
        MarketOperation.LIST_ITEM: ListingState.LISTED,
    },
    ListingState.LISTED: {
        MarketOperation.UPDATE_PRICE: ListingState.LISTED,
        MarketOperation.UNLIST_ITEM: ListingState.NOT_LISTED,
        MarketOperation.BUY_ITEM: ListingState.NOT_LISTED,
    },
    ListingState.IN_AUCTION: {
        MarketOperation.PLACE_BID: ListingState.IN_AUCTION,
        MarketOperation.END_AUCTION: ListingState.NOT_LISTED,
    },
}


class ListingStateMachine:
    """Validates listing operations against the lifecycle table.

    Pure computation: validates transitions only. Effects (custody,
    payments, events) are handled by the auction house.
    """

    @staticmethod
    def state_of(listing: Optional[Listing]) -> ListingState:
        """Map a registry lookup result to its lifecycle state."""
        if listing is None:
            return ListingState.NOT_LISTED
        return listing.state

    @staticmethod
    def validate(
        listing: Optional[Listing],
        operation: MarketOperation,
    ) -> list[str]:
        """Check if an operation is valid. Returns errors (empty = OK)."""
        current = ListingStateMachine.state_of(listing)
        allowed = _TRANSITIONS.get(current, {})

        if operation not in allowed:
            allowed_str = ", ".join(sorted(op.value for op in allowed))
            return [
                f"Invalid operation {operation.value} in state {current.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def target_state(
        state: ListingState,
        operation: MarketOperation,
    ) -> Optional[ListingState]:
        """Return the state an operation leads to, or None if invalid."""
        return _TRANSITIONS.get(state, {}).get(operation)

    @staticmethod
    def valid_operations(state: ListingState) -> set[MarketOperation]:
        """Return the operations permitted from the given state."""
        return set(_TRANSITIONS.get(state, {}))
