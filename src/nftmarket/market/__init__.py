"""Listing registry and the auction/direct-sale state machine.

The auction house validates each operation against the listing state
machine, runs its custody and payment effects as one atomic unit, and
only then commits the new listing to the registry.
"""

from nftmarket.market.auction_house import AuctionHouse
from nftmarket.market.listing_state_machine import ListingStateMachine, MarketOperation
from nftmarket.market.registry import ListingRegistry

__all__ = ["AuctionHouse", "ListingRegistry", "ListingStateMachine", "MarketOperation"]
