"""Core data models for the marketplace."""

from nftmarket.models.listing import Listing, ListingKey, ListingState, SaleMode
from nftmarket.models.settlement import BidEscrow, EscrowState, FeeSplit, Settlement

__all__ = [
    "BidEscrow",
    "EscrowState",
    "FeeSplit",
    "Listing",
    "ListingKey",
    "ListingState",
    "SaleMode",
    "Settlement",
]
