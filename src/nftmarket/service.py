"""Marketplace service — unified facade over the auction house.

This is the primary interface for programmatic access. It wraps every
auction house operation in a typed ServiceResult so callers get one
uniform shape for success and failure:

    ServiceResult(success=True, data={...})
    ServiceResult(success=False, errors=["..."], data={"error_kind": "..."})

Failures are never partial. The auction house rolls back every custody
and payment effect before an error reaches this layer, and this layer
adds no state of its own beyond what the auction house commits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from nftmarket import __version__
from nftmarket.config import MarketConfig
from nftmarket.errors import MarketError
from nftmarket.market.auction_house import AuctionHouse
from nftmarket.models.listing import Listing, ListingKey, SaleMode
from nftmarket.models.settlement import EscrowState, Settlement
from nftmarket.monitoring.logging import bind_context, clear_context, get_logger
from nftmarket.persistence.event_log import EventLog
from nftmarket.settlement.vault import Vault

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class MarketplaceService:
    """Marketplace facade.

    Usage:
        service = MarketplaceService(vault, MarketConfig.from_env())

        result = service.start_auction("alice", "punks", "7", 10, 100)
        result = service.place_bid("bob", "punks", "7", 15)
        result = service.end_auction("bob", "punks", "7")

    Persistence (optional):
        service = MarketplaceService(vault, config, event_log=EventLog(path))
    """

    def __init__(
        self,
        vault: Vault,
        config: MarketConfig,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._vault = vault
        self._house = AuctionHouse(vault, config, event_log=event_log)

    @property
    def auction_house(self) -> AuctionHouse:
        return self._house

    # ------------------------------------------------------------------
    # Auctions
    # ------------------------------------------------------------------

    def start_auction(
        self,
        seller: str,
        collection: str,
        item: str,
        start_price: int,
        duration_seconds: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Start an auction lasting ``duration_seconds``."""
        return self._run(
            "start_auction",
            lambda: self._house.start_auction(
                seller, collection, item, start_price,
                timedelta(seconds=duration_seconds), now=now,
            ),
            lambda listing: _listing_data(ListingKey(collection, item), listing),
        )

    def place_bid(
        self,
        bidder: str,
        collection: str,
        item: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            "place_bid",
            lambda: self._house.place_bid(bidder, collection, item, amount, now=now),
            lambda listing: _listing_data(ListingKey(collection, item), listing),
        )

    def end_auction(
        self,
        caller: str,
        collection: str,
        item: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            "end_auction",
            lambda: self._house.end_auction(caller, collection, item, now=now),
            _settlement_data,
        )

    # ------------------------------------------------------------------
    # Direct sale
    # ------------------------------------------------------------------

    def list_item(
        self,
        seller: str,
        collection: str,
        item: str,
        price: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            "list_item",
            lambda: self._house.list_item(seller, collection, item, price, now=now),
            lambda listing: _listing_data(ListingKey(collection, item), listing),
        )

    def update_price(
        self,
        seller: str,
        collection: str,
        item: str,
        price: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            "update_price",
            lambda: self._house.update_price(seller, collection, item, price, now=now),
            lambda listing: _listing_data(ListingKey(collection, item), listing),
        )

    def unlist_item(
        self,
        seller: str,
        collection: str,
        item: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            "unlist_item",
            lambda: self._house.unlist_item(seller, collection, item, now=now),
            lambda listing: {"key": str(ListingKey(collection, item)), "state": "not_listed"},
        )

    def buy_item(
        self,
        buyer: str,
        collection: str,
        item: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            "buy_item",
            lambda: self._house.buy_item(buyer, collection, item, amount, now=now),
            _settlement_data,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_fee_rate(
        self,
        caller: str,
        fee_rate: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            "set_fee_rate",
            lambda: self._house.set_fee_rate(caller, fee_rate, now=now),
            lambda config: {
                "fee_rate": config.fee_rate,
                "administrator": config.administrator,
            },
        )

    # ------------------------------------------------------------------
    # Status and queries
    # ------------------------------------------------------------------

    def get_listing(self, collection: str, item: str) -> Optional[Listing]:
        return self._house.get_listing(collection, item)

    def search_listings(
        self,
        mode: Optional[SaleMode] = None,
        seller: Optional[str] = None,
        limit: int = 20,
    ) -> ServiceResult:
        """Search active listings with optional filters."""
        results: list[dict[str, Any]] = []
        for key, listing in self._house.listings(mode):
            if seller is not None and listing.seller != seller:
                continue
            results.append(_listing_data(key, listing))
            if len(results) >= limit:
                break
        return ServiceResult(
            success=True,
            data={"listings": results, "total": len(results)},
        )

    def status(self) -> dict[str, Any]:
        """Return marketplace-wide status summary."""
        house = self._house
        book = house.escrow_book
        return {
            "version": __version__,
            "config": {
                "fee_rate": house.config.fee_rate,
                "administrator": house.config.administrator,
            },
            "listings": {
                "total": len(house.registry),
                "direct": len(house.listings(SaleMode.DIRECT)),
                "auction": len(house.listings(SaleMode.AUCTION)),
            },
            "escrow": {
                "held": book.held_total,
                "refunded": book.total(EscrowState.REFUNDED),
                "settled": book.total(EscrowState.SETTLED),
            },
            "marketplace_balance": self._vault.balance_of(self._vault.account),
            "events": house.event_log.count,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        action: Callable[[], Any],
        render: Callable[[Any], dict[str, Any]],
    ) -> ServiceResult:
        """Run an auction house call and convert its outcome to a ServiceResult.

        Fail-closed: any MarketError or event log failure becomes an
        unsuccessful result. The auction house has already undone every
        effect by the time the exception arrives here.
        """
        bind_context(operation=operation)
        try:
            outcome = action()
        except MarketError as e:
            logger.warning("operation_rejected", kind=e.kind, error=str(e))
            return ServiceResult(
                success=False,
                errors=[str(e)],
                data={"error_kind": e.kind},
            )
        except OSError as e:
            logger.error("event_log_failure", error=str(e))
            return ServiceResult(
                success=False,
                errors=[f"Event log failure: {e}"],
                data={"error_kind": "event_log_failure"},
            )
        finally:
            clear_context()
        return ServiceResult(success=True, data=render(outcome))


def _listing_data(key: ListingKey, listing: Listing) -> dict[str, Any]:
    data: dict[str, Any] = {"key": str(key), "state": listing.state.value}
    data.update(listing.to_dict())
    return data


def _settlement_data(settlement: Settlement) -> dict[str, Any]:
    data: dict[str, Any] = {
        "key": str(settlement.key),
        "seller": settlement.seller,
        "recipient": settlement.recipient,
        "amount": settlement.amount,
        "item_returned": settlement.item_returned,
        "fee_amount": 0,
        "seller_amount": 0,
    }
    if settlement.split is not None:
        data["fee_amount"] = settlement.split.fee_amount
        data["seller_amount"] = settlement.split.seller_amount
    return data
