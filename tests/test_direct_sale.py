"""Tests for direct-sale listings — list, reprice, withdraw, buy."""

import pytest
from datetime import datetime, timedelta, timezone

from nftmarket.config import MarketConfig
from nftmarket.errors import PaymentFailure, PreconditionViolation, Unauthorized
from nftmarket.market.auction_house import AuctionHouse
from nftmarket.persistence.event_log import EventKind
from nftmarket.settlement.vault import InMemoryVault


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def vault() -> InMemoryVault:
    v = InMemoryVault()
    v.mint("punks", "7", "seller")
    v.set_approval("seller", "punks")
    v.deposit("buyer", 100)
    return v


@pytest.fixture
def house(vault) -> AuctionHouse:
    return AuctionHouse(vault, MarketConfig(fee_rate=5, administrator="admin"))


class TestListItem:
    def test_list_takes_custody(self, house, vault) -> None:
        listing = house.list_item("seller", "punks", "7", 40, now=_now())
        assert listing.is_active is True
        assert listing.price == 40
        assert vault.owner_of("punks", "7") == "marketplace"
        assert house.event_log.last_event.event_kind == EventKind.ITEM_LISTED

    def test_zero_price_rejected(self, house, vault) -> None:
        with pytest.raises(PreconditionViolation, match="positive"):
            house.list_item("seller", "punks", "7", 0, now=_now())
        assert vault.owner_of("punks", "7") == "seller"

    def test_listed_item_cannot_be_auctioned(self, house) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        with pytest.raises(PreconditionViolation, match="Invalid operation"):
            house.start_auction("seller", "punks", "7", 10, timedelta(seconds=60), now=_now())

    def test_auctioned_item_cannot_be_listed(self, house) -> None:
        house.start_auction("seller", "punks", "7", 10, timedelta(seconds=60), now=_now())
        with pytest.raises(PreconditionViolation, match="Invalid operation"):
            house.list_item("seller", "punks", "7", 40, now=_now())


class TestUpdateAndUnlist:
    def test_update_price(self, house) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        updated = house.update_price("seller", "punks", "7", 55, now=_now())
        assert updated.price == 55
        event = house.event_log.last_event
        assert event.event_kind == EventKind.PRICE_UPDATED
        assert event.payload["old_price"] == 40

    def test_only_seller_may_update(self, house) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        with pytest.raises(Unauthorized):
            house.update_price("buyer", "punks", "7", 1, now=_now())
        assert house.get_listing("punks", "7").price == 40

    def test_auction_price_cannot_be_updated(self, house) -> None:
        house.start_auction("seller", "punks", "7", 10, timedelta(seconds=60), now=_now())
        with pytest.raises(PreconditionViolation, match="Invalid operation update_price"):
            house.update_price("seller", "punks", "7", 5, now=_now())

    def test_unlist_returns_item(self, house, vault) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        house.unlist_item("seller", "punks", "7", now=_now())
        assert vault.owner_of("punks", "7") == "seller"
        assert house.get_listing("punks", "7") is None

    def test_only_seller_may_unlist(self, house, vault) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        with pytest.raises(Unauthorized):
            house.unlist_item("buyer", "punks", "7", now=_now())
        assert vault.owner_of("punks", "7") == "marketplace"


class TestBuyItem:
    def test_buy_settles_with_fee(self, house, vault) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        settlement = house.buy_item("buyer", "punks", "7", 40, now=_now())

        assert settlement.recipient == "buyer"
        assert settlement.split.fee_amount == 2
        assert settlement.split.seller_amount == 38
        assert vault.owner_of("punks", "7") == "buyer"
        assert vault.balance_of("buyer") == 60
        assert vault.balance_of("seller") == 38
        assert vault.balance_of("admin") == 2
        assert vault.balance_of("marketplace") == 0
        assert house.get_listing("punks", "7") is None

        event = house.event_log.last_event
        assert event.event_kind == EventKind.ITEM_SOLD
        assert event.payload["buyer"] == "buyer"
        assert event.payload["fee_amount"] == 2

    @pytest.mark.parametrize("amount", [39, 41])
    def test_price_must_match(self, house, vault, amount: int) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        with pytest.raises(PreconditionViolation, match="does not match"):
            house.buy_item("buyer", "punks", "7", amount, now=_now())
        assert vault.balance_of("buyer") == 100

    def test_seller_cannot_buy(self, house) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        with pytest.raises(PreconditionViolation, match="Seller cannot buy"):
            house.buy_item("seller", "punks", "7", 40, now=_now())

    def test_auction_cannot_be_bought(self, house) -> None:
        house.start_auction("seller", "punks", "7", 10, timedelta(seconds=60), now=_now())
        with pytest.raises(PreconditionViolation, match="Invalid operation buy_item"):
            house.buy_item("buyer", "punks", "7", 10, now=_now())

    def test_failed_payout_rolls_back_purchase(self, house, vault) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        vault.refuse_payments("seller")
        with pytest.raises(PaymentFailure):
            house.buy_item("buyer", "punks", "7", 40, now=_now())

        assert vault.owner_of("punks", "7") == "marketplace"
        assert vault.balance_of("buyer") == 100
        assert vault.balance_of("admin") == 0
        assert house.get_listing("punks", "7").price == 40
        assert house.event_log.count == 1

    def test_insufficient_funds(self, house, vault) -> None:
        house.list_item("seller", "punks", "7", 40, now=_now())
        vault.collect("buyer", 70)
        with pytest.raises(PaymentFailure):
            house.buy_item("buyer", "punks", "7", 40, now=_now())
        assert vault.owner_of("punks", "7") == "marketplace"
