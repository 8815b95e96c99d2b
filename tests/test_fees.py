"""Tests for the fee split — proves no value is created or destroyed."""

import pytest

from nftmarket.settlement.fees import compute_split, validate_fee_rate


class TestComputeSplit:
    def test_five_percent_of_twenty(self) -> None:
        split = compute_split(20, 5)
        assert split.fee_amount == 1
        assert split.seller_amount == 19

    def test_floor_division_favours_seller(self) -> None:
        """19 * 5 / 100 = 0.95 → fee 0, seller keeps everything."""
        split = compute_split(19, 5)
        assert split.fee_amount == 0
        assert split.seller_amount == 19

    def test_zero_rate(self) -> None:
        split = compute_split(1000, 0)
        assert split.fee_amount == 0
        assert split.seller_amount == 1000

    def test_full_rate(self) -> None:
        split = compute_split(1000, 100)
        assert split.fee_amount == 1000
        assert split.seller_amount == 0

    def test_zero_amount(self) -> None:
        split = compute_split(0, 7)
        assert split.fee_amount == 0
        assert split.seller_amount == 0

    def test_large_amount_is_exact(self) -> None:
        amount = 10**30 + 7
        split = compute_split(amount, 3)
        assert split.fee_amount == amount * 3 // 100
        assert split.fee_amount + split.seller_amount == amount

    def test_records_inputs(self) -> None:
        split = compute_split(250, 4)
        assert split.gross == 250
        assert split.fee_rate == 4

    @pytest.mark.parametrize("fee_rate", range(0, 101))
    def test_parts_sum_to_gross_for_every_rate(self, fee_rate: int) -> None:
        for amount in (1, 3, 99, 101, 12345, 999_999_999):
            split = compute_split(amount, fee_rate)
            assert split.fee_amount + split.seller_amount == amount
            assert 0 <= split.fee_amount <= amount

    def test_rejects_negative_amount(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            compute_split(-1, 5)


class TestValidateFeeRate:
    @pytest.mark.parametrize("fee_rate", [-1, 101, 1000])
    def test_out_of_range(self, fee_rate: int) -> None:
        with pytest.raises(ValueError, match="within"):
            validate_fee_rate(fee_rate)

    @pytest.mark.parametrize("fee_rate", [2.5, "5", True, None])
    def test_non_integer(self, fee_rate) -> None:
        with pytest.raises(ValueError, match="integer"):
            validate_fee_rate(fee_rate)

    def test_bounds_accepted(self) -> None:
        validate_fee_rate(0)
        validate_fee_rate(100)
