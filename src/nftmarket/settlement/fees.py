"""Fee split — platform fee and seller proceeds.

    fee_amount    = floor(gross * fee_rate / 100)
    seller_amount = gross - fee_amount

Integer floor division only. The seller absorbs any rounding remainder,
so fee_amount + seller_amount == gross for every input.
"""

from __future__ import annotations

from nftmarket.models.settlement import FeeSplit

MIN_FEE_RATE = 0
MAX_FEE_RATE = 100


def validate_fee_rate(fee_rate: int) -> None:
    """Raise ValueError unless fee_rate is an integer percentage in [0, 100]."""
    if isinstance(fee_rate, bool) or not isinstance(fee_rate, int):
        raise ValueError(f"Fee rate must be an integer percentage, got {fee_rate!r}")
    if not MIN_FEE_RATE <= fee_rate <= MAX_FEE_RATE:
        raise ValueError(
            f"Fee rate must be within [{MIN_FEE_RATE}, {MAX_FEE_RATE}], got {fee_rate}"
        )


def compute_split(gross: int, fee_rate: int) -> FeeSplit:
    """Split a sale amount between the platform fee and the seller."""
    validate_fee_rate(fee_rate)
    if gross < 0:
        raise ValueError(f"Sale amount must be non-negative, got {gross}")

    fee_amount = gross * fee_rate // 100
    seller_amount = gross - fee_amount
    return FeeSplit(
        gross=gross,
        fee_rate=fee_rate,
        fee_amount=fee_amount,
        seller_amount=seller_amount,
    )
