"""Settlement subsystem — fee split, bid escrow book, custody/payment vault."""

from nftmarket.settlement.escrow import EscrowBook
from nftmarket.settlement.fees import compute_split, validate_fee_rate
from nftmarket.settlement.vault import (
    CustodyProvider,
    InMemoryVault,
    PaymentProvider,
    Vault,
)

__all__ = [
    "CustodyProvider",
    "EscrowBook",
    "InMemoryVault",
    "PaymentProvider",
    "Vault",
    "compute_split",
    "validate_fee_rate",
]
