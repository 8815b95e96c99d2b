"""Settlement models — bid escrows and the fee split.

Every amount escrowed from a bidder is accounted for exactly once:
refunded when superseded, or settled when it wins. Never both, never
neither.

Escrow state machine:
    HELD → REFUNDED      (outbid)
    HELD → SETTLED       (winning bid paid out at auction end)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from nftmarket.models.listing import ListingKey


class EscrowState(str, enum.Enum):
    """Lifecycle state of a bid escrow."""
    HELD = "held"
    REFUNDED = "refunded"
    SETTLED = "settled"


# Valid escrow state transitions
ESCROW_TRANSITIONS: Dict[EscrowState, frozenset] = {
    EscrowState.HELD: frozenset({EscrowState.REFUNDED, EscrowState.SETTLED}),
    EscrowState.REFUNDED: frozenset(),
    EscrowState.SETTLED: frozenset(),
}


@dataclass(frozen=True)
class FeeSplit:
    """Division of a sale amount between the platform and the seller.

    Invariant: fee_amount + seller_amount == gross
    """
    gross: int
    fee_rate: int
    fee_amount: int
    seller_amount: int


@dataclass(frozen=True)
class Settlement:
    """Outcome of a completed sale or auction.

    recipient is the winner or buyer; None when an auction closed
    without bids and the item went back to the seller.
    """
    key: ListingKey
    seller: str
    recipient: Optional[str]
    amount: int
    split: Optional[FeeSplit] = None

    @property
    def item_returned(self) -> bool:
        return self.recipient is None


@dataclass
class BidEscrow:
    """Funds held by the marketplace on behalf of one bidder.

    Mutable: transitions happen as the auction progresses.
    All transitions are validated against the ESCROW_TRANSITIONS map.
    """
    escrow_id: str
    key: ListingKey
    bidder: str
    amount: int
    state: EscrowState = EscrowState.HELD
    held_utc: Optional[datetime] = None
    closed_utc: Optional[datetime] = None

    def transition_to(self, new_state: EscrowState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = ESCROW_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid escrow transition: {self.state.value} → {new_state.value}. "
                f"Allowed: {', '.join(s.value for s in allowed) or 'none'}"
            )
        self.state = new_state
