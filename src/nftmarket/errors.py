"""Marketplace error taxonomy.

Every operation either completes in full or raises one of these before
any state becomes observable:

- PreconditionViolation: the request is invalid for the current state
  (missing listing, wrong mode, deadline, bid too low). Raised before
  any effect is attempted.
- TransferFailure: the custody subsystem refused to move an item.
- PaymentFailure: a collection, refund or payout could not complete.
- EscrowMismatch: the escrow book does not hold the bid the listing
  records, so settling it would leave the two out of step.

Nothing is retried internally. Retry belongs to the caller.
"""

from __future__ import annotations


class MarketError(Exception):
    """Base class for every rejected marketplace operation."""

    kind = "market_error"


class PreconditionViolation(MarketError, ValueError):
    """The operation is not valid for the current listing state."""

    kind = "precondition_violation"


class Unauthorized(PreconditionViolation):
    """The caller is not the principal allowed to perform the operation."""

    kind = "unauthorized"


class TransferFailure(MarketError):
    """Custody transfer of an item was rejected."""

    kind = "transfer_failure"


class PaymentFailure(MarketError):
    """A refund, collection or payout could not be completed."""

    kind = "payment_failure"


class EscrowMismatch(MarketError):
    """The escrow book disagrees with the listing it should back."""

    kind = "escrow_mismatch"
