"""Custody and payment primitives the marketplace depends on.

The marketplace never moves items or funds itself. It calls a vault
through the protocols below and treats every call as all-or-nothing:

    transfer(collection, item, sender, recipient)  → TransferFailure
    collect(payer, amount)                         → PaymentFailure
    payout(recipient, amount)                      → PaymentFailure

An operation that needs several movements wraps them in
``vault.atomic()``. If the block raises, every movement made inside it
is undone before the exception propagates, so callers observe either
the whole operation or none of it.

Adding a real custody backend = implement the Vault protocol. Zero
changes to the auction or settlement logic.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import (
    Callable,
    ContextManager,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Set,
    Tuple,
    runtime_checkable,
)

from nftmarket.errors import PaymentFailure, TransferFailure

DEFAULT_ACCOUNT = "marketplace"


@runtime_checkable
class CustodyProvider(Protocol):
    """Moves items between principals."""

    def owner_of(self, collection: str, item: str) -> Optional[str]:
        """Current holder of the item, or None if unknown."""
        ...

    def transfer(
        self,
        collection: str,
        item: str,
        sender: str,
        recipient: str,
    ) -> None:
        """Move the item. Raises TransferFailure if sender is not authorised."""
        ...


@runtime_checkable
class PaymentProvider(Protocol):
    """Moves funds into and out of the marketplace account."""

    def balance_of(self, principal: str) -> int:
        ...

    def collect(self, payer: str, amount: int) -> None:
        """Take ``amount`` from payer into escrow. Raises PaymentFailure."""
        ...

    def payout(self, recipient: str, amount: int) -> None:
        """Pay ``amount`` out of escrow. Raises PaymentFailure."""
        ...


@runtime_checkable
class Vault(CustodyProvider, PaymentProvider, Protocol):
    """Custody and payments behind one transactional boundary."""

    @property
    def account(self) -> str:
        """The marketplace's own principal (escrow holder)."""
        ...

    def atomic(self) -> ContextManager[None]:
        ...


class InMemoryVault:
    """Reference vault holding item ownership and balances in memory.

    Authorisation follows operator-approval semantics: the marketplace
    may move an item out of ``sender`` only if ``sender`` owns it and
    has approved the marketplace for that collection. Items already in
    the marketplace account need no approval.

    Usage:
        vault = InMemoryVault()
        vault.mint("punks", "7", "alice")
        vault.set_approval("alice", "punks")
        vault.deposit("bob", 100)
    """

    def __init__(self, account: str = DEFAULT_ACCOUNT) -> None:
        self._account = account
        self._owners: Dict[Tuple[str, str], str] = {}
        self._approvals: Dict[str, Set[str]] = {}
        self._balances: Dict[str, int] = {}
        self._refusing: Set[str] = set()
        self._journal: Optional[List[Callable[[], None]]] = None

    @property
    def account(self) -> str:
        return self._account

    # ------------------------------------------------------------------
    # Setup helpers (outside any marketplace operation)
    # ------------------------------------------------------------------

    def mint(self, collection: str, item: str, owner: str) -> None:
        if (collection, item) in self._owners:
            raise ValueError(f"Item already exists: {collection}/{item}")
        self._owners[(collection, item)] = owner

    def set_approval(self, owner: str, collection: str, approved: bool = True) -> None:
        """Approve (or revoke) the marketplace as operator for a collection."""
        collections = self._approvals.setdefault(owner, set())
        if approved:
            collections.add(collection)
        else:
            collections.discard(collection)

    def deposit(self, principal: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Deposit amount must be non-negative")
        self._balances[principal] = self._balances.get(principal, 0) + amount

    def refuse_payments(self, principal: str, refuse: bool = True) -> None:
        """Make payouts to ``principal`` fail (e.g. a recipient that rejects funds)."""
        if refuse:
            self._refusing.add(principal)
        else:
            self._refusing.discard(principal)

    # ------------------------------------------------------------------
    # CustodyProvider
    # ------------------------------------------------------------------

    def owner_of(self, collection: str, item: str) -> Optional[str]:
        return self._owners.get((collection, item))

    def is_approved(self, owner: str, collection: str) -> bool:
        return collection in self._approvals.get(owner, set())

    def transfer(
        self,
        collection: str,
        item: str,
        sender: str,
        recipient: str,
    ) -> None:
        token = (collection, item)
        owner = self._owners.get(token)
        if owner is None:
            raise TransferFailure(f"Unknown item: {collection}/{item}")
        if owner != sender:
            raise TransferFailure(
                f"{sender} is not the holder of {collection}/{item} (holder: {owner})"
            )
        if sender != self._account and not self.is_approved(sender, collection):
            raise TransferFailure(
                f"{sender} has not approved the marketplace for collection {collection}"
            )

        self._owners[token] = recipient
        self._record(lambda: self._owners.__setitem__(token, owner))

    # ------------------------------------------------------------------
    # PaymentProvider
    # ------------------------------------------------------------------

    def balance_of(self, principal: str) -> int:
        return self._balances.get(principal, 0)

    def collect(self, payer: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError("Collected amount must be positive")
        available = self.balance_of(payer)
        if available < amount:
            raise PaymentFailure(
                f"{payer} cannot fund {amount} (available: {available})"
            )
        self._move(payer, self._account, amount)

    def payout(self, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Payout amount must be non-negative")
        if amount == 0:
            return
        if recipient in self._refusing:
            raise PaymentFailure(f"Payout of {amount} to {recipient} was rejected")
        available = self.balance_of(self._account)
        if available < amount:
            raise PaymentFailure(
                f"Marketplace holds {available}, cannot pay {amount} to {recipient}"
            )
        self._move(self._account, recipient, amount)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the block as one unit; undo every movement if it raises.

        Nested blocks join the outermost unit.
        """
        if self._journal is not None:
            yield
            return

        self._journal = []
        try:
            yield
        except BaseException:
            for undo in reversed(self._journal):
                undo()
            raise
        finally:
            self._journal = None

    def _move(self, source: str, target: str, amount: int) -> None:
        self._balances[source] = self.balance_of(source) - amount
        self._balances[target] = self.balance_of(target) + amount

        def _undo() -> None:
            self._balances[target] -= amount
            self._balances[source] += amount

        self._record(_undo)

    def _record(self, undo: Callable[[], None]) -> None:
        if self._journal is not None:
            self._journal.append(undo)
