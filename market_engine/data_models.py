"""Data models for marketsync.

This module defines the typed values that flow between the ledger gateway,
the snapshot fetcher, the operation submitter and the presentation layer.

Every model is a frozen dataclass. Snapshots and engine state are replaced
wholesale on change and never patched in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Self

if TYPE_CHECKING:
    from market_engine.gateway import LedgerGateway


class OperationKind(str, Enum):
    """Mutating operations the marketplace contract accepts."""

    LIST = "list"
    BUY = "buy"
    TRANSFER = "transfer"


class SnapshotKind(str, Enum):
    """The two parallel local views of the marketplace."""

    ALL = "all"
    OWNED = "owned"


@dataclass(frozen=True, slots=True)
class Item:
    """
    A marketplace entity as read from the ledger.

    Attributes
    ----------
    id:
        Positive identifier assigned by the ledger at creation.
    name:
        Label fixed at creation.
    price:
        Price in the ledger's smallest unit (wei).
    owner:
        Address of the current holder.
    is_sold:
        True once the item has been purchased; never reverts.
    """

    id: int
    name: str
    price: int
    owner: str
    is_sold: bool

    @classmethod
    def from_dict(cls, item_id: int, payload: Mapping[str, Any]) -> Self:
        """Construct an :class:`Item` from the ledger read shape plus its id."""
        return cls(
            id=int(item_id),
            name=str(payload["name"]),
            price=int(payload["price"]),
            owner=str(payload["owner"]),
            is_sold=bool(payload["isSold"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ledger read shape, including the id."""
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "owner": self.owner,
            "isSold": self.is_sold,
        }

    def is_owned_by(self, address: str) -> bool:
        """Return True if `address` holds this item (case-insensitive hex compare)."""
        return self.owner.lower() == address.lower()


@dataclass(frozen=True, slots=True)
class Snapshot:
    """
    A complete read pass over one view of the marketplace.

    Attributes
    ----------
    kind:
        Which view this snapshot represents.
    items:
        Items in id order (ALL) or ledger-reported order (OWNED).
    sequence:
        Read-pass sequence number. Zero means "never fetched".
    fetched_at:
        When the read pass completed, or None for the empty initial snapshot.
    account:
        Account the OWNED view was read for.
    """

    kind: SnapshotKind
    items: tuple[Item, ...] = ()
    sequence: int = 0
    fetched_at: datetime | None = None
    account: str | None = None

    @classmethod
    def empty(cls, kind: SnapshotKind) -> Self:
        """Return the initial, never-fetched snapshot for `kind`."""
        return cls(kind=kind)

    def get(self, item_id: int) -> Item | None:
        """Return the item with `item_id`, or None if it is not in this view."""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Proof that a submitted ledger operation finalized.

    Attributes
    ----------
    tx_hash:
        Hex transaction hash.
    block_number:
        Block that included the transaction, if known.
    status:
        1 for success. Failed receipts never reach callers as Receipts.
    gas_used:
        Gas consumed, if reported.
    """

    tx_hash: str
    block_number: int | None = None
    status: int = 1
    gas_used: int | None = None


@dataclass(frozen=True, slots=True)
class SignerHandle:
    """
    Opaque signing capability bound to one account.

    Attributes
    ----------
    account:
        Address transactions are sent from.
    backend:
        Provider-specific object (a Web3 instance, or None for in-memory ledgers).
    """

    account: str
    backend: Any = None


@dataclass(frozen=True, slots=True)
class PendingOperation:
    """
    One mutating intent for the duration of a submit/await/reconcile cycle.

    Use the ``list_item``, ``buy`` and ``transfer`` constructors rather than
    filling fields by hand. ``price`` is either an int in the smallest unit or
    a decimal string in the display unit; the submitter normalizes it.
    """

    kind: OperationKind
    item_id: int | None = None
    name: str | None = None
    price: int | str | None = None
    to_address: str | None = None

    @classmethod
    def list_item(cls, name: str, price: int | str) -> Self:
        """
        Intent to list a new item.

        Parameters
        ----------
        name:
            Display name; surrounding whitespace is stripped at validation.
        price:
            Wei as an int, or an ether amount as text (e.g. ``"0.01"``).
        """
        return cls(kind=OperationKind.LIST, name=name, price=price)

    @classmethod
    def buy(cls, item_id: int, price: int) -> Self:
        """Intent to buy `item_id`, paying `price` wei (the price the operator saw)."""
        return cls(kind=OperationKind.BUY, item_id=item_id, price=price)

    @classmethod
    def transfer(cls, item_id: int, to_address: str) -> Self:
        """Intent to hand `item_id` to `to_address` without payment."""
        return cls(kind=OperationKind.TRANSFER, item_id=item_id, to_address=to_address)

    def describe(self) -> str:
        """Short, log-friendly description of the intent."""
        if self.kind is OperationKind.LIST:
            return f"list name={self.name!r} price={self.price}"
        if self.kind is OperationKind.BUY:
            return f"buy id={self.item_id} price={self.price}"
        return f"transfer id={self.item_id} to={self.to_address}"


@dataclass(frozen=True, slots=True)
class Session:
    """The active account and the gateway handle bound to its signer."""

    account: str
    gateway: "LedgerGateway" = field(repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class EngineState:
    """
    Everything the presentation layer may depend on.

    A new EngineState is published on every change; subscribers never see a
    partially updated value.
    """

    session: Session | None
    busy: bool
    all_items: Snapshot
    owned_items: Snapshot
    last_error: Exception | None = None

    @classmethod
    def initial(cls) -> Self:
        """State before any session is bound: idle, both views empty."""
        return cls(
            session=None,
            busy=False,
            all_items=Snapshot.empty(SnapshotKind.ALL),
            owned_items=Snapshot.empty(SnapshotKind.OWNED),
        )

    @property
    def account(self) -> str | None:
        """Account of the bound session, or None."""
        return self.session.account if self.session is not None else None


@dataclass(frozen=True, slots=True)
class OperationOutcome:
    """
    Result of one coordinator cycle, expressed as data.

    Exactly one of ``receipt`` and ``error`` is set. ``warning`` is only set on
    success, when the post-settlement refresh failed.
    """

    intent: PendingOperation
    receipt: Receipt | None = None
    error: Exception | None = None
    warning: Exception | None = None

    @property
    def succeeded(self) -> bool:
        """True when the operation settled, even if the follow-up refresh failed."""
        return self.receipt is not None
