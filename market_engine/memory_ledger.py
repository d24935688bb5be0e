"""
In-process marketplace ledger.

This is a deterministic stand-in for the deployed contract, used by the
``--simulate`` mode of the CLI and GUI and by the test-suite. It follows the
same rules the contract enforces:

- ids are assigned from 1 in creation order,
- a purchase reverts when the item is sold or the attached value differs
  from its price,
- a transfer reverts unless the sender owns the item, and leaves ``is_sold``
  untouched.

Settlement is immediate: every submission returns an already-resolved handle.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace

from market_engine.data_models import Item, Receipt, SignerHandle
from market_engine.errors import FailureKind, GatewayError, SettlementError
from market_engine.gateway import ResolvedSettlement

DEMO_ACCOUNTS = (
    "0x1111111111111111111111111111111111111111",
    "0x2222222222222222222222222222222222222222",
    "0x3333333333333333333333333333333333333333",
)

WEI_PER_ETHER = 10**18


@dataclass(frozen=True, slots=True)
class _SeedItem:
    name: str
    price: int
    owner: str
    is_sold: bool = False


def _demo_seed() -> list[_SeedItem]:
    alice, bob, carol = DEMO_ACCOUNTS
    return [
        _SeedItem("Sword", WEI_PER_ETHER, alice),
        _SeedItem("Shield", WEI_PER_ETHER // 2, bob),
        _SeedItem("Helmet", WEI_PER_ETHER // 4, carol, is_sold=True),
        _SeedItem("Bow", 3 * WEI_PER_ETHER // 10, bob),
        _SeedItem("Potion", WEI_PER_ETHER // 100, alice),
    ]


class InMemoryLedger:
    """
    Shared ledger state. Bind one gateway per account with :meth:`gateway_for`.

    Notes
    -----
    All mutation happens under a single lock so concurrent gateways observe
    a consistent sequence of transactions.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[int, Item] = {}
        self._tx_counter = 0

    @classmethod
    def with_demo_items(cls) -> "InMemoryLedger":
        """Return a ledger pre-populated with a small demo catalogue."""
        ledger = cls()
        for seed in _demo_seed():
            ledger.mint(seed.name, seed.price, owner=seed.owner, is_sold=seed.is_sold)
        return ledger

    def mint(self, name: str, price: int, *, owner: str, is_sold: bool = False) -> Item:
        """Insert an item directly, bypassing submission (fixtures and demo data)."""
        with self._lock:
            item_id = len(self._items) + 1
            item = Item(id=item_id, name=name, price=price, owner=owner, is_sold=is_sold)
            self._items[item_id] = item
            return item

    def gateway_for(self, signer: SignerHandle) -> "InMemoryGateway":
        """Return a gateway that submits as `signer.account`."""
        return InMemoryGateway(self, signer.account)

    def count(self) -> int:
        """Number of items ever listed."""
        with self._lock:
            return len(self._items)

    def read(self, item_id: int) -> Item:
        """Return item `item_id`, raising GatewayError if it does not exist."""
        with self._lock:
            item = self._items.get(item_id)
        if item is None:
            raise GatewayError(f"Item {item_id} does not exist.")
        return item

    def owned_ids(self, address: str) -> list[int]:
        """Ids of the items held by `address`, ascending."""
        with self._lock:
            return [i.id for i in self._items.values() if i.is_owned_by(address)]

    def apply_list(self, sender: str, name: str, price: int) -> ResolvedSettlement:
        """Append a listing owned by `sender`."""
        with self._lock:
            item_id = len(self._items) + 1
            self._items[item_id] = Item(
                id=item_id, name=name, price=price, owner=sender, is_sold=False
            )
            return self._settled()

    def apply_buy(self, sender: str, item_id: int, value: int) -> ResolvedSettlement:
        """Transfer `item_id` to `sender` and mark it sold, if `value` pays its price."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return self._reverted(f"item {item_id} does not exist")
            if item.is_sold:
                return self._reverted(f"item {item_id} is already sold")
            if value != item.price:
                return self._reverted(
                    f"value {value} does not match price {item.price} of item {item_id}"
                )
            self._items[item_id] = replace(item, owner=sender, is_sold=True)
            return self._settled()

    def apply_transfer(self, sender: str, item_id: int, to_address: str) -> ResolvedSettlement:
        """Hand `item_id` to `to_address` if `sender` owns it; ``is_sold`` is kept."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return self._reverted(f"item {item_id} does not exist")
            if not item.is_owned_by(sender):
                return self._reverted(f"sender does not own item {item_id}")
            self._items[item_id] = replace(item, owner=to_address)
            return self._settled()

    def _next_tx_hash(self) -> str:
        self._tx_counter += 1
        return "0x" + format(self._tx_counter, "064x")

    def _settled(self) -> ResolvedSettlement:
        receipt = Receipt(tx_hash=self._next_tx_hash(), block_number=self._tx_counter)
        return ResolvedSettlement(receipt=receipt)

    def _reverted(self, cause: str) -> ResolvedSettlement:
        self._next_tx_hash()
        return ResolvedSettlement(error=SettlementError(FailureKind.REVERTED, cause))


class InMemoryGateway:
    """LedgerGateway view of an :class:`InMemoryLedger` for one sending account."""

    def __init__(self, ledger: InMemoryLedger, account: str) -> None:
        self._ledger = ledger
        self._account = account

    @property
    def account(self) -> str:
        """Address submissions are sent from."""
        return self._account

    def get_item_count(self) -> int:
        """Number of items ever listed."""
        return self._ledger.count()

    def get_item(self, item_id: int) -> Item:
        """Read one item."""
        return self._ledger.read(item_id)

    def get_owned_item_ids(self, address: str) -> list[int]:
        """Ids of the items held by `address`."""
        return self._ledger.owned_ids(address)

    def submit_list(self, name: str, price: int) -> ResolvedSettlement:
        """List an item as this gateway's account."""
        return self._ledger.apply_list(self._account, name, price)

    def submit_buy(self, item_id: int, price: int) -> ResolvedSettlement:
        """Buy `item_id` as this gateway's account, attaching `price`."""
        return self._ledger.apply_buy(self._account, item_id, price)

    def submit_transfer(self, item_id: int, to_address: str) -> ResolvedSettlement:
        """Transfer `item_id` from this gateway's account to `to_address`."""
        return self._ledger.apply_transfer(self._account, item_id, to_address)
