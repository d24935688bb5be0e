"""
Ledger gateway public API.

This module defines the typed surface the engine uses to talk to the
marketplace contract. Implementations marshal parameters and results and
contain no business logic of their own.

Notes
-----
- Amounts are integers in the ledger's smallest unit.
- Every call either returns its typed result or raises GatewayError.
- Submissions return a SettlementHandle; settlement failures are raised by
  ``await_settlement()`` as SettlementError, never by the submit call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from market_engine.data_models import Item, Receipt
from market_engine.errors import SettlementError


class SettlementHandle(Protocol):
    """Asynchronous completion of one submitted ledger operation."""

    def await_settlement(self) -> Receipt:
        """
        Block until the operation is finalized or fails.

        Returns
        -------
        Receipt
            Receipt of the finalized transaction.

        Raises
        ------
        SettlementError
            If the operation was rejected, reverted, or timed out.
        """
        ...


class LedgerGateway(Protocol):
    """Read and write operations of the marketplace contract."""

    def get_item_count(self) -> int:
        """
        Return the number of items ever listed.

        Item ids run from 1 to this count with no gaps.

        Raises
        ------
        GatewayError
            If the read fails.
        """
        ...

    def get_item(self, item_id: int) -> Item:
        """
        Read one item.

        Parameters
        ----------
        item_id:
            Ledger id of the item, starting at 1.

        Returns
        -------
        Item
            The item's current ledger state.

        Raises
        ------
        GatewayError
            If the read fails or no such item exists.
        """
        ...

    def get_owned_item_ids(self, address: str) -> Sequence[int]:
        """
        Return the ids of the items held by `address`, in ledger order.

        Raises
        ------
        GatewayError
            If the read fails.
        """
        ...

    def submit_list(self, name: str, price: int) -> SettlementHandle:
        """
        Submit a new listing owned by the signer.

        Parameters
        ----------
        name:
            Display name of the item.
        price:
            Asking price in wei.

        Raises
        ------
        GatewayError
            If the submission could not be sent.
        """
        ...

    def submit_buy(self, item_id: int, price: int) -> SettlementHandle:
        """
        Submit a purchase of `item_id`, attaching `price` wei as payment.

        The contract reverts unless `price` equals the item's price and the
        item is unsold.

        Raises
        ------
        GatewayError
            If the submission could not be sent.
        """
        ...

    def submit_transfer(self, item_id: int, to_address: str) -> SettlementHandle:
        """
        Submit a payment-free ownership transfer of `item_id` to `to_address`.

        The contract reverts unless the signer owns the item. ``is_sold`` is
        left unchanged.

        Raises
        ------
        GatewayError
            If the submission could not be sent.
        """
        ...


@dataclass(frozen=True, slots=True)
class ResolvedSettlement:
    """
    A settlement handle whose outcome is already known.

    Used by ledgers that finalize synchronously, and for submissions that the
    node refused up front with a contract revert.
    """

    receipt: Receipt | None = None
    error: SettlementError | None = None

    def await_settlement(self) -> Receipt:
        """Return the known receipt, or raise the known SettlementError."""
        if self.error is not None:
            raise self.error
        assert self.receipt is not None
        return self.receipt
