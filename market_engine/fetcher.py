"""
Snapshot reads.

Each call performs one complete read pass and either returns a fully
consistent Snapshot or raises FetchError. Items are read one at a time, in
order; a single failed read discards everything gathered so far.
"""

from __future__ import annotations

from market_engine.clock import Clock, utc_now
from market_engine.data_models import Item, Snapshot, SnapshotKind
from market_engine.errors import FetchError, GatewayError
from market_engine.gateway import LedgerGateway
from market_engine.logger import get_logger

logger = get_logger(__name__)


class SnapshotFetcher:
    """
    Builds the ALL and OWNED views from a ledger gateway.

    Both methods are read-only and idempotent. They are safe to run
    concurrently with each other; ordering between racing results is the
    coordinator's concern, via the ``sequence`` stamped on each snapshot.
    """

    def __init__(self, gateway: LedgerGateway, *, clock: Clock | None = None) -> None:
        self._gateway = gateway
        self._clock = clock or utc_now

    def fetch_all(self, *, sequence: int = 0) -> Snapshot:
        """
        Read every item with ids ``1..count`` in ascending order.

        Raises
        ------
        FetchError
            If the count or any item read fails.
        """
        try:
            count = self._gateway.get_item_count()
            if count < 0:
                raise FetchError(f"Ledger reported a negative item count: {count}")
            items = tuple(self._gateway.get_item(item_id) for item_id in range(1, count + 1))
        except GatewayError as exc:
            raise FetchError(f"Reading all items failed: {exc.reason}") from exc

        logger.debug("Fetched %d items (sequence %d)", len(items), sequence)
        return Snapshot(
            kind=SnapshotKind.ALL,
            items=items,
            sequence=sequence,
            fetched_at=self._clock(),
        )

    def fetch_owned(self, address: str, *, sequence: int = 0) -> Snapshot:
        """
        Read the items held by `address`, in the order the ledger reports their ids.

        Raises
        ------
        FetchError
            If the id lookup or any item read fails.
        """
        try:
            ids = list(self._gateway.get_owned_item_ids(address))
            items: tuple[Item, ...] = tuple(self._gateway.get_item(item_id) for item_id in ids)
        except GatewayError as exc:
            raise FetchError(f"Reading items owned by {address} failed: {exc.reason}") from exc

        logger.debug("Fetched %d owned items for %s (sequence %d)", len(items), address, sequence)
        return Snapshot(
            kind=SnapshotKind.OWNED,
            items=items,
            sequence=sequence,
            fetched_at=self._clock(),
            account=address,
        )
