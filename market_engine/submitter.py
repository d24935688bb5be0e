"""
Operation submission.

The submitter turns one validated PendingOperation into a ledger transaction
and waits for it to settle. It performs no retries; each failure is terminal
for its intent.

Validation is split in two:

- ``validate_intent()`` is pure and makes no gateway calls. The coordinator
  runs it before taking the busy flag, so malformed input never blocks the UI.
- ``submit()`` re-validates, performs the optional fresh price check for
  purchases, then submits and awaits settlement.
"""

from __future__ import annotations

from dataclasses import dataclass

from market_engine.data_models import OperationKind, PendingOperation, Receipt
from market_engine.errors import (
    FailureKind,
    GatewayError,
    OperationError,
    SettlementError,
    ValidationError,
    ValidationReason,
)
from market_engine.gateway import LedgerGateway, SettlementHandle
from market_engine.logger import get_logger
from market_engine.units import UINT256_MAX, parse_price, validate_address

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ValidatedIntent:
    """A PendingOperation with normalized parameters."""

    kind: OperationKind
    item_id: int | None = None
    name: str | None = None
    price: int | None = None
    to_address: str | None = None


def _require_item_id(item_id: int | None) -> int:
    if isinstance(item_id, bool) or not isinstance(item_id, int) or not 0 < item_id <= UINT256_MAX:
        raise ValidationError(ValidationReason.INVALID_ITEM_ID, f"Invalid item id: {item_id!r}")
    return item_id


def validate_intent(intent: PendingOperation) -> ValidatedIntent:
    """
    Validate and normalize an intent without touching the ledger.

    Raises
    ------
    ValidationError
        If any parameter is malformed.
    """
    if intent.kind is OperationKind.LIST:
        name = (intent.name or "").strip()
        if not name:
            raise ValidationError(ValidationReason.EMPTY_NAME, "Item name must not be empty.")
        return ValidatedIntent(kind=intent.kind, name=name, price=parse_price(intent.price))

    if intent.kind is OperationKind.BUY:
        item_id = _require_item_id(intent.item_id)
        price = intent.price
        if isinstance(price, bool) or not isinstance(price, int) or not 0 <= price <= UINT256_MAX:
            raise ValidationError(
                ValidationReason.INVALID_PRICE, f"Purchase price must be a wei amount: {price!r}"
            )
        return ValidatedIntent(kind=intent.kind, item_id=item_id, price=price)

    if intent.kind is OperationKind.TRANSFER:
        item_id = _require_item_id(intent.item_id)
        return ValidatedIntent(
            kind=intent.kind, item_id=item_id, to_address=validate_address(intent.to_address)
        )

    raise ValidationError(ValidationReason.INVALID_ITEM_ID, f"Unknown operation kind: {intent.kind!r}")


class OperationSubmitter:
    """
    Submits one intent and awaits its settlement.

    Parameters
    ----------
    gateway:
        Ledger gateway bound to the active signer.
    verify_price_before_buy:
        Re-read the item immediately before a purchase and refuse with
        ``ValidationError(STALE_PRICE)`` when the cached price no longer matches.
    """

    def __init__(self, gateway: LedgerGateway, *, verify_price_before_buy: bool = True) -> None:
        self._gateway = gateway
        self._verify_price = verify_price_before_buy

    def submit(self, intent: PendingOperation) -> Receipt:
        """
        Submit `intent` and wait for it to settle.

        Returns
        -------
        Receipt
            Receipt of the settled transaction.

        Raises
        ------
        ValidationError
            If the intent is malformed or the purchase price is stale.
        OperationError
            If submission or settlement failed.
        """
        valid = validate_intent(intent)

        if valid.kind is OperationKind.BUY and self._verify_price:
            self._check_current_price(valid)

        try:
            handle = self._dispatch(valid)
        except GatewayError as exc:
            raise OperationError(FailureKind.REJECTED, exc.reason) from exc

        try:
            receipt = handle.await_settlement()
        except SettlementError as exc:
            logger.warning("%s failed: %s", intent.describe(), exc)
            raise OperationError(exc.kind, exc.cause) from exc

        logger.info("%s settled in %s", intent.describe(), receipt.tx_hash)
        return receipt

    def _dispatch(self, valid: ValidatedIntent) -> SettlementHandle:
        if valid.kind is OperationKind.LIST:
            assert valid.name is not None and valid.price is not None
            return self._gateway.submit_list(valid.name, valid.price)
        if valid.kind is OperationKind.BUY:
            assert valid.item_id is not None and valid.price is not None
            return self._gateway.submit_buy(valid.item_id, valid.price)
        assert valid.item_id is not None and valid.to_address is not None
        return self._gateway.submit_transfer(valid.item_id, valid.to_address)

    def _check_current_price(self, valid: ValidatedIntent) -> None:
        assert valid.item_id is not None
        try:
            current = self._gateway.get_item(valid.item_id)
        except GatewayError as exc:
            raise OperationError(FailureKind.REJECTED, exc.reason) from exc

        if current.price != valid.price:
            raise ValidationError(
                ValidationReason.STALE_PRICE,
                f"Price of item {valid.item_id} changed: cached {valid.price}, "
                f"ledger {current.price}. Refresh and try again.",
            )
