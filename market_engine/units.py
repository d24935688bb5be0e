"""
Amount and address handling at the operator boundary.

Operators type prices in ether; the ledger speaks wei. Conversion and address
checks go through web3's helpers so the rules match the node's.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from web3 import Web3

from market_engine.errors import ValidationError, ValidationReason

DISPLAY_UNIT = "ether"

# Contract ids and amounts are uint256.
UINT256_MAX = 2**256 - 1


def parse_price(value: int | str | None) -> int:
    """
    Normalize an operator-supplied price to a positive wei amount.

    Parameters
    ----------
    value:
        An int is taken as wei. A string is a decimal amount in ether.

    Returns
    -------
    int
        Price in wei, strictly positive.

    Raises
    ------
    ValidationError
        If the value is missing, unparsable, not a whole number of wei, or
        outside ``1..UINT256_MAX``.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(ValidationReason.INVALID_PRICE, "A price is required.")

    if isinstance(value, int):
        wei = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            amount = Decimal(text)
        except InvalidOperation as exc:
            raise ValidationError(
                ValidationReason.INVALID_PRICE, f"Price is not a number: {value!r}"
            ) from exc
        if not amount.is_finite():
            raise ValidationError(ValidationReason.INVALID_PRICE, f"Price is not finite: {value!r}")

        scaled = amount.scaleb(18)
        if scaled != scaled.to_integral_value():
            raise ValidationError(
                ValidationReason.INVALID_PRICE,
                f"Price has more precision than the ledger supports: {value!r}",
            )
        try:
            wei = int(Web3.to_wei(amount, DISPLAY_UNIT))
        except ValueError as exc:
            raise ValidationError(ValidationReason.INVALID_PRICE, str(exc)) from exc
    else:
        raise ValidationError(
            ValidationReason.INVALID_PRICE, f"Unsupported price type: {type(value).__name__}"
        )

    if wei <= 0:
        raise ValidationError(ValidationReason.INVALID_PRICE, "Price must be greater than zero.")
    if wei > UINT256_MAX:
        raise ValidationError(
            ValidationReason.INVALID_PRICE, f"Price exceeds the ledger maximum: {value!r}"
        )
    return wei


def format_price(wei: int) -> str:
    """Render a wei amount in ether without trailing zeros."""
    amount = Decimal(Web3.from_wei(wei, DISPLAY_UNIT))
    text = format(amount.normalize(), "f")
    return f"{text} ETH"


def validate_address(value: str | None) -> str:
    """
    Validate a ledger address and return its checksummed form.

    Raises
    ------
    ValidationError
        If `value` is not a syntactically valid address.
    """
    if not isinstance(value, str) or not Web3.is_address(value.strip()):
        raise ValidationError(
            ValidationReason.INVALID_ADDRESS, f"Not a valid ledger address: {value!r}"
        )
    return Web3.to_checksum_address(value.strip())


def truncate_address(address: str) -> str:
    """Shorten an address for display (``0x1234...abcd``)."""
    if not address:
        return ""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"
