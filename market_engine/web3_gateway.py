"""
web3.py binding of the ledger gateway.

The deployed marketplace contract exposes:

- ``ItemCount() -> uint``
- ``items(uint) -> (name, price, owner, isSold)``
- ``getItemsByOwner(address) -> uint[]``
- ``listItems(string, uint)``
- ``buy(uint)`` (payable, value must equal the item price)
- ``transferWithoutMoney(uint, address)``

Notes
-----
A revert detected while the node estimates gas is not a gateway failure: the
operation reached the contract and was refused by it. Those submissions
return a handle that raises ``SettlementError(REVERTED)`` so every contract
refusal surfaces the same way. Any other submission failure is a GatewayError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Mapping, Sequence

from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    MismatchedABI,
    TimeExhausted,
    Web3Exception,
    Web3ValidationError,
)

from market_engine.data_models import Item, Receipt, SignerHandle
from market_engine.errors import FailureKind, GatewayError, SettlementError
from market_engine.gateway import ResolvedSettlement, SettlementHandle
from market_engine.logger import get_logger

logger = get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ITEM_FIELDS = ("name", "price", "owner", "isSold")

# Transport failures surface as OSError subclasses (requests) or ValueError
# (JSON-RPC error payloads on older web3 releases).
_CALL_ERRORS = (Web3Exception, ValueError, OSError)


def load_abi(abi_path: Path | None = None) -> list[dict[str, Any]]:
    """
    Load a contract ABI.

    Parameters
    ----------
    abi_path:
        JSON file holding either a bare ABI list or a build artifact with an
        ``abi`` key. If None, the bundled marketplace ABI is used.
    """
    if abi_path is None:
        raw = resources.files("market_engine").joinpath("abi/marketplace.json").read_text(
            encoding="utf-8"
        )
    else:
        raw = abi_path.expanduser().read_text(encoding="utf-8")

    payload = json.loads(raw)
    if isinstance(payload, Mapping):
        payload = payload.get("abi")
    if not isinstance(payload, list):
        raise ValueError(f"ABI must be a JSON list or an artifact with an 'abi' list: {abi_path}")
    return payload


def _item_output_names(abi: Sequence[Mapping[str, Any]]) -> tuple[str, ...]:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == "items":
            names = tuple(str(o.get("name") or "") for o in entry.get("outputs", []))
            if names and all(names):
                return names
    return ITEM_FIELDS


def _receipt_from_web3(raw: Mapping[str, Any]) -> Receipt:
    return Receipt(
        tx_hash=Web3.to_hex(raw["transactionHash"]),
        block_number=raw.get("blockNumber"),
        status=int(raw.get("status", 1)),
        gas_used=raw.get("gasUsed"),
    )


@dataclass(frozen=True, slots=True)
class Web3SettlementHandle:
    """Waits for a submitted transaction to be mined."""

    w3: Web3
    tx_hash: Any
    timeout_s: float
    poll_latency_s: float

    def await_settlement(self) -> Receipt:
        """
        Wait for the receipt and classify the outcome.

        Raises
        ------
        SettlementError
            TIMEOUT if not mined in time, REJECTED if the node failed while
            waiting, REVERTED if the transaction was mined with a failed status.
        """
        tx_hex = Web3.to_hex(self.tx_hash)
        try:
            raw = self.w3.eth.wait_for_transaction_receipt(
                self.tx_hash, timeout=self.timeout_s, poll_latency=self.poll_latency_s
            )
        except TimeExhausted as exc:
            raise SettlementError(
                FailureKind.TIMEOUT, f"{tx_hex} not mined within {self.timeout_s:g}s"
            ) from exc
        except _CALL_ERRORS as exc:
            raise SettlementError(FailureKind.REJECTED, f"{tx_hex}: {exc}") from exc

        receipt = _receipt_from_web3(raw)
        if receipt.status == 0:
            raise SettlementError(FailureKind.REVERTED, f"{tx_hex} reverted in block {receipt.block_number}")
        return receipt


class Web3LedgerGateway:
    """
    LedgerGateway over a deployed marketplace contract.

    Parameters
    ----------
    w3:
        Connected Web3 instance.
    contract_address:
        Address of the marketplace contract.
    signer:
        Account transactions are sent from.
    abi:
        Contract ABI. Defaults to the bundled marketplace ABI.
    settlement_timeout_s, poll_latency_s:
        Passed to ``wait_for_transaction_receipt``.
    """

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        signer: SignerHandle,
        *,
        abi: list[dict[str, Any]] | None = None,
        settlement_timeout_s: float = 120.0,
        poll_latency_s: float = 0.5,
    ) -> None:
        abi = abi if abi is not None else load_abi()
        self._w3 = w3
        self._contract = w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=abi)
        self._item_fields = _item_output_names(abi)
        self._account = signer.account
        self._timeout_s = settlement_timeout_s
        self._poll_latency_s = poll_latency_s

    @property
    def account(self) -> str:
        """Checksum address transactions are sent from."""
        return self._account

    def get_item_count(self) -> int:
        """Call ``ItemCount()``."""
        try:
            return int(self._contract.functions.ItemCount().call())
        except _CALL_ERRORS as exc:
            raise GatewayError(f"ItemCount() failed: {exc}") from exc

    def get_item(self, item_id: int) -> Item:
        """
        Call ``items(id)`` and decode the result tuple by the ABI's output names.

        A zero owner address means the id was never assigned.
        """
        try:
            raw = self._contract.functions.items(item_id).call()
        except _CALL_ERRORS as exc:
            raise GatewayError(f"items({item_id}) failed: {exc}") from exc

        if isinstance(raw, Mapping):
            fields = dict(raw)
        else:
            fields = dict(zip(self._item_fields, raw))
        try:
            item = Item.from_dict(item_id, fields)
        except (KeyError, TypeError, ValueError) as exc:
            raise GatewayError(f"items({item_id}) returned an unexpected shape: {raw!r}") from exc

        if item.owner == ZERO_ADDRESS:
            raise GatewayError(f"Item {item_id} does not exist.")
        return item

    def get_owned_item_ids(self, address: str) -> list[int]:
        """Call ``getItemsByOwner(address)``."""
        try:
            ids = self._contract.functions.getItemsByOwner(Web3.to_checksum_address(address)).call()
        except _CALL_ERRORS as exc:
            raise GatewayError(f"getItemsByOwner({address}) failed: {exc}") from exc
        return [int(i) for i in ids]

    def submit_list(self, name: str, price: int) -> SettlementHandle:
        """Send ``listItems(name, price)`` with no value attached."""
        return self._transact("listItems", (name, price), value=0)

    def submit_buy(self, item_id: int, price: int) -> SettlementHandle:
        """Send ``buy(id)`` with `price` wei attached."""
        return self._transact("buy", (item_id,), value=price)

    def submit_transfer(self, item_id: int, to_address: str) -> SettlementHandle:
        """Send ``transferWithoutMoney(id, to)``."""
        return self._transact(
            "transferWithoutMoney", (item_id, Web3.to_checksum_address(to_address)), value=0
        )

    def _transact(self, function_name: str, args: tuple[Any, ...], *, value: int) -> SettlementHandle:
        tx_params: dict[str, Any] = {"from": self._account}
        if value:
            tx_params["value"] = value

        try:
            fn = self._contract.get_function_by_name(function_name)(*args)
        except (Web3ValidationError, MismatchedABI, TypeError) as exc:
            raise GatewayError(
                f"{function_name} arguments do not match the contract ABI: {exc}"
            ) from exc

        try:
            tx_hash = fn.transact(tx_params)
        except ContractLogicError as exc:
            logger.info("%s reverted at submission: %s", function_name, exc)
            return ResolvedSettlement(error=SettlementError(FailureKind.REVERTED, str(exc)))
        except _CALL_ERRORS as exc:
            raise GatewayError(f"{function_name} submission failed: {exc}") from exc

        logger.info("Submitted %s as %s", function_name, Web3.to_hex(tx_hash))
        return Web3SettlementHandle(
            w3=self._w3,
            tx_hash=tx_hash,
            timeout_s=self._timeout_s,
            poll_latency_s=self._poll_latency_s,
        )
