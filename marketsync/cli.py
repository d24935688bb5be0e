"""
Command-line interface for marketsync.

Notes
-----
The CLI is intentionally thin. It parses arguments, wires an engine, starts a
session and delegates to the coordinator.

Exit codes
----------
- 0: success (a reconciliation warning is printed but does not fail the command)
- 1: the session could not be started
- 2: invalid input or a failed operation
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from market_engine.data_models import EngineState, Item, OperationOutcome, PendingOperation
from market_engine.errors import MarketSyncError, SessionError
from market_engine.logger import setup_logging
from market_engine.runtime import Engine, build_engine
from market_engine.settings import EngineSettings, default_data_root, load_settings, save_settings
from market_engine.units import format_price, truncate_address


def build_parser() -> argparse.ArgumentParser:
    """
    Build and return the top-level argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured parser.
    """
    parser = argparse.ArgumentParser(
        prog="marketsync",
        description="Ledger marketplace client",
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help="Override the marketsync data root (settings.json, logs). If omitted, defaults are used.",
    )
    parser.add_argument("--rpc-url", default=None, help="JSON-RPC endpoint of the ledger node.")
    parser.add_argument("--contract", default=None, help="Marketplace contract address.")
    parser.add_argument("--abi", type=Path, default=None, help="Contract ABI JSON file.")
    parser.add_argument("--account", default=None, help="Account to act as.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for a transaction to be mined.",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against an in-memory demo ledger instead of a node.",
    )
    parser.add_argument(
        "--no-price-check",
        action="store_true",
        help="Do not re-read the item price immediately before buying.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("items", help="List every item in the marketplace")
    sub.add_parser("owned", help="List items owned by the active account")

    list_p = sub.add_parser("list", help="Create a new listing")
    list_p.add_argument("--name", required=True, help="Item name")
    list_p.add_argument("--price", required=True, help="Price in ETH, e.g. 0.01")

    buy_p = sub.add_parser("buy", help="Buy an item")
    buy_p.add_argument("--id", dest="item_id", type=int, required=True, help="Item id")
    buy_p.add_argument(
        "--price",
        type=int,
        default=None,
        help="Price in wei to attach. Defaults to the price in the freshly read marketplace.",
    )

    transfer_p = sub.add_parser("transfer", help="Transfer an owned item without payment")
    transfer_p.add_argument("--id", dest="item_id", type=int, required=True, help="Item id")
    transfer_p.add_argument("--to", dest="to_address", required=True, help="Recipient address")

    config_p = sub.add_parser("config", help="Print effective settings")
    config_p.add_argument(
        "--save",
        action="store_true",
        help="Persist the effective settings to settings.json.",
    )

    return parser


def _settings_from_args(args: argparse.Namespace) -> EngineSettings:
    overrides = {
        "rpc_url": args.rpc_url,
        "contract_address": args.contract,
        "abi_path": args.abi,
        "account": args.account,
        "settlement_timeout_s": args.timeout,
    }
    if args.no_price_check:
        overrides["verify_price_before_buy"] = False
    return load_settings(data_root=args.data_root, overrides=overrides)


def _render_item(item: Item, account: str | None) -> str:
    status = "sold" if item.is_sold else "available"
    mine = " (yours)" if account is not None and item.is_owned_by(account) else ""
    return (
        f"  #{item.id:<4} {item.name:<24} {format_price(item.price):>18}  "
        f"{status:<9} owner {truncate_address(item.owner)}{mine}"
    )


def _print_items(title: str, items: Sequence[Item], account: str | None) -> None:
    print(f"{title} ({len(items)})")
    if not items:
        print("  (none)")
    for item in items:
        print(_render_item(item, account))


def _print_state_warning(state: EngineState) -> None:
    if state.last_error is not None:
        print(f"WARNING: {state.last_error}")


def _report_outcome(outcome: OperationOutcome, state: EngineState) -> int:
    if outcome.error is not None:
        print(f"ERROR: {outcome.error}")
        return 2

    assert outcome.receipt is not None
    print(f"OK: {outcome.intent.describe()}")
    print(f"  Transaction : {outcome.receipt.tx_hash}")
    if outcome.receipt.block_number is not None:
        print(f"  Block       : {outcome.receipt.block_number}")
    if outcome.warning is not None:
        print(f"WARNING: {outcome.warning}")
    else:
        _print_items("Your items", state.owned_items.items, state.account)
    return 0


def _run_engine_command(engine: Engine, args: argparse.Namespace) -> int:
    session = engine.binder.initialize()
    coordinator = engine.coordinator
    state = coordinator.state
    print(f"Connected: {session.account}")

    if args.command == "items":
        _print_state_warning(state)
        _print_items("Marketplace", state.all_items.items, state.account)
        return 0

    if args.command == "owned":
        _print_state_warning(state)
        _print_items("Your items", state.owned_items.items, state.account)
        return 0

    if args.command == "list":
        intent = PendingOperation.list_item(args.name, args.price)
    elif args.command == "buy":
        price = args.price
        if price is None:
            item = state.all_items.get(args.item_id)
            if item is None:
                print(f"ERROR: Item {args.item_id} is not in the marketplace.")
                return 2
            price = item.price
        intent = PendingOperation.buy(args.item_id, price)
    elif args.command == "transfer":
        intent = PendingOperation.transfer(args.item_id, args.to_address)
    else:
        raise ValueError(f"Unknown command: {args.command!r}")

    outcome = coordinator.execute(intent)
    return _report_outcome(outcome, coordinator.state)


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Parameters
    ----------
    argv:
        Optional argument vector. If None, argparse uses sys.argv.

    Returns
    -------
    int
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    data_root = args.data_root or default_data_root()
    setup_logging(log_file=data_root / "logs" / "marketsync.log", level="WARNING")
    settings = _settings_from_args(args)

    if args.command == "config":
        print(json.dumps(settings.to_dict(), indent=2, sort_keys=True))
        if args.save:
            try:
                path = save_settings(data_root=args.data_root, settings=settings)
            except MarketSyncError as exc:
                print(f"ERROR: {exc}")
                return 2
            print(f"Settings written: {path}")
        return 0

    try:
        engine = build_engine(settings, simulate=args.simulate)
        return _run_engine_command(engine, args)
    except SessionError as exc:
        print(f"ERROR: {exc}")
        return 1
    except (MarketSyncError, ValueError, OSError) as exc:
        print(f"ERROR: {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
