"""
CLI tests.

Engine commands run against the in-memory demo ledger (``--simulate``). The
demo session acts as the first demo account, which owns Sword (1) and
Potion (5); Helmet (3) is already sold.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import marketsync.cli as cli_module
from market_engine.errors import SessionError, SessionFailure


def _run(tmp_path: Path, *argv: str) -> int:
    return cli_module.main(["--data-root", str(tmp_path), "--simulate", *argv])


def test_cli_root_help(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["--help"])
    assert excinfo.value.code == 0
    assert "marketsync" in capsys.readouterr().out.lower()


@pytest.mark.parametrize("subcommand", ["items", "owned", "list", "buy", "transfer", "config"])
def test_cli_subcommand_help(subcommand: str, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main([subcommand, "--help"])
    assert excinfo.value.code == 0
    out = capsys.readouterr().out.lower()
    assert "usage:" in out
    assert subcommand in out


def test_items_lists_the_marketplace(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "items")
    out = capsys.readouterr().out
    assert rc == 0
    assert "Connected:" in out
    assert "Marketplace (5)" in out
    assert "Sword" in out
    assert "sold" in out


def test_owned_lists_only_the_active_account(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "owned")
    out = capsys.readouterr().out
    assert rc == 0
    assert "Your items (2)" in out
    assert "Potion" in out
    assert "Shield" not in out


def test_list_creates_a_listing(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "list", "--name", "Lamp", "--price", "0.25")
    out = capsys.readouterr().out
    assert rc == 0
    assert "OK:" in out
    assert "Transaction" in out
    assert "Lamp" in out


def test_list_rejects_invalid_price(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "list", "--name", "Lamp", "--price", "abc")
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out


def test_buy_uses_the_listed_price(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "buy", "--id", "2")
    out = capsys.readouterr().out
    assert rc == 0
    assert "Shield" in out


def test_buy_of_sold_item_reports_revert(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "buy", "--id", "3")
    out = capsys.readouterr().out
    assert rc == 2
    assert "reverted" in out


def test_buy_of_unknown_item_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "buy", "--id", "99")
    assert rc == 2
    assert "not in the marketplace" in capsys.readouterr().out


def test_transfer_to_invalid_address_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = _run(tmp_path, "transfer", "--id", "1", "--to", "not-an-address")
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out


def test_session_failure_returns_1(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    def _no_wallet(*_args: object, **_kwargs: object) -> None:
        raise SessionError(SessionFailure.NO_PROVIDER, "No wallet provider is available.")

    monkeypatch.setattr(cli_module, "build_engine", _no_wallet)

    rc = _run(tmp_path, "items")
    out = capsys.readouterr().out
    assert rc == 1
    assert "ERROR:" in out


def test_config_prints_and_saves_settings(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli_module.main(
        ["--data-root", str(tmp_path), "--rpc-url", "http://node.local:8545", "config", "--save"]
    )
    out = capsys.readouterr().out
    assert rc == 0
    assert "Settings written" in out
    saved = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert saved["rpc_url"] == "http://node.local:8545"


def test_transfer_with_out_of_range_id_fails_cleanly(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    rc = _run(tmp_path, "transfer", "--id", str(2**256), "--to", "0x" + "22" * 20)
    out = capsys.readouterr().out
    assert rc == 2
    assert "Invalid item id" in out
