from __future__ import annotations

import json
from pathlib import Path

import pytest

from market_engine.settings import (
    DEFAULT_CONTRACT_ADDRESS,
    DEFAULT_RPC_URL,
    EngineSettings,
    default_data_root,
    load_settings,
    save_settings,
)


def test_defaults_when_nothing_is_configured(tmp_path: Path) -> None:
    settings = load_settings(data_root=tmp_path, environ={})
    assert settings == EngineSettings.defaults()
    assert settings.rpc_url == DEFAULT_RPC_URL
    assert settings.contract_address == DEFAULT_CONTRACT_ADDRESS
    assert settings.verify_price_before_buy is True


def test_file_env_and_overrides_layer_in_order(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(
        json.dumps(
            {
                "rpc_url": "http://node.local:8545",
                "account": "0x" + "a1" * 20,
                "settlement_timeout_s": 30,
            }
        ),
        encoding="utf-8",
    )
    environ = {"MARKETSYNC_TIMEOUT": "45", "MARKETSYNC_VERIFY_PRICE": "off"}

    settings = load_settings(
        data_root=tmp_path,
        environ=environ,
        overrides={"account": "0x" + "b2" * 20, "rpc_url": None},
    )

    assert settings.rpc_url == "http://node.local:8545"
    assert settings.settlement_timeout_s == 45.0
    assert settings.verify_price_before_buy is False
    assert settings.account == "0x" + "b2" * 20


def test_malformed_values_are_ignored(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(
        json.dumps({"settlement_timeout_s": -1, "poll_latency_s": "fast", "verify_price_before_buy": "maybe"}),
        encoding="utf-8",
    )
    settings = load_settings(data_root=tmp_path, environ={})
    assert settings == EngineSettings.defaults()


def test_unreadable_settings_file_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")
    assert load_settings(data_root=tmp_path, environ={}) == EngineSettings.defaults()


def test_save_then_load_preserves_settings(tmp_path: Path) -> None:
    root = tmp_path / "nested" / "root"
    original = EngineSettings(
        rpc_url="http://10.0.0.5:8545",
        abi_path=Path("/opt/abi/Marketplace.json"),
        poll_latency_s=2.0,
        verify_price_before_buy=False,
    )

    path = save_settings(data_root=root, settings=original)

    assert path == root / "settings.json"
    assert load_settings(data_root=root, environ={}) == original


def test_default_data_root_prefers_explicit_variable(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MARKETSYNC_DATA_ROOT", str(tmp_path / "explicit"))
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path / "Local"))
    assert default_data_root() == tmp_path / "explicit"


def test_default_data_root_falls_back_to_appdata(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("MARKETSYNC_DATA_ROOT", raising=False)
    monkeypatch.delenv("LOCALAPPDATA", raising=False)
    monkeypatch.setenv("APPDATA", str(tmp_path / "Roaming"))
    assert default_data_root() == tmp_path / "Roaming" / "marketsync"
