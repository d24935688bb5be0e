"""
Persisted engine settings.

Resolution order, lowest to highest precedence:

1) built-in defaults,
2) ``<data_root>/settings.json``,
3) ``MARKETSYNC_*`` environment variables,
4) explicit overrides from the caller (CLI flags).

A missing or unreadable settings file falls back to defaults; it never blocks
startup.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from market_engine.errors import SettingsError
from market_engine.logger import get_logger

logger = get_logger(__name__)

SETTINGS_FILE_NAME = "settings.json"
DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_CONTRACT_ADDRESS = "0xf5fb750c7e61e6e6efa3499b4f0ce9cf2f2b1e2d"

_ENV_KEYS = {
    "rpc_url": "MARKETSYNC_RPC_URL",
    "contract_address": "MARKETSYNC_CONTRACT",
    "abi_path": "MARKETSYNC_ABI",
    "account": "MARKETSYNC_ACCOUNT",
    "settlement_timeout_s": "MARKETSYNC_TIMEOUT",
    "poll_latency_s": "MARKETSYNC_POLL_LATENCY",
    "verify_price_before_buy": "MARKETSYNC_VERIFY_PRICE",
}


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """
    Connection and behavior settings for the engine.

    Attributes
    ----------
    rpc_url:
        JSON-RPC endpoint of the ledger node.
    contract_address:
        Address of the marketplace contract.
    abi_path:
        Optional ABI file; the bundled ABI is used when None.
    account:
        Preferred account among the node's accounts; the first one when None.
    settlement_timeout_s:
        How long to wait for a transaction to be mined.
    poll_latency_s:
        Receipt polling interval.
    verify_price_before_buy:
        Re-read the item price immediately before submitting a purchase.
    """

    rpc_url: str = DEFAULT_RPC_URL
    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    abi_path: Path | None = None
    account: str | None = None
    settlement_timeout_s: float = 120.0
    poll_latency_s: float = 0.5
    verify_price_before_buy: bool = True

    @staticmethod
    def defaults() -> "EngineSettings":
        """Return the built-in defaults."""
        return EngineSettings()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape written to ``settings.json``."""
        payload = asdict(self)
        payload["abi_path"] = str(self.abi_path) if self.abi_path is not None else None
        return payload


def default_data_root() -> Path:
    """
    Resolve the default marketsync data root.

    Preference order:
    1) %MARKETSYNC_DATA_ROOT% if set
    2) %LOCALAPPDATA% or %APPDATA% (Windows)
    3) ~/.marketsync
    """
    explicit = os.environ.get("MARKETSYNC_DATA_ROOT")
    if explicit:
        return Path(explicit)

    for var in ("LOCALAPPDATA", "APPDATA"):
        value = os.environ.get(var)
        if value:
            return Path(value) / "marketsync"

    return Path.home() / ".marketsync"


def settings_path(data_root: Path | None) -> Path:
    """Return the settings file path under `data_root`, or under the default root when None."""
    root = default_data_root() if data_root is None else data_root
    return root / SETTINGS_FILE_NAME


def _as_bool(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return None


def _as_positive_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _as_text(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _apply(base: EngineSettings, payload: Mapping[str, Any]) -> EngineSettings:
    """Overlay recognized, well-formed keys of `payload` onto `base`."""
    changes: dict[str, Any] = {}

    for key in ("rpc_url", "contract_address", "account"):
        text = _as_text(payload.get(key))
        if text is not None:
            changes[key] = text

    abi = payload.get("abi_path")
    if isinstance(abi, Path):
        changes["abi_path"] = abi
    elif _as_text(abi) is not None:
        changes["abi_path"] = Path(str(abi).strip())

    for key in ("settlement_timeout_s", "poll_latency_s"):
        if key in payload:
            number = _as_positive_float(payload[key])
            if number is not None:
                changes[key] = number

    if "verify_price_before_buy" in payload:
        flag = _as_bool(payload["verify_price_before_buy"])
        if flag is not None:
            changes["verify_price_before_buy"] = flag

    return replace(base, **changes)


def load_settings(
    *,
    data_root: Path | None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> EngineSettings:
    """
    Load effective settings.

    Parameters
    ----------
    data_root:
        Data root holding ``settings.json``. If None, the default is used.
    environ:
        Environment mapping; ``os.environ`` when None.
    overrides:
        Highest-precedence values, typically from CLI flags. None values are ignored.

    Returns
    -------
    EngineSettings
        Effective settings.
    """
    settings = EngineSettings.defaults()

    path = settings_path(data_root)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        payload = None
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        payload = None
    if isinstance(payload, dict):
        settings = _apply(settings, payload)

    env = os.environ if environ is None else environ
    env_payload = {key: env[var] for key, var in _ENV_KEYS.items() if var in env}
    settings = _apply(settings, env_payload)

    if overrides:
        settings = _apply(settings, {k: v for k, v in overrides.items() if v is not None})

    return settings


def save_settings(*, data_root: Path | None, settings: EngineSettings) -> Path:
    """
    Persist settings to ``<data_root>/settings.json``.

    Returns
    -------
    Path
        The file written.

    Raises
    ------
    SettingsError
        If the file cannot be written.
    """
    path = settings_path(data_root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    except OSError as exc:
        raise SettingsError(f"Failed to write settings file: {path} ({exc!s})") from exc
    return path
