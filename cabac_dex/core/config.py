import json
import os
from pathlib import Path
from typing import Any

from cabac_dex.core.constants.base import (
    DEFAULT_CONFIRMATIONS,
    DEFAULT_QUOTE_DEBOUNCE_S,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_TRANSACTION_TIMEOUT,
)

_CONFIG_ENV_KEYS = ("CABAC_CONFIG_PATH", "CABAC_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
_QUOTE_SOURCES = ("router", "quoter")


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file is not valid JSON: {cfg_path}") from exc


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("rpc_urls", {})


def _section(name: str) -> dict[str, Any]:
    value = CONFIG.get(name)
    return value if isinstance(value, dict) else {}


def get_quote_debounce_s() -> float:
    value = _section("quotes").get("debounce_s")
    if value is None:
        return DEFAULT_QUOTE_DEBOUNCE_S
    return max(0.0, float(value))


def get_quote_source() -> str:
    source = str(_section("quotes").get("source") or "router").strip().lower()
    if source not in _QUOTE_SOURCES:
        raise ValueError(
            f"Unknown quote source {source!r}; expected one of {_QUOTE_SOURCES}"
        )
    return source


def get_default_slippage_bps() -> float:
    value = _section("swap").get("slippage_bps")
    if value is None:
        return DEFAULT_SLIPPAGE_BPS
    return float(value)


def get_receipt_timeout_s() -> float:
    value = _section("transactions").get("receipt_timeout_s")
    if value is None:
        return float(DEFAULT_TRANSACTION_TIMEOUT)
    return float(value)


def get_confirmations() -> int:
    value = _section("transactions").get("confirmations")
    if value is None:
        return DEFAULT_CONFIRMATIONS
    return max(1, int(value))


def get_registry_overrides(chain_id: int) -> dict[str, Any]:
    """Extra tokens/pools for ``chain_id`` from the ``registry`` section."""
    chains = _section("registry")
    value = chains.get(str(chain_id)) or chains.get(int(chain_id))
    return value if isinstance(value, dict) else {}
