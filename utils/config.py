from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml
from dotenv import load_dotenv

from config import CONFIG_DIR

load_dotenv()

ENV_PREFIX = "SYNTHRACE__"
DEFAULTS_PATH = CONFIG_DIR / "defaults.yaml"
LOCAL_PATH = CONFIG_DIR / "local.yaml"


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        try:
            return float(value)
        except ValueError:
            return value


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must hold a YAML mapping")
    return data


def env_overrides(environ: Mapping[str, str] | None = None) -> Dict[str, Any]:
    """Nested overrides from ``SYNTHRACE__SECTION__KEY=value`` variables."""
    out: Dict[str, Any] = {}
    for key, value in (os.environ if environ is None else environ).items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX) :].lower().split("__")
        d = out
        for p in parts[:-1]:
            d = d.setdefault(p, {})
        d[parts[-1]] = _coerce(value)
    return out


def load_config(overrides_path: str | None = None) -> Dict[str, Any]:
    """Shipped defaults, then ``config/local.yaml`` (or *overrides_path*), then env."""
    cfg = _read_yaml(DEFAULTS_PATH)
    override_file = Path(overrides_path) if overrides_path else LOCAL_PATH
    if override_file.exists():
        cfg = _deep_merge(cfg, _read_yaml(override_file))
    return _deep_merge(cfg, env_overrides())


def get_env(key: str, default: str | None = None) -> str | None:
    """Read a secret from the environment; an empty value counts as unset."""
    value = os.getenv(key)
    if value is not None and value != "":
        return value
    return default


def require_env(key: str) -> str:
    value = get_env(key)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value
