from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .config import get_env
from .logging import logger


@dataclass(frozen=True)
class ProviderInfo:
    id: str
    name: str
    kind: str  # "openai" | "hosted"
    model: Optional[str] = None
    enabled: bool = True
    options: Dict[str, Any] = field(default_factory=dict)


def configured_providers(cfg: Dict[str, Any]) -> Dict[str, ProviderInfo]:
    """Providers declared in the ``providers`` config section."""
    out: Dict[str, ProviderInfo] = {}
    for pid, info in (cfg.get("providers") or {}).items():
        info = dict(info or {})
        out[pid] = ProviderInfo(
            id=pid,
            name=info.pop("name", pid),
            kind=info.pop("kind", "openai"),
            model=info.pop("model", None),
            enabled=bool(info.pop("enabled", True)),
            options=info,
        )
    return out


def has_secrets(info: ProviderInfo) -> bool:
    for k in info.options.get("env_keys", []):
        if not get_env(k):
            return False
    return True


def filter_dashboard_providers(payload: Dict[str, Any], dashboard: str) -> List[ProviderInfo]:
    """Keep enabled hosted providers assigned to *dashboard*."""
    out: List[ProviderInfo] = []
    for p in payload.get("providers") or []:
        if not isinstance(p, dict) or not p.get("enabled"):
            continue
        assignments = p.get("dashboardAssignments") or []
        if not any(isinstance(a, dict) and a.get("dashboard") == dashboard for a in assignments):
            continue
        out.append(
            ProviderInfo(
                id=str(p.get("id")),
                name=p.get("name") or p.get("provider_name") or str(p.get("id")),
                kind="hosted",
                model=p.get("model"),
                options={"provider_name": p.get("provider_name")},
            )
        )
    return out


def fetch_hosted_providers(cfg: Dict[str, Any], session: requests.Session | None = None) -> List[ProviderInfo]:
    """List providers from the hosted gateway; an unreachable gateway yields ``[]``."""
    gw = cfg.get("gateway") or {}
    base = (gw.get("url") or "").rstrip("/")
    if not base:
        return []
    url = f"{base}/{gw.get('providers_path', 'ai_provider/providers')}"
    key = get_env((cfg.get("backend") or {}).get("key_env", "SUPABASE_ANON_KEY"), "")
    http = session or requests.Session()
    try:
        resp = http.get(url, headers={"Authorization": f"Bearer {key}"}, timeout=gw.get("timeout_s", 30))
        resp.raise_for_status()
        payload = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("provider_list_failed url=%s error=%s", url, exc)
        return []
    return filter_dashboard_providers(payload, gw.get("dashboard", "elections"))


def available_providers(cfg: Dict[str, Any], session: requests.Session | None = None) -> Dict[str, ProviderInfo]:
    providers = {p.id: p for p in fetch_hosted_providers(cfg, session=session)}
    for pid, info in configured_providers(cfg).items():
        if info.enabled and has_secrets(info):
            providers.setdefault(pid, info)
    return providers
