"""Thin REST client for the hosted relational backend.

Tables are read through the PostgREST dialect (``/rest/v1/<table>``) and
stored procedures are invoked through ``/rest/v1/rpc/<name>``.
"""

from __future__ import annotations

from typing import Any, Dict, List

import requests

from utils.config import get_env, load_config
from utils.errors import BackendError
from utils.logging import logger


def signed_headers(key: str | None, headers: Dict[str, str] | None = None) -> Dict[str, str]:
    headers = dict(headers or {})
    if key:
        headers["apikey"] = key
        headers["Authorization"] = f"Bearer {key}"
    headers.setdefault("Content-Type", "application/json")
    return headers


class BackendClient:
    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        timeout: float = 15,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None = None) -> "BackendClient":
        cfg = cfg or load_config()
        section = cfg.get("backend") or {}
        return cls(
            section.get("url") or "",
            get_env(section.get("key_env", "SUPABASE_ANON_KEY")),
            timeout=section.get("timeout_s", 15),
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/rest/v1/{path.lstrip('/')}"

    def _check(self, resp: requests.Response, what: str) -> Any:
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                detail = body.get("message") or body.get("error") or body.get("detail") or resp.text
            else:
                detail = resp.text
            logger.warning("backend_error what=%s status=%s detail=%s", what, resp.status_code, detail)
            raise BackendError(f"{what} failed: {detail}", status=resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise BackendError(f"{what} returned non-JSON body", status=resp.status_code) from exc

    def select(self, table: str, params: Dict[str, str] | None = None) -> List[Dict[str, Any]]:
        """Read rows from *table*; *params* use PostgREST filter syntax (``eq.x``)."""
        try:
            resp = self.session.get(
                self._url(table),
                params=params,
                headers=signed_headers(self.api_key),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BackendError(f"select {table} failed: {exc}") from exc
        data = self._check(resp, f"select {table}")
        return data if isinstance(data, list) else []

    def rpc(self, name: str, payload: Dict[str, Any]) -> Any:
        try:
            resp = self.session.post(
                self._url(f"rpc/{name}"),
                json=payload,
                headers=signed_headers(self.api_key),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BackendError(f"rpc {name} failed: {exc}") from exc
        return self._check(resp, f"rpc {name}")
