"""Generative-model invocation.

The gateway never retries: a quota or rate-limit signal surfaces at once as
:class:`ProviderQuotaError`, and a retry is a new user-initiated run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

import openai
import requests
from openai import OpenAI

from utils.config import get_env, load_config, require_env
from utils.errors import ProviderError, ProviderQuotaError, classify_provider_error, is_quota_kind
from utils.logging import logger
from utils.providers import configured_providers


@dataclass(frozen=True)
class ModelResponse:
    text: str
    provider_id: str
    model: Optional[str] = None


class ModelProvider(Protocol):
    def complete(self, prompt: str) -> ModelResponse:
        ...


def extract_text(resp: Any) -> Optional[str]:
    """Return the message text of a Chat Completions response."""
    if resp is None:
        return None
    try:
        choice = resp.choices[0]
    except (AttributeError, IndexError, TypeError):
        return None
    return getattr(getattr(choice, "message", None), "content", None) or getattr(choice, "text", None)


class HostedChatProvider:
    """Provider reached through the hosted ``ai_provider/chat`` endpoint."""

    def __init__(
        self,
        provider_id: str,
        url: str,
        api_key: str | None = None,
        *,
        dashboard: str = "elections",
        timeout: float = 90,
        session: requests.Session | None = None,
    ) -> None:
        self.provider_id = provider_id
        self.url = url
        self.api_key = api_key
        self.dashboard = dashboard
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete(self, prompt: str) -> ModelResponse:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            resp = self.session.post(
                self.url,
                json={"providerId": self.provider_id, "message": prompt, "dashboard": self.dashboard},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"chat request failed: {exc}", provider_id=self.provider_id) from exc
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400 or body.get("ok") is False:
            detail = body.get("error") or body.get("detail") or resp.text or f"HTTP {resp.status_code}"
            if resp.status_code == 429 or body.get("isQuotaError"):
                raise ProviderQuotaError(str(detail), provider_id=self.provider_id, status=resp.status_code)
            raise ProviderError(str(detail), provider_id=self.provider_id, status=resp.status_code)
        text = body.get("response") or body.get("content") or body.get("text") or ""
        if not isinstance(text, str) or not text.strip():
            raise ProviderError("provider returned an empty response", provider_id=self.provider_id)
        return ModelResponse(text=text, provider_id=self.provider_id, model=body.get("model"))


class OpenAIProvider:
    def __init__(
        self,
        provider_id: str,
        model: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        client: Any = None,
    ) -> None:
        self.provider_id = provider_id
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(api_key=require_env("OPENAI_API_KEY"))
        return self._client

    def complete(self, prompt: str) -> ModelResponse:
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.RateLimitError as exc:
            raise ProviderQuotaError(str(exc), provider_id=self.provider_id, status=429) from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 429:
                raise ProviderQuotaError(str(exc), provider_id=self.provider_id, status=429) from exc
            raise ProviderError(str(exc), provider_id=self.provider_id, status=exc.status_code) from exc
        except openai.APIError as exc:
            raise ProviderError(str(exc), provider_id=self.provider_id) from exc
        text = extract_text(resp)
        if not text or not text.strip():
            raise ProviderError("provider returned an empty response", provider_id=self.provider_id)
        return ModelResponse(text=text, provider_id=self.provider_id, model=getattr(resp, "model", self.model))


class ModelGateway:
    def __init__(
        self,
        providers: Mapping[str, ModelProvider] | None = None,
        *,
        hosted_url: str | None = None,
        hosted_key: str | None = None,
        dashboard: str = "elections",
        timeout: float = 90,
    ) -> None:
        self.providers: Dict[str, ModelProvider] = dict(providers or {})
        self.hosted_url = hosted_url
        self.hosted_key = hosted_key
        self.dashboard = dashboard
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None = None) -> "ModelGateway":
        cfg = cfg or load_config()
        providers: Dict[str, ModelProvider] = {}
        for pid, info in configured_providers(cfg).items():
            if info.enabled and info.kind == "openai" and info.model:
                providers[pid] = OpenAIProvider(
                    pid,
                    info.model,
                    temperature=info.options.get("temperature", 0.7),
                    max_tokens=info.options.get("max_tokens", 4096),
                )
        gw = cfg.get("gateway") or {}
        base = (gw.get("url") or "").rstrip("/")
        return cls(
            providers,
            hosted_url=f"{base}/{gw.get('chat_path', 'ai_provider/chat')}" if base else None,
            hosted_key=get_env((cfg.get("backend") or {}).get("key_env", "SUPABASE_ANON_KEY")),
            dashboard=gw.get("dashboard", "elections"),
            timeout=gw.get("timeout_s", 90),
        )

    def provider_for(self, provider_id: str) -> ModelProvider:
        provider = self.providers.get(provider_id)
        if provider is not None:
            return provider
        if self.hosted_url:
            provider = HostedChatProvider(
                provider_id,
                self.hosted_url,
                self.hosted_key,
                dashboard=self.dashboard,
                timeout=self.timeout,
            )
            self.providers[provider_id] = provider
            return provider
        raise ProviderError(f"unknown AI provider {provider_id!r}", provider_id=provider_id)

    def execute(self, prompt: str, provider_id: str) -> ModelResponse:
        provider = self.provider_for(provider_id)
        t0 = time.monotonic()
        logger.info("model_call start provider=%s prompt_chars=%d", provider_id, len(prompt))
        try:
            result = provider.complete(prompt)
        except ProviderQuotaError:
            logger.warning("model_call quota provider=%s", provider_id)
            raise
        except ProviderError:
            raise
        except Exception as exc:
            kind = classify_provider_error(exc)
            if is_quota_kind(kind):
                raise ProviderQuotaError(str(exc), provider_id=provider_id) from exc
            raise ProviderError(str(exc), provider_id=provider_id) from exc
        logger.info(
            "model_call done provider=%s model=%s chars=%d elapsed=%.2fs",
            provider_id,
            result.model,
            len(result.text),
            time.monotonic() - t0,
        )
        return result
