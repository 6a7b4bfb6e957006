from types import SimpleNamespace

import pytest

from core.model_gateway import HostedChatProvider, ModelGateway, ModelResponse, OpenAIProvider
from utils.errors import ProviderError, ProviderQuotaError


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, resp):
        self.resp = resp
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers})
        return self.resp


def _hosted(resp):
    session = FakeSession(resp)
    return HostedChatProvider("prov-1", "https://gw.example/ai_provider/chat", "anon", session=session), session


def test_hosted_provider_success():
    provider, session = _hosted(FakeResponse(body={"ok": True, "response": "{}", "model": "gpt-4o"}))
    out = provider.complete("PROMPT")
    assert out == ModelResponse(text="{}", provider_id="prov-1", model="gpt-4o")
    sent = session.posts[0]
    assert sent["json"] == {"providerId": "prov-1", "message": "PROMPT", "dashboard": "elections"}
    assert sent["headers"]["Authorization"] == "Bearer anon"


@pytest.mark.parametrize(
    "resp",
    [
        FakeResponse(429, {"error": "Too many requests"}),
        FakeResponse(200, {"ok": False, "isQuotaError": True, "error": "quota exceeded"}),
    ],
)
def test_hosted_quota_is_distinguished(resp):
    provider, _ = _hosted(resp)
    with pytest.raises(ProviderQuotaError) as exc:
        provider.complete("p")
    assert exc.value.kind == "quota"


def test_hosted_generic_failure():
    provider, _ = _hosted(FakeResponse(500, None, text="upstream exploded"))
    with pytest.raises(ProviderError) as exc:
        provider.complete("p")
    assert not isinstance(exc.value, ProviderQuotaError)
    assert "upstream exploded" in str(exc.value)
    assert exc.value.status == 500


def test_hosted_empty_response():
    provider, _ = _hosted(FakeResponse(body={"ok": True, "response": "  "}))
    with pytest.raises(ProviderError):
        provider.complete("p")


def test_openai_provider_uses_chat_completions():
    calls = []

    def create(**kw):
        calls.append(kw)
        msg = SimpleNamespace(content='{"candidates": []}')
        return SimpleNamespace(choices=[SimpleNamespace(message=msg)], model="gpt-4o-mini-2024")

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    provider = OpenAIProvider("openai", "gpt-4o-mini", client=client)
    out = provider.complete("hello")
    assert out.text == '{"candidates": []}'
    assert out.model == "gpt-4o-mini-2024"
    assert calls[0]["messages"] == [{"role": "user", "content": "hello"}]


class CountingProvider:
    def __init__(self, exc=None):
        self.exc = exc
        self.calls = 0

    def complete(self, prompt):
        self.calls += 1
        if self.exc:
            raise self.exc
        return ModelResponse(text="{}", provider_id="fake", model="m")


def test_gateway_never_retries_on_quota():
    provider = CountingProvider(ProviderQuotaError("slow down", provider_id="fake"))
    gw = ModelGateway({"fake": provider})
    with pytest.raises(ProviderQuotaError):
        gw.execute("p", "fake")
    assert provider.calls == 1


def test_gateway_classifies_foreign_errors():
    gw = ModelGateway({"a": CountingProvider(RuntimeError("HTTP 429 rate limit")), "b": CountingProvider(RuntimeError("socket closed"))})
    with pytest.raises(ProviderQuotaError):
        gw.execute("p", "a")
    with pytest.raises(ProviderError) as exc:
        gw.execute("p", "b")
    assert not isinstance(exc.value, ProviderQuotaError)


def test_unknown_provider_without_hosted_gateway():
    with pytest.raises(ProviderError):
        ModelGateway({}).execute("p", "missing")


def test_unknown_provider_goes_through_hosted_gateway():
    gw = ModelGateway({}, hosted_url="https://gw.example/ai_provider/chat", hosted_key="k")
    provider = gw.provider_for("prov-9")
    assert isinstance(provider, HostedChatProvider)
    assert gw.provider_for("prov-9") is provider


def test_from_config_builds_openai_and_hosted_url():
    cfg = {
        "gateway": {"url": "https://gw.example/", "chat_path": "ai_provider/chat"},
        "providers": {"openai": {"kind": "openai", "model": "gpt-4o-mini"}},
    }
    gw = ModelGateway.from_config(cfg)
    assert isinstance(gw.providers["openai"], OpenAIProvider)
    assert gw.hosted_url == "https://gw.example/ai_provider/chat"
