import requests

from utils.providers import (
    ProviderInfo,
    available_providers,
    configured_providers,
    fetch_hosted_providers,
    filter_dashboard_providers,
    has_secrets,
)

PAYLOAD = {
    "providers": [
        {"id": "p-1", "name": "Claude", "enabled": True, "model": "m1",
         "dashboardAssignments": [{"dashboard": "elections"}]},
        {"id": "p-2", "name": "Disabled", "enabled": False,
         "dashboardAssignments": [{"dashboard": "elections"}]},
        {"id": "p-3", "name": "Finance only", "enabled": True,
         "dashboardAssignments": [{"dashboard": "finance"}]},
        {"id": "p-4", "name": "Unassigned", "enabled": True},
    ]
}


class FakeResp:
    def __init__(self, body, status=200):
        self.body, self.status = body, status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status}")

    def json(self):
        return self.body


class FakeSession:
    def __init__(self, resp=None, exc=None):
        self.resp, self.exc = resp, exc
        self.urls = []

    def get(self, url, headers=None, timeout=None):
        self.urls.append(url)
        if self.exc:
            raise self.exc
        return self.resp


CFG = {"gateway": {"url": "https://gw.example", "providers_path": "ai_provider/providers", "dashboard": "elections"}}


def test_filter_dashboard_providers():
    providers = filter_dashboard_providers(PAYLOAD, "elections")
    assert [p.id for p in providers] == ["p-1"]
    assert providers[0].kind == "hosted"


def test_fetch_hosted_providers():
    session = FakeSession(FakeResp(PAYLOAD))
    assert [p.id for p in fetch_hosted_providers(CFG, session=session)] == ["p-1"]
    assert session.urls == ["https://gw.example/ai_provider/providers"]


def test_unreachable_gateway_lists_nothing():
    session = FakeSession(exc=requests.ConnectionError("refused"))
    assert fetch_hosted_providers(CFG, session=session) == []
    assert fetch_hosted_providers({"gateway": {}}) == []


def test_available_merges_configured_with_secrets(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    cfg = {**CFG, "providers": {"openai": {"kind": "openai", "model": "gpt-4o-mini", "env_keys": ["OPENAI_API_KEY"]}}}
    found = available_providers(cfg, session=FakeSession(FakeResp(PAYLOAD)))
    assert sorted(found) == ["openai", "p-1"]
    monkeypatch.delenv("OPENAI_API_KEY")
    found = available_providers(cfg, session=FakeSession(FakeResp(PAYLOAD)))
    assert sorted(found) == ["p-1"]


def test_configured_providers_options():
    cfg = {"providers": {"openai": {"name": "OpenAI", "model": "gpt-4o-mini", "temperature": 0.2}}}
    info = configured_providers(cfg)["openai"]
    assert info == ProviderInfo(id="openai", name="OpenAI", kind="openai", model="gpt-4o-mini", options={"temperature": 0.2})
    assert has_secrets(info)
