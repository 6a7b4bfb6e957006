import json
from types import SimpleNamespace

from core.model_gateway import ModelResponse
from core.orchestrator import SyntheticRaceWorkflow
from synthrace import cli, get_version
from utils.errors import ProviderQuotaError


class Aggregator:
    def fetch(self, race_id):
        return []


class Gateway:
    def __init__(self, reply):
        self.reply = reply

    def execute(self, prompt, provider_id):
        if isinstance(self.reply, Exception):
            raise self.reply
        return ModelResponse(text=self.reply, provider_id=provider_id, model="m")


class Persistence:
    def save(self, preview, race, user_id=None):
        return "sr-cli"


def _files(tmp_path):
    race = tmp_path / "race.json"
    race.write_text(json.dumps({"race_id": "r-1", "title": "Vermont Governor", "state": "Vermont"}))
    cands = tmp_path / "candidates.json"
    cands.write_text(json.dumps([
        {"race_candidates_id": "rc-1", "ap_candidate_id": "ap-1", "name": "Alice Able", "party": "DEM"},
        {"id": "synthetic_2", "name": "Nora North", "party": "IND"},
    ]))
    scen = tmp_path / "scenario.json"
    scen.write_text(json.dumps({"name": "CLI run", "turnoutShift": 1, "aiProvider": "prov-1"}))
    return ["--race", str(race), "--candidates", str(cands), "--scenario", str(scen)]


def _patch(monkeypatch, reply):
    wf = SyntheticRaceWorkflow(Aggregator(), Gateway(reply), Persistence())
    monkeypatch.setattr(cli.telemetry, "configure", lambda cfg: None)
    monkeypatch.setattr(cli, "SyntheticRaceWorkflow", SimpleNamespace(from_config=lambda cfg: wf))
    return wf


def test_version(capsys):
    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == get_version()


def test_run_and_save(tmp_path, monkeypatch, capsys):
    reply = '{"candidates": [{"candidate_id": "ap-1", "metadata": {"votes": 6}},' \
            ' {"candidate_id": "synthetic_2", "metadata": {"votes": 4}}]}'
    _patch(monkeypatch, reply)
    assert cli.main(["run", *_files(tmp_path), "--save", "--user-id", "u-1"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["synthetic_race_id"] == "sr-cli"
    assert out["preview"]["total_votes"] == 10
    assert [c["reference"] for c in out["preview"]["candidates"]] == ["rc-1", "synthetic_2"]


def test_run_reports_quota(tmp_path, monkeypatch, capsys):
    _patch(monkeypatch, ProviderQuotaError("limit", provider_id="prov-1"))
    assert cli.main(["run", *_files(tmp_path)]) == 1
    err = capsys.readouterr().err
    assert "quota" in err
    assert "support id:" in err


def test_run_error_json(tmp_path, monkeypatch, capsys):
    _patch(monkeypatch, ProviderQuotaError("limit", provider_id="prov-1"))
    assert cli.main(["run", *_files(tmp_path), "--error-json"]) == 1
    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert record["kind"] == "quota"
    assert record["step"] == "awaiting_model"
    assert record["context"]["provider_id"] == "prov-1"


def test_search(monkeypatch, capsys):
    seen = {}

    class Directory:
        def search(self, query):
            seen["query"] = query
            return [{"full_name": "Pat Park", "party": "DEM"}]

    def from_config(cfg):
        seen["rpc"] = cfg["backend"]["rpc"]["search_candidates"]
        return Directory()

    monkeypatch.setattr(cli.telemetry, "configure", lambda cfg: None)
    monkeypatch.setattr(cli, "CandidateDirectory", SimpleNamespace(from_config=from_config))
    assert cli.main(["search", "Pat"]) == 0
    assert seen == {"query": "Pat", "rpc": "e_search_candidates"}
    assert json.loads(capsys.readouterr().out) == {"full_name": "Pat Park", "party": "DEM"}
