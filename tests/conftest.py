import json
from pathlib import Path

import pytest

from core.baselines import group_rows
from core.schemas import ExistingCandidate, NewCandidate, RaceInfo, ScenarioInput
from utils import telemetry

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def _telemetry_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(telemetry, "LOG_DIR", tmp_path / "telemetry")
    monkeypatch.setattr(telemetry, "ENABLED", True)


@pytest.fixture
def race():
    return RaceInfo(
        race_id="7f1c2f0e-3b8a-4d6e-9c55-0a1b2c3d4e5f",
        election_id="2024-11-05_VT_G",
        title="Vermont Governor",
        office="Governor",
        state="Vermont",
        total_votes=100000,
    )


@pytest.fixture
def alice():
    return ExistingCandidate(
        persistent_id="rc-alice", source_id="ap-101", name="Alice Able", party="DEM",
        votes=60000, percentage=60.0, incumbent=True, headshot_url="https://img.example/alice.png",
    )


@pytest.fixture
def bob():
    return ExistingCandidate(
        persistent_id="rc-bob", source_id="ap-202", name="Bob Baker", party="REP", votes=40000, percentage=40.0
    )


@pytest.fixture
def nora():
    return NewCandidate(ephemeral_id="synthetic_nora", name="Nora North", party="IND")


@pytest.fixture
def candidates(alice, bob):
    return [alice, bob]


@pytest.fixture
def scenario():
    return ScenarioInput.model_validate(
        {
            "name": "Turnout surge",
            "turnoutShift": 5,
            "republicanShift": 2,
            "democratShift": -2,
            "countyStrategy": "uniform",
            "aiProvider": "prov-1",
        }
    )


@pytest.fixture
def county_rows():
    return json.loads((FIXTURES / "county_rows.json").read_text(encoding="utf-8"))


@pytest.fixture
def baselines(county_rows):
    return group_rows(county_rows)


@pytest.fixture
def model_text():
    return (FIXTURES / "model_response_fenced.txt").read_text(encoding="utf-8")
