import re

import pytest

from core.identity import IdentityReconciler, local_reference, prompt_identity
from core.prompt_compiler import compile_prompt
from core.schemas import ExistingCandidate, GeneratedCandidateResult, NewCandidate
from utils.errors import IdentityResolutionError


def test_prompt_identities_round_trip(race, alice, bob, nora, baselines, scenario):
    known = [alice, bob, nora]
    prompt = compile_prompt(race, known, baselines, scenario)
    echoed = re.findall(r"CANDIDATE_ID: (\S+)", prompt)
    assert echoed == ["ap-101", "ap-202", "synthetic_nora"]

    rec = IdentityReconciler(known)
    resolved = [rec.resolve_forward(i) for i in echoed]
    assert resolved == known
    assert [rec.resolve_for_persistence(c) for c in resolved] == ["rc-alice", "rc-bob", None]
    pid, cand = rec.remap_for_persistence("synthetic_nora")
    assert pid is None
    assert (cand.name, cand.party.value) == ("Nora North", "IND")


def test_existing_without_source_id_uses_persistent_id():
    stored = ExistingCandidate(persistent_id="rc-9", name="Sam Stored", party="LIB")
    rec = IdentityReconciler([stored])
    assert prompt_identity(stored) == "rc-9"
    assert rec.resolve_forward("rc-9") is stored
    assert local_reference(stored) == "rc-9"


def test_names_are_never_identity(alice):
    rec = IdentityReconciler([alice])
    assert rec.resolve_forward("Alice Able") is None
    assert rec.resolve_forward("") is None
    assert rec.resolve_forward(None) is None


def test_numeric_identity_from_model_is_matched():
    c = ExistingCandidate(persistent_id="rc-1", source_id="12345", name="N", party="DEM")
    assert IdentityReconciler([c]).resolve_forward(12345) is c


def test_source_id_wins_over_ephemeral():
    existing = ExistingCandidate(persistent_id="rc-1", source_id="dup", name="A", party="DEM")
    new = NewCandidate(ephemeral_id="synthetic_1", name="B", party="REP")
    rec = IdentityReconciler([existing, new])
    assert rec.resolve_forward("dup") is existing
    assert rec.resolve_forward("synthetic_1") is new


def test_ambiguous_prompt_identity_is_rejected():
    a = ExistingCandidate(persistent_id="rc-1", source_id="x", name="A", party="DEM")
    b = NewCandidate(ephemeral_id="x", name="B", party="REP")
    with pytest.raises(IdentityResolutionError):
        IdentityReconciler([a, b])


def test_duplicate_source_ids_are_rejected():
    a = ExistingCandidate(persistent_id="rc-1", source_id="x", name="A", party="DEM")
    b = ExistingCandidate(persistent_id="rc-2", source_id="x", name="B", party="REP")
    with pytest.raises(IdentityResolutionError) as exc:
        IdentityReconciler([a, b])
    assert exc.value.identity == "x"


def test_enrich_fills_missing_name_and_party(bob):
    rec = IdentityReconciler([bob])
    out = rec.enrich(GeneratedCandidateResult(candidate_id="ap-202"))
    assert (out.candidate_name, out.party) == ("Bob Baker", "REP")


def test_enrich_keeps_model_values(bob):
    rec = IdentityReconciler([bob])
    given = GeneratedCandidateResult(candidate_id="ap-202", candidate_name="Robert Baker", party="GOP")
    assert rec.enrich(given) is given
    stranger = GeneratedCandidateResult(candidate_id="ap-999", candidate_name="Zed")
    assert rec.enrich(stranger) is stranger
