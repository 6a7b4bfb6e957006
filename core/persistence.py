"""Write a confirmed preview back to the backend as a synthetic race.

The write is a single RPC call; the backend either accepts the whole payload
or rejects it, so there is no local rollback state.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Mapping, Optional

from core.backend import BackendClient
from core.identity import IdentityReconciler, local_reference
from core.schemas import CountyChange, NormalizedCandidate, RaceInfo, SyntheticPreview
from utils.config import load_config
from utils.errors import BackendError, PersistenceError
from utils.logging import logger

DEFAULT_RPC_NAMES = {
    "create_synthetic_race": "e_create_synthetic_race",
    "delete_synthetic_race": "e_delete_synthetic_race",
}


def is_uuid(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _candidate_entry(
    row: NormalizedCandidate, reconciler: IdentityReconciler
) -> Dict[str, Any]:
    persistent_id, known = reconciler.remap_for_persistence(row.model_id) if row.resolved else (None, None)
    entry: Dict[str, Any] = {
        "candidate_id": persistent_id,
        "candidate_name": row.name,
        "party": row.party,
        "ballot_order": row.ballot_order,
        "withdrew": row.withdrew,
        "write_in": row.write_in,
        "headshot": known.headshot_url if known is not None else None,
        "metadata": {
            "votes": row.votes,
            "vote_percentage": row.percentage,
            "winner": row.winner,
        },
    }
    if persistent_id is None:
        # No stored record yet; the backend creates one from name and party.
        entry["candidate_party"] = row.party
        entry["ephemeral_id"] = row.reference
    return entry


def _county_entry(change: CountyChange, reconciler: IdentityReconciler) -> Dict[str, Any]:
    results = []
    for r in change.results:
        persistent_id, known = reconciler.remap_for_persistence(r.model_id)
        result: Dict[str, Any] = {"candidate_id": persistent_id, "votes": r.votes}
        if persistent_id is None:
            if known is not None:
                result["ephemeral_id"] = local_reference(known)
            else:
                result["unresolved_id"] = r.model_id
        results.append(result)
    ranked = sorted(range(len(results)), key=lambda i: -results[i]["votes"])
    for position, i in enumerate(ranked, start=1):
        results[i]["rank"] = position
    return {
        **change.raw,
        "division_id": change.division_id,
        "division_name": change.division_name,
        "total_votes": change.total_votes,
        "results": results,
    }


def build_write_payload(
    preview: SyntheticPreview,
    race: RaceInfo,
    *,
    user_id: str | None = None,
    base_election_id: str | None = None,
) -> Dict[str, Any]:
    """Build the ``e_create_synthetic_race`` parameters for *preview*.

    Every candidate reference is remapped to its persistent id; candidates
    created during the scenario carry ``candidate_id=None`` together with
    their name and party.
    """
    reconciler = IdentityReconciler(preview.original_candidates)
    scenario = preview.scenario.model_dump(mode="json")
    scenario["override_by"] = user_id
    summary: Any = preview.ai_summary
    return {
        "p_user_id": user_id,
        "p_base_race_id": race.race_id if is_uuid(race.race_id) else None,
        "p_base_election_id": base_election_id,
        "p_name": preview.scenario.name,
        "p_description": preview.scenario.custom_instructions or "",
        "p_scenario_input": scenario,
        "p_ai_response": {
            "race": preview.race_summary,
            "candidates": [_candidate_entry(c, reconciler) for c in preview.candidates],
            "county_results": [_county_entry(c, reconciler) for c in preview.county_changes],
        },
        "p_office": race.office,
        "p_state": race.state,
        "p_district": race.district or None,
        "p_summary": {"text": summary} if isinstance(summary, str) else summary,
    }


class PersistenceAdapter:
    def __init__(
        self,
        client: BackendClient,
        *,
        rpc_names: Mapping[str, str] | None = None,
        elections_table: str = "e_elections",
    ) -> None:
        self.client = client
        self.rpc_names = {**DEFAULT_RPC_NAMES, **(rpc_names or {})}
        self.elections_table = elections_table

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None = None, client: BackendClient | None = None) -> "PersistenceAdapter":
        cfg = cfg or load_config()
        section = cfg.get("backend") or {}
        return cls(
            client or BackendClient.from_config(cfg),
            rpc_names=section.get("rpc"),
            elections_table=(section.get("tables") or {}).get("elections", "e_elections"),
        )

    def resolve_election_id(self, race: RaceInfo) -> Optional[str]:
        """Map an external election code onto the backend's election UUID."""
        code = race.election_id
        if not code or is_uuid(code):
            return code or None
        try:
            rows = self.client.select(self.elections_table, {"select": "id", "election_id": f"eq.{code}"})
        except BackendError as exc:
            raise PersistenceError(f"Could not look up election {code}: {exc}") from exc
        if not rows or not rows[0].get("id"):
            raise PersistenceError(f"Could not find election with election_id: {code}")
        return str(rows[0]["id"])

    def save(self, preview: SyntheticPreview, race: RaceInfo, user_id: str | None = None) -> str:
        """Persist *preview* and return the new synthetic race id."""
        if preview.no_candidates:
            raise PersistenceError("Cannot save a scenario with no candidates")
        payload = build_write_payload(
            preview,
            race,
            user_id=user_id,
            base_election_id=self.resolve_election_id(race),
        )
        name = self.rpc_names["create_synthetic_race"]
        logger.info(
            "persist start rpc=%s race_id=%s candidates=%d counties=%d",
            name,
            race.race_id,
            len(payload["p_ai_response"]["candidates"]),
            len(payload["p_ai_response"]["county_results"]),
        )
        try:
            data = self.client.rpc(name, payload)
        except BackendError as exc:
            raise PersistenceError(str(exc) or "Failed to save synthetic race") from exc
        if isinstance(data, list) and data:
            data = data[0]
        new_id = None
        if isinstance(data, dict):
            new_id = data.get("synthetic_race_id") or data.get("id")
        elif isinstance(data, str) and data:
            new_id = data
        if not new_id:
            raise PersistenceError("Backend accepted the write but returned no synthetic race id")
        logger.info("persist done synthetic_race_id=%s", new_id)
        return str(new_id)

    def delete(self, synthetic_race_id: str) -> None:
        try:
            self.client.rpc(self.rpc_names["delete_synthetic_race"], {"p_synthetic_race_id": synthetic_race_id})
        except BackendError as exc:
            raise PersistenceError(str(exc) or "Failed to delete synthetic race") from exc
        logger.info("persist deleted synthetic_race_id=%s", synthetic_race_id)
