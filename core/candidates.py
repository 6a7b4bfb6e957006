from __future__ import annotations

import uuid
from typing import Any, Dict, List, Mapping

from core.backend import BackendClient
from core.identity import Candidate
from core.schemas import ExistingCandidate, NewCandidate, normalize_party_code, unwrap_override
from utils.config import load_config
from utils.errors import BackendError, ValidationError
from utils.logging import logger


def new_ephemeral_id() -> str:
    return f"synthetic_{uuid.uuid4().hex}"


def candidate_from_profile(profile: Mapping[str, Any]) -> NewCandidate:
    """Build a scenario candidate from a candidate-directory search hit.

    Directory profiles are people, not race entries, so the result is always a
    new candidate for this race.
    """
    return NewCandidate(
        ephemeral_id=new_ephemeral_id(),
        name=profile.get("full_name") or profile.get("fullName") or "",
        party=normalize_party_code(profile.get("party_abbreviation") or profile.get("party")),
        incumbent=bool(profile.get("incumbent")),
        headshot_url=profile.get("photo_url") or profile.get("photov") or profile.get("headshot") or None,
    )


def manual_candidate(name: str, party: Any = "IND") -> NewCandidate:
    if not name or not name.strip():
        raise ValidationError("Please enter a candidate name")
    return NewCandidate(ephemeral_id=new_ephemeral_id(), name=name.strip(), party=normalize_party_code(party))


def candidate_from_dashboard(record: Mapping[str, Any]) -> Candidate:
    """Convert a dashboard race-candidate record into a tagged candidate.

    Records with a ``race_candidates_id`` are stored candidates; anything else
    was added locally and keeps (or is given) an ephemeral id.
    """
    fields: Dict[str, Any] = {
        "name": unwrap_override(record.get("name")) or unwrap_override(record.get("full_name")) or "",
        "party": record.get("party"),
        "votes": record.get("votes"),
        "percentage": record.get("percentage"),
        "incumbent": record.get("incumbent"),
        "headshot_url": unwrap_override(record.get("headshot")) or None,
        "ballot_order": record.get("ballot_order"),
    }
    persistent_id = record.get("race_candidates_id")
    if persistent_id:
        source_id = record.get("ap_candidate_id") or record.get("source_id")
        return ExistingCandidate(
            persistent_id=str(persistent_id),
            source_id=str(source_id) if source_id else None,
            **fields,
        )
    return NewCandidate(ephemeral_id=str(record.get("id") or new_ephemeral_id()), **fields)


class CandidateDirectory:
    """Search the backend's candidate profiles by name."""

    def __init__(self, client: BackendClient, rpc_name: str = "e_search_candidates") -> None:
        self.client = client
        self.rpc_name = rpc_name

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None = None, client: BackendClient | None = None) -> "CandidateDirectory":
        cfg = cfg or load_config()
        rpc_names = (cfg.get("backend") or {}).get("rpc") or {}
        return cls(
            client or BackendClient.from_config(cfg),
            rpc_names.get("search_candidates", "e_search_candidates"),
        )

    def search(self, query: str) -> List[Dict[str, Any]]:
        query = (query or "").strip()
        if not query:
            return []
        try:
            data = self.client.rpc(self.rpc_name, {"p_query": query})
        except BackendError as exc:
            logger.warning("candidate_search_failed query=%r error=%s", query, exc)
            return []
        results = data if isinstance(data, list) else []
        logger.info("candidate_search query=%r hits=%d", query, len(results))
        return results
