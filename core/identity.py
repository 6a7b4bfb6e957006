"""Candidate identity reconciliation.

A candidate can be known under three identities: the data provider's
``source_id``, the backend's ``persistent_id`` and, for candidates added while
building a scenario, a local ``ephemeral_id``. The model only ever sees the
identity returned by :func:`prompt_identity`; everything coming back is mapped
to a known candidate here, and back to persistent ids when saving.
Names are never used as identity.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple, Union

from core.schemas import ExistingCandidate, GeneratedCandidateResult, NewCandidate
from utils.errors import IdentityResolutionError
from utils.logging import logger

Candidate = Union[ExistingCandidate, NewCandidate]


def prompt_identity(candidate: Candidate) -> str:
    """Identity the model is told to echo back for *candidate*."""
    if isinstance(candidate, ExistingCandidate):
        return candidate.source_id or candidate.persistent_id
    return candidate.ephemeral_id


def local_reference(candidate: Candidate) -> str:
    """Stable reference used in previews: persistent id, else ephemeral id."""
    if isinstance(candidate, ExistingCandidate):
        return candidate.persistent_id
    return candidate.ephemeral_id


class IdentityReconciler:
    def __init__(self, candidates: Iterable[Candidate]) -> None:
        self.candidates: Tuple[Candidate, ...] = tuple(candidates)
        self._by_source: Dict[str, Candidate] = {}
        self._by_ephemeral: Dict[str, Candidate] = {}
        self._by_persistent: Dict[str, Candidate] = {}
        for c in self.candidates:
            if isinstance(c, ExistingCandidate):
                if c.source_id:
                    self._index(self._by_source, c.source_id, c)
                self._index(self._by_persistent, c.persistent_id, c)
            else:
                self._index(self._by_ephemeral, c.ephemeral_id, c)
        # Every identity placed in the prompt must come back to its own record.
        for c in self.candidates:
            if self.resolve_forward(prompt_identity(c)) is not c:
                raise IdentityResolutionError(
                    f"identity {prompt_identity(c)!r} is shared by more than one candidate",
                    identity=prompt_identity(c),
                )

    @staticmethod
    def _index(index: Dict[str, Candidate], key: str, candidate: Candidate) -> None:
        existing = index.get(key)
        if existing is not None and existing is not candidate:
            raise IdentityResolutionError(f"duplicate candidate identity {key!r}", identity=key)
        index[key] = candidate

    def resolve_forward(self, model_identity: object) -> Optional[Candidate]:
        """Find the known candidate for an identity echoed by the model.

        Source ids are tried first, then ephemeral ids (user-added candidates),
        then persistent ids (stored candidates without a source id).
        """
        key = "" if model_identity is None else str(model_identity).strip()
        if not key:
            return None
        return self._by_source.get(key) or self._by_ephemeral.get(key) or self._by_persistent.get(key)

    def enrich(self, generated: GeneratedCandidateResult) -> GeneratedCandidateResult:
        """Fill a missing ``candidate_name``/``party`` from the known candidate.

        Unresolvable rows keep whatever the model said.
        """
        if generated.candidate_name and generated.party:
            return generated
        known = self.resolve_forward(generated.candidate_id)
        if known is None:
            logger.warning(
                "identity_unresolved id=%r name=%r; keeping model values",
                generated.candidate_id,
                generated.candidate_name,
            )
            return generated
        return generated.model_copy(
            update={
                "candidate_name": generated.candidate_name or known.name,
                "party": generated.party or known.party.value,
            }
        )

    @staticmethod
    def resolve_for_persistence(candidate: Candidate) -> Optional[str]:
        """Persistent id for stored candidates; ``None`` asks the backend to create one."""
        if isinstance(candidate, ExistingCandidate):
            return candidate.persistent_id
        return None

    def remap_for_persistence(self, model_identity: object) -> Tuple[Optional[str], Optional[Candidate]]:
        known = self.resolve_forward(model_identity)
        if known is None:
            return None, None
        return self.resolve_for_persistence(known), known
