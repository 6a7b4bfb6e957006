from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from core.identity import IdentityReconciler, local_reference
from core.schemas import (
    CountyBaselineResult,
    CountyCandidateVotes,
    CountyChange,
    GeneratedCountyResult,
    GeneratedSynthesis,
    NormalizedCandidate,
    ScenarioInput,
    SyntheticPreview,
    normalize_party_code,
)
from utils.logging import logger


def pick_winner(votes: Sequence[int]) -> Optional[int]:
    """Index of the winning row, or ``None`` for an empty list.

    The highest vote count wins; on a tie the first row in input order wins.
    All-zero counts are a tie like any other.
    """
    if not votes:
        return None
    best = 0
    for i, v in enumerate(votes):
        if v > votes[best]:
            best = i
    return best


def _percentage(votes: int, total: int) -> float:
    return round(votes * 100.0 / total, 2) if total else 0.0


def _county_change(
    county: GeneratedCountyResult,
    reconciler: IdentityReconciler,
    baseline: Optional[CountyBaselineResult],
    names: Dict[str, str],
    unresolved: set,
) -> CountyChange:
    results: List[CountyCandidateVotes] = []
    for r in county.results:
        known = reconciler.resolve_forward(r.candidate_id)
        if known is None:
            unresolved.add(r.candidate_id or "<missing id>")
        results.append(
            CountyCandidateVotes(
                reference=local_reference(known) if known else r.candidate_id,
                model_id=r.candidate_id,
                resolved=known is not None,
                votes=max(r.votes, 0),
            )
        )
    total = county.total_votes if county.total_votes is not None else sum(r.votes for r in results)
    name = county.division_name or (baseline.division_name if baseline else "") or county.division_id or "Unknown County"
    delta = pct = None
    if baseline is not None:
        delta = total - baseline.total_votes
        pct = _percentage(delta, baseline.total_votes) if baseline.total_votes else None
    description = f"{name}: {total} votes"
    if delta is not None:
        description += f" ({delta:+d} vs baseline"
        description += f", {pct:+.2f}%)" if pct is not None else ")"
    lead = pick_winner([r.votes for r in results])
    if lead is not None:
        leader = results[lead]
        description += f"; leader {names.get(leader.reference, leader.model_id)}"
    return CountyChange(
        division_id=county.division_id,
        division_name=name,
        precincts_reporting=county.precincts_reporting,
        precincts_total=county.precincts_total,
        total_votes=total,
        baseline_total_votes=baseline.total_votes if baseline else None,
        vote_delta=delta,
        turnout_change_pct=pct,
        results=tuple(results),
        change_description=description,
        raw=county.model_dump(),
    )


def normalize(
    parsed: GeneratedSynthesis,
    scenario: ScenarioInput,
    reconciler: IdentityReconciler,
    baselines: Sequence[CountyBaselineResult] = (),
    *,
    provider_model: str | None = None,
) -> SyntheticPreview:
    """Turn a parsed model response into a display-ready preview.

    Total votes are recomputed from the candidate rows and percentages are
    derived from that total; the model's own totals are only compared against.
    """
    warnings: List[str] = []
    rows: List[dict] = []
    seen: set = set()
    for idx, generated in enumerate(parsed.candidates):
        enriched = reconciler.enrich(generated)
        known = reconciler.resolve_forward(generated.candidate_id)
        if known is not None:
            reference = local_reference(known)
            if reference in seen:
                warnings.append(f"Candidate {generated.candidate_id} appeared more than once; kept the first entry.")
                continue
            seen.add(reference)
        else:
            reference = generated.candidate_id or f"unresolved-{idx + 1}"
            warnings.append(
                f"Candidate {generated.candidate_id or '<missing id>'} "
                f"({enriched.candidate_name or 'unnamed'}) did not match a known candidate; "
                "shown as returned by the AI."
            )
        votes = generated.metadata.votes
        if votes < 0:
            warnings.append(f"Negative vote count for {reference} replaced with 0.")
            votes = 0
        rows.append(
            {
                "reference": reference,
                "model_id": generated.candidate_id,
                "resolved": known is not None,
                "is_new": known is None or reconciler.resolve_for_persistence(known) is None,
                "name": enriched.candidate_name or "Unknown Candidate",
                "party": normalize_party_code(enriched.party).value,
                "votes": votes,
                "ballot_order": generated.ballot_order,
                "withdrew": generated.withdrew,
                "write_in": generated.write_in,
                "claimed_winner": generated.metadata.winner,
            }
        )

    returned = {r["reference"] for r in rows if r["resolved"]}
    missing = [c.name for c in reconciler.candidates if local_reference(c) not in returned]
    if missing and rows:
        warnings.append("The AI response omitted: " + ", ".join(missing) + ".")

    total = sum(r["votes"] for r in rows)
    winner_idx = pick_winner([r["votes"] for r in rows])
    candidates = []
    for i, r in enumerate(rows):
        claimed = r.pop("claimed_winner")
        is_winner = i == winner_idx
        if claimed is not None and bool(claimed) != is_winner:
            warnings.append(f"AI winner flag for {r['name']} disagreed with the vote counts; using the vote counts.")
        candidates.append(NormalizedCandidate(**r, percentage=_percentage(r["votes"], total), winner=is_winner))

    no_candidates = not candidates
    if no_candidates:
        warnings.append("The AI response contained no candidates; nothing to show.")
    elif total == 0:
        warnings.append("All candidates have zero votes; the first listed candidate is marked winner.")

    model_total = None
    if isinstance(parsed.race, dict):
        raw_total = parsed.race.get("totalVotes", parsed.race.get("total_votes"))
        if isinstance(raw_total, (int, float)) and not isinstance(raw_total, bool) and math.isfinite(raw_total):
            model_total = int(raw_total)
    if model_total is not None and model_total != total:
        warnings.append(f"AI reported {model_total} total votes; candidate votes sum to {total}.")

    by_division = {b.division_id: b for b in baselines}
    names = {c.reference: c.name for c in candidates}
    unresolved: set = set()
    county_changes = tuple(
        _county_change(county, reconciler, by_division.get(county.division_id), names, unresolved)
        for county in parsed.county_results
    )
    for model_id in sorted(unresolved):
        warnings.append(f"County results reference unknown candidate {model_id}.")
    if baselines and not county_changes:
        warnings.append("No county-level results were generated.")

    for w in warnings:
        logger.warning("normalize_warning %s", w)

    return SyntheticPreview(
        scenario=scenario,
        candidates=tuple(candidates),
        total_votes=total,
        county_changes=county_changes,
        ai_summary=parsed.summary_text,
        original_candidates=reconciler.candidates,
        race_summary=parsed.race,
        model_total_votes=model_total,
        provider_model=provider_model,
        no_candidates=no_candidates,
        warnings=tuple(warnings),
    )
