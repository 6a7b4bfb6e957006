from __future__ import annotations

from typing import Any, Dict, Iterable, List, Protocol

from core.backend import BackendClient
from core.schemas import BaselineCandidateVotes, CountyBaselineResult
from utils.logging import logger

COUNTY_SELECT = (
    "id,division_id,reporting_level,precincts_reporting,precincts_total,total_votes,"
    "e_geographic_divisions!inner(name),"
    "e_candidate_results!e_candidate_results_race_result_id_fkey("
    "candidate_id,votes,e_candidates(full_name))"
)


class BaselineSource(Protocol):
    def fetch_county_rows(self, race_id: str) -> List[Dict[str, Any]]:
        ...


class RestBaselineSource:
    """County-level result rows read straight from the results table."""

    def __init__(self, client: BackendClient, table: str = "e_race_results") -> None:
        self.client = client
        self.table = table

    def fetch_county_rows(self, race_id: str) -> List[Dict[str, Any]]:
        return self.client.select(
            self.table,
            {
                "select": COUNTY_SELECT,
                "race_id": f"eq.{race_id}",
                "reporting_level": "eq.county",
            },
        )


def _division_name(row: Dict[str, Any]) -> str:
    div = row.get("e_geographic_divisions")
    if isinstance(div, list):
        div = div[0] if div else None
    if isinstance(div, dict) and div.get("name"):
        return str(div["name"])
    return str(row.get("division_name") or "Unknown County")


def _candidate_votes(row: Dict[str, Any]) -> Iterable[BaselineCandidateVotes]:
    entries = row.get("e_candidate_results")
    if entries is None:
        entries = row.get("results")
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("candidate_id") in (None, ""):
            continue
        person = entry.get("e_candidates") or {}
        name = person.get("full_name") if isinstance(person, dict) else None
        yield BaselineCandidateVotes(
            source_id=str(entry["candidate_id"]),
            candidate_name=name or entry.get("candidate_name") or "Unknown",
            votes=int(entry.get("votes") or 0),
        )


def group_rows(rows: Iterable[Dict[str, Any]]) -> List[CountyBaselineResult]:
    """Group raw result rows by division, keeping first-seen division order."""
    divisions: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        division_id = row.get("division_id")
        if division_id in (None, ""):
            logger.warning("baseline_row_skipped reason=no_division id=%s", row.get("id"))
            continue
        key = str(division_id)
        if key not in divisions:
            divisions[key] = {
                "division_id": key,
                "division_name": _division_name(row),
                "precincts_reporting": int(row.get("precincts_reporting") or 0),
                "precincts_total": int(row.get("precincts_total") or 0),
                "total_votes": int(row.get("total_votes") or 0),
                "results": [],
            }
        divisions[key]["results"].extend(_candidate_votes(row))
    return [
        CountyBaselineResult(**{**d, "results": tuple(d["results"])}) for d in divisions.values()
    ]


class CountyBaselineAggregator:
    def __init__(self, source: BaselineSource) -> None:
        self.source = source

    def fetch(self, race_id: str) -> List[CountyBaselineResult]:
        """Return county baselines for *race_id*.

        Zero rows yield ``[]``, as does any failure to read or group them, so
        generation can fall back to state-level totals.
        """
        try:
            rows = self.source.fetch_county_rows(race_id)
            baselines = group_rows(rows or [])
        except Exception as exc:
            logger.warning("baseline_fetch_failed race_id=%s error=%s", race_id, exc)
            return []
        if baselines:
            logger.info("baseline_fetched race_id=%s counties=%d", race_id, len(baselines))
        else:
            logger.info("baseline_empty race_id=%s", race_id)
        return baselines
