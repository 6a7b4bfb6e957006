"""Builds the single instruction payload sent to the generative model.

The prompt is the only place the model learns candidate identities, so every
candidate is listed with the exact identity it must echo back. Pure function
of its arguments; inputs are never mutated.
"""

from __future__ import annotations

import json
from typing import Sequence

from core.identity import Candidate, prompt_identity
from core.schemas import CountyBaselineResult, CountyStrategy, RaceInfo, ScenarioInput
from utils.states import state_code

STRATEGY_NOTES = {
    CountyStrategy.UNIFORM: "Apply the shifts evenly across all counties.",
    CountyStrategy.URBAN_FOCUS: "Concentrate the shifts in urban, high-density counties.",
    CountyStrategy.RURAL_FOCUS: "Concentrate the shifts in rural counties.",
    CountyStrategy.SUBURBAN_FOCUS: "Concentrate the shifts in suburban counties.",
    CountyStrategy.COMPETITIVE_ONLY: (
        "Apply the shifts only to competitive counties (baseline margin under 10 points); "
        "keep other counties at baseline."
    ),
}

OUTPUT_SCHEMA = """{
  "race": {
    "title": "EXACT RACE TITLE FROM BASE RACE INFORMATION",
    "office": "EXACT OFFICE FROM BASE RACE INFORMATION",
    "state": "EXACT STATE FROM BASE RACE INFORMATION",
    "state_code": "TWO-LETTER STATE CODE",
    "totalVotes": 1234567
  },
  "candidates": [
    {
      "candidate_id": "EXACT CANDIDATE_ID FROM THE CANDIDATE LIST",
      "candidate_name": "EXACT CANDIDATE NAME",
      "party": "EXACT PARTY CODE",
      "ballot_order": 1,
      "withdrew": false,
      "write_in": false,
      "metadata": {
        "votes": 805374,
        "vote_percentage": 65.82,
        "winner": true
      }
    }
  ],
  "county_results": [
    {
      "division_id": "EXACT DIVISION_ID FROM THE COUNTY LIST",
      "precincts_reporting": 30,
      "precincts_total": 30,
      "total_votes": 54000,
      "results": [
        {"candidate_id": "EXACT CANDIDATE_ID", "votes": 32000, "rank": 1},
        {"candidate_id": "EXACT CANDIDATE_ID", "votes": 22000, "rank": 2}
      ]
    }
  ],
  "summary": "Brief narrative summary of the scenario"
}"""


def _signed(value: float) -> str:
    text = f"{value:g}"
    return f"+{text}%" if value > 0 else f"{text}%"


def _race_block(race: RaceInfo) -> str:
    return "\n".join(
        [
            "BASE RACE INFORMATION:",
            f"- Race: {race.title}",
            f"- Office: {race.office or 'N/A'}",
            f"- State: {race.state} ({state_code(race.state)})",
            f"- District: {race.district or 'N/A'}",
            f"- Total Votes (Baseline): {race.total_votes}",
        ]
    )


def _candidate_block(candidates: Sequence[Candidate]) -> str:
    lines = ["CANDIDATES IN THIS SCENARIO (USE ONLY THESE CANDIDATES):"]
    for idx, c in enumerate(candidates, start=1):
        lines.append(
            f"- Candidate {idx}: {c.name} ({c.party.value}): {c.votes} votes ({c.percentage:g}%)"
        )
        lines.append(f"  CANDIDATE_ID: {prompt_identity(c)}")
    lines.append("")
    lines.append(
        "CRITICAL: Use ONLY the exact CANDIDATE_ID values listed above as candidate_id. "
        "Do NOT invent new IDs and do NOT use names as IDs."
    )
    return "\n".join(lines)


def _county_block(race: RaceInfo, baselines: Sequence[CountyBaselineResult]) -> str:
    if not baselines:
        return (
            "COUNTY DATA: No county-level baseline is available. Generate state-level results; "
            "county_results may be an empty array."
        )
    lines = [f"COUNTIES IN {race.state} (Generate results for ALL of these counties):"]
    for idx, b in enumerate(baselines, start=1):
        lines.append(f"{idx}. {b.division_name} - DIVISION_ID: {b.division_id}")
    payload = [
        {
            "division_id": b.division_id,
            "division_name": b.division_name,
            "precincts_reporting": b.precincts_reporting,
            "precincts_total": b.precincts_total,
            "total_votes": b.total_votes,
            "results": [
                {"candidate_id": r.source_id, "candidate_name": r.candidate_name, "votes": r.votes}
                for r in b.results
            ],
        }
        for b in baselines
    ]
    lines.append("")
    lines.append("COUNTY-LEVEL BASELINE RESULTS (Modify these based on the scenario parameters):")
    lines.append(json.dumps(payload, indent=2, ensure_ascii=False))
    lines.append(
        "Use these baseline results as the starting point and apply the turnout shift, "
        "party shifts and county strategy to them."
    )
    return "\n".join(lines)


def _scenario_block(scenario: ScenarioInput) -> str:
    return "\n".join(
        [
            "SCENARIO PARAMETERS:",
            f"- Turnout Shift: {_signed(scenario.turnout_shift)}",
            f"- Republican Vote Shift: {_signed(scenario.republican_shift)}",
            f"- Democrat Vote Shift: {_signed(scenario.democrat_shift)}",
            f"- Independent Vote Shift: {_signed(scenario.independent_shift)}",
            f"- County Strategy: {scenario.county_strategy.value} - "
            f"{STRATEGY_NOTES[scenario.county_strategy]}",
            f"- Custom Instructions: {scenario.custom_instructions.strip() or 'None'}",
        ]
    )


def _rules(candidates: Sequence[Candidate], baselines: Sequence[CountyBaselineResult]) -> str:
    example_id = prompt_identity(candidates[0]) if candidates else "CANDIDATE_ID"
    county_rule = (
        f"Generate county_results for ALL {len(baselines)} counties listed above, using the exact DIVISION_ID values"
        if baselines
        else "county_results may be an empty array because no counties are available"
    )
    rules = [
        'Include the "race" object with title, office, state, state_code and totalVotes.',
        f"Include EXACTLY {len(candidates)} candidate(s), one for each candidate listed above.",
        f'Copy the exact CANDIDATE_ID for each candidate (e.g. "{example_id}").',
        "Include candidate_name and party for EVERY candidate, copied from the candidate list.",
        "Apply the party-specific vote shifts to calculate new vote totals.",
        "Apply the turnout shift to adjust the overall total votes.",
        "Percentages must add up to 100.",
        "Mark the candidate with the most votes as winner: true in metadata.",
        "Set ballot_order as 1, 2, 3, ...",
        county_rule + ".",
        "Each county's total_votes must equal the sum of its candidate votes; rank candidates per county (1 = most votes).",
        "DO NOT use thousand separators in numbers (write 805374, NOT 805,374).",
        "Output ONLY valid JSON: no markdown, no code fences, no text before or after the JSON object.",
    ]
    return "CRITICAL RULES:\n" + "\n".join(f"{i}. {r}" for i, r in enumerate(rules, start=1))


def compile_prompt(
    race: RaceInfo,
    candidates: Sequence[Candidate],
    baselines: Sequence[CountyBaselineResult],
    scenario: ScenarioInput,
) -> str:
    sections = [
        "You are a political analyst creating a synthetic election scenario.",
        _race_block(race),
        _candidate_block(candidates),
        _county_block(race, baselines),
        _scenario_block(scenario),
        "TASK:\nGenerate a synthetic election scenario from these parameters, with county-level "
        "results where counties are listed.",
        "YOU MUST OUTPUT A JSON OBJECT MATCHING EXACTLY THIS SCHEMA:\n" + OUTPUT_SCHEMA,
        _rules(candidates, baselines),
    ]
    return "\n\n".join(sections)
