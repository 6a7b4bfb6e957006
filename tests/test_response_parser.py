import json

import jsonschema
import pytest

from core.prompt_compiler import OUTPUT_SCHEMA
from core.response_parser import SYNTHESIS_SCHEMA, parse_response_text, parse_synthesis_response
from utils.errors import MalformedResponseError


def test_parses_repaired_model_text(model_text):
    parsed = parse_synthesis_response(model_text)
    assert [c.candidate_id for c in parsed.candidates] == ["ap-101", "ap-202"]
    assert parsed.candidates[0].metadata.votes == 60900
    assert parsed.candidates[1].candidate_name is None
    assert len(parsed.county_results) == 2
    assert parsed.county_results[0].total_votes == 52500
    assert parsed.summary_text.startswith("Turnout rises")


def test_malformed_text_carries_cleaned_text():
    raw = '```json\n{"candidates": [{"candidate_id": "ap-101", "votes": }]}\n```'
    with pytest.raises(MalformedResponseError) as exc:
        parse_response_text(raw)
    assert exc.value.cleaned_text.startswith('{"candidates"')
    assert "```" not in exc.value.cleaned_text
    assert exc.value.kind == "malformed"


def test_no_defaults_substituted_for_prose():
    with pytest.raises(MalformedResponseError):
        parse_synthesis_response("I'm sorry, I cannot generate that scenario.")


def test_top_level_array_is_rejected():
    with pytest.raises(MalformedResponseError):
        parse_response_text('[{"candidate_id": "ap-101"}]')


def test_wrong_structure_reports_path():
    with pytest.raises(MalformedResponseError) as exc:
        parse_response_text('{"candidates": {"candidate_id": "ap-101"}}')
    assert "candidates" in str(exc.value)


def test_lenient_fields():
    parsed = parse_synthesis_response(
        '{"candidates": [{"candidate_id": 101, "votes": "1,200", "percentage": 60}],'
        ' "county_results": null, "summary": {"text": "Close race"}}'
    )
    row = parsed.candidates[0]
    assert row.candidate_id == "101"
    assert row.metadata.votes == 1200
    assert row.metadata.vote_percentage == 60
    assert parsed.county_results == []
    assert parsed.summary_text == "Close race"


def test_missing_summary_defaults_text():
    parsed = parse_synthesis_response('{"candidates": []}')
    assert parsed.summary_text == "No summary provided"
    assert parsed.candidates == []


def test_unreadable_vote_count_is_malformed():
    with pytest.raises(MalformedResponseError):
        parse_synthesis_response('{"candidates": [{"candidate_id": "x", "metadata": {"votes": "lots"}}]}')


@pytest.mark.parametrize("votes", ["1e400", "Infinity", "-Infinity", "NaN", '"1e400"'])
def test_non_finite_vote_count_is_malformed(votes):
    text = '{"candidates": [{"candidate_id": "ap-101", "metadata": {"votes": %s}}]}' % votes
    with pytest.raises(MalformedResponseError) as exc:
        parse_synthesis_response(text)
    assert "ap-101" in exc.value.cleaned_text


def test_prompt_example_matches_parser_schema():
    example = json.loads(OUTPUT_SCHEMA)
    jsonschema.validate(example, SYNTHESIS_SCHEMA)
    assert parse_synthesis_response(OUTPUT_SCHEMA).candidates[0].metadata.votes == 805374
