from __future__ import annotations

import json
from typing import Any, Dict

import jsonschema
from pydantic import ValidationError as PydanticValidationError

from core.schemas import GeneratedSynthesis
from utils.errors import MalformedResponseError
from utils.json_safety import repair_text
from utils.logging import log_malformed_response, logger

# Structural shape only; field-level leniency lives in the pydantic models.
SYNTHESIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "race": {"type": ["object", "null"]},
        "candidates": {"type": ["array", "null"], "items": {"type": "object"}},
        "county_results": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "properties": {
                    "results": {"type": ["array", "null"], "items": {"type": "object"}},
                },
            },
        },
        "summary": {"type": ["string", "object", "null"]},
    },
}


def parse_response_text(raw: str) -> Dict[str, Any]:
    """Repair *raw* model text and parse it into a JSON object.

    Raises :class:`MalformedResponseError` carrying the cleaned text; no
    defaults are substituted for an unparseable response.
    """
    cleaned = repair_text(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        log_malformed_response(cleaned, exc)
        raise MalformedResponseError(
            f"AI response was not in expected format: {exc.msg} at position {exc.pos}",
            cleaned_text=cleaned,
        ) from exc
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"AI response must be a JSON object, got {type(data).__name__}",
            cleaned_text=cleaned,
        )
    try:
        jsonschema.validate(data, SYNTHESIS_SCHEMA)
    except jsonschema.ValidationError as exc:
        path = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise MalformedResponseError(
            f"AI response has unexpected structure at {path}: {exc.message}",
            cleaned_text=cleaned,
        ) from exc
    return data


def parse_synthesis_response(raw: str) -> GeneratedSynthesis:
    data = parse_response_text(raw)
    try:
        parsed = GeneratedSynthesis.model_validate(data)
    except PydanticValidationError as exc:
        raise MalformedResponseError(
            f"AI response fields could not be read: {exc.errors()[0].get('msg', exc)}",
            cleaned_text=json.dumps(data, ensure_ascii=False),
        ) from exc
    logger.info(
        "response_parsed candidates=%d counties=%d",
        len(parsed.candidates),
        len(parsed.county_results),
    )
    return parsed
