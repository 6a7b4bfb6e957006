from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator, model_validator
from pydantic.config import ConfigDict


def unwrap_override(value: Any) -> Any:
    """Return the effective value of a dashboard field override.

    Dashboard records wrap editable fields as
    ``{"originalValue": ..., "overriddenValue": ...}``; the overridden value
    wins when it is set.
    """
    if isinstance(value, dict) and ("originalValue" in value or "overriddenValue" in value):
        overridden = value.get("overriddenValue")
        return overridden if overridden not in (None, "") else value.get("originalValue")
    return value


def _to_int(value: Any) -> Any:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        try:
            return int(round(value))
        except (OverflowError, ValueError):
            raise ValueError(f"not a vote count: {value!r}")
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("_", "").strip()
        try:
            return int(round(float(cleaned)))
        except (OverflowError, ValueError):
            raise ValueError(f"not a vote count: {value!r}")
    return value


class CountyStrategy(str, Enum):
    UNIFORM = "uniform"
    URBAN_FOCUS = "urban-focus"
    RURAL_FOCUS = "rural-focus"
    SUBURBAN_FOCUS = "suburban-focus"
    COMPETITIVE_ONLY = "competitive-counties-only"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            v = value.strip().lower().replace("_", "-")
            if v == "competitive-counties":
                return cls.COMPETITIVE_ONLY
            for member in cls:
                if member.value == v:
                    return member
        return None


class PartyCode(str, Enum):
    DEM = "DEM"
    REP = "REP"
    IND = "IND"
    GRN = "GRN"
    LIB = "LIB"
    OTH = "OTH"


PARTY_ALIASES = {
    "D": "DEM",
    "DEMOCRAT": "DEM",
    "DEMOCRATIC": "DEM",
    "R": "REP",
    "REPUBLICAN": "REP",
    "GOP": "REP",
    "I": "IND",
    "INDEPENDENT": "IND",
    "G": "GRN",
    "GREEN": "GRN",
    "L": "LIB",
    "LIBERTARIAN": "LIB",
}


def normalize_party_code(value: Any) -> PartyCode:
    """Map free-form party labels onto the closed party enumeration.

    Missing labels become ``IND``; labels that match nothing become ``OTH``.
    """
    value = unwrap_override(value)
    if isinstance(value, PartyCode):
        return value
    if not value:
        return PartyCode.IND
    abbrev = str(value).strip().upper()
    abbrev = PARTY_ALIASES.get(abbrev, abbrev)
    try:
        return PartyCode(abbrev)
    except ValueError:
        return PartyCode.OTH


class ScenarioInput(BaseModel):
    """User-chosen shift parameters for one synthesis run."""

    name: str
    turnout_shift: float = Field(0.0, validation_alias=AliasChoices("turnout_shift", "turnoutShift"))
    republican_shift: float = Field(
        0.0, validation_alias=AliasChoices("republican_shift", "republicanShift")
    )
    democrat_shift: float = Field(0.0, validation_alias=AliasChoices("democrat_shift", "democratShift"))
    independent_shift: float = Field(
        0.0, validation_alias=AliasChoices("independent_shift", "independentShift")
    )
    county_strategy: CountyStrategy = Field(
        CountyStrategy.UNIFORM, validation_alias=AliasChoices("county_strategy", "countyStrategy")
    )
    custom_instructions: str = Field(
        "", validation_alias=AliasChoices("custom_instructions", "customInstructions")
    )
    model_provider_id: str = Field(
        "", validation_alias=AliasChoices("model_provider_id", "modelProviderId", "aiProvider")
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", protected_namespaces=())

    @field_validator("custom_instructions", "model_provider_id", "name", mode="before")
    @classmethod
    def _none_to_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("county_strategy", mode="before")
    @classmethod
    def _strategy(cls, v: Any) -> Any:
        if v is None or v == "":
            return CountyStrategy.UNIFORM
        return CountyStrategy(v) if isinstance(v, str) else v


class _CandidateBase(BaseModel):
    name: str
    party: PartyCode = PartyCode.IND
    votes: int = 0
    percentage: float = 0.0
    incumbent: bool = False
    headshot_url: str | None = Field(None, validation_alias=AliasChoices("headshot_url", "headshot"))
    ballot_order: int | None = None

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("name", "headshot_url", mode="before")
    @classmethod
    def _unwrap(cls, v: Any) -> Any:
        return unwrap_override(v)

    @field_validator("percentage", mode="before")
    @classmethod
    def _percentage(cls, v: Any) -> Any:
        v = unwrap_override(v)
        return 0.0 if v in (None, "") else v

    @field_validator("incumbent", mode="before")
    @classmethod
    def _incumbent(cls, v: Any) -> bool:
        return bool(unwrap_override(v))

    @field_validator("party", mode="before")
    @classmethod
    def _party(cls, v: Any) -> PartyCode:
        return normalize_party_code(v)

    @field_validator("votes", mode="before")
    @classmethod
    def _votes(cls, v: Any) -> Any:
        return _to_int(unwrap_override(v))


class ExistingCandidate(_CandidateBase):
    """Candidate already stored in the backend."""

    kind: Literal["existing"] = "existing"
    persistent_id: str
    source_id: str | None = None


class NewCandidate(_CandidateBase):
    """Candidate added while building the scenario; not yet persisted."""

    kind: Literal["new"] = "new"
    ephemeral_id: str


CandidateRecord = Annotated[Union[ExistingCandidate, NewCandidate], Field(discriminator="kind")]

_CANDIDATES = TypeAdapter(list[CandidateRecord])


def parse_candidates(data: list[dict]) -> list[ExistingCandidate | NewCandidate]:
    return _CANDIDATES.validate_python(data)


class RaceInfo(BaseModel):
    race_id: str
    election_id: str | None = None
    title: str
    office: str = ""
    state: str = ""
    district: str | None = None
    total_votes: int = Field(0, validation_alias=AliasChoices("total_votes", "totalVotes"))

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("title", "office", "district", mode="before")
    @classmethod
    def _unwrap(cls, v: Any) -> Any:
        return unwrap_override(v)

    @field_validator("total_votes", mode="before")
    @classmethod
    def _votes(cls, v: Any) -> Any:
        return _to_int(unwrap_override(v))


class BaselineCandidateVotes(BaseModel):
    source_id: str
    candidate_name: str = "Unknown"
    votes: int = 0

    model_config = ConfigDict(frozen=True)


class CountyBaselineResult(BaseModel):
    division_id: str
    division_name: str
    precincts_reporting: int = 0
    precincts_total: int = 0
    total_votes: int = 0
    results: tuple[BaselineCandidateVotes, ...] = ()

    model_config = ConfigDict(frozen=True)


# Untrusted model output -----------------------------------------------------


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class GeneratedMetadata(_Lenient):
    votes: int = 0
    vote_percentage: float | None = None
    winner: bool | None = None

    @field_validator("votes", mode="before")
    @classmethod
    def _votes(cls, v: Any) -> Any:
        return _to_int(v)


class GeneratedCandidateResult(_Lenient):
    candidate_id: str = ""
    candidate_name: str | None = None
    party: str | None = None
    ballot_order: int | None = None
    withdrew: bool = False
    write_in: bool = False
    metadata: GeneratedMetadata = Field(default_factory=GeneratedMetadata)

    @model_validator(mode="before")
    @classmethod
    def _hoist_metadata(cls, data: Any) -> Any:
        # Some models put vote fields next to the id instead of under metadata.
        if isinstance(data, dict) and "metadata" not in data:
            meta = {k: data[k] for k in ("votes", "vote_percentage", "winner") if k in data}
            if "percentage" in data and "vote_percentage" not in meta:
                meta["vote_percentage"] = data["percentage"]
            if meta:
                data = {**data, "metadata": meta}
        return data

    @field_validator("candidate_id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


class GeneratedCountyVotes(_Lenient):
    candidate_id: str = ""
    votes: int = 0
    rank: int | None = None

    @field_validator("candidate_id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("votes", mode="before")
    @classmethod
    def _votes(cls, v: Any) -> Any:
        return _to_int(v)


class GeneratedCountyResult(_Lenient):
    division_id: str = ""
    division_name: str | None = None
    precincts_reporting: int | None = None
    precincts_total: int | None = None
    total_votes: int | None = None
    results: list[GeneratedCountyVotes] = Field(default_factory=list)

    @field_validator("division_id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


class GeneratedSynthesis(_Lenient):
    race: dict[str, Any] | None = None
    candidates: list[GeneratedCandidateResult] = Field(default_factory=list)
    county_results: list[GeneratedCountyResult] = Field(default_factory=list)
    summary: str | dict[str, Any] | None = None

    @field_validator("candidates", "county_results", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def summary_text(self) -> str:
        if isinstance(self.summary, str) and self.summary.strip():
            return self.summary.strip()
        if isinstance(self.summary, dict):
            text = self.summary.get("text") or self.summary.get("summary")
            if isinstance(text, str) and text.strip():
                return text.strip()
        return "No summary provided"


# Display-ready preview ------------------------------------------------------


class NormalizedCandidate(BaseModel):
    reference: str
    model_id: str
    resolved: bool
    is_new: bool
    name: str
    party: str
    votes: int
    percentage: float
    winner: bool = False
    ballot_order: int | None = None
    withdrew: bool = False
    write_in: bool = False

    model_config = ConfigDict(frozen=True, protected_namespaces=())


class CountyCandidateVotes(BaseModel):
    reference: str
    model_id: str
    resolved: bool
    votes: int

    model_config = ConfigDict(frozen=True, protected_namespaces=())


class CountyChange(BaseModel):
    division_id: str
    division_name: str
    precincts_reporting: int | None = None
    precincts_total: int | None = None
    total_votes: int
    baseline_total_votes: int | None = None
    vote_delta: int | None = None
    turnout_change_pct: float | None = None
    results: tuple[CountyCandidateVotes, ...] = ()
    change_description: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class SyntheticPreview(BaseModel):
    scenario: ScenarioInput
    candidates: tuple[NormalizedCandidate, ...] = ()
    total_votes: int = 0
    county_changes: tuple[CountyChange, ...] = ()
    ai_summary: str = "No summary provided"
    original_candidates: tuple[CandidateRecord, ...] = ()
    race_summary: dict[str, Any] | None = None
    model_total_votes: int | None = None
    provider_model: str | None = None
    no_candidates: bool = False
    warnings: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    @property
    def winner(self) -> NormalizedCandidate | None:
        return next((c for c in self.candidates if c.winner), None)


__all__ = [
    "BaselineCandidateVotes",
    "CandidateRecord",
    "CountyBaselineResult",
    "CountyCandidateVotes",
    "CountyChange",
    "CountyStrategy",
    "ExistingCandidate",
    "GeneratedCandidateResult",
    "GeneratedCountyResult",
    "GeneratedCountyVotes",
    "GeneratedMetadata",
    "GeneratedSynthesis",
    "NewCandidate",
    "NormalizedCandidate",
    "PartyCode",
    "RaceInfo",
    "ScenarioInput",
    "SyntheticPreview",
    "normalize_party_code",
    "parse_candidates",
    "unwrap_override",
]
