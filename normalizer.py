"""Validate raw LLM output into typed analysis/match payloads.

Model output is untrusted input: it is parsed as JSON, checked against strict
schemas, and scores are clamped into [0, 100]. Nothing is guessed: a response
that fails any step raises instead of producing a default result.
"""
import json
import math
import re
from typing import Any, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from errors import EmptyAIResponseError, InvalidStructureError, MalformedResponseError

MAX_MISSING_SKILLS = 10
DEFAULT_AI_SUMMARY = "No summary provided."

_FENCE = re.compile(r"^```[\w-]*[ \t]*\n?(.*?)\n?```\s*$", re.DOTALL)


def clamp_score(value: Union[int, float]) -> int:
    if not math.isfinite(value):
        raise ValueError("score must be a finite number")
    return int(round(min(100.0, max(0.0, float(value)))))


def _none_to_empty(value: Any) -> Any:
    return [] if value is None else value


class AnalysisPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    summary: StrictStr
    skills: List[StrictStr]
    experience: List[StrictStr] = Field(default_factory=list)
    education: List[StrictStr] = Field(default_factory=list)
    score: Union[StrictInt, StrictFloat]

    @field_validator("experience", "education", mode="before")
    @classmethod
    def default_lists(cls, value):
        return _none_to_empty(value)

    @field_validator("score")
    @classmethod
    def clamp(cls, value):
        return clamp_score(value)


class MatchPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    match_score: Union[StrictInt, StrictFloat] = Field(alias="matchScore")
    missing_skills: List[StrictStr] = Field(default_factory=list, alias="missingSkills")
    suggested_edits: List[StrictStr] = Field(default_factory=list, alias="suggestedEdits")
    ai_summary: StrictStr = Field(default=DEFAULT_AI_SUMMARY, alias="aiSummary")

    @field_validator("missing_skills", "suggested_edits", mode="before")
    @classmethod
    def default_lists(cls, value):
        return _none_to_empty(value)

    @field_validator("ai_summary", mode="before")
    @classmethod
    def default_summary(cls, value):
        return DEFAULT_AI_SUMMARY if value is None else value

    @field_validator("missing_skills")
    @classmethod
    def cap_missing_skills(cls, value):
        return value[:MAX_MISSING_SKILLS]

    @field_validator("match_score")
    @classmethod
    def clamp(cls, value):
        return clamp_score(value)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ``` fence (with or without a language tag)."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    match = _FENCE.match(stripped)
    if match:
        return match.group(1).strip()
    # Opening fence without a closing one
    return re.sub(r"^```[\w-]*", "", stripped).strip()


def parse_json_object(raw: Optional[str]) -> dict:
    if raw is None or not raw.strip():
        raise EmptyAIResponseError("AI returned an empty response")
    text = strip_code_fence(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"AI response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidStructureError(
            f"AI response must be a JSON object, got {type(data).__name__}"
        )
    return data


def _validate(model: type[BaseModel], data: dict) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise InvalidStructureError(
            f"AI response failed validation on: {', '.join(fields)}"
        ) from exc


def normalize_analysis_response(raw: Optional[str]) -> AnalysisPayload:
    return _validate(AnalysisPayload, parse_json_object(raw))


def normalize_match_response(raw: Optional[str]) -> MatchPayload:
    return _validate(MatchPayload, parse_json_object(raw))
