import json

import pytest

from errors import EmptyAIResponseError, InvalidStructureError, MalformedResponseError
from normalizer import (
    DEFAULT_AI_SUMMARY,
    MAX_MISSING_SKILLS,
    normalize_analysis_response,
    normalize_match_response,
    strip_code_fence,
)

ANALYSIS = {
    "summary": "Experienced backend engineer.",
    "skills": ["Python", "FastAPI"],
    "experience": ["Engineer at Acme (2018-2024): cut latency 40%"],
    "education": ["BSc Computer Science"],
    "score": 82,
}

MATCH = {
    "matchScore": 74,
    "missingSkills": ["Kubernetes"],
    "suggestedEdits": ["Quantify API throughput"],
    "aiSummary": "Strong Python fit, lacks container orchestration.",
}


def test_analysis_happy_path():
    payload = normalize_analysis_response(json.dumps(ANALYSIS))
    assert payload.summary == ANALYSIS["summary"]
    assert payload.skills == ["Python", "FastAPI"]
    assert payload.score == 82


@pytest.mark.parametrize("fence", ["```json\n{}\n```", "```\n{}\n```", "  ```JSON\n{}```  "])
def test_fenced_response_equals_bare(fence):
    raw = json.dumps(ANALYSIS)
    assert normalize_analysis_response(fence.replace("{}", raw)) == normalize_analysis_response(raw)


def test_strip_code_fence_without_closing_fence():
    assert strip_code_fence('```json\n{"a": 1}') == '{"a": 1}'


def test_bare_text_is_untouched_by_fence_stripping():
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


@pytest.mark.parametrize("score,expected", [(150, 100), (-20, 0), (0, 0), (100, 100), (87.6, 88)])
def test_analysis_score_is_clamped(score, expected):
    payload = normalize_analysis_response(json.dumps({**ANALYSIS, "score": score}))
    assert payload.score == expected


@pytest.mark.parametrize("score", ["85", True, None, [85]])
def test_non_numeric_score_is_rejected(score):
    with pytest.raises(InvalidStructureError):
        normalize_analysis_response(json.dumps({**ANALYSIS, "score": score}))


def test_missing_required_field_is_rejected():
    data = dict(ANALYSIS)
    del data["summary"]
    with pytest.raises(InvalidStructureError) as exc_info:
        normalize_analysis_response(json.dumps(data))
    assert "summary" in str(exc_info.value)


def test_null_skills_are_rejected():
    with pytest.raises(InvalidStructureError) as exc_info:
        normalize_analysis_response(json.dumps({**ANALYSIS, "skills": None}))
    assert "skills" in str(exc_info.value)


def test_non_string_list_items_are_rejected():
    with pytest.raises(InvalidStructureError):
        normalize_analysis_response(json.dumps({**ANALYSIS, "skills": ["Python", 3]}))


def test_null_lists_default_to_empty():
    payload = normalize_analysis_response(
        json.dumps({**ANALYSIS, "experience": None, "education": None})
    )
    assert payload.experience == []
    assert payload.education == []


@pytest.mark.parametrize("raw", [None, "", "   \n  "])
def test_empty_response(raw):
    with pytest.raises(EmptyAIResponseError):
        normalize_analysis_response(raw)


def test_malformed_json():
    with pytest.raises(MalformedResponseError):
        normalize_analysis_response('{"summary": "cut off')


@pytest.mark.parametrize("raw", ["[1, 2]", '"just a string"', "42"])
def test_non_object_json(raw):
    with pytest.raises(InvalidStructureError):
        normalize_match_response(raw)


def test_match_happy_path():
    payload = normalize_match_response(json.dumps(MATCH))
    assert payload.match_score == 74
    assert payload.missing_skills == ["Kubernetes"]
    assert payload.suggested_edits == ["Quantify API throughput"]
    assert payload.ai_summary == MATCH["aiSummary"]


def test_match_defaults():
    payload = normalize_match_response(
        json.dumps({"matchScore": 120, "missingSkills": None, "aiSummary": None})
    )
    assert payload.match_score == 100
    assert payload.missing_skills == []
    assert payload.suggested_edits == []
    assert payload.ai_summary == DEFAULT_AI_SUMMARY


def test_match_missing_skills_are_capped():
    skills = [f"skill-{i}" for i in range(15)]
    payload = normalize_match_response(json.dumps({**MATCH, "missingSkills": skills}))
    assert payload.missing_skills == skills[:MAX_MISSING_SKILLS]


def test_match_score_required():
    data = dict(MATCH)
    del data["matchScore"]
    with pytest.raises(InvalidStructureError):
        normalize_match_response(json.dumps(data))


def test_match_string_score_rejected():
    with pytest.raises(InvalidStructureError):
        normalize_match_response(json.dumps({**MATCH, "matchScore": "74"}))


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_analysis_score_rejected(constant):
    raw = '{"summary": "s", "skills": ["Python"], "score": %s}' % constant
    with pytest.raises(InvalidStructureError):
        normalize_analysis_response(raw)


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_match_score_rejected(constant):
    with pytest.raises(InvalidStructureError):
        normalize_match_response('{"matchScore": %s}' % constant)
