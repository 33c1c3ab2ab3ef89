from __future__ import annotations

import json

import pytest

from fakes import FakeLLMProvider, make_question, make_record
from mistake_analyzer.agents.pattern_analysis import (
    SYSTEM_PROMPT,
    PatternAnalysisAgent,
    build_analysis_prompt,
    normalize_confidence,
    parse_patterns,
    prepare_analysis_data,
)
from mistake_analyzer.core.app_metrics import get_metrics
from mistake_analyzer.core.errors import ParseError, ProviderError
from mistake_analyzer.core.json_parser import extract_json_array
from mistake_analyzer.schemas.common import Subject


def _history():
    return [
        make_record("q1", is_correct=False, time_taken=10, position=1, test_id="T1"),
        make_record("q2", is_correct=True, time_taken=50, position=2, test_id="T1"),
        make_record("q3", is_correct=False, time_taken=20, position=1, test_id="T2", subject="Chemistry"),
        make_record("q4", is_correct=True, time_taken=40, position=2, test_id="T2", subject="Chemistry"),
        make_record("missing", is_correct=False, time_taken=5, position=3, test_id="T2", subject="Biology"),
    ]


def test_extract_json_array_slices_first_to_last_bracket():
    text = 'Here are the patterns:\n```json\n[{"title": "x"}, {"title": "y"}]\n```\nHope that helps [sic].'
    with pytest.raises(ParseError, match="malformed"):
        # Last "]" is in the trailing prose.
        extract_json_array(text)
    assert extract_json_array('Sure! [{"title": "x"}] done') == [{"title": "x"}]


@pytest.mark.parametrize(
    "text,message",
    [
        (None, "No JSON array"),
        ("", "No JSON array"),
        ("no brackets here", "No JSON array"),
        ("] backwards [", "No JSON array"),
        ("[1, 2,", "No JSON array"),
        ("[1, 2,]", "malformed"),
    ],
)
def test_extract_json_array_failures(text, message):
    with pytest.raises(ParseError, match=message):
        extract_json_array(text)


def test_prepare_analysis_data():
    questions = {f"q{i}": make_question(f"q{i}", topic=None if i == 3 else "Optics") for i in range(1, 5)}

    data = prepare_analysis_data(_history(), questions, sample_size=2)

    assert data.total_questions == 5
    assert data.total_incorrect == 3
    assert data.accuracy == 40.0
    assert data.avg_time_per_question == 25.0
    assert data.test_count == 2
    assert data.subject_stats == {
        "Physics": {"total": 2, "incorrect": 1},
        "Chemistry": {"total": 2, "incorrect": 1},
        "Biology": {"total": 1, "incorrect": 1},
    }
    assert [a.question_id for a in data.incorrect_answers] == ["q1", "q3"]
    assert data.incorrect_answers[0].topic == "Optics"
    assert data.incorrect_answers[1].topic == "Unknown"


def test_missing_question_renders_placeholders():
    data = prepare_analysis_data(_history(), {}, sample_size=20)

    missing = data.incorrect_answers[-1]
    assert missing.question_text == "Question not found"
    assert missing.correct_answer == "Unknown"
    assert missing.topic == "Unknown"


def test_prompt_truncates_question_text():
    long_question = make_question("q1").model_copy(update={"question_text": "x" * 150})
    data = prepare_analysis_data(_history(), {"q1": long_question})

    prompt = build_analysis_prompt(data)

    assert "x" * 100 + "..." in prompt
    assert "x" * 101 not in prompt
    assert "- Accuracy: 40.0%" in prompt
    assert "- Chemistry: 1/2 incorrect (50.0%)" in prompt
    assert "Return ONLY the JSON array" in prompt


def test_parse_patterns_fills_defaults_and_clamps():
    content = json.dumps(
        [
            {"pattern_type": "rushing", "title": "Rushing", "confidence": 150, "evidence": "not a list"},
            {"confidence": -3, "evidence": ["a", 2, None]},
            "not an object",
            {"confidence": "72.6", "subject_distribution": {"physics": 3, "Astronomy": 1, "Biology": "two"}},
        ]
    )

    patterns = parse_patterns(f"Analysis complete:\n{content}")

    assert len(patterns) == 3
    assert patterns[0].confidence == 100
    assert patterns[0].evidence == []
    assert patterns[1].confidence == 0
    assert patterns[1].evidence == ["a", "2"]
    assert patterns[1].pattern_type == "unknown"
    assert patterns[1].title == "Untitled Pattern"
    assert patterns[1].description == "No description provided"
    assert patterns[1].recommendation == "No recommendation provided"
    assert patterns[2].confidence == 73
    assert patterns[2].subject_distribution == {Subject.PHYSICS: 3}


@pytest.mark.parametrize("value", [None, "high", True, float("nan"), [80], {"v": 1}])
def test_unusable_confidence_defaults_to_fifty(value):
    assert normalize_confidence(value) == 50


def test_parse_patterns_rejects_non_array():
    with pytest.raises(ParseError):
        parse_patterns('{"pattern_type": "rushing"}')


@pytest.mark.asyncio
async def test_agent_sends_system_and_user_prompt():
    provider = FakeLLMProvider(json.dumps([{"pattern_type": "fatigue", "title": "Late-test slips", "confidence": 80}]))
    agent = PatternAnalysisAgent(provider=provider)

    result = await agent.run({"responses": _history(), "questions": {}})

    assert result["count"] == 1
    assert result["patterns"][0].pattern_type == "fatigue"
    assert provider.calls[0]["system_prompt"] == SYSTEM_PROMPT
    assert "Total Questions: 5" in provider.calls[0]["prompt"]
    assert get_metrics()["llm_calls"]["by_agent"] == {"pattern_analysis": {"ok": 1, "failed": 0}}


@pytest.mark.asyncio
async def test_agent_without_content_is_provider_error():
    agent = PatternAnalysisAgent(provider=FakeLLMProvider(None, usage={"reason": "missing_api_key"}))

    with pytest.raises(ProviderError, match="missing_api_key"):
        await agent.run({"responses": _history(), "questions": {}})
    assert get_metrics()["llm_calls"]["failed"] == 1


@pytest.mark.asyncio
async def test_agent_with_prose_reply_is_parse_error():
    agent = PatternAnalysisAgent(provider=FakeLLMProvider("I could not find any patterns."))

    with pytest.raises(ParseError):
        await agent.run({"responses": _history(), "questions": {}})
