"""
Pattern Analysis Agent: turns a user's answer history into behavioral mistake patterns.

The deterministic parts live in plain functions so they can be tested without a
model: ``prepare_analysis_data`` shapes the history, ``build_analysis_prompt``
renders it, ``parse_patterns`` validates the completion (defaults, confidence
clamping, evidence coercion). The agent only glues them to the provider.
"""
import math
from dataclasses import dataclass, field

from mistake_analyzer.agents.base import BaseAgent
from mistake_analyzer.core.app_metrics import record_llm_call
from mistake_analyzer.core.errors import ParseError, ProviderError
from mistake_analyzer.core.json_parser import extract_json_array
from mistake_analyzer.core.llm_provider import BaseLLMProvider, get_llm_provider
from mistake_analyzer.core.logging import DOMAIN_PATTERNS, get_domain_logger
from mistake_analyzer.core.settings import settings
from mistake_analyzer.schemas.common import Subject, parse_subject
from mistake_analyzer.schemas.patterns import PatternDraft
from mistake_analyzer.schemas.questions import Question
from mistake_analyzer.schemas.responses import ResponseRecord

logger = get_domain_logger(__name__, DOMAIN_PATTERNS)

SYSTEM_PROMPT = (
    "You are an expert NEET exam coach analyzing student mistake patterns. "
    "Identify behavioral patterns in errors and provide actionable recommendations."
)
DEFAULT_CONFIDENCE = 50
QUESTION_TEXT_PREVIEW = 100


@dataclass
class IncorrectAnswer:
    question_id: str
    question_text: str
    subject: str | None
    selected_answer: str
    correct_answer: str
    time_taken: int
    question_position: int
    test_duration_so_far: float
    topic: str


@dataclass
class AnalysisData:
    total_questions: int
    total_incorrect: int
    accuracy: float
    avg_time_per_question: float
    subject_stats: dict[str, dict[str, int]] = field(default_factory=dict)
    incorrect_answers: list[IncorrectAnswer] = field(default_factory=list)
    test_count: int = 0


def prepare_analysis_data(
    responses: list[ResponseRecord],
    questions: dict[str, Question],
    *,
    sample_size: int | None = None,
) -> AnalysisData:
    if not responses:
        raise ValueError("prepare_analysis_data needs at least one response record")
    limit = sample_size or settings.pattern_evidence_sample_size
    total = len(responses)
    incorrect = [r for r in responses if not r.is_correct]

    subject_stats: dict[str, dict[str, int]] = {}
    for record in responses:
        if not record.subject:
            continue
        entry = subject_stats.setdefault(record.subject, {"total": 0, "incorrect": 0})
        entry["total"] += 1
        if not record.is_correct:
            entry["incorrect"] += 1

    samples: list[IncorrectAnswer] = []
    for record in incorrect[:limit]:
        question = questions.get(record.question_id)
        samples.append(
            IncorrectAnswer(
                question_id=record.question_id,
                question_text=question.question_text if question else "Question not found",
                subject=record.subject,
                selected_answer=record.selected_answer,
                correct_answer=question.correct_answer.value if question else "Unknown",
                time_taken=record.time_taken,
                question_position=record.question_position,
                test_duration_so_far=record.test_duration_so_far,
                topic=(question.topic if question and question.topic else "Unknown"),
            )
        )

    return AnalysisData(
        total_questions=total,
        total_incorrect=len(incorrect),
        accuracy=round((total - len(incorrect)) / total * 100, 1),
        avg_time_per_question=round(sum(r.time_taken for r in responses) / total, 1),
        subject_stats=subject_stats,
        incorrect_answers=samples,
        test_count=len({r.test_id for r in responses}),
    )


def build_analysis_prompt(data: AnalysisData) -> str:
    subject_lines = "\n".join(
        f"- {subject}: {stats['incorrect']}/{stats['total']} incorrect "
        f"({stats['incorrect'] / stats['total'] * 100:.1f}%)"
        for subject, stats in data.subject_stats.items()
        if stats["total"]
    )
    answer_blocks = "\n\n".join(
        f"{i}. [{ans.subject or 'Unknown'}] {ans.question_text[:QUESTION_TEXT_PREVIEW]}...\n"
        f"   - Selected: {ans.selected_answer}, Correct: {ans.correct_answer}\n"
        f"   - Time: {ans.time_taken}s, Position: {ans.question_position}, Topic: {ans.topic}"
        for i, ans in enumerate(data.incorrect_answers, start=1)
    )
    return (
        "Analyze this NEET student's test performance and identify mistake patterns:\n\n"
        "**Overall Statistics:**\n"
        f"- Total Questions: {data.total_questions}\n"
        f"- Incorrect Answers: {data.total_incorrect}\n"
        f"- Accuracy: {data.accuracy:.1f}%\n"
        f"- Average Time per Question: {data.avg_time_per_question:.1f} seconds\n"
        f"- Tests Taken: {data.test_count}\n\n"
        "**Subject Performance:**\n"
        f"{subject_lines or '- No subject data'}\n\n"
        "**Incorrect Answers (Sample):**\n"
        f"{answer_blocks or 'None'}\n\n"
        "**Task:**\n"
        "Identify 2-4 behavioral mistake patterns (NOT content gaps). Look for:\n"
        "- Time management issues (rushing, spending too long)\n"
        "- Question position patterns (mistakes at start/end of test)\n"
        "- Subject-specific behavioral patterns\n"
        "- Consistency issues across tests\n\n"
        "For each pattern, provide:\n"
        '1. Pattern type (e.g., "rushing", "fatigue", "confusion")\n'
        "2. Title (concise, student-friendly)\n"
        "3. Description (2-3 sentences explaining the pattern)\n"
        "4. Confidence score (0-100, based on evidence strength)\n"
        "5. Evidence (3-5 specific examples from the data)\n"
        "6. Recommendation (actionable advice to fix the pattern)\n"
        "7. Subject distribution (if pattern affects specific subjects)\n\n"
        "Format as JSON array:\n"
        "[\n"
        "  {\n"
        '    "pattern_type": "rushing",\n'
        '    "title": "Rushing Through Multi-Step Problems",\n'
        '    "description": "You tend to answer complex questions too quickly, leading to careless mistakes.",\n'
        '    "confidence": 85,\n'
        '    "evidence": [\n'
        '      "Answered 3 mechanics questions in under 30 seconds each",\n'
        '      "Accuracy drops to 40% when time taken < 35 seconds"\n'
        "    ],\n"
        '    "recommendation": "Slow down on multi-step problems and write down intermediate steps.",\n'
        '    "subject_distribution": {"Physics": 5, "Chemistry": 2}\n'
        "  }\n"
        "]\n\n"
        "Return ONLY the JSON array, no additional text."
    )


def _text(value, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def normalize_confidence(value) -> int:
    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return DEFAULT_CONFIDENCE
    if not isinstance(value, (int, float)) or math.isnan(value):
        return DEFAULT_CONFIDENCE
    if math.isinf(value):
        return 100 if value > 0 else 0
    return max(0, min(100, int(round(value))))


def _subject_distribution(value) -> dict[Subject, int] | None:
    if not isinstance(value, dict):
        return None
    distribution: dict[Subject, int] = {}
    for key, count in value.items():
        subject = parse_subject(key)
        if subject is None or isinstance(count, bool) or not isinstance(count, (int, float)):
            continue
        if math.isfinite(count) and count >= 0:
            distribution[subject] = int(count)
    return distribution or None


def normalize_pattern(item: dict) -> PatternDraft:
    evidence = item.get("evidence")
    return PatternDraft(
        pattern_type=_text(item.get("pattern_type"), "unknown"),
        title=_text(item.get("title"), "Untitled Pattern"),
        description=_text(item.get("description"), "No description provided"),
        confidence=normalize_confidence(item.get("confidence")),
        evidence=[str(e) for e in evidence if e is not None] if isinstance(evidence, list) else [],
        recommendation=_text(item.get("recommendation"), "No recommendation provided"),
        subject_distribution=_subject_distribution(item.get("subject_distribution")),
    )


def parse_patterns(content: str | None) -> list[PatternDraft]:
    try:
        items = extract_json_array(content)
    except ParseError as exc:
        raise ParseError(f"Failed to parse AI patterns: {exc.message}") from exc
    drafts = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Skipping pattern %d: not an object", index + 1)
            continue
        drafts.append(normalize_pattern(item))
    return drafts


class PatternAnalysisAgent(BaseAgent):
    name = "pattern_analysis"

    def __init__(self, provider: BaseLLMProvider | None = None):
        self.provider = provider or get_llm_provider(role="pattern_analyzer")

    async def run(self, input_data: dict) -> dict:
        responses: list[ResponseRecord] = input_data["responses"]
        questions: dict[str, Question] = input_data.get("questions", {})
        data = prepare_analysis_data(responses, questions, sample_size=input_data.get("sample_size"))
        prompt = build_analysis_prompt(data)

        logger.info("Sending %d responses (%d incorrect) for pattern detection", data.total_questions, data.total_incorrect)
        try:
            text, usage = await self.provider.generate(prompt, system_prompt=SYSTEM_PROMPT)
        except ProviderError:
            record_llm_call(self.name, False)
            raise
        if not text:
            record_llm_call(self.name, False)
            raise ProviderError(f"No content received from AI ({usage.get('reason', 'empty_response')})")
        record_llm_call(self.name, True)

        patterns = parse_patterns(text)
        logger.info("AI detected %d patterns", len(patterns))
        return {
            "patterns": patterns,
            "count": len(patterns),
            "analysis": data,
            "usage": usage,
            "agent": self.name,
        }
