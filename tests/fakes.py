"""In-memory collaborators that record their calls, so tests can assert what was (not) called."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from mistake_analyzer.core.errors import ProviderError
from mistake_analyzer.core.llm_provider import BaseLLMProvider
from mistake_analyzer.engine.question_source import QuestionSource
from mistake_analyzer.schemas.common import Difficulty, OptionLabel, Subject
from mistake_analyzer.schemas.questions import Question
from mistake_analyzer.schemas.responses import AnswerPayload, RecordedAnswer, ResponseRecord

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def make_question(
    qid: str,
    *,
    subject: Subject = Subject.PHYSICS,
    correct: OptionLabel = OptionLabel.A,
    topic: str | None = "Kinematics",
) -> Question:
    return Question(
        id=qid,
        question_text=f"Question text for {qid}",
        option_a="first",
        option_b="second",
        option_c="third",
        option_d="fourth",
        correct_answer=correct,
        subject=subject,
        difficulty=Difficulty.MEDIUM,
        topic=topic,
    )


def make_record(
    qid: str,
    *,
    is_correct: bool,
    time_taken: int = 30,
    subject: str | None = "Physics",
    test_id: str = "TEST_1_abc",
    position: int = 1,
    user_id: str = "device-1",
) -> ResponseRecord:
    return ResponseRecord(
        id=f"r-{qid}-{position}",
        user_id=user_id,
        question_id=qid,
        selected_answer="A" if is_correct else "B",
        is_correct=is_correct,
        time_taken=time_taken,
        test_id=test_id,
        timestamp=T0 + timedelta(minutes=position),
        question_position=position,
        test_duration_so_far=position * 0.5,
        subject=subject,
    )


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeLLMProvider(BaseLLMProvider):
    provider_name = "fake"

    def __init__(self, text: str | None = None, *, error: Exception | None = None, usage: dict | None = None):
        self.text = text
        self.error = error
        self.usage = usage or {"provider": "fake", "prompt_tokens": 10, "completion_tokens": 20}
        self.calls: list[dict] = []

    async def generate(self, prompt: str, *, system_prompt: str | None = None) -> tuple[str | None, dict]:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt})
        if self.error is not None:
            raise self.error
        return self.text, dict(self.usage)


class FakeQuestionSource(QuestionSource):
    def __init__(self, questions: list[Question] | None = None, *, error: Exception | None = None):
        self.questions = questions or []
        self.error = error
        self.calls: list[tuple] = []

    async def fetch(self, subject, count, difficulty) -> list[Question]:
        self.calls.append((subject, count, difficulty))
        if self.error is not None:
            raise self.error
        return list(self.questions)


class FakeResponseStore:
    """Stands in for ResponseRepository: keeps payloads in memory, one record per (test, position)."""

    def __init__(self, *, fail_listing: bool = False):
        self.payloads: list[AnswerPayload] = []
        self.fail_listing = fail_listing

    async def record_answer(self, payload: AnswerPayload) -> RecordedAnswer:
        self.payloads = [
            p for p in self.payloads
            if (p.test_id, p.question_position) != (payload.test_id, payload.question_position)
        ]
        self.payloads.append(payload)
        return RecordedAnswer(
            id=f"rec-{len(self.payloads)}",
            is_correct=payload.selected_answer == payload.correct_answer,
            selected_answer=payload.selected_answer,
            correct_answer=payload.correct_answer,
        )

    async def list_for_test(self, test_id: str, limit: int | None = None) -> list[ResponseRecord]:
        if self.fail_listing:
            raise ProviderError("Failed to fetch responses: database unavailable")
        return [
            ResponseRecord(
                id=f"rec-{i}",
                user_id=p.user_id,
                question_id=p.question_id,
                selected_answer=p.selected_answer.value,
                is_correct=p.selected_answer == p.correct_answer,
                time_taken=p.time_taken,
                test_id=p.test_id,
                timestamp=p.timestamp or T0,
                question_position=p.question_position,
                test_duration_so_far=p.test_duration_so_far,
                subject=p.subject,
            )
            for i, p in enumerate(sorted(self.payloads, key=lambda p: p.question_position))
            if p.test_id == test_id
        ]
