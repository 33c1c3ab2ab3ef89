"""
Session Engine: the in-memory state of one device's test.

States are Idle (no session) and InProgress (pointer + answer map). A device
has at most one session; starting a new test silently replaces an unfinished
one, while answers already persisted for it stay persisted. Every transition is
logged as a JSON line so a test run can be replayed from the logs.
"""
import math
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from mistake_analyzer.core.errors import AppError, InvalidRequestError, NoActiveSessionError, NoResultsError, ProviderError
from mistake_analyzer.core.logging import DOMAIN_SESSION, get_domain_logger, log_event
from mistake_analyzer.core.settings import settings
from mistake_analyzer.engine.question_source import QuestionSource
from mistake_analyzer.engine.statistics import compute_results
from mistake_analyzer.schemas.common import Difficulty, OptionLabel, TestSubject
from mistake_analyzer.schemas.questions import Question, QuestionPrompt
from mistake_analyzer.schemas.responses import AnswerPayload
from mistake_analyzer.schemas.results import TestReview
from mistake_analyzer.schemas.session import SessionView, SubmitAnswerResponse
from mistake_analyzer.storage.responses import ResponseRepository

logger = get_domain_logger(__name__, DOMAIN_SESSION)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_test_id(now: datetime) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"TEST_{int(now.timestamp() * 1000)}_{suffix}"


@dataclass
class TestSession:
    test_id: str
    user_id: str
    subject: TestSubject
    difficulty: Difficulty
    questions: list[Question]
    started_at: datetime
    question_started_at: datetime
    current_index: int = 0
    answers: dict[int, OptionLabel] = field(default_factory=dict)

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1


class SessionEngine:
    def __init__(
        self,
        question_source: QuestionSource,
        response_store: ResponseRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.question_source = question_source
        self.response_store = response_store
        self.clock = clock
        self.session: TestSession | None = None

    def _log_transition(self, event: str, from_state: str, to_state: str, **extra) -> None:
        log_event(logger, "state_transition", event=event, **{"from": from_state, "to": to_state}, **extra)

    def _require_session(self) -> TestSession:
        if self.session is None:
            raise NoActiveSessionError()
        return self.session

    @property
    def state(self) -> str:
        return "idle" if self.session is None else "in_progress"

    async def start_test(
        self,
        user_id: str,
        subject: TestSubject,
        question_count: int,
        difficulty: Difficulty | None = None,
    ) -> TestSession:
        if question_count <= 0:
            raise InvalidRequestError(f"question_count must be positive, got {question_count}")
        difficulty = difficulty or Difficulty(settings.default_difficulty)

        try:
            questions = await self.question_source.fetch(subject, question_count, difficulty)
        except ProviderError:
            raise
        except AppError as exc:
            raise ProviderError(exc.message) from exc
        if not questions:
            raise ProviderError("Question source returned no questions")
        if len(questions) < question_count:
            raise ProviderError(f"Question source returned {len(questions)} of {question_count} requested questions")

        if self.session is not None:
            logger.info("Discarding unfinished test %s for %s", self.session.test_id, self.session.user_id)
        previous = self.state
        now = self.clock()
        self.session = TestSession(
            test_id=new_test_id(now),
            user_id=user_id,
            subject=subject,
            difficulty=difficulty,
            questions=list(questions[:question_count]),
            started_at=now,
            question_started_at=now,
        )
        self._log_transition(
            "start_test", previous, "in_progress",
            test_id=self.session.test_id, user_id=user_id, questions=question_count,
        )
        return self.session

    async def submit_answer(self, selected_option: OptionLabel) -> SubmitAnswerResponse:
        session = self._require_session()
        index = session.current_index
        question = session.questions[index]
        now = self.clock()
        time_taken = max(0, math.floor((now - session.question_started_at).total_seconds()))
        duration_minutes = max(0.0, (now - session.started_at).total_seconds() / 60)
        position = index + 1

        recorded = await self.response_store.record_answer(
            AnswerPayload(
                user_id=session.user_id,
                test_id=session.test_id,
                question_id=question.id,
                selected_answer=selected_option,
                correct_answer=question.correct_answer,
                time_taken=time_taken,
                question_position=position,
                test_duration_so_far=duration_minutes,
                subject=question.subject.value,
                timestamp=now,
            )
        )
        # The pointer may have moved, or the session been replaced, while the store call was pending.
        if self.session is session:
            session.answers[index] = selected_option
        self._log_transition(
            "submit_answer", "in_progress", "in_progress",
            test_id=session.test_id, position=position, is_correct=recorded.is_correct, time_taken=time_taken,
        )
        return SubmitAnswerResponse(
            test_id=session.test_id,
            question_position=position,
            is_correct=recorded.is_correct,
            time_taken=time_taken,
            record_id=recorded.id,
        )

    def next_question(self) -> TestSession:
        session = self._require_session()
        if session.is_last_question:
            return session
        session.current_index += 1
        session.question_started_at = self.clock()
        self._log_transition(
            "next_question", "in_progress", "in_progress",
            test_id=session.test_id, position=session.current_index + 1,
        )
        return session

    async def end_test(self) -> TestReview:
        session = self._require_session()
        records = await self.response_store.list_for_test(session.test_id)
        if not records:
            # Session stays active so the caller can retry.
            raise NoResultsError(f"No responses found for test {session.test_id}")

        results = compute_results(session.test_id, records, now=self.clock())
        review = TestReview(
            results=results,
            questions=session.questions,
            answers={index: option.value for index, option in session.answers.items()},
        )
        self.session = None
        self._log_transition(
            "end_test", "in_progress", "idle",
            test_id=session.test_id, accuracy=results.accuracy, grade=results.grade,
        )
        return review

    def reset_test(self) -> None:
        previous = self.state
        test_id = self.session.test_id if self.session else None
        self.session = None
        self._log_transition("reset_test", previous, "idle", test_id=test_id)

    def current_view(self) -> SessionView:
        session = self._require_session()
        return SessionView(
            test_id=session.test_id,
            user_id=session.user_id,
            subject=session.subject,
            current_question=session.current_index + 1,
            total_questions=len(session.questions),
            question=QuestionPrompt.from_question(session.current_question),
            answered_count=len(session.answers),
            is_last_question=session.is_last_question,
            elapsed_seconds=round((self.clock() - session.started_at).total_seconds(), 1),
        )


class SessionManager:
    """One SessionEngine per device/user id, held only while that device has a test in progress."""

    def __init__(
        self,
        question_source: QuestionSource,
        response_store: ResponseRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.question_source = question_source
        self.response_store = response_store
        self.clock = clock
        self._engines: dict[str, SessionEngine] = {}

    def engine_for(self, user_id: str) -> SessionEngine:
        """Engine to start a test on; created if the device has none."""
        engine = self._engines.get(user_id)
        if engine is None:
            engine = SessionEngine(self.question_source, self.response_store, clock=self.clock)
            self._engines[user_id] = engine
        return engine

    def get(self, user_id: str) -> SessionEngine:
        engine = self._engines.get(user_id)
        if engine is None or engine.session is None:
            raise NoActiveSessionError()
        return engine

    def release_if_idle(self, user_id: str) -> None:
        engine = self._engines.get(user_id)
        if engine is not None and engine.session is None:
            del self._engines[user_id]

    async def start_test(
        self,
        user_id: str,
        subject: TestSubject,
        question_count: int,
        difficulty: Difficulty | None = None,
    ) -> SessionEngine:
        engine = self.engine_for(user_id)
        try:
            await engine.start_test(user_id, subject, question_count, difficulty)
        finally:
            self.release_if_idle(user_id)
        return engine

    async def end_test(self, user_id: str) -> TestReview:
        review = await self.get(user_id).end_test()
        self.release_if_idle(user_id)
        return review

    def reset_test(self, user_id: str) -> None:
        engine = self._engines.pop(user_id, None)
        if engine is not None:
            engine.reset_test()

    def held_count(self) -> int:
        return len(self._engines)

    def active_count(self) -> int:
        return sum(1 for engine in self._engines.values() if engine.session is not None)
