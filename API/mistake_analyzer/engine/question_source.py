"""
Question Source: where a test's questions come from.

``LocalQuestionSource`` runs the generation agent in-process and stores what it
returns; ``RemoteQuestionSource`` calls a deployed generate-questions function
over HTTP. Both answer the same contract and surface every failure as
``ProviderError``.
"""
from abc import ABC, abstractmethod

import httpx

from mistake_analyzer.agents.question_generator import QuestionGenerationAgent
from mistake_analyzer.core.errors import AppError, ProviderError
from mistake_analyzer.core.logging import DOMAIN_QUESTIONS, get_domain_logger
from mistake_analyzer.core.settings import settings
from mistake_analyzer.schemas.common import Difficulty, TestSubject
from mistake_analyzer.schemas.questions import GenerateQuestionsResponse, Question
from mistake_analyzer.storage.questions import QuestionRepository

logger = get_domain_logger(__name__, DOMAIN_QUESTIONS)


class QuestionSource(ABC):
    @abstractmethod
    async def fetch(self, subject: TestSubject, count: int, difficulty: Difficulty) -> list[Question]:
        raise NotImplementedError


class LocalQuestionSource(QuestionSource):
    def __init__(self, agent: QuestionGenerationAgent | None = None, repository: QuestionRepository | None = None):
        self.agent = agent or QuestionGenerationAgent()
        self.repository = repository or QuestionRepository()

    async def fetch(self, subject: TestSubject, count: int, difficulty: Difficulty) -> list[Question]:
        try:
            result = await self.agent.run({"subject": subject, "count": count, "difficulty": difficulty})
        except ProviderError:
            raise
        except AppError as exc:
            raise ProviderError(exc.message) from exc

        stored: list[Question] = []
        for draft in result["questions"]:
            try:
                stored.append(await self.repository.save(draft))
            except ProviderError as exc:
                logger.warning("Skipping question that failed to store: %s", exc.message)
        logger.info("Stored %d of %d generated questions", len(stored), len(result["questions"]))
        return stored


class RemoteQuestionSource(QuestionSource):
    def __init__(
        self,
        url: str | None = None,
        *,
        project_id: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or settings.question_function_url
        self.project_id = project_id if project_id is not None else settings.question_function_project_id
        self.timeout = timeout or settings.question_function_timeout_seconds
        self._transport = transport

    async def fetch(self, subject: TestSubject, count: int, difficulty: Difficulty) -> list[Question]:
        if not self.url:
            raise ProviderError("Question function URL is not configured")

        headers = {"Content-Type": "application/json"}
        if self.project_id:
            headers["X-Appwrite-Project"] = self.project_id
        payload = {"subject": subject.value, "count": count, "difficulty": difficulty.value}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to generate questions: {exc}") from exc

        try:
            envelope = GenerateQuestionsResponse.model_validate(response.json())
        except ValueError as exc:
            # JSONDecodeError and pydantic ValidationError are both ValueErrors.
            raise ProviderError(f"Question function returned an invalid response (HTTP {response.status_code})") from exc
        if not envelope.success:
            raise ProviderError(envelope.error or f"Question function failed (HTTP {response.status_code})")
        logger.info("Remote question function returned %d questions", len(envelope.questions))
        return list(envelope.questions)


def build_question_source() -> QuestionSource:
    if settings.question_source == "remote":
        return RemoteQuestionSource()
    return LocalQuestionSource()
