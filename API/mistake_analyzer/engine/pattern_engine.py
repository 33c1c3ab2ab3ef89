import asyncio

from mistake_analyzer.agents.pattern_analysis import PatternAnalysisAgent
from mistake_analyzer.core.errors import InsufficientDataError, ProviderError
from mistake_analyzer.core.logging import DOMAIN_PATTERNS, get_domain_logger
from mistake_analyzer.core.settings import settings
from mistake_analyzer.engine.statistics import compute_user_stats
from mistake_analyzer.schemas.patterns import Pattern
from mistake_analyzer.schemas.results import UserStats
from mistake_analyzer.storage.patterns import PatternRepository
from mistake_analyzer.storage.questions import QuestionRepository
from mistake_analyzer.storage.responses import ResponseRepository

logger = get_domain_logger(__name__, DOMAIN_PATTERNS)


class PatternEngine:
    """Detects, lists and resolves a user's mistake patterns."""

    def __init__(
        self,
        responses: ResponseRepository,
        questions: QuestionRepository,
        patterns: PatternRepository,
        agent: PatternAnalysisAgent | None = None,
        *,
        lookback_limit: int | None = None,
        min_responses: int | None = None,
    ):
        self.responses = responses
        self.questions = questions
        self.patterns = patterns
        self.agent = agent or PatternAnalysisAgent()
        self.lookback_limit = lookback_limit or settings.pattern_lookback_limit
        self.min_responses = min_responses or settings.pattern_min_responses

    async def analyze(self, user_id: str) -> list[Pattern]:
        history = await self.responses.list_for_user(user_id, limit=self.lookback_limit)
        logger.info("Fetched %d responses for %s", len(history), user_id)
        if len(history) < self.min_responses:
            raise InsufficientDataError(
                f"Need at least {self.min_responses} responses for pattern analysis",
                details={"user_id": user_id, "responses": len(history), "required": self.min_responses},
            )

        questions = await self.questions.get_many(r.question_id for r in history)
        result = await self.agent.run({"responses": history, "questions": questions})

        stored: list[Pattern] = []
        for draft in result["patterns"]:
            try:
                stored.append(await self.patterns.create(user_id, draft))
            except ProviderError as exc:
                logger.warning("Failed to store pattern %r for %s: %s", draft.title, user_id, exc.message)
        logger.info("Stored %d of %d detected patterns for %s", len(stored), result["count"], user_id)
        return stored

    async def list_patterns(self, user_id: str) -> list[Pattern]:
        return await self.patterns.list_unresolved(user_id, limit=settings.pattern_list_limit)

    async def resolve(self, pattern_id: str) -> Pattern:
        pattern = await self.patterns.resolve(pattern_id)
        logger.info("Pattern %s resolved for %s", pattern_id, pattern.user_id)
        return pattern

    async def user_stats(self, user_id: str) -> UserStats:
        records = await self.responses.list_for_user(user_id, limit=settings.stats_fetch_limit)
        return compute_user_stats(records)

    async def dashboard(self, user_id: str) -> tuple[list[Pattern], UserStats | None]:
        """Patterns and stats fetched concurrently. A failed stats fetch yields None."""
        patterns, stats = await asyncio.gather(
            self.list_patterns(user_id),
            self.user_stats(user_id),
            return_exceptions=True,
        )
        if isinstance(patterns, Exception):
            raise patterns
        if isinstance(stats, Exception):
            logger.warning("Stats unavailable for %s: %s", user_id, stats)
            return patterns, None
        return patterns, stats
