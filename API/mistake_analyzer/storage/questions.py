from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mistake_analyzer.core.errors import ProviderError
from mistake_analyzer.core.logging import DOMAIN_STORAGE, get_domain_logger
from mistake_analyzer.core.settings import settings
from mistake_analyzer.models.entities import QuestionEntry
from mistake_analyzer.schemas.questions import Question, QuestionDraft
from mistake_analyzer.storage.database import SessionLocal

logger = get_domain_logger(__name__, DOMAIN_STORAGE)


def _to_question(row: QuestionEntry) -> Question:
    return Question(
        id=row.id,
        question_text=row.question_text,
        option_a=row.option_a,
        option_b=row.option_b,
        option_c=row.option_c,
        option_d=row.option_d,
        correct_answer=row.correct_answer,
        subject=row.subject,
        difficulty=row.difficulty,
        topic=row.topic,
    )


class QuestionRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = SessionLocal, batch_size: int | None = None):
        self._session_factory = session_factory
        self.batch_size = batch_size or settings.question_batch_size

    async def save(self, draft: QuestionDraft) -> Question:
        row = QuestionEntry(
            question_text=draft.question_text,
            option_a=draft.option_a,
            option_b=draft.option_b,
            option_c=draft.option_c,
            option_d=draft.option_d,
            correct_answer=draft.correct_answer.value,
            subject=draft.subject.value,
            difficulty=draft.difficulty.value,
            topic=draft.topic,
        )
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as exc:
            raise ProviderError(f"Failed to store question: {exc}") from exc
        return _to_question(row)

    async def get_many(self, question_ids) -> dict[str, Question]:
        """Fetch questions by id in batches. A failing batch is logged and skipped."""
        ids = list(dict.fromkeys(str(qid) for qid in question_ids if qid))
        found: dict[str, Question] = {}
        for offset in range(0, len(ids), self.batch_size):
            batch = ids[offset : offset + self.batch_size]
            try:
                async with self._session_factory() as db:
                    rows = (await db.execute(select(QuestionEntry).where(QuestionEntry.id.in_(batch)))).scalars().all()
            except SQLAlchemyError as exc:
                logger.warning("Question batch lookup failed (%d ids): %s", len(batch), exc)
                continue
            for row in rows:
                try:
                    found[row.id] = _to_question(row)
                except ValidationError as exc:
                    logger.warning("Skipping malformed stored question %s: %s", row.id, exc.error_count())
        return found
