from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mistake_analyzer.core.errors import ProviderError
from mistake_analyzer.core.logging import DOMAIN_STORAGE, get_domain_logger
from mistake_analyzer.core.settings import settings
from mistake_analyzer.models.entities import UserResponse
from mistake_analyzer.schemas.responses import AnswerPayload, RecordedAnswer, ResponseRecord
from mistake_analyzer.storage.database import SessionLocal, as_utc, utcnow

logger = get_domain_logger(__name__, DOMAIN_STORAGE)


def _to_record(row: UserResponse) -> ResponseRecord:
    return ResponseRecord(
        id=row.id,
        user_id=row.user_id,
        question_id=row.question_id,
        selected_answer=row.selected_answer,
        is_correct=bool(row.is_correct),
        time_taken=int(row.time_taken or 0),
        test_id=row.test_id,
        timestamp=as_utc(row.timestamp),
        question_position=int(row.question_position or 1),
        test_duration_so_far=float(row.test_duration_so_far or 0.0),
        subject=row.subject,
    )


class ResponseRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = SessionLocal):
        self._session_factory = session_factory

    async def record_answer(self, payload: AnswerPayload) -> RecordedAnswer:
        """Persist one answer; a repeated (test_id, question_position) replaces the earlier answer."""
        is_correct = payload.selected_answer.value.upper() == payload.correct_answer.value.upper()
        values = {
            "user_id": payload.user_id,
            "question_id": payload.question_id,
            "selected_answer": payload.selected_answer.value,
            "is_correct": is_correct,
            "time_taken": payload.time_taken,
            "timestamp": payload.timestamp or utcnow(),
            "test_duration_so_far": payload.test_duration_so_far,
            "subject": payload.subject,
        }
        try:
            async with self._session_factory() as db:
                existing = (
                    await db.execute(
                        select(UserResponse).where(
                            UserResponse.test_id == payload.test_id,
                            UserResponse.question_position == payload.question_position,
                        )
                    )
                ).scalar_one_or_none()
                if existing is None:
                    row = UserResponse(test_id=payload.test_id, question_position=payload.question_position, **values)
                    db.add(row)
                else:
                    logger.info(
                        "Replacing answer for test=%s position=%d", payload.test_id, payload.question_position
                    )
                    row = existing
                    for key, value in values.items():
                        setattr(row, key, value)
                await db.commit()
                record_id = row.id
        except SQLAlchemyError as exc:
            raise ProviderError(f"Failed to record answer: {exc}") from exc

        return RecordedAnswer(
            id=record_id,
            is_correct=is_correct,
            selected_answer=payload.selected_answer,
            correct_answer=payload.correct_answer,
        )

    async def list_for_test(self, test_id: str, limit: int | None = None) -> list[ResponseRecord]:
        stmt = (
            select(UserResponse)
            .where(UserResponse.test_id == test_id)
            .order_by(UserResponse.question_position, UserResponse.timestamp)
            .limit(limit or settings.results_fetch_limit)
        )
        return await self._fetch(stmt)

    async def list_for_user(self, user_id: str, limit: int | None = None) -> list[ResponseRecord]:
        """Most recent first."""
        stmt = (
            select(UserResponse)
            .where(UserResponse.user_id == user_id)
            .order_by(desc(UserResponse.timestamp))
            .limit(limit or settings.stats_fetch_limit)
        )
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> list[ResponseRecord]:
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise ProviderError(f"Failed to fetch responses: {exc}") from exc
        return [_to_record(row) for row in rows]
