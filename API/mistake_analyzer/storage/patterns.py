"""Detected-pattern persistence.

The backing store has no list/object column types, so ``evidence`` and
``subject_distribution`` are stored as JSON text. Encoding and decoding happen
only here; everything above this module sees typed ``Pattern`` objects.
"""
import json
from datetime import datetime

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mistake_analyzer.core.errors import NotFoundError, ProviderError
from mistake_analyzer.core.logging import DOMAIN_STORAGE, get_domain_logger
from mistake_analyzer.core.settings import settings
from mistake_analyzer.models.entities import DetectedPattern
from mistake_analyzer.schemas.common import Subject, parse_subject
from mistake_analyzer.schemas.patterns import Pattern, PatternDraft
from mistake_analyzer.storage.database import SessionLocal, as_utc, utcnow

logger = get_domain_logger(__name__, DOMAIN_STORAGE)


def encode_evidence(evidence: list[str]) -> str:
    return json.dumps(list(evidence))


def decode_evidence(raw: str | None, *, pattern_id: str = "?") -> list[str]:
    try:
        value = json.loads(raw or "[]")
    except json.JSONDecodeError:
        logger.warning("Failed to parse evidence for pattern %s", pattern_id)
        return []
    if not isinstance(value, list):
        logger.warning("Evidence for pattern %s is not a list", pattern_id)
        return []
    return [str(item) for item in value]


def encode_distribution(distribution: dict[Subject, int] | None) -> str | None:
    if not distribution:
        return None
    return json.dumps({subject.value: int(count) for subject, count in distribution.items()})


def decode_distribution(raw: str | None, *, pattern_id: str = "?") -> dict[Subject, int] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse subject distribution for pattern %s", pattern_id)
        return None
    if not isinstance(value, dict):
        return None
    decoded: dict[Subject, int] = {}
    for key, count in value.items():
        subject = parse_subject(key)
        if subject is not None and isinstance(count, int) and not isinstance(count, bool):
            decoded[subject] = count
    return decoded or None


def _to_pattern(row: DetectedPattern) -> Pattern:
    return Pattern(
        id=row.id,
        user_id=row.user_id,
        pattern_type=row.pattern_type,
        title=row.title,
        description=row.description,
        confidence=max(0, min(100, int(row.confidence))),
        evidence=decode_evidence(row.evidence, pattern_id=row.id),
        recommendation=row.recommendation,
        detected_at=as_utc(row.detected_at),
        is_resolved=bool(row.is_resolved),
        subject_distribution=decode_distribution(row.subject_distribution, pattern_id=row.id),
    )


class PatternRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = SessionLocal):
        self._session_factory = session_factory

    async def create(self, user_id: str, draft: PatternDraft, detected_at: datetime | None = None) -> Pattern:
        row = DetectedPattern(
            user_id=user_id,
            pattern_type=draft.pattern_type,
            title=draft.title,
            description=draft.description,
            confidence=draft.confidence,
            evidence=encode_evidence(draft.evidence),
            recommendation=draft.recommendation,
            detected_at=detected_at or utcnow(),
            is_resolved=False,
            subject_distribution=encode_distribution(draft.subject_distribution),
        )
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as exc:
            raise ProviderError(f"Failed to store pattern: {exc}") from exc
        return _to_pattern(row)

    async def list_unresolved(self, user_id: str, limit: int | None = None) -> list[Pattern]:
        stmt = (
            select(DetectedPattern)
            .where(DetectedPattern.user_id == user_id, DetectedPattern.is_resolved.is_(False))
            .order_by(desc(DetectedPattern.confidence), desc(DetectedPattern.detected_at))
            .limit(limit or settings.pattern_list_limit)
        )
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise ProviderError(f"Failed to fetch patterns: {exc}") from exc
        return [_to_pattern(row) for row in rows]

    async def resolve(self, pattern_id: str) -> Pattern:
        try:
            async with self._session_factory() as db:
                row = await db.get(DetectedPattern, pattern_id)
                if row is None:
                    raise NotFoundError(f"Pattern {pattern_id} not found")
                row.is_resolved = True
                await db.commit()
        except SQLAlchemyError as exc:
            raise ProviderError(f"Failed to resolve pattern: {exc}") from exc
        return _to_pattern(row)
