import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from mistake_analyzer.models.base import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class QuestionEntry(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_subject_difficulty", "subject", "difficulty"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    option_a: Mapped[str] = mapped_column(Text, nullable=False)
    option_b: Mapped[str] = mapped_column(Text, nullable=False)
    option_c: Mapped[str] = mapped_column(Text, nullable=False)
    option_d: Mapped[str] = mapped_column(Text, nullable=False)
    correct_answer: Mapped[str] = mapped_column(String(1), nullable=False)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")
    topic: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserResponse(Base):
    __tablename__ = "user_responses"
    __table_args__ = (
        UniqueConstraint("test_id", "question_position", name="ux_user_responses_test_position"),
        Index("idx_user_responses_user_id", "user_id"),
        Index("idx_user_responses_test_id", "test_id"),
        Index("idx_user_responses_user_timestamp", "user_id", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    question_id: Mapped[str] = mapped_column(String(36), nullable=False)
    selected_answer: Mapped[str] = mapped_column(String(1), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time_taken: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    test_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    question_position: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    test_duration_so_far: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subject: Mapped[str | None] = mapped_column(String(32), nullable=True)


class DetectedPattern(Base):
    __tablename__ = "detected_patterns"
    __table_args__ = (
        Index("idx_detected_patterns_user_resolved", "user_id", "is_resolved"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    pattern_type: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    # JSON-encoded list[str]; decoded only inside storage.patterns.
    evidence: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    recommendation: Mapped[str] = mapped_column(Text, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # JSON-encoded {subject: count} or NULL.
    subject_distribution: Mapped[str | None] = mapped_column(Text, nullable=True)
